import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import List, Optional, Tuple

from trawler.models import Candidate, Request
from trawler.utils.clock import ensure_aware, utcnow
from trawler.utils.formatting import size_to_bytes

GB = 1024**3

# (label, score, markers), highest resolution first.
QUALITY_TIERS = [
    ("8K", 120, ("4320p", "8k")),
    ("4K", 100, ("2160p", "4k", "uhd")),
    ("1080p", 80, ("1080p", "1080i", "fhd")),
    ("720p", 60, ("720p", "hd")),
    ("480p", 40, ("480p", "576p")),
    ("SD", 20, ("sd", "480i", "dvdrip")),
]

# (label, score, markers), newest codec first.
FORMAT_TIERS = [
    ("AV1", 85, ("av1",)),
    ("x265", 90, ("x265", "h265", "h.265")),
    ("HEVC", 90, ("hevc",)),
    ("x264", 70, ("x264", "h264", "h.264", "avc")),
    ("XviD", 40, ("xvid",)),
    ("DivX", 30, ("divx",)),
]

TRUSTED_INDEXER_BONUS = 20
RECENCY_WINDOW_DAYS = 30
MAX_SEEDER_SCORE = 50
PREFERRED_QUALITY_MULTIPLIER = 1.5
PREFERRED_FORMAT_MULTIPLIER = 1.3
OVERSIZED_BYTES = 50 * GB
OVERSIZED_PENALTY = -10
SWEET_SPOT_BYTES = (1 * GB, 10 * GB)
SWEET_SPOT_BONUS = 5


def _marker_regex(marker: str):
    return re.compile(rf"(?<![a-z0-9]){re.escape(marker)}(?![a-z0-9])")


_QUALITY_MATCHERS = [
    (label, score, [_marker_regex(m) for m in markers])
    for label, score, markers in QUALITY_TIERS
]
_FORMAT_MATCHERS = [
    (label, score, [_marker_regex(m) for m in markers])
    for label, score, markers in FORMAT_TIERS
]


def _detect(title: str, matchers) -> Tuple[Optional[str], int]:
    lowered = title.lower()
    for label, score, regexes in matchers:
        if any(regex.search(lowered) for regex in regexes):
            return label, score
    return None, 0


def detect_quality(title: str) -> Tuple[Optional[str], int]:
    return _detect(title, _QUALITY_MATCHERS)


def detect_format(title: str) -> Tuple[Optional[str], int]:
    return _detect(title, _FORMAT_MATCHERS)


def _canonical(value: str, tiers) -> str:
    lowered = value.strip().lower()
    for label, _, markers in tiers:
        if lowered == label.lower() or lowered in markers:
            return label
    return value.strip()


def canonical_quality(value: str) -> str:
    return _canonical(value, QUALITY_TIERS)


def canonical_format(value: str) -> str:
    return _canonical(value, FORMAT_TIERS)


def _tagged(tag: str, tiers) -> Tuple[str, int]:
    label = _canonical(tag, tiers)
    for tier_label, score, _ in tiers:
        if tier_label == label:
            return label, score
    return label, 0


def candidate_quality(candidate: Candidate) -> Tuple[Optional[str], int]:
    """Quality label and tier score, preferring the indexer's own tag."""
    if candidate.quality:
        return _tagged(candidate.quality, QUALITY_TIERS)
    return detect_quality(candidate.title)


def candidate_format(candidate: Candidate) -> Tuple[Optional[str], int]:
    if candidate.format:
        return _tagged(candidate.format, FORMAT_TIERS)
    return detect_format(candidate.title)


def parse_publish_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None

    try:
        return ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        pass

    try:
        return ensure_aware(parsedate_to_datetime(value))
    except (TypeError, ValueError):
        return None


def candidate_size(candidate: Candidate) -> int:
    if candidate.size_bytes is not None:
        return candidate.size_bytes
    return size_to_bytes(candidate.size)


@dataclass
class RankingCriteria:
    min_seeders: int = 0
    max_size_bytes: Optional[int] = None
    preferred_qualities: List[str] = field(default_factory=list)
    preferred_formats: List[str] = field(default_factory=list)
    blacklisted_words: List[str] = field(default_factory=list)
    trusted_indexers: List[str] = field(default_factory=list)

    @classmethod
    def from_request(cls, request: Request, default_trusted_indexers=()):
        return cls(
            min_seeders=request.min_seeders,
            max_size_bytes=int(request.max_size_gb * GB) if request.max_size_gb else None,
            preferred_qualities=list(request.preferred_qualities),
            preferred_formats=list(request.preferred_formats),
            blacklisted_words=list(request.blacklisted_words),
            trusted_indexers=list(request.trusted_indexers or default_trusted_indexers),
        )


@dataclass
class RankedCandidate:
    candidate: Candidate
    score: float
    quality: Optional[str] = None
    format: Optional[str] = None


def rejection_reason(candidate: Candidate, criteria: RankingCriteria) -> Optional[str]:
    """Return why a candidate fails the hard filters, or None if it passes."""
    if candidate.seeders < criteria.min_seeders:
        return f"seeders {candidate.seeders} < {criteria.min_seeders}"

    if criteria.max_size_bytes and candidate_size(candidate) > criteria.max_size_bytes:
        return "too large"

    lowered = candidate.title.lower()
    for word in criteria.blacklisted_words:
        if word and word.lower() in lowered:
            return f"blacklisted word '{word}'"

    if criteria.preferred_qualities:
        quality, _ = candidate_quality(candidate)
        if not is_preferred_quality(quality, criteria):
            return f"quality {quality} not preferred"

    if criteria.preferred_formats:
        video_format, _ = candidate_format(candidate)
        if not is_preferred_format(video_format, criteria):
            return f"format {video_format} not preferred"

    return None


def is_preferred_quality(quality: Optional[str], criteria: RankingCriteria) -> bool:
    wanted = {canonical_quality(q) for q in criteria.preferred_qualities}
    return quality is not None and quality in wanted


def is_preferred_format(video_format: Optional[str], criteria: RankingCriteria) -> bool:
    wanted = {canonical_format(f) for f in criteria.preferred_formats}
    return video_format is not None and video_format in wanted


def seeder_score(seeders: int) -> float:
    return min(math.log10(max(seeders, 0) + 1) * 10, MAX_SEEDER_SCORE)


def size_adjustment(size_bytes: int) -> int:
    if size_bytes > OVERSIZED_BYTES:
        return OVERSIZED_PENALTY

    low, high = SWEET_SPOT_BYTES
    if low <= size_bytes <= high:
        return SWEET_SPOT_BONUS
    return 0


def is_trusted_indexer(indexer: Optional[str], trusted_indexers: List[str]) -> bool:
    if not indexer:
        return False
    lowered = indexer.lower()
    return any(trusted.lower() in lowered for trusted in trusted_indexers if trusted)


def recency_bonus(publish_date: Optional[str], now: datetime) -> float:
    published = parse_publish_date(publish_date)
    if published is None:
        return 0.0

    days = max((now - published).total_seconds() / 86400, 0.0)
    if days > RECENCY_WINDOW_DAYS:
        return 0.0
    return max(10 - days / 3, 0.0)


def score_candidate(
    candidate: Candidate, criteria: RankingCriteria, now: Optional[datetime] = None
) -> float:
    now = now or utcnow()

    quality, quality_score = candidate_quality(candidate)
    video_format, format_score = candidate_format(candidate)

    if is_preferred_quality(quality, criteria):
        quality_score *= PREFERRED_QUALITY_MULTIPLIER
    if is_preferred_format(video_format, criteria):
        format_score *= PREFERRED_FORMAT_MULTIPLIER

    score = quality_score + format_score
    score += seeder_score(candidate.seeders)
    score += size_adjustment(candidate_size(candidate))
    if is_trusted_indexer(candidate.indexer, criteria.trusted_indexers):
        score += TRUSTED_INDEXER_BONUS
    score += recency_bonus(candidate.publish_date, now)

    return round(score, 1)


def filter_and_rank(
    candidates: List[Candidate],
    criteria: RankingCriteria,
    now: Optional[datetime] = None,
) -> List[RankedCandidate]:
    now = now or utcnow()

    ranked = []
    for candidate in candidates:
        if rejection_reason(candidate, criteria) is not None:
            continue

        ranked.append(
            RankedCandidate(
                candidate=candidate,
                score=score_candidate(candidate, criteria, now),
                quality=candidate_quality(candidate)[0],
                format=candidate_format(candidate)[0],
            )
        )

    # sorted() is stable: equal scores keep indexer order
    return sorted(ranked, key=lambda r: r.score, reverse=True)
