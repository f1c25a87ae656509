import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class MatchKind(str, Enum):
    COMPLETE_SERIES = "complete_series"
    MULTI_SEASON = "multi_season"
    SEASON_PACK = "season_pack"
    INDIVIDUAL_EPISODE = "individual_episode"
    UNKNOWN = "unknown"


@dataclass
class TitleMatch:
    kind: MatchKind
    confidence: int
    title: str
    seasons: List[int] = field(default_factory=list)
    season: Optional[int] = None
    episode: Optional[int] = None
    pattern: Optional[str] = None

    @property
    def covered_seasons(self) -> List[int]:
        if self.seasons:
            return self.seasons
        if self.season is not None:
            return [self.season]
        return []


MIN_CONFIDENCE = 70
MAX_SEASON = 50
MAX_EPISODE = 100
MAX_SEASON_SPAN = 10


def _compile(pattern: str):
    return re.compile(pattern, re.IGNORECASE)


# (pattern, confidence) in declaration order; ties keep the first declared.
COMPLETE_SERIES_PATTERNS = [
    (_compile(r"complete\s*series"), 95),
    (_compile(r"complete\s*collection"), 90),
    (_compile(r"all\s*seasons?"), 85),
    (_compile(r"entire\s*series"), 90),
    (_compile(r"full\s*series"), 85),
    (_compile(r"seasons?\s*1[-\s]*\d+"), 80),
]

MULTI_SEASON_PATTERNS = [
    (_compile(r"S(\d+)[-\s]*S(\d+)"), 95),
    (_compile(r"S(\d+)[-~](\d+)"), 90),
    (_compile(r"Seasons?\s*(\d+)[-\s]*(\d+)"), 85),
    (_compile(r"Seasons?\s*(\d+)\s*(?:to|through)\s*(\d+)"), 85),
    (_compile(r"(\d+)[-\s]*(\d+)\s*Seasons?"), 80),
]

SEASON_PACK_PATTERNS = [
    (_compile(r"S(\d+)(?!\d)(?![Ee])"), 90),
    (_compile(r"Season\s*(\d+)(?!\d)"), 85),
    (_compile(r"(\d+)(?:st|nd|rd|th)\s*Season"), 80),
    (_compile(r"Season\s*(\d+)\s*Complete"), 95),
]

EPISODE_PATTERNS = [
    (_compile(r"S(\d+)E(\d+)"), 95),
    (_compile(r"S(\d+)\s*E(\d+)"), 90),
    (_compile(r"(\d+)x(\d+)"), 85),
    (_compile(r"Season\s*(\d+).*Episode\s*(\d+)"), 80),
    (_compile(r"S(\d+)\.E(\d+)"), 85),
]

QUALITY_PATTERNS = [
    ("720p", _compile(r"720p")),
    ("1080p", _compile(r"1080p")),
    ("2160p", _compile(r"2160p")),
    ("4K", _compile(r"4K")),
    ("8K", _compile(r"8K")),
    ("HDTV", _compile(r"HDTV")),
    ("WEB-DL", _compile(r"WEB-?DL")),
    ("BluRay", _compile(r"BluRay")),
    ("BDRip", _compile(r"BDRip")),
    ("DVDRip", _compile(r"DVDRip")),
    ("x264", _compile(r"x264")),
    ("x265", _compile(r"x265")),
    ("HEVC", _compile(r"HEVC")),
    ("H.264", _compile(r"H\.?264")),
    ("H.265", _compile(r"H\.?265")),
]

RELEASE_GROUP_PATTERNS = [
    re.compile(r"-([A-Z0-9]+)$", re.IGNORECASE),
    re.compile(r"\[([A-Z0-9]+)\]$", re.IGNORECASE),
]


def normalize_show_title(title: str) -> str:
    title = title.lower()
    title = re.sub(r"[._\-:]", " ", title)
    title = re.sub(r"[^\w\s]", "", title)
    return re.sub(r"\s+", " ", title).strip()


def _normalize_release(title: str) -> str:
    return re.sub(r"[._]", " ", title)


def _complete_series(title: str):
    for pattern, confidence in COMPLETE_SERIES_PATTERNS:
        if pattern.search(title):
            yield TitleMatch(MatchKind.COMPLETE_SERIES, confidence, title, pattern=pattern.pattern)


def _multi_season(title: str):
    for pattern, confidence in MULTI_SEASON_PATTERNS:
        match = pattern.search(title)
        if not match:
            continue

        start, end = int(match.group(1)), int(match.group(2))
        if start < end and end - start <= MAX_SEASON_SPAN:
            yield TitleMatch(
                MatchKind.MULTI_SEASON,
                confidence,
                title,
                seasons=list(range(start, end + 1)),
                pattern=pattern.pattern,
            )


def _season_pack(title: str):
    for pattern, confidence in SEASON_PACK_PATTERNS:
        match = pattern.search(title)
        if not match:
            continue

        season = int(match.group(1))
        if 1 <= season <= MAX_SEASON:
            yield TitleMatch(
                MatchKind.SEASON_PACK,
                confidence,
                title,
                season=season,
                pattern=pattern.pattern,
            )


def _individual_episode(title: str):
    for pattern, confidence in EPISODE_PATTERNS:
        match = pattern.search(title)
        if not match:
            continue

        season, episode = int(match.group(1)), int(match.group(2))
        if 1 <= season <= MAX_SEASON and 1 <= episode <= MAX_EPISODE:
            yield TitleMatch(
                MatchKind.INDIVIDUAL_EPISODE,
                confidence,
                title,
                season=season,
                episode=episode,
                pattern=pattern.pattern,
            )


def classify_title(title: str, show_title: Optional[str] = None) -> TitleMatch:
    """
    Classify a release title as complete series, multi-season, season pack or
    single episode.

    When `show_title` is given, the release must contain it (after
    normalisation) or the result is UNKNOWN with confidence 0.
    """
    if show_title and normalize_show_title(show_title) not in normalize_show_title(
        title
    ):
        return TitleMatch(MatchKind.UNKNOWN, 0, title)

    normalized = _normalize_release(title)
    matches: List[TitleMatch] = []
    for family in (_complete_series, _multi_season, _season_pack, _individual_episode):
        matches.extend(family(normalized))

    if not matches:
        return TitleMatch(MatchKind.UNKNOWN, 0, title)

    # max() keeps the first of equal elements, so declaration order breaks ties
    best = max(matches, key=lambda m: m.confidence)
    best.title = title
    return best


def classify_titles(titles: List[str], show_title: Optional[str] = None):
    return [classify_title(title, show_title) for title in titles]


def filter_by_kind(
    titles: List[str],
    kind: MatchKind,
    show_title: Optional[str] = None,
    min_confidence: int = MIN_CONFIDENCE,
) -> List[TitleMatch]:
    return [
        match
        for match in classify_titles(titles, show_title)
        if match.kind == kind and match.confidence >= min_confidence
    ]


def extract_quality(title: str) -> List[str]:
    return [label for label, pattern in QUALITY_PATTERNS if pattern.search(title)]


def extract_release_group(title: str) -> Optional[str]:
    for pattern in RELEASE_GROUP_PATTERNS:
        match = pattern.search(title)
        if match:
            return match.group(1)
    return None
