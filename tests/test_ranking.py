import math
from datetime import datetime, timedelta, timezone

from trawler.models import ContentType, Request
from trawler.services.ranking import (GB, RankingCriteria, candidate_format,
                                      candidate_quality, canonical_format,
                                      canonical_quality, detect_format,
                                      detect_quality, filter_and_rank,
                                      is_trusted_indexer, parse_publish_date,
                                      recency_bonus, rejection_reason,
                                      score_candidate, seeder_score,
                                      size_adjustment)
from tests.fakes import candidate

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def test_quality_detection_uses_word_boundaries():
    assert detect_quality("Movie.2010.2160p.UHD.BluRay") == ("4K", 100)
    assert detect_quality("Movie 1080p WEB") == ("1080p", 80)
    assert detect_quality("Movie.720p.HDTV") == ("720p", 60)
    assert detect_quality("Show.HDTV.x264") == (None, 0)
    assert detect_quality("Movie DVDRip XviD") == ("SD", 20)


def test_format_detection():
    assert detect_format("Movie 1080p x265") == ("x265", 90)
    assert detect_format("Movie 1080p H.264") == ("x264", 70)
    assert detect_format("Movie 2160p HEVC") == ("HEVC", 90)
    assert detect_format("Movie 1080p") == (None, 0)


def test_canonical_names():
    assert canonical_quality("2160p") == "4K"
    assert canonical_quality("4k") == "4K"
    assert canonical_quality("1080P") == "1080p"
    assert canonical_format("h265") == "x265"
    assert canonical_format("AVC") == "x264"
    assert canonical_format("weird") == "weird"


def test_hard_filters_apply_in_order():
    criteria = RankingCriteria(
        min_seeders=5,
        max_size_bytes=10 * GB,
        preferred_qualities=["1080p"],
        preferred_formats=["x265"],
        blacklisted_words=["CAM"],
    )

    assert rejection_reason(candidate("Movie 1080p x265", seeders=2), criteria).startswith("seeders")
    assert rejection_reason(candidate("Movie 1080p x265", size_gb=12), criteria) == "too large"
    assert "CAM" in rejection_reason(candidate("Movie CAM 1080p x265"), criteria)
    assert "quality" in rejection_reason(candidate("Movie 720p x265"), criteria)
    assert "format" in rejection_reason(candidate("Movie 1080p x264"), criteria)
    assert rejection_reason(candidate("Movie 1080p x265"), criteria) is None


def test_preferred_quality_matches_aliases():
    criteria = RankingCriteria(preferred_qualities=["2160p"])

    assert rejection_reason(candidate("Movie 4K HDR"), criteria) is None
    assert rejection_reason(candidate("Movie UHD"), criteria) is None


def test_size_from_text_when_bytes_missing():
    criteria = RankingCriteria(max_size_bytes=1 * GB)
    small = candidate("Movie", size_gb=0).model_copy(update={"size_bytes": None, "size": "700 MB"})
    large = small.model_copy(update={"size": "1.5 GB"})

    assert rejection_reason(small, criteria) is None
    assert rejection_reason(large, criteria) == "too large"


def test_trusted_indexer_is_a_substring_match():
    assert is_trusted_indexer("1337x (API)", ["1337x"])
    assert is_trusted_indexer("The Pirate Bay", ["the pirate bay"])
    assert not is_trusted_indexer("randomtracker", ["1337x"])
    assert not is_trusted_indexer(None, ["1337x"])


def test_recency_bonus_decays_over_thirty_days():
    assert recency_bonus(NOW.isoformat(), NOW) == 10
    assert recency_bonus((NOW - timedelta(days=15)).isoformat(), NOW) == 5
    assert recency_bonus((NOW - timedelta(days=31)).isoformat(), NOW) == 0
    assert recency_bonus("not a date", NOW) == 0
    assert recency_bonus(None, NOW) == 0


def test_publish_date_formats():
    assert parse_publish_date("2026-02-28T10:00:00Z") == datetime(
        2026, 2, 28, 10, tzinfo=timezone.utc
    )
    assert parse_publish_date("Sat, 28 Feb 2026 10:00:00 +0000") == datetime(
        2026, 2, 28, 10, tzinfo=timezone.utc
    )
    assert parse_publish_date("2026-02-28T10:00:00").tzinfo is not None


def test_score_components():
    criteria = RankingCriteria(trusted_indexers=["1337x"])
    result = score_candidate(
        candidate("Movie 1080p x265", seeders=99, indexer="1337x"), criteria, NOW
    )

    # 80 quality + 90 format + 20 seeders + 5 size + 20 trusted
    assert result == 215


def test_each_extra_seeder_is_worth_less():
    criteria = RankingCriteria()

    def gain(seeders):
        low = score_candidate(candidate("Movie", seeders=seeders, indexer=None), criteria, NOW)
        high = score_candidate(
            candidate("Movie", seeders=seeders * 10, indexer=None), criteria, NOW
        )
        return (high - low) / (seeders * 9)

    assert gain(10) > gain(100) > gain(1000)
    assert score_candidate(candidate("Movie", seeders=0, indexer=None), criteria, NOW) == 5
    assert math.isclose(
        score_candidate(candidate("Movie", seeders=9, indexer=None), criteria, NOW), 15
    )


def test_seeder_score_is_capped():
    assert seeder_score(99) == 20
    assert seeder_score(100_000) == 50
    assert seeder_score(-3) == 0

    swarm = candidate("Movie", seeders=10_000_000, size_gb=0, indexer=None)
    assert score_candidate(swarm, RankingCriteria(), NOW) == 50


def test_preferred_quality_and_format_are_boosted():
    title = "Movie 1080p x265"
    bare = candidate(title, seeders=0, size_gb=0, indexer=None)

    assert score_candidate(bare, RankingCriteria(), NOW) == 170
    assert score_candidate(bare, RankingCriteria(preferred_qualities=["1080p"]), NOW) == 210
    assert score_candidate(bare, RankingCriteria(preferred_formats=["x265"]), NOW) == 197

    # preferences are compared by canonical label
    both = RankingCriteria(preferred_qualities=["FHD"], preferred_formats=["H.265"])
    assert score_candidate(bare, both, NOW) == 237


def test_size_adjustment():
    assert size_adjustment(0) == 0
    assert size_adjustment(GB - 1) == 0
    assert size_adjustment(GB) == 5
    assert size_adjustment(5 * GB) == 5
    assert size_adjustment(10 * GB) == 5
    assert size_adjustment(10 * GB + 1) == 0
    assert size_adjustment(50 * GB) == 0
    assert size_adjustment(60 * GB) == -10

    criteria = RankingCriteria()
    assert score_candidate(candidate("Movie", seeders=0, size_gb=5, indexer=None), criteria, NOW) == 5
    assert score_candidate(candidate("Movie", seeders=0, size_gb=60, indexer=None), criteria, NOW) == -10
    assert score_candidate(candidate("Movie", seeders=0, size_gb=20, indexer=None), criteria, NOW) == 0


def test_indexer_tags_win_over_title_markers():
    tagged = candidate("Movie 720p x264", quality="2160p", format="hevc")

    assert candidate_quality(tagged) == ("4K", 100)
    assert candidate_format(tagged) == ("HEVC", 90)
    assert candidate_quality(candidate("Movie 720p x264")) == ("720p", 60)

    criteria = RankingCriteria(preferred_qualities=["4K"])
    assert rejection_reason(tagged, criteria) is None
    assert rejection_reason(candidate("Movie 720p x264"), criteria) == "quality 720p not preferred"

    ranked = filter_and_rank([tagged], RankingCriteria(trusted_indexers=["1337x"]), NOW)
    assert ranked[0].quality == "4K"
    assert ranked[0].format == "HEVC"
    # 100 quality + 90 format + 17 seeders (log10(51) * 10) + 5 size + 20 trusted
    assert ranked[0].score == 232.1


def test_filter_and_rank_orders_by_score_and_keeps_ties_stable():
    criteria = RankingCriteria(min_seeders=1)
    first = candidate("Alpha 1080p x264", seeders=10, indexer="a")
    second = candidate("Beta 1080p x264", seeders=10, indexer="b")
    best = candidate("Gamma 2160p x265", seeders=10, indexer="c")
    dead = candidate("Delta 2160p x265", seeders=0, indexer="d")

    ranked = filter_and_rank([first, second, best, dead], criteria, NOW)

    assert [r.candidate.title for r in ranked] == [
        "Gamma 2160p x265",
        "Alpha 1080p x264",
        "Beta 1080p x264",
    ]
    assert ranked[0].quality == "4K"
    assert ranked[0].format == "x265"


def test_criteria_from_request():
    request = Request(
        content_type=ContentType.MOVIE,
        title="Movie",
        min_seeders=3,
        max_size_gb=1.5,
        preferred_qualities=["1080p"],
        blacklisted_words=["cam"],
    )

    criteria = RankingCriteria.from_request(request, ["yts"])

    assert criteria.min_seeders == 3
    assert criteria.max_size_bytes == int(1.5 * GB)
    assert criteria.preferred_qualities == ["1080p"]
    assert criteria.trusted_indexers == ["yts"]

    request.max_size_gb = None
    request.trusted_indexers = ["eztv"]
    criteria = RankingCriteria.from_request(request, ["yts"])
    assert criteria.max_size_bytes is None
    assert criteria.trusted_indexers == ["eztv"]
