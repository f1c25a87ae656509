import pytest

from trawler.core.exceptions import IndexerError
from trawler.indexers.categories import categories_for
from trawler.indexers.jackett import JackettIndexer
from trawler.models import ContentType


class StubJackett(JackettIndexer):
    def __init__(self, responses):
        super().__init__(session=None, url="http://jackett:9117", api_key="key")
        self.responses = responses

    async def fetch_jackett_results(self, indexer, query, categories):
        response = self.responses[indexer]
        if isinstance(response, Exception):
            raise response
        return response


def test_categories():
    assert categories_for(ContentType.MOVIE) == [2000]
    assert categories_for(ContentType.TV_SHOW) == [5000]
    assert categories_for(ContentType.GAME) == [4050, 1000]
    assert categories_for(ContentType.GAME, "Xbox 360") == [1050]
    assert categories_for(ContentType.GAME, "amiga") == [4050, 1000]


def test_to_candidate():
    candidate = StubJackett({}).to_candidate(
        {
            "Title": "Dune 2021 1080p",
            "MagnetUri": "magnet:?xt=urn:btih:ABC",
            "InfoHash": "ABC",
            "Size": 2 * 1024**3,
            "Seeders": 42,
            "Peers": 7,
            "Tracker": "1337x",
            "CategoryDesc": "Movies/HD",
        }
    )

    assert candidate.info_hash == "abc"
    assert candidate.size == "2.0 GB"
    assert candidate.seeders == 42
    assert candidate.leechers == 7
    assert candidate.locator == "magnet:?xt=urn:btih:ABC"
    assert candidate.category == "Movies/HD"
    assert candidate.quality is None


@pytest.mark.asyncio
async def test_search_merges_indexers_and_skips_failures():
    indexer = StubJackett(
        {
            "1337x": [
                {"Title": "Dune 2021", "InfoHash": "a", "Seeders": 5},
                {"Title": "", "InfoHash": "b"},
            ],
            "rarbg": [
                {"Title": "Dune 2021", "InfoHash": "a", "Seeders": 5},
                {"Title": "Dune 2021 2160p", "InfoHash": "c"},
            ],
            "broken": IndexerError("timeout"),
        }
    )

    candidates = await indexer.search("Dune 2021", [2000], ["1337x", "rarbg", "broken"])

    assert [c.title for c in candidates] == ["Dune 2021", "Dune 2021 2160p"]


@pytest.mark.asyncio
async def test_search_fails_when_every_indexer_fails():
    indexer = StubJackett({"all": IndexerError("connection refused")})

    with pytest.raises(IndexerError):
        await indexer.search("Dune", [2000], ["all"])
