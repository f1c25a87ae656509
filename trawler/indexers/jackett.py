import asyncio
from typing import List, Optional, Set

import aiohttp

from trawler.core.exceptions import IndexerError
from trawler.core.logger import logger
from trawler.core.models import settings
from trawler.indexers.base import BaseIndexer
from trawler.models import Candidate
from trawler.utils.formatting import format_bytes

INDEXER_TIMEOUT = aiohttp.ClientTimeout(total=settings.INDEXER_MANAGER_TIMEOUT)


class JackettIndexer(BaseIndexer):
    def __init__(
        self, session: aiohttp.ClientSession, url: str = None, api_key: str = None
    ):
        self.session = session
        self.url = url or settings.INDEXER_MANAGER_URL
        self.api_key = api_key or settings.INDEXER_MANAGER_API_KEY

    def to_candidate(self, result: dict) -> Candidate:
        size = result.get("Size")
        return Candidate(
            title=result["Title"],
            link=result.get("Link"),
            magnet_uri=result.get("MagnetUri"),
            info_hash=result["InfoHash"].lower() if result.get("InfoHash") else None,
            size=format_bytes(size) if size is not None else None,
            size_bytes=size,
            seeders=int(result["Seeders"]) if result.get("Seeders") is not None else 0,
            leechers=int(result["Peers"]) if result.get("Peers") is not None else 0,
            category=result.get("CategoryDesc"),
            indexer=result.get("Tracker"),
            publish_date=result.get("PublishDate"),
        )

    async def fetch_jackett_results(
        self, indexer: str, query: str, categories: List[int]
    ):
        params = [("apikey", self.api_key or ""), ("Query", query)]
        params += [("Category[]", str(category)) for category in categories]
        if indexer != "all":
            params.append(("Tracker[]", indexer))

        async with self.session.get(
            f"{self.url}/api/v2.0/indexers/all/results",
            params=params,
            timeout=INDEXER_TIMEOUT,
        ) as response:
            if response.status != 200:
                raise IndexerError(f"Jackett returned {response.status} for {indexer}")
            data = await response.json()
            return data.get("Results", [])

    async def search(
        self, query: str, categories: List[int], indexers: Optional[List[str]] = None
    ) -> List[Candidate]:
        indexers = indexers or settings.INDEXER_MANAGER_INDEXERS or ["all"]

        all_results = await asyncio.gather(
            *[self.fetch_jackett_results(indexer, query, categories) for indexer in indexers],
            return_exceptions=True,
        )

        candidates: List[Candidate] = []
        seen: Set[str] = set()
        failures = 0
        for indexer, result_set in zip(indexers, all_results):
            if isinstance(result_set, Exception):
                failures += 1
                logger.warning(
                    f"Exception while fetching Jackett results for indexer {indexer}: {result_set}"
                )
                continue

            for result in result_set:
                key = result.get("Details") or result.get("InfoHash") or result.get("Title")
                if not result.get("Title") or key in seen:
                    continue

                seen.add(key)
                candidates.append(self.to_candidate(result))

        if failures == len(indexers):
            raise IndexerError(f"all {failures} indexer queries failed for '{query}'")

        logger.log("SEARCH", f"Jackett returned {len(candidates)} results for '{query}'")
        return candidates
