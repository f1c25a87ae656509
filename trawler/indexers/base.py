from abc import ABC, abstractmethod
from typing import List, Optional

from trawler.models import Candidate


class BaseIndexer(ABC):
    """Torrent indexer aggregation. Implementations raise IndexerError on failure."""

    @abstractmethod
    async def search(
        self, query: str, categories: List[int], indexers: Optional[List[str]] = None
    ) -> List[Candidate]:
        pass
