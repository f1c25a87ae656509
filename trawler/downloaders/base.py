from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel


class EngineStatus(BaseModel):
    job_id: str
    status: str  # "active", "waiting", "paused", "error", "complete" or "removed"
    total_bytes: int = 0
    completed_bytes: int = 0
    download_speed: int = 0
    followed_by: List[str] = []
    error_message: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.status == "complete"

    @property
    def is_error(self) -> bool:
        return self.status == "error"


class BaseDownloadEngine(ABC):
    """Download engine. Implementations raise DownloadEngineError on failure."""

    @abstractmethod
    async def submit(self, locator: str, destination: Optional[str] = None) -> str:
        pass

    @abstractmethod
    async def get_status(self, job_id: str) -> EngineStatus:
        pass

    @abstractmethod
    async def cancel(self, job_id: str):
        pass
