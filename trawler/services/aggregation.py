import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from trawler.core.logger import logger
from trawler.downloaders.base import BaseDownloadEngine, EngineStatus
from trawler.utils.formatting import format_eta, format_speed


@dataclass
class DownloadProgress:
    job_id: str
    status: str
    progress: int = 0
    total_bytes: int = 0
    completed_bytes: int = 0
    speed_bytes: int = 0
    speed: str = "0 B/s"
    eta: str = "∞"
    is_complete: bool = False
    is_failed: bool = False
    error_message: Optional[str] = None
    child_job_ids: List[str] = field(default_factory=list)
    name: Optional[str] = None


class DownloadAggregator:
    """
    Presents a root download job and the jobs it spawned (e.g. a magnet that
    turns into the actual torrent download) as a single download.
    """

    def __init__(self, engine: BaseDownloadEngine):
        self.engine = engine

    async def _lookup_children(self, root: EngineStatus):
        results = await asyncio.gather(
            *[self.engine.get_status(child_id) for child_id in root.followed_by],
            return_exceptions=True,
        )

        children: List[EngineStatus] = []
        unresolved = 0
        for child_id, result in zip(root.followed_by, results):
            if isinstance(result, Exception):
                unresolved += 1
                logger.warning(
                    f"Could not read child job {child_id} of {root.job_id}, leaving it out: {result}"
                )
                continue
            children.append(result)

        return children, unresolved

    async def get_download_progress(self, job_id: str) -> DownloadProgress:
        """Raises DownloadEngineError when the root job itself cannot be read."""
        root = await self.engine.get_status(job_id)
        children, unresolved = await self._lookup_children(root)

        if children:
            total = sum(c.total_bytes for c in children)
            completed = sum(c.completed_bytes for c in children)
            speed = sum(c.download_speed for c in children)
        else:
            total = root.total_bytes
            completed = root.completed_bytes
            speed = root.download_speed

        is_complete = (
            root.is_complete
            and unresolved == 0
            and all(c.is_complete for c in children)
        )

        progress = round(completed / total * 100) if total > 0 else 0

        eta = "∞"
        if not is_complete and total > 0:
            eta = format_eta(total - completed, speed)

        return DownloadProgress(
            job_id=job_id,
            status=root.status,
            progress=progress,
            total_bytes=total,
            completed_bytes=completed,
            speed_bytes=speed,
            speed=format_speed(speed),
            eta=eta,
            is_complete=is_complete,
            is_failed=root.is_error,
            error_message=(root.error_message or "Unknown download error")
            if root.is_error
            else None,
            child_job_ids=list(root.followed_by),
            name=next((c.name for c in children if c.name), root.name),
        )

    async def is_download_complete(self, job_id: str) -> bool:
        return (await self.get_download_progress(job_id)).is_complete

    async def is_download_failed(self, job_id: str) -> bool:
        root = await self.engine.get_status(job_id)
        return root.is_error

    async def related_job_ids(self, job_id: str) -> List[str]:
        root = await self.engine.get_status(job_id)
        return [job_id, *root.followed_by]


def summarize_progress(progresses: List[DownloadProgress]) -> Dict[str, object]:
    if not progresses:
        return {"active_downloads": 0, "total_speed": "0 B/s", "average_progress": 0}

    total_speed = sum(p.speed_bytes for p in progresses)
    return {
        "active_downloads": len(progresses),
        "total_speed": format_speed(total_speed),
        "average_progress": round(sum(p.progress for p in progresses) / len(progresses)),
    }
