import uuid
from typing import Optional

import aiohttp
import orjson

from trawler.core.exceptions import DownloadEngineError
from trawler.core.logger import logger
from trawler.core.models import settings
from trawler.downloaders.base import BaseDownloadEngine, EngineStatus

ENGINE_TIMEOUT = aiohttp.ClientTimeout(total=settings.DOWNLOAD_ENGINE_TIMEOUT)

STATUS_KEYS = [
    "gid",
    "status",
    "totalLength",
    "completedLength",
    "downloadSpeed",
    "followedBy",
    "errorMessage",
    "bittorrent",
]


class Aria2Engine(BaseDownloadEngine):
    def __init__(
        self, session: aiohttp.ClientSession, rpc_url: str = None, secret: str = None
    ):
        self.session = session
        self.rpc_url = rpc_url or settings.ARIA2_RPC_URL
        self.secret = secret if secret is not None else settings.ARIA2_RPC_SECRET

    async def _call(self, method: str, *params):
        if self.secret:
            params = (f"token:{self.secret}",) + params

        payload = {
            "jsonrpc": "2.0",
            "id": uuid.uuid4().hex,
            "method": method,
            "params": list(params),
        }

        try:
            async with self.session.post(
                self.rpc_url,
                data=orjson.dumps(payload),
                headers={"Content-Type": "application/json"},
                timeout=ENGINE_TIMEOUT,
            ) as response:
                data = orjson.loads(await response.read())
        except Exception as e:
            raise DownloadEngineError(f"{method} failed: {e}")

        if "error" in data:
            error = data["error"]
            raise DownloadEngineError(
                f"{method} returned {error.get('code')}: {error.get('message')}"
            )

        return data.get("result")

    async def submit(self, locator: str, destination: Optional[str] = None) -> str:
        options = {"dir": destination} if destination else {}
        job_id = await self._call("aria2.addUri", [locator], options)
        logger.log("DOWNLOAD", f"aria2 accepted {locator[:60]} as {job_id}")
        return job_id

    async def get_status(self, job_id: str) -> EngineStatus:
        result = await self._call("aria2.tellStatus", job_id, STATUS_KEYS)

        name = None
        bittorrent = result.get("bittorrent") or {}
        if bittorrent.get("info"):
            name = bittorrent["info"].get("name")

        return EngineStatus(
            job_id=result.get("gid", job_id),
            status=result.get("status", "error"),
            total_bytes=int(result.get("totalLength") or 0),
            completed_bytes=int(result.get("completedLength") or 0),
            download_speed=int(result.get("downloadSpeed") or 0),
            followed_by=result.get("followedBy") or [],
            error_message=result.get("errorMessage") or None,
            name=name,
        )

    async def cancel(self, job_id: str):
        await self._call("aria2.remove", job_id)
        logger.log("DOWNLOAD", f"aria2 removed {job_id}")
