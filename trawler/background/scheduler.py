import asyncio
import time
from typing import Awaitable, Callable, Dict, List, Optional

from trawler.core.logger import logger

TaskFunc = Callable[[], Awaitable[object]]


class PeriodicTask:
    def __init__(self, name: str, interval: float, func: TaskFunc):
        self.name = name
        self.interval = interval
        self.func = func
        self.is_running = False
        self.runs = 0
        self.skipped = 0
        self.last_error: Optional[str] = None
        self.last_duration = 0.0
        self._current: Optional[asyncio.Task] = None

    async def tick(self) -> bool:
        """Run once unless the previous run is still going. Returns whether it ran."""
        if self.is_running:
            self.skipped += 1
            logger.log(
                "SCHEDULER", f"{self.name} still running, skipping this cycle"
            )
            return False

        self.is_running = True
        start = time.monotonic()
        try:
            await self.func()
            self.last_error = None
        except Exception as e:
            self.last_error = str(e)
            logger.error(f"{self.name} failed: {e}")
        finally:
            self.last_duration = time.monotonic() - start
            self.runs += 1
            self.is_running = False

        return True

    async def loop(self):
        while True:
            # a slow run must not delay the next tick
            self._current = asyncio.create_task(self.tick())
            await asyncio.sleep(self.interval)


class Scheduler:
    def __init__(self):
        self.tasks: Dict[str, PeriodicTask] = {}
        self._handles: List[asyncio.Task] = []

    def run_every(self, interval: float, func: TaskFunc, name: Optional[str] = None):
        name = name or getattr(func, "__name__", "task")
        task = PeriodicTask(name, interval, func)
        self.tasks[name] = task
        return task

    @property
    def is_running(self) -> bool:
        return any(not handle.done() for handle in self._handles)

    def start(self):
        if self.is_running:
            return

        for task in self.tasks.values():
            self._handles.append(asyncio.create_task(task.loop()))
            logger.log("SCHEDULER", f"Scheduled {task.name} every {task.interval}s")

    async def stop(self):
        for handle in self._handles:
            handle.cancel()

        for handle in self._handles:
            try:
                await handle
            except asyncio.CancelledError:
                pass

        self._handles = []
        logger.log("SCHEDULER", "Scheduler stopped")

    def status(self) -> Dict[str, dict]:
        return {
            name: {
                "interval": task.interval,
                "running": task.is_running,
                "runs": task.runs,
                "skipped": task.skipped,
                "last_error": task.last_error,
                "last_duration": round(task.last_duration, 2),
            }
            for name, task in self.tasks.items()
        }
