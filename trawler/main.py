import asyncio
import signal
from contextlib import asynccontextmanager

from trawler.background.scheduler import Scheduler
from trawler.core.database import setup_database, teardown_database
from trawler.core.logger import log_startup_info, logger
from trawler.core.models import database, settings
from trawler.downloaders.aria2 import Aria2Engine
from trawler.indexers.jackett import JackettIndexer
from trawler.metadata.tmdb import TMDBCatalog
from trawler.services.orchestration import LifecycleOrchestrator
from trawler.storage.memory import MemoryStore
from trawler.storage.sqlite import DatabaseStore
from trawler.utils.http_client import http_client_manager


def build_scheduler(orchestrator: LifecycleOrchestrator) -> Scheduler:
    scheduler = Scheduler()
    scheduler.run_every(
        settings.SEARCH_SWEEP_INTERVAL, orchestrator.run_search_sweep, "search sweep"
    )
    scheduler.run_every(
        settings.DOWNLOAD_POLL_INTERVAL,
        orchestrator.run_download_sweep,
        "download sweep",
    )
    scheduler.run_every(
        settings.TV_GAP_SWEEP_INTERVAL, orchestrator.run_tv_gap_sweep, "tv gap sweep"
    )
    scheduler.run_every(
        settings.EXPIRY_SWEEP_INTERVAL, orchestrator.run_expiry_sweep, "expiry sweep"
    )
    return scheduler


@asynccontextmanager
async def lifespan():
    if settings.DATABASE_TYPE == "memory":
        store = MemoryStore()
    else:
        await setup_database()
        store = DatabaseStore(database)

    session = await http_client_manager.get_session()
    catalog = TMDBCatalog(session) if settings.TMDB_READ_ACCESS_TOKEN else None

    orchestrator = LifecycleOrchestrator(
        store=store,
        indexer=JackettIndexer(session),
        engine=Aria2Engine(session),
        catalog=catalog,
    )

    try:
        yield orchestrator
    finally:
        await http_client_manager.close()
        if settings.DATABASE_TYPE != "memory":
            await teardown_database()


async def run():
    log_startup_info(settings)

    async with lifespan() as orchestrator:
        scheduler = build_scheduler(orchestrator)
        scheduler.start()

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                # Windows event loops have no signal handlers
                pass

        logger.log("TRAWLER", "Trawler started")
        try:
            await stop_event.wait()
        finally:
            await scheduler.stop()
            logger.log("TRAWLER", "Trawler stopped")
