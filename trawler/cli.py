import asyncio
import argparse
import sys

from trawler.core.exceptions import TrawlerError
from trawler.core.logger import logger
from trawler.main import lifespan, run
from trawler.models import ContentType, RequestStatus
from trawler.services.requests import create_request

SWEEPS = {
    "search": "run_search_sweep",
    "downloads": "run_download_sweep",
    "tv": "run_tv_gap_sweep",
    "expiry": "run_expiry_sweep",
}


def parse_list(value: str):
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


async def sweep_command(orchestrator, name: str):
    stats = await getattr(orchestrator, SWEEPS[name])()
    print(
        f"{name} sweep: {stats.processed} processed, {stats.advanced} advanced, "
        f"{stats.skipped} skipped, {stats.errors} errors"
    )


async def add_command(orchestrator, args):
    request = await create_request(
        orchestrator.store,
        ContentType(args.type),
        args.title,
        year=args.year,
        imdb_id=args.imdb_id,
        tmdb_id=args.tmdb_id,
        platform=args.platform,
        season=args.season,
        episode=args.episode,
        is_ongoing=args.ongoing,
        priority=args.priority,
        preferred_qualities=parse_list(args.qualities),
        preferred_formats=parse_list(args.formats),
        min_seeders=args.min_seeders,
        max_size_gb=args.max_size,
        blacklisted_words=parse_list(args.blacklist),
    )
    print(f"Created request {request.id}: {request.display_name}")


async def list_command(orchestrator, status: str):
    statuses = [RequestStatus(status)] if status else None
    requests = await orchestrator.store.list_requests(statuses=statuses)

    print(f"\nFound {len(requests)} requests:")
    print("-" * 100)
    for request in requests:
        progress = (
            f"{request.download_progress}% {request.download_speed or ''} {request.download_eta or ''}"
            if request.status == RequestStatus.DOWNLOADING
            else request.status_reason or ""
        )
        print(
            f"{request.id:<34} {request.status.value:<12} {request.priority:>2}  "
            f"{request.display_name[:30]:<30} {progress}"
        )
    print("-" * 100)

    summary = await orchestrator.download_summary()
    print(
        f"Active downloads: {summary['active_downloads']} - "
        f"Average progress: {summary['average_progress']}% - "
        f"Speed: {summary['total_speed']}"
    )


async def results_command(orchestrator, request_id: str):
    results = await orchestrator.store.get_search_results(request_id)
    print(f"\n{len(results)} stored search results:")
    print("-" * 100)
    for result in results:
        marker = "*" if result.is_selected else " "
        print(
            f"{marker} {result.id:<34} {result.score:>6} {result.candidate.seeders:>5}  "
            f"{result.candidate.title[:50]}"
        )
    print("-" * 100)


async def main():
    parser = argparse.ArgumentParser(
        description="Trawler Content Acquisition Orchestrator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the scheduler
  python -m trawler run

  # Run a single sweep
  python -m trawler sweep search

  # Follow a whole show
  python -m trawler request add --type tv_show --title "Breaking Bad" --tmdb-id 1396

  # List downloading requests
  python -m trawler request list --status downloading
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("run", help="Run every sweep on its schedule")

    sweep_parser = subparsers.add_parser("sweep", help="Run one sweep and exit")
    sweep_parser.add_argument("name", choices=sorted(SWEEPS))

    request_parser = subparsers.add_parser("request", help="Manage requests")
    request_subparsers = request_parser.add_subparsers(dest="action")

    add_parser = request_subparsers.add_parser("add", help="Create a request")
    add_parser.add_argument(
        "--type", required=True, choices=[c.value for c in ContentType]
    )
    add_parser.add_argument("--title", required=True)
    add_parser.add_argument("--year", type=int)
    add_parser.add_argument("--imdb-id")
    add_parser.add_argument("--tmdb-id", type=int)
    add_parser.add_argument("--platform")
    add_parser.add_argument("--season", type=int)
    add_parser.add_argument("--episode", type=int)
    add_parser.add_argument(
        "--ongoing",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Keep following the show for new episodes",
    )
    add_parser.add_argument("--priority", type=int, default=5)
    add_parser.add_argument("--qualities", help="Comma-separated preferred qualities")
    add_parser.add_argument("--formats", help="Comma-separated preferred formats")
    add_parser.add_argument("--min-seeders", type=int)
    add_parser.add_argument("--max-size", type=float, help="Maximum size in GB")
    add_parser.add_argument("--blacklist", help="Comma-separated blacklisted words")

    list_parser = request_subparsers.add_parser("list", help="List requests")
    list_parser.add_argument("--status", choices=[s.value for s in RequestStatus])

    for action, help_text in (
        ("cancel", "Cancel a request"),
        ("reactivate", "Reactivate a cancelled or expired request"),
        ("results", "Show stored search results"),
        ("search", "Search a request right now"),
    ):
        action_parser = request_subparsers.add_parser(action, help=help_text)
        action_parser.add_argument("id")
        if action == "reactivate":
            action_parser.add_argument("--search-now", action="store_true")

    select_parser = request_subparsers.add_parser(
        "select", help="Download a stored search result"
    )
    select_parser.add_argument("id")
    select_parser.add_argument("result_id")

    args = parser.parse_args()

    if not args.command or (args.command == "request" and not args.action):
        parser.print_help()
        return

    if args.command == "run":
        await run()
        return

    try:
        async with lifespan() as orchestrator:
            if args.command == "sweep":
                await sweep_command(orchestrator, args.name)

            elif args.action == "add":
                await add_command(orchestrator, args)

            elif args.action == "list":
                await list_command(orchestrator, args.status)

            elif args.action == "cancel":
                request = await orchestrator.cancel_request(args.id)
                print(f"Request {request.id} is now {request.status.value}")

            elif args.action == "reactivate":
                request = await orchestrator.reactivate(args.id, args.search_now)
                print(f"Request {request.id} is now {request.status.value}")

            elif args.action == "results":
                await results_command(orchestrator, args.id)

            elif args.action == "search":
                started = await orchestrator.force_search(args.id)
                print("Download started" if started else "Nothing downloaded")

            elif args.action == "select":
                request = await orchestrator.select_candidate(args.id, args.result_id)
                print(f"Request {request.id} is now {request.status.value}")

    except TrawlerError as e:
        print(f"Error: {e.display_message or e.message}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}")
        logger.exception("CLI command failed")
        sys.exit(1)


def cli():
    asyncio.run(main())
