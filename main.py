#!/usr/bin/env python3
"""
feedwatch: listen to events on GitHub repositories.

Usage:
    python main.py watch owner/repo [owner/repo ...]   # Stream new events until Ctrl-C
    python main.py cursors                             # Show persisted feed cursors

Exit status: 0 on clean shutdown, 1 on a malformed repository argument or
when every watched feed failed.
"""

import argparse
import logging
import signal
import sys

from config import Config, load_config
from delivery import ConsoleSink
from feeds import GitHubEventsFetcher, RateBudget
from models import WatchedResource, parse_resource
from storage import Storage
from watch import PacingPolicy, WatchSupervisor


def setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def parse_resources(values: list[str]) -> list[WatchedResource]:
    """Validate every argument before any feed starts."""
    return [parse_resource(v) for v in values]


def build_supervisor(config: Config, token: str, storage: Storage | None) -> WatchSupervisor:
    budget = RateBudget()
    fetcher = GitHubEventsFetcher(config, budget, token=token)
    return WatchSupervisor(
        fetcher=fetcher,
        budget=budget,
        policy=PacingPolicy.from_config(config),
        store=storage,
    )


def cmd_watch(config: Config, args) -> int:
    """Watch the given repositories until interrupted."""
    try:
        resources = parse_resources(args.repos)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 1

    if args.interval is not None:
        config.base_interval = max(1.0, args.interval)

    token = config.token_from_env(args.token_env)
    if not token:
        logging.getLogger("feedwatch").warning(
            "No GitHub token set; unauthenticated requests are limited to 60/hour."
        )

    storage = Storage(config.db_path) if config.db_path and not args.no_state else None
    supervisor = build_supervisor(config, token, storage)

    def _handle_signal(signum, frame):
        logging.getLogger("feedwatch").info(f"Received signal {signum}, stopping")
        supervisor.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    sink = ConsoleSink(heartbeats=not args.quiet)
    for resource in resources:
        sink.listening(resource)

    try:
        report = supervisor.run(resources, sink)
    finally:
        if storage:
            storage.close()

    for outcome in report.failed:
        print(f"{outcome.resource}: {outcome.error}", file=sys.stderr)
    return 1 if report.all_failed else 0


def cmd_cursors(config: Config) -> int:
    """Print persisted feed cursors."""
    if not config.db_path or not config.db_path.exists():
        print("No cursor database.")
        return 0

    storage = Storage(config.db_path)
    try:
        rows = storage.list_cursors()
    finally:
        storage.close()

    if not rows:
        print("No feeds watched yet.")
    for row in rows:
        print(f"  {row['feed']}: position={row['position']} etag={row['etag'] or '-'} ({row['updated_at']})")
    return 0


def cli(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="feedwatch",
        description="Listen to events on GitHub repositories",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    sub = parser.add_subparsers(dest="command", help="Command to run")

    watch_parser = sub.add_parser("watch", parents=[common], help="Stream new events until interrupted")
    watch_parser.add_argument("repos", nargs="+", metavar="owner/repo", help="Repositories to query for events")
    watch_parser.add_argument(
        "--token-env", type=str, default=None,
        help="Env var holding the GitHub token (default GITHUB_TOKEN)",
    )
    watch_parser.add_argument(
        "--interval", type=float, default=None,
        help="Base seconds between polls of one feed (default 60)",
    )
    watch_parser.add_argument("--no-state", action="store_true", help="Do not persist cursors")
    watch_parser.add_argument("-q", "--quiet", action="store_true", help="Only print events, no heartbeats")

    sub.add_parser("cursors", parents=[common], help="Show persisted feed cursors")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose)
    config = load_config()

    match args.command:
        case "watch":
            return cmd_watch(config, args)
        case "cursors":
            return cmd_cursors(config)
        case _:
            parser.print_help()
            return 1


if __name__ == "__main__":
    sys.exit(cli())
