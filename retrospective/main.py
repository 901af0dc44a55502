import argparse
import asyncio
import json
import logging

from aiohttp import web

from .client import GitHubClient
from .config import settings
from .domain import RetrospectiveError
from .lookup import LookupService
from .store import UserStore
from .web import build_app

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="GitHub year-in-review retrospective")
    sub = p.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=settings.host, help="Interface to bind")
    serve.add_argument("--port", type=int, default=settings.port, help="Port to bind")

    lookup = sub.add_parser("lookup", help="Resolve one user and print the record")
    lookup.add_argument("username", help="GitHub username")

    sub.add_parser("stats", help="Print cross-user averages")
    return p.parse_args(argv)


async def lookup_user(username: str) -> int:
    async with UserStore() as store, GitHubClient() as client:
        service = LookupService(store, client)
        try:
            user = await service.resolve_user(username)
        except RetrospectiveError as e:
            logger.error(f"❌ Lookup failed for {username!r}: {e}")
            print(e.user_message)
            return 1
    print(json.dumps(user.to_json_dict(), indent=2))
    return 0


async def print_stats() -> int:
    async with UserStore() as store:
        averages = await store.average_stats()
    print(json.dumps(averages.to_dict(), indent=2))
    return 0


def run(argv=None) -> int:
    args = parse_args(argv)

    if args.command == "serve":
        logger.info(f"🌐 Serving on {args.host}:{args.port}")
        web.run_app(build_app(), host=args.host, port=args.port)
        return 0
    if args.command == "lookup":
        return asyncio.run(lookup_user(args.username))
    return asyncio.run(print_stats())


if __name__ == "__main__":
    raise SystemExit(run())
