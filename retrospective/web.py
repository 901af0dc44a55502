"""
JSON HTTP surface for the retrospective.

The LookupService is attached to the application; build_app() wires the
real store and GitHub client into the app's lifecycle.
"""

import logging

from aiohttp import web

from .client import GitHubClient
from .domain import ErrorKind, NotFoundError, RetrospectiveError
from .lookup import LookupService
from .narrative import STEP_SLUGS, share_payload, step_payload
from .store import UserStore

logger = logging.getLogger(__name__)

LOOKUP_KEY = web.AppKey("lookup", LookupService)

ERROR_STATUS = {
    ErrorKind.EMPTY_INPUT: 400,
    ErrorKind.INVALID_FORMAT: 400,
    ErrorKind.USER_NOT_FOUND: 404,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.AUTH_FAILURE: 502,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.FETCH_FAILED: 502,
}


def error_response(error: RetrospectiveError) -> web.Response:
    """User-facing error body; internals stay in the server log."""
    return web.json_response(
        {"error": error.user_message, "kind": error.kind.value},
        status=ERROR_STATUS[error.kind],
    )


async def get_retrospective(request: web.Request) -> web.Response:
    lookup = request.app[LOOKUP_KEY]
    username = request.match_info["username"]
    try:
        user = await lookup.resolve_user(username)
    except RetrospectiveError as e:
        logger.warning(f"⚠️ Lookup of {username!r} failed ({e.kind.value}): {e}")
        return error_response(e)
    return web.json_response(user.to_json_dict())


async def get_step(request: web.Request) -> web.Response:
    lookup = request.app[LOOKUP_KEY]
    username = request.match_info["username"]
    slug = request.match_info["slug"]
    if slug not in STEP_SLUGS:
        return error_response(NotFoundError(f"Unknown step: {slug}"))
    try:
        user = await lookup.get_user(username)
        averages = await lookup.average_stats()
        payload = step_payload(user, slug, averages)
    except RetrospectiveError as e:
        logger.warning(f"⚠️ Step {slug} for {username!r} unavailable: {e}")
        return error_response(e)
    return web.json_response(payload)


async def get_share(request: web.Request) -> web.Response:
    lookup = request.app[LOOKUP_KEY]
    username = request.match_info["username"]
    try:
        user = await lookup.get_user(username)
    except RetrospectiveError as e:
        logger.warning(f"⚠️ Share view for {username!r} unavailable: {e}")
        return error_response(e)
    averages = await lookup.average_stats()
    return web.json_response(share_payload(user, averages))


async def get_average_stats(request: web.Request) -> web.Response:
    averages = await request.app[LOOKUP_KEY].average_stats()
    return web.json_response(averages.to_dict())


async def get_user_count(request: web.Request) -> web.Response:
    count = await request.app[LOOKUP_KEY].user_count()
    return web.json_response({"userCount": count})


def create_app(lookup: LookupService) -> web.Application:
    app = web.Application()
    app[LOOKUP_KEY] = lookup
    app.router.add_get("/api/retrospective/{username}", get_retrospective)
    app.router.add_get("/api/retrospective/{username}/share", get_share)
    app.router.add_get("/api/retrospective/{username}/steps/{slug}", get_step)
    app.router.add_get("/api/stats/average", get_average_stats)
    app.router.add_get("/api/stats/count", get_user_count)
    return app


async def build_app() -> web.Application:
    """Application backed by PostgreSQL and the GitHub API."""
    store = UserStore()
    client = GitHubClient()
    app = create_app(LookupService(store, client))

    async def resources(app: web.Application):
        async with store, client:
            logger.info("🚀 Retrospective service started")
            yield

    app.cleanup_ctx.append(resources)
    return app
