"""
Mirror HTTP Surface

Serves a Mirror over HTTP with aiohttp.web:

    GET /api.json               the version listing
    GET /v<version>/<artifact>  a single artifact

Mirror calls block on storage and network I/O, so every handler runs them in
a worker thread.
"""

import asyncio
from typing import Callable, Optional

from aiohttp import web

from tofudl.constants import (
    API_FILE_NAME,
    CONTENT_TYPE_HTML,
    CONTENT_TYPE_JSON,
    CONTENT_TYPE_OCTET_STREAM,
    DEFAULT_MIRROR_HOST,
    DEFAULT_MIRROR_PORT,
    VERSION_DIR_PREFIX,
)
from tofudl.exceptions import (
    InvalidOptionsError,
    NoSuchArtifactError,
    TofuDLError,
)
from tofudl.log_utils import logger

from .mirror import Mirror
from .version import Version, encode_api_document

MIRROR_APP_KEY = web.AppKey("mirror", Mirror)


def _html_response(status: int, title: str) -> web.Response:
    return web.Response(
        status=status,
        body=f"<h1>{title}</h1>".encode("utf-8"),
        content_type=CONTENT_TYPE_HTML,
    )


def _not_found() -> web.Response:
    return _html_response(404, "Not found")


def _bad_gateway() -> web.Response:
    return _html_response(502, "Bad gateway")


def _bad_request() -> web.Response:
    return _html_response(400, "Bad request")


async def handle_api(request: web.Request) -> web.Response:
    mirror = request.app[MIRROR_APP_KEY]
    try:
        versions = await asyncio.to_thread(mirror.list_versions)
    except TofuDLError as e:
        logger.error(f"Failed to list versions for {request.path}: {e}")
        return _bad_gateway()
    return web.Response(
        status=200,
        body=encode_api_document(versions),
        content_type=CONTENT_TYPE_JSON,
    )


async def handle_artifact(request: web.Request) -> web.Response:
    mirror = request.app[MIRROR_APP_KEY]
    raw_version = request.match_info["version"]
    artifact_name = request.match_info["artifact"]

    if not Version.is_valid(raw_version):
        return _not_found()
    version = Version(raw_version)

    try:
        versions = await asyncio.to_thread(mirror.list_versions)
    except TofuDLError as e:
        logger.error(f"Failed to list versions for {request.path}: {e}")
        return _bad_gateway()

    entry = next((v for v in versions if v.id == version), None)
    if entry is None:
        return _not_found()

    try:
        contents = await asyncio.to_thread(
            mirror.download_artifact, entry, artifact_name
        )
    except (NoSuchArtifactError, InvalidOptionsError):
        return _not_found()
    except TofuDLError as e:
        logger.error(f"Failed to serve {artifact_name} for version {version}: {e}")
        return _bad_gateway()

    return web.Response(status=200, body=contents, content_type=CONTENT_TYPE_OCTET_STREAM)


async def handle_unknown(request: web.Request) -> web.Response:
    logger.debug(f"Rejecting request for {request.path}")
    return _bad_request()


def create_app(mirror: Mirror) -> web.Application:
    """
    Build the aiohttp application serving `mirror`.

    Parameters:
        mirror (Mirror): The mirror to expose.

    Returns:
        web.Application: An application ready to be run or tested.
    """
    app = web.Application()
    app[MIRROR_APP_KEY] = mirror
    app.router.add_get(f"/{API_FILE_NAME}", handle_api)
    app.router.add_get(
        "/" + VERSION_DIR_PREFIX + "{version}/{artifact}", handle_artifact
    )
    app.router.add_get("/{tail:.*}", handle_unknown)
    return app


def serve(
    mirror: Mirror,
    host: str = DEFAULT_MIRROR_HOST,
    port: int = DEFAULT_MIRROR_PORT,
    print_fn: Optional[Callable[..., None]] = print,
) -> None:
    """Serve `mirror` until interrupted."""
    logger.info(f"Serving mirror on http://{host}:{port}/")
    web.run_app(create_app(mirror), host=host, port=port, print=print_fn)
