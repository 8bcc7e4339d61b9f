# /// script
# requires-python = ">=3.14"
# dependencies = [
#     "regexmux @ file:///${PROJECT_ROOT}/../regexmux",
#     "granian[uvloop]>=2.6.0,<3.0.0",
# ]
# ///
"""RSGI server demo.

A small OCI-distribution-style registry API using Granian + regexmux Router.
"""

import asyncio
import json
import logging
import time
from json.decoder import JSONDecodeError

from granian.server.embed import Server

from regexmux import Config, Router, match_context
from regexmux.rsgi import HTTPProtocol, HTTPScope, Middleware, RSGIHTTPHandler

ADDRESS = "127.0.0.1"
PORT = 8000

logger = logging.getLogger("registry")

_manifests: dict[tuple[str, str], dict] = {}


async def main() -> None:
    logging.basicConfig(level=logging.DEBUG)

    router = Router(
        Config(
            not_found_handler=not_found,
            method_not_allowed_handler=method_not_allowed,
        )
    )
    router.use(access_log)
    router.get("^/$", home)
    router.get("^/v2/$", version_check)
    router.route(
        r"^/v2/(?P<name>[a-z0-9]+(?:[._-][a-z0-9]+)*(?:/[a-z0-9]+(?:[._-][a-z0-9]+)*)*)/manifests/(?P<reference>[A-Za-z0-9_.:-]+)$",
        manifests_router,
    )
    router.group(admin_group)
    router.finalize()

    server = Server(router, address=ADDRESS, port=PORT, log_access=True)
    try:
        await server.serve()
    except asyncio.CancelledError:
        pass


def access_log(f: RSGIHTTPHandler) -> RSGIHTTPHandler:
    async def handler(s: HTTPScope, p: HTTPProtocol) -> None:
        start = time.perf_counter()
        await f(s, p)
        route = match_context.get().route
        logger.info(
            "%s %s [%s] %.2fms", s.method, s.path, route, (time.perf_counter() - start) * 1e3
        )

    return handler


def require_token(token: str) -> Middleware:
    def middleware(f: RSGIHTTPHandler) -> RSGIHTTPHandler:
        async def handler(s: HTTPScope, p: HTTPProtocol) -> None:
            if s.headers.get("authorization") != f"Bearer {token}":
                p.response_str(401, [("Content-Type", "text/plain")], "Unauthorized")
                return
            await f(s, p)

        return handler

    return middleware


async def not_found(_scope: HTTPScope, proto: HTTPProtocol) -> None:
    proto.response_str(404, [("Content-Type", "text/plain")], "Not found")


async def method_not_allowed(_scope: HTTPScope, proto: HTTPProtocol) -> None:
    proto.response_str(405, [("Content-Type", "text/plain")], "Method not allowed")


async def home(s: HTTPScope, p: HTTPProtocol) -> None:
    p.response_str(200, [("Content-Type", "text/plain")], "Welcome home")


async def version_check(s: HTTPScope, p: HTTPProtocol) -> None:
    p.response_str(200, [("Content-Type", "application/json")], "{}")


def manifests_router(r: Router) -> None:
    r.head("^$", head_manifest)
    r.get("^$", get_manifest)
    r.put("^$", put_manifest)
    r.delete("^$", delete_manifest)


def _manifest_key() -> tuple[str, str]:
    params = match_context.get().params
    return params["name"], params["reference"]


async def head_manifest(s: HTTPScope, p: HTTPProtocol) -> None:
    status = 200 if _manifest_key() in _manifests else 404
    p.response_empty(status, [])


async def get_manifest(s: HTTPScope, p: HTTPProtocol) -> None:
    manifest = _manifests.get(_manifest_key())
    if manifest is None:
        p.response_str(404, [("Content-Type", "text/plain")], "Not found")
        return
    p.response_str(200, [("Content-Type", "application/json")], json.dumps(manifest))


async def put_manifest(s: HTTPScope, p: HTTPProtocol) -> None:
    body = await p()
    try:
        manifest = json.loads(body)
    except JSONDecodeError:
        p.response_str(422, [("Content-Type", "text/plain")], "Invalid json")
        return
    _manifests[_manifest_key()] = manifest
    p.response_empty(201, [])


async def delete_manifest(s: HTTPScope, p: HTTPProtocol) -> None:
    if _manifests.pop(_manifest_key(), None) is None:
        p.response_str(404, [("Content-Type", "text/plain")], "Not found")
        return
    p.response_empty(202, [])


def admin_group(r: Router) -> None:
    r.use(require_token("secret"))
    r.get("^/admin/manifests$", list_manifests)


async def list_manifests(s: HTTPScope, p: HTTPProtocol) -> None:
    serialized = json.dumps([f"{name}:{ref}" for name, ref in _manifests])
    p.response_str(200, [("Content-Type", "application/json")], serialized)


if __name__ == "__main__":
    asyncio.run(main())
