"""HTTP router/multiplexer with regex patterns.

Inspired by go-chi/chi's Mux, with regular expressions in place of chi's
segment patterns.
"""

import logging
import re
import weakref
from collections.abc import Callable
from functools import reduce

from .config import Config
from .context import EMPTY_MATCH, MatchContext, match_context
from .route import Method, Route, RouteTable
from .rsgi import HTTPProtocol, HTTPScope, Middleware, RSGIHTTPHandler

logger = logging.getLogger(__name__)

# RFC 9110 section 5.6.2 token
_METHOD_TOKEN = re.compile(r"[!#$%&'*+.^_`|~0-9A-Za-z-]+")


async def default_not_found(scope: HTTPScope, proto: HTTPProtocol) -> None:
    proto.response_str(
        404, [("content-type", "text/plain; charset=utf-8")], "not found"
    )


async def default_method_not_allowed(scope: HTTPScope, proto: HTTPProtocol) -> None:
    proto.response_str(
        405, [("content-type", "text/plain; charset=utf-8")], "not allowed"
    )


class Router:
    """A node in a tree of routers.

    A root router (and every router made by `route`) is standalone: it owns a
    route table and dispatches requests against it. Routers made by `with_`
    and `group` are inline: they register into the nearest standalone
    ancestor's table, wrapping their routes in their own middleware inside
    the ancestors' middleware.

    Each router holds its children strongly and its parent by weak reference,
    so the whole tree is owned from the root down.
    """

    __slots__ = (
        "__weakref__",
        "_children",
        "_finalized",
        "_inline",
        "_method_not_allowed_handler",
        "_middleware",
        "_not_found_handler",
        "_parent",
        "_table",
    )
    _parent: weakref.ref[Router] | None
    _children: list[Router]
    _inline: bool
    _table: RouteTable[RSGIHTTPHandler] | None
    _middleware: tuple[Middleware, ...]
    _not_found_handler: RSGIHTTPHandler | None
    _method_not_allowed_handler: RSGIHTTPHandler | None
    _finalized: bool

    def __init__(self, config: Config | None = None) -> None:
        config = config or Config()
        self._parent = None
        self._children = []
        self._inline = False
        self._table = RouteTable()
        self._middleware = ()
        self._not_found_handler = config.not_found_handler
        self._method_not_allowed_handler = config.method_not_allowed_handler
        self._finalized = False

    @classmethod
    def _child(
        cls, parent: Router, *, inline: bool, middleware: tuple[Middleware, ...] = ()
    ) -> Router:
        child = cls.__new__(cls)
        child._parent = weakref.ref(parent)
        child._children = []
        child._inline = inline
        child._table = None if inline else RouteTable()
        child._middleware = middleware
        child._not_found_handler = None
        child._method_not_allowed_handler = None
        child._finalized = False
        parent._children.append(child)
        return child

    # --- dispatch -------------------------------------------------------------
    async def __rsgi__(self, scope: HTTPScope, proto: HTTPProtocol) -> None:
        await self._dispatch(scope, proto, match_context.get(EMPTY_MATCH))

    def __rsgi_init__(self, loop: object) -> None:
        self.finalize()

    async def __call__(self, scope: HTTPScope, proto: HTTPProtocol) -> None:
        """Dispatches a request, so a router can be mounted as a plain handler."""
        await self._dispatch(scope, proto, match_context.get(EMPTY_MATCH))

    async def _dispatch(
        self, scope: HTTPScope, proto: HTTPProtocol, match: MatchContext
    ) -> None:
        path = match.remainder if match.remainder is not None else scope.path
        found = self._route_table().match(path, scope.method)
        if found is None:
            logger.debug("not found: method=%s path=%s", scope.method, path)
            await self._resolve_not_found()(scope, proto)
            return
        if found.handler is None:
            logger.debug("method not allowed: method=%s path=%s", scope.method, path)
            await self._resolve_method_not_allowed()(scope, proto)
            return
        with match_context.set(
            match.derive(found.route.pattern, found.params, found.unnamed)
        ):
            await found.handler(scope, proto)

    def _resolve_not_found(self) -> RSGIHTTPHandler:
        node: Router | None = self
        while node is not None:
            if node._not_found_handler is not None:
                return node._not_found_handler
            node = node._parent_router()
        return default_not_found

    def _resolve_method_not_allowed(self) -> RSGIHTTPHandler:
        node: Router | None = self
        while node is not None:
            if node._method_not_allowed_handler is not None:
                return node._method_not_allowed_handler
            node = node._parent_router()
        return default_method_not_allowed

    # --- tree -----------------------------------------------------------------
    def _parent_router(self) -> Router | None:
        if self._parent is None:
            return None
        parent = self._parent()
        if parent is None:
            msg = "parent router no longer exists"
            raise RuntimeError(msg)
        return parent

    def _root(self) -> Router:
        node = self
        while (parent := node._parent_router()) is not None:
            node = parent
        return node

    def _route_table(self) -> RouteTable[RSGIHTTPHandler]:
        """Returns own table, or the nearest standalone ancestor's if inline."""
        node = self
        while node._table is None:
            parent = node._parent_router()
            if parent is None:
                msg = "inline router has no parent"
                raise RuntimeError(msg)
            node = parent
        return node._table

    def _chain(self, handler: RSGIHTTPHandler) -> RSGIHTTPHandler:
        """Wraps handler in this router's middleware, then its inline ancestors'.

        The first middleware added ends up outermost.
        """
        handler = reduce(lambda h, m: m(h), reversed(self._middleware), handler)
        if self._inline and (parent := self._parent_router()) is not None:
            handler = parent._chain(handler)
        return handler

    def _check_not_finalized(self) -> None:
        if self._root()._finalized:
            msg = "Router is finalized, routes must be registered before serving"
            raise RuntimeError(msg)

    def finalize(self) -> None:
        """Finalize the router tree.

        Marks the tree as serving: any later registration, middleware or
        fallback change anywhere in the tree raises RuntimeError. Idempotent.

        This is called automatically when Granian initialises a worker, but
        can be called manually when serving some other way.
        """
        self._root()._finalized = True

    @property
    def routes(self) -> tuple[Route[RSGIHTTPHandler], ...]:
        """Snapshot of the routes this router dispatches against, in scan order."""
        return self._route_table().routes

    # --- registration ---------------------------------------------------------
    def _register(
        self,
        method: str,
        pattern: str,
        handler: RSGIHTTPHandler,
        middleware: tuple[Middleware, ...],
    ) -> None:
        self._check_not_finalized()
        handler = reduce(lambda h, m: m(h), reversed(middleware), handler)
        self._route_table().add(method, pattern, self._chain(handler))

    def handle(
        self,
        pattern: str,
        handler: RSGIHTTPHandler,
        middleware: tuple[Middleware, ...] = (),
    ) -> None:
        """Registers handler at pattern for any method, with optional middleware."""
        self._register(Method.ALL, pattern, handler, middleware)

    def mount(
        self,
        pattern: str,
        handler: RSGIHTTPHandler,
        middleware: tuple[Middleware, ...] = (),
    ) -> None:
        """Registers a fully independent RSGI handler at pattern for any http method.

        The handler sees the original request path; nothing is stripped. Use
        `route` to dispatch a sub-router against the rest of the path.
        """
        self._register(Method.ALL, pattern, handler, middleware)

    def method(
        self,
        method: str,
        pattern: str,
        handler: RSGIHTTPHandler,
        middleware: tuple[Middleware, ...] = (),
    ) -> None:
        """Registers handler at pattern for method, with optional middleware.

        method is any HTTP method token, standard or extension (e.g. PROPFIND),
        or "ALL". It is case-insensitive and stored upper-case.
        """
        name = method.upper()
        if _METHOD_TOKEN.fullmatch(name) is None:
            msg = f"invalid method {method!r}"
            raise ValueError(msg)
        key = Method.ALL if name == Method.ALL else name
        self._register(key, pattern, handler, middleware)

    def connect(
        self,
        pattern: str,
        handler: RSGIHTTPHandler,
        middleware: tuple[Middleware, ...] = (),
    ) -> None:
        """Registers http handler at pattern for CONNECT, with optional middleware."""
        self._register(Method.CONNECT, pattern, handler, middleware)

    def delete(
        self,
        pattern: str,
        handler: RSGIHTTPHandler,
        middleware: tuple[Middleware, ...] = (),
    ) -> None:
        """Registers http handler at pattern for DELETE, with optional middleware."""
        self._register(Method.DELETE, pattern, handler, middleware)

    def get(
        self,
        pattern: str,
        handler: RSGIHTTPHandler,
        middleware: tuple[Middleware, ...] = (),
    ) -> None:
        """Registers http handler at pattern for GET, with optional middleware."""
        self._register(Method.GET, pattern, handler, middleware)

    def head(
        self,
        pattern: str,
        handler: RSGIHTTPHandler,
        middleware: tuple[Middleware, ...] = (),
    ) -> None:
        """Registers http handler at pattern for HEAD, with optional middleware."""
        self._register(Method.HEAD, pattern, handler, middleware)

    def options(
        self,
        pattern: str,
        handler: RSGIHTTPHandler,
        middleware: tuple[Middleware, ...] = (),
    ) -> None:
        """Registers http handler at pattern for OPTIONS, with optional middleware."""
        self._register(Method.OPTIONS, pattern, handler, middleware)

    def patch(
        self,
        pattern: str,
        handler: RSGIHTTPHandler,
        middleware: tuple[Middleware, ...] = (),
    ) -> None:
        """Registers http handler at pattern for PATCH, with optional middleware."""
        self._register(Method.PATCH, pattern, handler, middleware)

    def post(
        self,
        pattern: str,
        handler: RSGIHTTPHandler,
        middleware: tuple[Middleware, ...] = (),
    ) -> None:
        """Registers http handler at pattern for POST, with optional middleware."""
        self._register(Method.POST, pattern, handler, middleware)

    def put(
        self,
        pattern: str,
        handler: RSGIHTTPHandler,
        middleware: tuple[Middleware, ...] = (),
    ) -> None:
        """Registers http handler at pattern for PUT, with optional middleware."""
        self._register(Method.PUT, pattern, handler, middleware)

    def trace(
        self,
        pattern: str,
        handler: RSGIHTTPHandler,
        middleware: tuple[Middleware, ...] = (),
    ) -> None:
        """Registers http handler at pattern for TRACE, with optional middleware."""
        self._register(Method.TRACE, pattern, handler, middleware)

    def not_found(self, handler: RSGIHTTPHandler) -> None:
        """Registers http handler for paths that can't be found."""
        self._check_not_finalized()
        if self._not_found_handler is not None:
            msg = "not found handler is already set"
            raise ValueError(msg)
        self._not_found_handler = handler

    def method_not_allowed(self, handler: RSGIHTTPHandler) -> None:
        """Registers http handler for paths where the method is unresolved."""
        self._check_not_finalized()
        if self._method_not_allowed_handler is not None:
            msg = "method not allowed handler is already set"
            raise ValueError(msg)
        self._method_not_allowed_handler = handler

    def use(self, *middleware: Middleware) -> None:
        """Adds middleware for routes registered on this router from now on.

        Routes already registered keep the middleware they were registered with.
        """
        self._check_not_finalized()
        self._middleware = self._middleware + middleware

    def with_(self, *middleware: Middleware) -> Router:
        """Returns an inline router whose routes get middleware on top of ours."""
        self._check_not_finalized()
        return Router._child(self, inline=True, middleware=middleware)

    def group(self, fn: Callable[[Router], None] | None = None) -> Router:
        """Returns an inline router, after passing it to fn to set it up."""
        r = self.with_()
        if fn is not None:
            fn(r)
        return r

    def route(self, pattern: str, fn: Callable[[Router], None]) -> Router:
        """Dispatches the rest of the path matched by pattern to a new sub-router.

        The rest of the path is the last unnamed group captured by pattern, or
        "" if it has none. Named groups stay available to the sub-router's
        handlers. The sub-router falls back to our not found / method not
        allowed handlers when it has none of its own; our middleware wraps
        it once, as a whole.
        """
        self._check_not_finalized()
        sub = Router._child(self, inline=False)
        fn(sub)

        async def sub_router(scope: HTTPScope, proto: HTTPProtocol) -> None:
            await sub._dispatch(scope, proto, match_context.get().descend())

        self._register(Method.ALL, pattern, sub_router, ())
        return sub
