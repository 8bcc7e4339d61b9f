"""Ordered route table with regex matching and method resolution.

Routes are scanned in registration order and the first pattern that matches
the path wins, whatever the request method. Patterns are searched, not
anchored: `^` and `$` are up to whoever registers the route.
"""

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Never

logger = logging.getLogger(__name__)


class Method(StrEnum):
    """Standard keys for a route's handler mapping: HTTP methods or ALL.

    Methods from the following RFCs are all observed:

        * RFC 9110: HTTP Semantics, obsoletes 7231, which obsoleted 2616
        * RFC 5789: PATCH Method for HTTP

    ALL matches any method that has no handler of its own. Extension methods
    (e.g. WebDAV's PROPFIND) are keyed by their plain upper-case name.
    """

    CONNECT = "CONNECT"  # Establish a connection to the server.
    DELETE = "DELETE"  # Remove the target.
    GET = "GET"  # Retrieve the target.
    HEAD = "HEAD"  # Same as GET, but only retrieve status line and header section.
    OPTIONS = "OPTIONS"  # Describe the communication options for the target.
    PATCH = "PATCH"  # Apply partial modifications to a target.
    POST = "POST"  # Perform target-specific processing with the request payload.
    PUT = "PUT"  # Replace the target with the request payload.
    TRACE = "TRACE"  # Perform a message loop-back test along the path to the target.

    ALL = "ALL"  # Any HTTP method.

    def __repr__(self) -> str:
        return str(self.value)


class FrozenDict[K, V](dict[K, V]):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._hash: int | None = None

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(frozenset(self.items()))
        return self._hash

    def _immutable(self, *args, **kwargs) -> Never:
        msg = "FrozenDict is immutable"
        raise TypeError(msg)

    __setitem__ = __delitem__ = clear = pop = popitem = setdefault = update = _immutable
    __ior__ = _immutable


@dataclass(slots=True, frozen=True)
class Route[T]:
    """A compiled pattern and the handlers registered against it.

    `pattern` is the route's identity: registering the same string again
    merges into this route rather than adding a second one.
    """

    pattern: str
    regex: re.Pattern[str] = field(compare=False)
    handlers: FrozenDict[str, T] = field(default_factory=FrozenDict)
    group_names: tuple[str | None, ...] = ()

    @classmethod
    def compile(cls, pattern: str) -> Route[T]:
        try:
            regex = re.compile(pattern)
        except re.error as e:
            msg = f"invalid route pattern {pattern!r}: {e}"
            raise ValueError(msg) from e
        names: list[str | None] = [None] * regex.groups
        for name, index in regex.groupindex.items():
            names[index - 1] = name
        return cls(pattern=pattern, regex=regex, group_names=tuple(names))

    def with_handler(self, method: str, handler: T) -> Route[T]:
        return replace(self, handlers=FrozenDict({**self.handlers, method: handler}))


@dataclass(slots=True, frozen=True)
class RouteMatch[T]:
    """Result of scanning a table: the route that matched and what it captured.

    `handler` is None when the route has no entry for the method (405).
    """

    route: Route[T]
    handler: T | None
    params: dict[str, str]
    unnamed: tuple[str, ...]


class RouteTable[T]:
    """Ordered sequence of routes.

    Each change replaces the whole tuple of routes, so a scan that is already
    running keeps iterating the snapshot it started with.
    """

    __slots__ = ("_routes",)
    _routes: tuple[Route[T], ...]

    def __init__(self) -> None:
        self._routes = ()

    def __len__(self) -> int:
        return len(self._routes)

    def __iter__(self) -> Iterator[Route[T]]:
        return iter(self._routes)

    @property
    def routes(self) -> tuple[Route[T], ...]:
        return self._routes

    def add(self, method: str, pattern: str, handler: T) -> Route[T]:
        """Adds handler for method on pattern, merging into an existing route.

        A merged route keeps the position of the first registration of its
        pattern.
        """
        routes = self._routes
        for i, route in enumerate(routes):
            if route.pattern == pattern:
                merged = route.with_handler(method, handler)
                self._routes = (*routes[:i], merged, *routes[i + 1 :])
                logger.debug("merged %s into route %r", method, pattern)
                return merged
        added = Route.compile(pattern).with_handler(method, handler)
        self._routes = (*routes, added)
        logger.debug("added route %s %r", method, pattern)
        return added

    def match(self, path: str, method: str) -> RouteMatch[T] | None:
        """Returns the first route matching path, or None if no route matches.

        The handler is the exact method entry, falling back to ALL.
        """
        for route in self._routes:
            m = route.regex.search(path)
            if m is None:
                continue
            handler = route.handlers.get(method)
            if handler is None:
                handler = route.handlers.get(Method.ALL)  # fallback to any method
            params: dict[str, str] = {}
            unnamed: list[str] = []
            for name, value in zip(route.group_names, m.groups(""), strict=True):
                if name is None:
                    unnamed.append(value)
                else:
                    params[name] = value
            return RouteMatch(
                route=route, handler=handler, params=params, unnamed=tuple(unnamed)
            )
        return None
