"""Per-request match state exposed to handlers.

The router sets `match_context` for the duration of each handler call. Every
nesting level derives a new `MatchContext` from the one it was given, so
nothing is ever mutated in place and concurrent requests (each running in its
own task with its own copy of the context) never see each other's captures.
"""

from contextvars import ContextVar
from dataclasses import dataclass, field, replace

from .route import FrozenDict


@dataclass(slots=True, frozen=True)
class MatchContext:
    """What the router matched on the way to the current handler.

    params: named captures from every level, inner levels overriding outer ones
    unnamed: unnamed captures of the most recent match, in order
    patterns: matched pattern strings, outermost first
    remainder: effective path for a nested router dispatch, if one is pending
    """

    params: FrozenDict[str, str] = field(default_factory=FrozenDict)
    unnamed: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()
    remainder: str | None = None

    @property
    def route(self) -> str:
        """Matched pattern trail joined with commas, e.g. `^/v2/(.*)$,^foo$`."""
        return ",".join(self.patterns)

    def derive(
        self, pattern: str, params: dict[str, str], unnamed: tuple[str, ...]
    ) -> MatchContext:
        """Returns a new context for a match of pattern one level deeper.

        The pending remainder is consumed by the match that produced this
        context, so it is cleared.
        """
        return MatchContext(
            params=FrozenDict({**self.params, **params}) if params else self.params,
            unnamed=unnamed,
            patterns=(*self.patterns, pattern),
            remainder=None,
        )

    def descend(self) -> MatchContext:
        """Returns a context for dispatching into a nested router.

        The remainder is the last unnamed capture, or "" when there is none.
        """
        return replace(self, remainder=self.unnamed[-1] if self.unnamed else "")


EMPTY_MATCH = MatchContext()

match_context: ContextVar[MatchContext] = ContextVar("match_context")
