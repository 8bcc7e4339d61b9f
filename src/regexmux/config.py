from dataclasses import dataclass

from .rsgi import RSGIHTTPHandler


@dataclass(slots=True, frozen=True)
class Config:
    """Root router configuration.

    Only read when constructing a root `Router`; sub-routers resolve their
    fallbacks by walking up to the root instead.
    """

    not_found_handler: RSGIHTTPHandler | None = None
    method_not_allowed_handler: RSGIHTTPHandler | None = None
