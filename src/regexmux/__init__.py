from importlib.metadata import version

from .config import Config
from .context import MatchContext, match_context
from .route import Method
from .router import Router

__all__ = [
    "Config",
    "MatchContext",
    "Method",
    "Router",
    "__version__",
    "match_context",
]

__version__ = version("regexmux")
