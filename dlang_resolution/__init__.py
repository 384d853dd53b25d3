"""DomainLang import resolution and package management."""

from .errors import ConfigError
from .errors import CycleError
from .errors import NetworkError
from .errors import NotFoundError
from .errors import ParseError
from .errors import ResolutionError

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "CycleError",
    "NetworkError",
    "NotFoundError",
    "ParseError",
    "ResolutionError",
]
