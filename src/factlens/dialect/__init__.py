"""SQL dialect plugin system for the FactLens semantic layer."""

# Import dialects to trigger registration
import factlens.dialect.mysql as _mysql  # noqa: F401
import factlens.dialect.postgres as _postgres  # noqa: F401
from factlens.dialect.base import Dialect, DialectCapabilities
from factlens.dialect.registry import DialectRegistry, UnsupportedDialectError

__all__ = [
    "Dialect",
    "DialectCapabilities",
    "DialectRegistry",
    "UnsupportedDialectError",
]
