"""socdepth: Harmonize soil-core organic-carbon profiles to standard depths."""
from importlib.metadata import version

__all__ = ["__version__"]

try:
    __version__ = version("socdepth")
except Exception:  # pragma: no cover - package metadata not available in dev
    __version__ = "0.1.0"
