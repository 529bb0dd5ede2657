"""Volume-profile breakout detection and scan engine."""

from importlib.metadata import version

__all__ = ["__version__"]

try:
    __version__ = version("zone-break")
except Exception:  # pragma: no cover - package not installed in dev mode yet.
    __version__ = "0.0.0"
