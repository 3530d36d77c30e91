"""mircli: stealthy rendered-markup fetcher with resilient capture."""

from __future__ import annotations

try:
    from importlib.metadata import version

    __version__ = version("mircli")
except Exception:
    __version__ = "0.0.0"
