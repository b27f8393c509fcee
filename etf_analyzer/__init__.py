"""
Top-level public API surface.
Canonical entrypoint: import etf_analyzer; use etf_analyzer.providers for acquisition.
Does not import cli.
"""

from __future__ import annotations

from . import providers
from ._version import __version__

# Do not add exports without updating __all__.
__all__ = [
    "__version__",
    "providers",
]
