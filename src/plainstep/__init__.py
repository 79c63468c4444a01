"""Plain-language browser UI test scripts, executed through Playwright."""

from __future__ import annotations

__version__ = "0.1.0"
