"""kaede: per-application GPU selection for Linux desktops."""

from __future__ import annotations

__version__ = "0.1.0"
