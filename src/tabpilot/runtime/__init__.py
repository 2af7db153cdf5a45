"""Process entry points and page-observation plumbing."""

from __future__ import annotations

from .debounce import TrailingDebounce

__all__ = ["TrailingDebounce"]
