"""Page-side tool execution: element resolution, extraction and the executor."""

from __future__ import annotations

from .document import DocumentHandle, ElementHandle
from .executor import PageExecutor
from .resolver import ElementResolver, Resolution, describe_element
from .soup import SoupDocument, SoupElement
from .structure import build_structure

__all__ = [
    "DocumentHandle",
    "ElementHandle",
    "ElementResolver",
    "PageExecutor",
    "Resolution",
    "SoupDocument",
    "SoupElement",
    "build_structure",
    "describe_element",
]
