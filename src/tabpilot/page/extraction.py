"""Declarative structured extraction.

A schema maps output field names to
`{"selector": str, "attribute": str = "text", "multiple": bool = False,
"transform": "number" | "date" | "trim" | None}`.

Each field is extracted independently; a failing field yields an inline
`{"error": "..."}` value and the remaining fields are still extracted.
Expression-based fields (`evaluate`) are refused: page- or model-supplied code
is never executed.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from tabpilot.core.errors import FieldExtractionError

from .document import DocumentHandle, ElementHandle

_NUMBER_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")

_DATE_FORMATS = (
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%m/%d/%Y",
    "%Y/%m/%d",
    "%Y-%m-%d %H:%M:%S",
)


def to_number(value: str) -> float:
    match = _NUMBER_RE.search(value.replace(",", ""))
    if match is None:
        raise FieldExtractionError(f"Not a number: {value[:50]!r}")
    return float(match.group(0))


def to_iso_date(value: str) -> str:
    text = value.strip()
    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass

    if parsed is None:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError):
            parsed = None

    if parsed is None:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        raise FieldExtractionError(f"Invalid date: {text[:50]!r}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.isoformat()


def apply_transform(value: Any, transform: str | None) -> Any:
    if value is None or not transform:
        return value
    text = str(value)
    if transform == "number":
        return to_number(text)
    if transform == "date":
        return to_iso_date(text)
    if transform == "trim":
        return text.strip()
    return value


async def extract_value(element: ElementHandle, attribute: str = "text", transform: str | None = None) -> Any:
    if attribute == "text":
        value: Any = await element.text()
    elif attribute == "html":
        value = await element.html()
    elif attribute in ("href", "src"):
        value = await element.link(attribute)
    elif attribute == "value":
        value = await element.value()
    else:
        value = await element.attribute(attribute)
    return apply_transform(value, transform)


async def extract_field(document: DocumentHandle, spec: Any) -> Any:
    if not isinstance(spec, dict):
        raise FieldExtractionError("Field spec must be an object")
    if "evaluate" in spec:
        raise FieldExtractionError("Custom code evaluation is not supported; use selector/attribute/transform")

    selector = spec.get("selector")
    if not isinstance(selector, str) or not selector.strip():
        raise FieldExtractionError("Field spec requires a selector")

    attribute = str(spec.get("attribute") or "text")
    transform = spec.get("transform")

    try:
        elements = await document.query_all(selector)
    except Exception as e:  # noqa: BLE001
        raise FieldExtractionError(f"Invalid selector {selector!r}: {e}") from e

    if spec.get("multiple"):
        return [await extract_value(el, attribute, transform) for el in elements]

    if not elements:
        raise FieldExtractionError(f"No element matches selector {selector!r}")
    return await extract_value(elements[0], attribute, transform)


async def extract_fields(document: DocumentHandle, schema: dict[str, Any]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for key, spec in schema.items():
        try:
            data[key] = await extract_field(document, spec)
        except FieldExtractionError as e:
            data[key] = {"error": str(e)}
        except Exception as e:  # noqa: BLE001
            data[key] = {"error": f"{type(e).__name__}: {e}"}
    return data
