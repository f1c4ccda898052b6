"""Query-string filters and ``?sort=`` handling for list endpoints."""

from __future__ import annotations

import operator
from typing import Any, Callable, Optional

from sqlalchemy import Select
from sqlalchemy.orm import InstrumentedAttribute

# ``field__suffix`` -> comparison; a bare ``field`` means equality
_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "from": operator.ge,
    "to": operator.le,
    "in": lambda col, value: col.in_(value),
}


def _get_column(model: Any, name: str) -> Optional[InstrumentedAttribute]:
    """Mapped attribute *name* of *model*, or None for properties and typos."""
    attr = getattr(model, name, None)
    return attr if isinstance(attr, InstrumentedAttribute) else None


def apply_filters(query: Select, model: Any, filters: dict[str, Any]) -> Select:
    """Narrow *query* by ``{"role": ..., "name__from": ..., "role__in": [...]}``.

    ``None`` values and names that are not columns of *model* are skipped.
    """
    for key, value in filters.items():
        if value is None:
            continue
        name, _, suffix = key.partition("__")
        if suffix and suffix not in _OPERATORS:
            continue
        compare = _OPERATORS[suffix] if suffix else operator.eq
        col = _get_column(model, name)
        if col is not None:
            query = query.where(compare(col, value))
    return query


def apply_sorting(
    query: Select,
    model: Any,
    sort: Optional[str],
    *,
    default: Optional[str] = None,
) -> Select:
    """Order by ``"name"`` or ``"-created_at"`` (descending).

    An unknown column falls back to *default*, or leaves *query* unordered.
    """
    for candidate in (sort, default):
        if not candidate:
            continue
        col = _get_column(model, candidate.lstrip("-"))
        if col is not None:
            return query.order_by(col.desc() if candidate.startswith("-") else col.asc())
    return query
