"""
Aggregate-count normalisation.

Relational count aggregates come back in different shapes depending on how
they were queried:

  * a plain number           ``3``
  * a single count record    ``{"count": 3}``
  * a list of grouped rows   ``[{"count": 3}, {"count": 2}]``
  * nothing at all           ``None`` (e.g. ``SUM()`` over zero rows)

``normalize_count`` folds all of them into one non-negative ``int``.
"""
from collections.abc import Mapping, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any


def normalize_count(value: Any) -> int:
    """Return the total count carried by ``value``; unknown shapes count as 0."""
    return max(_count(value), 0)


def _count(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        return _from_number(value)
    if isinstance(value, str):
        return _from_string(value)
    if isinstance(value, Mapping):
        return _count(value.get("count"))
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return sum(max(_count(item), 0) for item in value)
    return 0


def _from_number(value) -> int:
    try:
        return int(value)
    except (ValueError, OverflowError, InvalidOperation):
        # NaN / infinity
        return 0


def _from_string(value: str) -> int:
    try:
        return _from_number(Decimal(value.strip()))
    except InvalidOperation:
        return 0
