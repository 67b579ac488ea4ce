"""Size-bounded splitting of records.

Downstream consumers such as journald reject entries above a fixed size. A
large upgrade can list thousands of packages, so records whose serialized form
exceeds the bound are split into several records. Scalar attributes are
copied into every chunk and each package list is bisected until every chunk
fits (or holds a single package that cannot be split further).
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from ..models import PACKAGE_LISTS, ListField

R = TypeVar("R")


def serialized_size(record: Any) -> int:
    """Size in bytes of the record's compact JSON form."""
    return len(record.to_json().encode("utf-8"))


def split_record(
    record: R,
    max_size: int,
    fields: Sequence[ListField] = PACKAGE_LISTS,
    measure: Callable[[R], int] = serialized_size,
) -> list[R]:
    """Split record so that every resulting chunk fits in max_size.

    Args:
        record: Record to split.
        max_size: Largest allowed measured size of one chunk.
        fields: Accessors for the list attributes that may be split.
        measure: Returns the serialized size of a record.

    Returns:
        [record] when it already fits. Otherwise a base record carrying the
        lists that fit alongside each other (omitted when it carries none),
        followed by the chunks of each oversized list in field order, left
        halves before right halves. Concatenating a list attribute across
        all chunks reproduces the original list.
    """
    if measure(record) <= max_size:
        return [record]

    base = record
    chunks_by_field: dict[str, list[R]] = {}

    for list_field in fields:
        if not list_field.get(record):
            continue
        isolated = _isolate(record, list_field, fields)
        if measure(isolated) > max_size:
            base = list_field.set(base, [])
            chunks_by_field[list_field.name] = _bisect(isolated, list_field, max_size, measure)

    # Lists that fit individually can still overflow together
    for list_field in fields:
        if measure(base) <= max_size:
            break
        if list_field.get(base):
            chunks_by_field[list_field.name] = [_isolate(record, list_field, fields)]
            base = list_field.set(base, [])

    chunks = [chunk for list_field in fields for chunk in chunks_by_field.get(list_field.name, [])]

    if chunks and not any(list_field.get(base) for list_field in fields):
        return chunks
    return [base, *chunks]


def _isolate(record: R, keep: ListField, fields: Sequence[ListField]) -> R:
    """Copy of record with every list except keep emptied."""
    for list_field in fields:
        if list_field.name != keep.name:
            record = list_field.set(record, [])
    return record


def _bisect(record: R, list_field: ListField, max_size: int, measure: Callable[[R], int]) -> list[R]:
    items = list_field.get(record)
    if len(items) <= 1 or measure(record) <= max_size:
        return [record]

    mid = len(items) // 2
    left = list_field.set(record, items[:mid])
    right = list_field.set(record, items[mid:])
    return _bisect(left, list_field, max_size, measure) + _bisect(right, list_field, max_size, measure)
