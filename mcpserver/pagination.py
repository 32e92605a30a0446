"""Cursor-based paging over name-sorted lists."""

from __future__ import annotations

import base64
import binascii
import bisect
from collections.abc import Iterable
from typing import Any, TypeVar

T = TypeVar("T")


def encode_cursor(name: str) -> str:
    """Return the opaque cursor that points just past the item with this name."""
    return base64.b64encode(name.encode("utf-8")).decode("ascii")


def _decode_cursor(cursor: str) -> str:
    try:
        raw = base64.b64decode(cursor, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid cursor {cursor!r}: {exc}") from exc
    return raw.decode("utf-8", errors="surrogateescape")


def _name(item: Any) -> str:
    return item.name


def paginate(items: Iterable[T], cursor: str | None, limit: int | None) -> tuple[list[T], str]:
    """Return one page of ``items`` and the cursor for the next page.

    ``items`` must be sorted by their ``name`` attribute. The page starts after
    the name the cursor encodes and holds at most ``limit`` items. The next
    cursor is empty unless a limit is set and the page is full.
    Raises ValueError for a cursor that is not valid base64.
    """
    if limit is not None and limit < 0:
        raise ValueError("pagination limit must not be negative")
    elements = list(items)
    start = 0
    if cursor:
        after = _decode_cursor(cursor)
        start = bisect.bisect_right(elements, after, key=_name)
    end = len(elements)
    if limit is not None and end > start + limit:
        end = start + limit
    page = elements[start:end]
    next_cursor = ""
    if limit is not None and page and len(page) >= limit:
        next_cursor = encode_cursor(_name(page[-1]))
    return page, next_cursor