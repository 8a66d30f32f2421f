"""Server-side processing for the users grid.

The grid widget sends its paging, search and ordering state as flattened
query parameters (``start``, ``length``, ``search[value]``,
``order[0][column]``, ``columns[0][data]``, ...) and echoes a ``draw``
counter that must be returned unchanged so it can discard stale responses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from .database import ORDERABLE_COLUMNS, Database

DEFAULT_PAGE_LENGTH = 10
MAX_PAGE_LENGTH = 1000

_ORDER_KEY = re.compile(r"^order\[(\d+)\]\[(column|dir)\]$")
_COLUMN_KEY = re.compile(r"^columns\[(\d+)\]\[data\]$")


def _as_int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class TableQuery:
    draw: int = 0
    start: int = 0
    length: int = DEFAULT_PAGE_LENGTH
    search: str = ""
    order: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @classmethod
    def from_params(cls, params: Mapping[str, str], *, default_length: int = DEFAULT_PAGE_LENGTH) -> "TableQuery":
        columns: Dict[int, str] = {}
        order_parts: Dict[int, Dict[str, str]] = {}
        for key, value in params.items():
            column_match = _COLUMN_KEY.match(key)
            if column_match:
                columns[int(column_match.group(1))] = value
                continue
            order_match = _ORDER_KEY.match(key)
            if order_match:
                order_parts.setdefault(int(order_match.group(1)), {})[order_match.group(2)] = value

        order: List[Tuple[str, str]] = []
        for position in sorted(order_parts):
            part = order_parts[position]
            index = _as_int(part.get("column"), -1)
            name = columns.get(index, "")
            direction = "desc" if part.get("dir", "").lower() == "desc" else "asc"
            if name in ORDERABLE_COLUMNS:
                order.append((name, direction))

        length = _as_int(params.get("length"), default_length)
        if length == 0 or length < -1:
            length = default_length
        length = min(length, MAX_PAGE_LENGTH)

        return cls(
            draw=max(_as_int(params.get("draw"), 0), 0),
            start=max(_as_int(params.get("start"), 0), 0),
            length=length,
            search=(params.get("search[value]") or "").strip(),
            order=tuple(order),
        )


class UsersDataTable:
    """Answers grid data requests from the users table."""

    def __init__(self, database: Database, *, page_length: int = DEFAULT_PAGE_LENGTH) -> None:
        self._database = database
        self._page_length = page_length

    def query(self, params: Mapping[str, str]) -> TableQuery:
        return TableQuery.from_params(params, default_length=self._page_length)

    def render(self, params: Mapping[str, str]) -> Dict[str, object]:
        query = self.query(params)
        limit = None if query.length == -1 else query.length
        users = self._database.query_users(
            search=query.search or None,
            order=query.order,
            offset=query.start,
            limit=limit,
        )
        return {
            "draw": query.draw,
            "recordsTotal": self._database.count_users(),
            "recordsFiltered": self._database.count_users(query.search or None),
            "data": [user.to_row() for user in users],
        }


__all__ = ["DEFAULT_PAGE_LENGTH", "TableQuery", "UsersDataTable"]
