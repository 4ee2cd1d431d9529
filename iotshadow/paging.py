"""Paging, ordering and a small immutable SELECT builder."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class OrderBy:
    """A sort field; ``sort`` is 0 for ascending and 1 for descending."""

    field: str
    sort: int = 0


@dataclass(frozen=True)
class SelectQuery:
    """Immutable SELECT statement builder; each method returns a new query."""

    columns: tuple[str, ...]
    table: str = ""
    wheres: tuple[tuple[str, tuple[Any, ...]], ...] = ()
    orders: tuple[str, ...] = ()
    limit_count: int | None = None
    offset_count: int | None = None

    def where(self, clause: str, *args: Any) -> SelectQuery:
        return replace(self, wheres=self.wheres + ((clause, args),))

    def order_by(self, clause: str) -> SelectQuery:
        return replace(self, orders=self.orders + (clause,))

    def limit(self, count: int) -> SelectQuery:
        return replace(self, limit_count=count)

    def offset(self, count: int) -> SelectQuery:
        return replace(self, offset_count=count)

    def to_sql(self) -> tuple[str, list[Any]]:
        """Render the statement with '?' placeholders and its argument list."""
        if not self.columns:
            raise ValueError("select statements must have at least one result column")
        parts = ["SELECT " + ", ".join(self.columns)]
        if self.table:
            parts.append("FROM " + self.table)
        args: list[Any] = []
        if self.wheres:
            parts.append("WHERE " + " AND ".join(clause for clause, _ in self.wheres))
            for _, clause_args in self.wheres:
                args.extend(clause_args)
        if self.orders:
            parts.append("ORDER BY " + ", ".join(self.orders))
        if self.limit_count is not None:
            parts.append(f"LIMIT {self.limit_count}")
        if self.offset_count is not None:
            parts.append(f"OFFSET {self.offset_count}")
        return " ".join(parts), args


@dataclass
class PageInfo:
    """Time range in epoch milliseconds plus page number and size."""

    time_start: int = 0
    time_end: int = 0
    page: int = 0
    size: int = 0
    orders: list[OrderBy] = field(default_factory=list)

    def start_time(self) -> datetime:
        return _EPOCH + timedelta(milliseconds=self.time_start)

    def end_time(self) -> datetime:
        return _EPOCH + timedelta(milliseconds=self.time_end)

    def limit(self) -> int:
        return self.size

    def offset(self) -> int:
        if self.page == 0:
            return 0
        return self.size * (self.page - 1)

    def apply_time_range(self, query: SelectQuery) -> SelectQuery:
        """Restrict ``query`` to the time range only."""
        if self.time_start != 0:
            query = query.where("ts >= ?", self.start_time())
        if self.time_end != 0:
            query = query.where("ts <= ?", self.end_time())
        return query

    def apply(self, query: SelectQuery) -> SelectQuery:
        """Restrict ``query`` to the time range and the requested page."""
        if self.time_start != 0:
            query = query.where("ts>=?", self.start_time())
        if self.time_end != 0:
            query = query.where("ts<=?", self.end_time())
        if self.size != 0:
            query = query.limit(self.limit())
            if self.page != 0:
                query = query.offset(self.offset())
        return query