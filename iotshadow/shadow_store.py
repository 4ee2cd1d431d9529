"""Persistent device shadow records kept in the ``t_shadow`` table."""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Iterable

TABLE = "t_shadow"

_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {TABLE} (
    "id" VARCHAR(64) PRIMARY KEY,
    "created_at" TEXT,
    "updated_at" TEXT,
    "create_user" VARCHAR(128) NOT NULL DEFAULT '',
    "update_user" VARCHAR(128) NOT NULL DEFAULT '',
    "is_delete" INTEGER NOT NULL DEFAULT 0,
    "sn" VARCHAR(64) NOT NULL DEFAULT '',
    "p_sn" VARCHAR(64) NOT NULL DEFAULT '',
    "group" INTEGER NOT NULL DEFAULT 0,
    "pk" VARCHAR(64) NOT NULL DEFAULT '',
    "shadow" TEXT NOT NULL DEFAULT '',
    "last_version" INTEGER NOT NULL DEFAULT 0
)
"""


class ShadowNotFoundError(LookupError):
    """No live shadow record matches the lookup."""


@dataclass
class ShadowRecord:
    """One device shadow row."""

    id: str = ""
    sn: str = ""
    p_sn: str = ""
    group: int = 0
    pk: str = ""
    shadow: str = ""
    last_version: int = 0
    create_user: str = ""
    update_user: str = ""
    is_delete: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


_COLUMNS = tuple(f.name for f in fields(ShadowRecord))
_COLUMN_SQL = ", ".join(f'"{name}"' for name in _COLUMNS)


def _to_db(name: str, value: Any) -> Any:
    if name in ("created_at", "updated_at") and value is not None:
        return value.isoformat()
    return value


def _from_row(row: sqlite3.Row) -> ShadowRecord:
    values = {name: row[name] for name in _COLUMNS}
    for name in ("created_at", "updated_at"):
        if values[name] is not None:
            values[name] = datetime.fromisoformat(values[name])
    return ShadowRecord(**values)


class ShadowStore:
    """Shadow records on a SQLite database; deletion is a soft flag."""

    def __init__(self, path: str = ":memory:") -> None:
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        with self._lock, self._conn:
            self._conn.execute(_SCHEMA)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> ShadowStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _query(self, sql: str, args: Iterable[Any] = ()) -> list[ShadowRecord]:
        with self._lock:
            rows = self._conn.execute(sql, tuple(args)).fetchall()
        return [_from_row(row) for row in rows]

    def _write(self, sql: str, args: Iterable[Any] = ()) -> int:
        with self._lock, self._conn:
            return self._conn.execute(sql, tuple(args)).rowcount

    def _first(self, column: str, value: Any) -> ShadowRecord:
        rows = self._query(
            f'SELECT {_COLUMN_SQL} FROM {TABLE} WHERE "{column}" = ? AND "is_delete" = 0 '
            "ORDER BY rowid LIMIT 1",
            (value,),
        )
        if not rows:
            raise ShadowNotFoundError(f"shadow {column}={value} not found")
        return rows[0]

    def add(self, record: ShadowRecord) -> None:
        """Insert ``record``; a duplicate id raises ``sqlite3.IntegrityError``."""
        now = datetime.now()
        if record.created_at is None:
            record.created_at = now
        if record.updated_at is None:
            record.updated_at = now
        placeholders = ", ".join("?" for _ in _COLUMNS)
        self._write(
            f"INSERT INTO {TABLE} ({_COLUMN_SQL}) VALUES ({placeholders})",
            (_to_db(name, getattr(record, name)) for name in _COLUMNS),
        )

    def get(self, shadow_id: str) -> ShadowRecord:
        return self._first("id", shadow_id)

    def get_by_sn(self, sn: str) -> ShadowRecord:
        return self._first("sn", sn)

    def delete(self, shadow_id: str) -> None:
        """Mark the record as deleted."""
        self._write(f'UPDATE {TABLE} SET "is_delete" = 1 WHERE "id" = ?', (shadow_id,))

    def update(self, record: ShadowRecord) -> None:
        """Write every field of ``record`` over the row with the same id."""
        record.updated_at = datetime.now()
        names = [name for name in _COLUMNS if name not in ("id", "created_at")]
        assignments = ", ".join(f'"{name}" = ?' for name in names)
        args = [_to_db(name, getattr(record, name)) for name in names]
        args.append(record.id)
        self._write(f'UPDATE {TABLE} SET {assignments} WHERE "id" = ?', args)

    def page(self, page_index: int, page_size: int) -> tuple[list[ShadowRecord], int]:
        """Return one page of live records, newest first, and the live total."""
        with self._lock:
            total = self._conn.execute(
                f'SELECT COUNT(1) FROM {TABLE} WHERE "is_delete" = 0'
            ).fetchone()[0]
        offset = max(page_index - 1, 0) * page_size
        items = self._query(
            f'SELECT {_COLUMN_SQL} FROM {TABLE} WHERE "is_delete" = 0 '
            'ORDER BY "created_at" DESC, rowid DESC LIMIT ? OFFSET ?',
            (page_size, offset),
        )
        return items, int(total)

    def list(self) -> list[ShadowRecord]:
        return self._query(
            f'SELECT {_COLUMN_SQL} FROM {TABLE} WHERE "is_delete" = 0 ORDER BY rowid'
        )

    def list_between_group_and_pk(
        self, pks: list[str] | None, start: int, end: int
    ) -> list[ShadowRecord]:
        """Live records whose group lies in [start, end], optionally limited to ``pks``."""
        sql = (
            f'SELECT {_COLUMN_SQL} FROM {TABLE} '
            'WHERE "group" >= ? AND "group" <= ? AND "is_delete" = 0'
        )
        args: list[Any] = [start, end]
        if pks is not None:
            if not pks:
                return []
            sql += f' AND "pk" IN ({", ".join("?" for _ in pks)})'
            args.extend(pks)
        return self._query(sql + " ORDER BY rowid", args)

    def list_in_sn(self, sns: list[str]) -> list[ShadowRecord]:
        if not sns:
            return []
        placeholders = ", ".join("?" for _ in sns)
        return self._query(
            f'SELECT {_COLUMN_SQL} FROM {TABLE} '
            f'WHERE "sn" IN ({placeholders}) AND "is_delete" = 0 ORDER BY rowid',
            sns,
        )

    def update_shadow(self, sn: str, shadow: str, version: int) -> None:
        """Store a new shadow document and its version for the live device ``sn``."""
        self._write(
            f'UPDATE {TABLE} SET "shadow" = ?, "last_version" = ?, "updated_at" = ? '
            'WHERE "is_delete" = 0 AND "sn" = ?',
            (shadow, version, datetime.now().isoformat(), sn),
        )

    def update_parent(self, shadow_id: str, p_sn: str) -> None:
        self._write(
            f'UPDATE {TABLE} SET "p_sn" = ?, "updated_at" = ? '
            'WHERE "is_delete" = 0 AND "id" = ?',
            (p_sn, datetime.now().isoformat(), shadow_id),
        )