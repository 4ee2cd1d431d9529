"""Message log records and the time-series SQL that stores and pages them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from iotshadow.paging import PageInfo, SelectQuery

_COLUMNS = ("ts", "content", "topic", "log_type", "dir", "msg_id", "context_id", "result", "code", "pk", "sn")


@dataclass
class MsgLogFilter:
    """Conditions for selecting message log rows; empty fields are ignored."""

    pk: str = ""
    sn: str = ""
    log_types: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    msg_id: str = ""
    context_id: str = ""
    dir: str = ""
    code: str = ""


@dataclass
class MsgLog:
    """One logged device message."""

    pk: str = ""
    sn: str = ""
    content: str = ""
    topic: str = ""
    log_type: str = ""
    dir: str = ""
    ts: datetime = field(default_factory=datetime.now)
    msg_id: str = ""
    context_id: str = ""
    result: str = ""
    code: str = ""


def array_to_sql(items: Iterable[Any]) -> str:
    """Render items as a comma separated list of double-quoted values."""
    return ",".join(f'"{item}"' for item in items)


def stable_name() -> str:
    return "`msg_log`"


def device_table_name(pk: str, sn: str) -> str:
    return f"`device_msg_log_{pk}_{sn}`"


def create_stable_sql() -> str:
    return (
        f"CREATE STABLE IF NOT EXISTS {stable_name()} "
        "(`ts` timestamp,`content` BINARY(1024),`topic` BINARY(128), `log_type` BINARY(64),"
        "`dir` BINARY(32), `msg_id` BINARY(64), `context_id` BINARY(64), `result` BINARY(1024), "
        "`code` BINARY(512)) "
        "TAGS (`pk` BINARY(50),`sn` BINARY(50));"
    )


def apply_filter(query: SelectQuery, flt: MsgLogFilter) -> SelectQuery:
    """Add the conditions of ``flt`` to ``query``."""
    for column, value in (
        ("pk", flt.pk),
        ("sn", flt.sn),
        ("dir", flt.dir),
        ("msg_id", flt.msg_id),
        ("context_id", flt.context_id),
        ("code", flt.code),
    ):
        if value:
            query = query.where(f'`{column}`="?"', value)
    if flt.log_types:
        query = query.where(f"`log_type` in ({array_to_sql(flt.log_types)})")
    if flt.topics:
        query = query.where(f"`topic` in ({array_to_sql(flt.topics)})")
    return query


def count_query(flt: MsgLogFilter, page: PageInfo) -> tuple[str, list[Any]]:
    query = SelectQuery(("Count(1)",), stable_name())
    query = apply_filter(query, flt)
    return page.apply_time_range(query).to_sql()


def page_query(flt: MsgLogFilter, page: PageInfo) -> tuple[str, list[Any]]:
    query = SelectQuery(("*",), stable_name()).order_by("`ts` desc")
    query = apply_filter(query, flt)
    return page.apply(query).to_sql()


def insert_sql(log: MsgLog) -> str:
    ts = log.ts.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
    return (
        f"insert into {device_table_name(log.pk, log.sn)} using {stable_name()} "
        f"tags('{log.pk}','{log.sn}')(`ts`,`content`,`topic`,"
        "`log_type`,`dir`,`msg_id`,`context_id`,`result`,`code`) values "
        f"('{ts}','{log.content}','{log.topic}','{log.log_type}','{log.dir}',"
        f"'{log.msg_id}','{log.context_id}','{log.result}','{log.code}');"
    )


def _text(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8").rstrip("\x00")
    return "" if value is None else str(value)


def _timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(_text(value))


class MsgLogRepository:
    """Message log storage over a DB-API connection using '?' placeholders."""

    def __init__(self, connection: Any) -> None:
        self._connection = connection

    def _execute(self, sql: str, args: list[Any] | None = None):
        cursor = self._connection.cursor()
        cursor.execute(sql, args or [])
        return cursor

    def create_stable(self) -> None:
        self._execute(create_stable_sql()).close()

    def count(self, flt: MsgLogFilter, page: PageInfo) -> int:
        sql, args = count_query(flt, page)
        cursor = self._execute(sql, args)
        try:
            row = cursor.fetchone()
        finally:
            cursor.close()
        if row is None:
            return 0
        return int(row[0])

    def page(self, flt: MsgLogFilter, page: PageInfo) -> list[MsgLog]:
        sql, args = page_query(flt, page)
        cursor = self._execute(sql, args)
        try:
            rows = cursor.fetchall()
        finally:
            cursor.close()
        logs = []
        for row in rows:
            values = dict(zip(_COLUMNS, row))
            logs.append(
                MsgLog(
                    ts=_timestamp(values["ts"]),
                    **{name: _text(values[name]) for name in _COLUMNS if name != "ts"},
                )
            )
        return logs

    def insert(self, log: MsgLog) -> None:
        self._execute(insert_sql(log)).close()