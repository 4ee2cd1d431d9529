from datetime import datetime, timezone

import pytest

from iotshadow.paging import OrderBy, PageInfo, SelectQuery


def test_offset_first_page_is_zero():
    assert PageInfo(page=0, size=10).offset() == 0
    assert PageInfo(page=1, size=10).offset() == 0


def test_offset_later_page():
    assert PageInfo(page=3, size=10).offset() == 20


def test_limit_is_size():
    page = PageInfo(size=25)
    assert page.limit() == page.size


def test_start_time_epoch():
    assert PageInfo().start_time() == datetime(1970, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize("ms", [1, 999, 1524448722000, 1700000000123])
def test_time_round_trip(ms):
    page = PageInfo(time_start=ms, time_end=ms)
    for value in (page.start_time(), page.end_time()):
        delta = value - PageInfo().start_time()
        assert delta.days * 86400000 + delta.seconds * 1000 + delta.microseconds // 1000 == ms


def test_builder_is_immutable():
    base = SelectQuery(("*",), "t")
    narrowed = base.where("a = ?", 1)
    assert base.to_sql() == ("SELECT * FROM t", [])
    sql, args = narrowed.to_sql()
    assert "WHERE a = ?" in sql
    assert args == [1]


def test_wheres_joined_in_order():
    q = SelectQuery(("*",), "t").where("a = ?", 1).where("b = ?", 2)
    sql, args = q.to_sql()
    assert sql.count(" AND ") == 1
    assert sql.index("a = ?") < sql.index("b = ?")
    assert args == [1, 2]


def test_clause_order_in_output():
    q = SelectQuery(("*",), "t").order_by("x desc").offset(5).limit(2).where("y = ?", 3)
    sql, _ = q.to_sql()
    positions = [sql.index(k) for k in ("SELECT", "FROM", "WHERE", "ORDER BY", "LIMIT", "OFFSET")]
    assert positions == sorted(positions)


def test_no_columns_is_error():
    with pytest.raises(ValueError):
        SelectQuery(()).to_sql()


def test_apply_without_size_has_no_limit():
    sql, args = PageInfo(page=2).apply(SelectQuery(("*",), "t")).to_sql()
    assert "LIMIT" not in sql
    assert "OFFSET" not in sql
    assert args == []


def test_apply_with_size_and_page():
    page = PageInfo(page=3, size=10)
    q = page.apply(SelectQuery(("*",), "t"))
    assert q.limit_count == page.limit()
    assert q.offset_count == page.offset()


def test_apply_first_page_has_no_offset():
    q = PageInfo(page=0, size=10).apply(SelectQuery(("*",), "t"))
    assert q.limit_count == 10
    assert q.offset_count is None


def test_apply_time_range_args():
    page = PageInfo(time_start=1000, time_end=2000, size=5)
    sql, args = page.apply(SelectQuery(("*",), "t")).to_sql()
    assert "ts>=?" in sql and "ts<=?" in sql
    assert args == [page.start_time(), page.end_time()]


def test_apply_time_range_ignores_paging():
    page = PageInfo(time_start=1000, page=2, size=5)
    sql, args = page.apply_time_range(SelectQuery(("Count(1)",), "t")).to_sql()
    assert "LIMIT" not in sql
    assert "WHERE" in sql
    assert args == [page.start_time()]


def test_zero_times_add_no_condition():
    sql, args = PageInfo().apply_time_range(SelectQuery(("*",), "t")).to_sql()
    assert "WHERE" not in sql
    assert args == []


def test_order_by_defaults():
    order = OrderBy("ts", 1)
    assert (order.field, order.sort) == ("ts", 1)
    assert OrderBy("ts").sort == 0