from datetime import date

import pytest
from sqlalchemy import insert, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine
from structlog.testing import capture_logs

from service_common.config import SqlLoggingSettings
from service_common.sql_logging import QueryLogger, enable_sql_logging, format_value, normalize
from tests.models import Item


# ---------------------------------------------------------------------------
# Profile gating
# ---------------------------------------------------------------------------
def test_parameters_are_never_inlined_outside_dev() -> None:
    with capture_logs() as logs:
        query_logger = QueryLogger(["prod", "eu"], show_parameters=True)

    assert query_logger.show_parameters is False
    events = [log["event"] for log in logs if log["log_level"] == "warning"]
    assert events == ["sql_parameter_logging_ignored", "sql_logging_non_dev"]


def test_non_dev_without_parameters_still_warns() -> None:
    with capture_logs() as logs:
        QueryLogger([], show_parameters=False)

    assert [log["event"] for log in logs] == ["sql_logging_non_dev"]


@pytest.mark.parametrize("profiles", [["dev"], ["LOCAL"], ["eu", " Dev "]])
def test_dev_profiles_enable_inlining(profiles: list[str]) -> None:
    with capture_logs() as logs:
        query_logger = QueryLogger(profiles, show_parameters=True)

    assert query_logger.show_parameters is True
    assert logs == []


def test_dev_profile_without_flag_does_not_inline() -> None:
    assert QueryLogger(["dev"], show_parameters=False).show_parameters is False


# ---------------------------------------------------------------------------
# Statement formatting
# ---------------------------------------------------------------------------
@pytest.fixture
def inlining() -> QueryLogger:
    return QueryLogger(["dev"], show_parameters=True)


def test_normalize_collapses_whitespace() -> None:
    assert normalize("  SELECT *\n\tFROM items\n  WHERE id = 1 ") == "SELECT * FROM items WHERE id = 1"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, "null"),
        (42, "42"),
        (3.5, "3.5"),
        ("O'Brien", "'O\\'Brien'"),
        (True, "'True'"),
        (date(2025, 1, 2), "'2025-01-02'"),
    ],
)
def test_format_value(value: object, expected: str) -> None:
    assert format_value(value) == expected


def test_raw_statement_when_not_inlining() -> None:
    query_logger = QueryLogger(["dev"], show_parameters=False)

    query = query_logger.format_query("SELECT *\n FROM items WHERE id = ?", [(1,)])

    assert query == "SELECT * FROM items WHERE id = ?"


def test_select_parameters_are_inlined(inlining: QueryLogger) -> None:
    query = inlining.format_query(
        "SELECT * FROM items\n WHERE name = ? AND price > ?", [("O'Brien", 10)]
    )

    assert query == "SELECT * FROM items WHERE name = 'O\\'Brien' AND price > 10;"


def test_statement_without_placeholders_is_only_normalized(inlining: QueryLogger) -> None:
    assert inlining.format_query("SELECT '?'  FROM items", [()]) == "SELECT '?' FROM items"


def test_insert_batch_becomes_one_statement(inlining: QueryLogger) -> None:
    query = inlining.format_query(
        "INSERT INTO items (name, price)\n VALUES (?, ?)", [("Lamp", 40), ("Desk", None)]
    )

    assert query == "INSERT INTO items (name, price) VALUES ('Lamp', 40), ('Desk', null);"


def test_update_batch_is_repeated(inlining: QueryLogger) -> None:
    query = inlining.format_query("UPDATE items SET price = ? WHERE id = ?", [(10, 1), (20, 2)])

    assert query == "UPDATE items SET price = 10 WHERE id = 1 ; UPDATE items SET price = 20 WHERE id = 2;"


@pytest.mark.parametrize(
    ("paramstyle", "statement", "params"),
    [
        ("format", "SELECT * FROM items WHERE id = %s AND name = %s", (5, "x")),
        ("pyformat", "SELECT * FROM items WHERE id = %(id)s AND name = %(name)s", {"id": 5, "name": "x"}),
        ("named", "SELECT * FROM items WHERE id = :id AND name = :name", {"id": 5, "name": "x"}),
        ("numeric", "SELECT * FROM items WHERE id = :1 AND name = :2", (5, "x")),
        ("numeric_dollar", "SELECT * FROM items WHERE id = $1 AND name = $2", (5, "x")),
    ],
)
def test_paramstyles(inlining: QueryLogger, paramstyle: str, statement: str, params: object) -> None:
    query = inlining.format_query(statement, [params], paramstyle)

    assert query == "SELECT * FROM items WHERE id = 5 AND name = 'x';"


def test_casts_and_literals_are_not_placeholders(inlining: QueryLogger) -> None:
    query = inlining.format_query(
        "SELECT id::text FROM items WHERE note = 'a:b' AND id = :id", [{"id": 3}], "named"
    )

    assert query == "SELECT id::text FROM items WHERE note = 'a:b' AND id = 3;"


# ---------------------------------------------------------------------------
# Engine events
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_enable_sql_logging_is_off_by_default(engine: AsyncEngine) -> None:
    assert enable_sql_logging(engine, SqlLoggingSettings(enabled=False), ["dev"]) is None


@pytest.mark.asyncio
async def test_select_is_logged_with_column_count(engine: AsyncEngine) -> None:
    settings = SqlLoggingSettings(enabled=True, show_parameters=True)
    query_logger = enable_sql_logging(engine, settings, ["dev"])
    assert query_logger is not None

    with capture_logs() as logs:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT name, price FROM items WHERE price > :price"), {"price": 10})

    sql_logs = [log for log in logs if log["event"] == "sql_query"]
    assert len(sql_logs) == 1
    assert sql_logs[0]["query"] == "SELECT name, price FROM items WHERE price > 10;"
    assert sql_logs[0]["cols"] == 2
    assert sql_logs[0]["time_ms"] >= 0
    assert "batch_size" not in sql_logs[0]
    query_logger.uninstall(engine)


@pytest.mark.asyncio
async def test_insert_batch_is_logged_once(engine: AsyncEngine) -> None:
    query_logger = QueryLogger(["local"], show_parameters=True)
    query_logger.install(engine)

    rows = [
        {"name": "Lamp", "category": "home", "price": 40, "is_available": True, "released_on": date(2025, 3, 1)},
        {"name": "Desk", "category": "office", "price": 320, "is_available": False, "released_on": date(2025, 4, 21)},
    ]
    with capture_logs() as logs:
        async with engine.begin() as conn:
            await conn.execute(insert(Item.__table__), rows)

    sql_logs = [log for log in logs if log["event"] == "sql_query"]
    assert len(sql_logs) == 1
    query = sql_logs[0]["query"]
    assert query.startswith("INSERT INTO items (")
    assert "'Lamp'" in query and "'Desk'" in query
    assert "), (" in query
    assert query.endswith(");")
    assert sql_logs[0]["batch_size"] == 2
    assert "rows_affected" in sql_logs[0]
    query_logger.uninstall(engine)


@pytest.mark.asyncio
async def test_failed_statements_leave_no_timing_state_on_the_connection(engine: AsyncEngine) -> None:
    query_logger = QueryLogger(["dev"], show_parameters=True)
    query_logger.install(engine)

    with capture_logs() as logs:
        async with engine.connect() as conn:
            info_before = dict(conn.info)
            for _ in range(5):
                with pytest.raises(DBAPIError):
                    await conn.execute(text("SELECT * FROM no_such_table"))
            await conn.execute(text("SELECT 1"))
            info_after = dict(conn.info)

    assert info_after == info_before
    sql_logs = [log for log in logs if log["event"] == "sql_query"]
    assert [log["query"] for log in sql_logs] == ["SELECT 1"]
    assert sql_logs[0]["time_ms"] >= 0
    query_logger.uninstall(engine)
