"""SQL statement logging through SQLAlchemy cursor events.

Every statement is logged once, after it runs, as a ``sql_query`` event:
query text, elapsed time, batch size (when > 1) and either the column count
(result-returning statements) or the affected row count.

Parameter values are inlined into the logged text only in ``dev``/``local``
profiles and only when SQL_LOGGING_SHOW_PARAMETERS is set. Elsewhere the raw
statement is logged with whitespace collapsed.
"""

import numbers
import re
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncEngine

from service_common.config import Settings, SqlLoggingSettings
from service_common.logging import get_logger

logger = get_logger(__name__)

DEV_PROFILES = frozenset({"dev", "local"})

_STARTED_ATTR = "_service_common_started"
_WHITESPACE = re.compile(r"\s+")
# Single-quoted SQL literals; placeholders inside them are left alone
_LITERAL = re.compile(r"('(?:[^']|'')*')")

_PLACEHOLDERS: dict[str, re.Pattern[str]] = {
    "qmark": re.compile(r"\?"),
    "format": re.compile(r"%s"),
    "numeric": re.compile(r"(?<![:\w]):(\d+)"),
    "numeric_dollar": re.compile(r"\$(\d+)"),
    "named": re.compile(r"(?<![:\w]):([A-Za-z_]\w*)"),
    "pyformat": re.compile(r"%\((\w+)\)s|%s"),
}


def normalize(sql: str) -> str:
    """Collapse runs of whitespace to one space and trim the ends."""
    return _WHITESPACE.sub(" ", sql).strip()


def format_value(value: Any) -> str:
    """Render a parameter as a SQL literal: null, bare numbers, quoted everything else."""
    if value is None:
        return "null"
    if isinstance(value, numbers.Number) and not isinstance(value, bool):
        return str(value)
    return "'" + str(value).replace("'", "\\'") + "'"


class QueryLogger:
    """Cursor-event listener that logs each executed statement.

    Usage:
        query_logger = QueryLogger(settings.profiles, show_parameters=True)
        query_logger.install(engine)
    """

    def __init__(self, profiles: Iterable[str] = (), show_parameters: bool = False) -> None:
        self.profiles = [p.strip() for p in profiles if p.strip()]
        dev = any(profile.lower() in DEV_PROFILES for profile in self.profiles)
        active = ",".join(self.profiles)

        if not dev:
            if show_parameters:
                logger.warning("sql_parameter_logging_ignored", profiles=active)
                show_parameters = False
            logger.warning("sql_logging_non_dev", profiles=active)

        self.show_parameters = dev and show_parameters

    def install(self, engine: Engine | AsyncEngine) -> None:
        target = _sync_engine(engine)
        event.listen(target, "before_cursor_execute", self.before_cursor_execute)
        event.listen(target, "after_cursor_execute", self.after_cursor_execute)

    def uninstall(self, engine: Engine | AsyncEngine) -> None:
        target = _sync_engine(engine)
        event.remove(target, "before_cursor_execute", self.before_cursor_execute)
        event.remove(target, "after_cursor_execute", self.after_cursor_execute)

    def before_cursor_execute(
        self,
        conn: Any,
        cursor: Any,
        statement: str,
        parameters: Any,
        context: Any,
        executemany: bool,
    ) -> None:
        if context is not None:
            setattr(context, _STARTED_ATTR, time.perf_counter())

    def after_cursor_execute(
        self,
        conn: Any,
        cursor: Any,
        statement: str,
        parameters: Any,
        context: Any,
        executemany: bool,
    ) -> None:
        started = getattr(context, _STARTED_ATTR, None)
        elapsed = time.perf_counter() - started if started is not None else 0.0

        param_sets = _parameter_sets(parameters, executemany)
        batch_size = len(param_sets) if executemany else 1
        query = self.format_query(statement, param_sets, conn.dialect.paramstyle)

        values: dict[str, Any] = {"query": query, "time_ms": round(elapsed * 1000)}
        if batch_size > 1:
            values["batch_size"] = batch_size
        if cursor.description is not None:
            values["cols"] = len(cursor.description)
        else:
            rowcount = cursor.rowcount
            values["rows_affected"] = rowcount if rowcount >= 0 else batch_size
        logger.info("sql_query", **values)

    def format_query(
        self, statement: str, param_sets: Sequence[Any], paramstyle: str = "qmark"
    ) -> str:
        """Statement text as it will be logged.

        INSERTs with parameters become one statement with a value tuple per
        parameter set; anything else is repeated per set, joined by `` ; ``.
        """
        pattern = _PLACEHOLDERS.get(paramstyle)
        if not self.show_parameters or pattern is None or not _has_placeholder(statement, pattern):
            return normalize(statement)

        param_sets = [params for params in param_sets if params]
        if not param_sets:
            return normalize(statement)

        lowered = statement.lower()
        if lowered.lstrip().startswith("insert") and "values" in lowered:
            end = lowered.index("values") + len("values")
            prefix, tail = statement[:end], statement[end:]
            tuples = [normalize(_fill(tail, params, paramstyle, pattern)) for params in param_sets]
            return normalize(prefix) + " " + ", ".join(tuples) + ";"

        filled = [_fill(statement, params, paramstyle, pattern) for params in param_sets]
        return normalize(" ; ".join(filled)) + ";"


def enable_sql_logging(
    engine: Engine | AsyncEngine,
    settings: SqlLoggingSettings | None = None,
    profiles: Iterable[str] | None = None,
) -> QueryLogger | None:
    """Attach a ``QueryLogger`` to ``engine`` when SQL_LOGGING_ENABLED is set.

    ``profiles`` defaults to PROFILES_ACTIVE.
    """
    settings = settings or SqlLoggingSettings()
    if not settings.enabled:
        return None
    if profiles is None:
        profiles = Settings().profiles
    query_logger = QueryLogger(profiles, settings.show_parameters)
    query_logger.install(engine)
    logger.info("sql_logging_enabled", show_parameters=query_logger.show_parameters)
    return query_logger


def _sync_engine(engine: Engine | AsyncEngine) -> Engine:
    return engine.sync_engine if isinstance(engine, AsyncEngine) else engine


def _parameter_sets(parameters: Any, executemany: bool) -> list[Any]:
    if parameters is None:
        return []
    if executemany:
        return list(parameters)
    return [parameters]


def _has_placeholder(statement: str, pattern: re.Pattern[str]) -> bool:
    return any(
        pattern.search(segment)
        for index, segment in enumerate(_LITERAL.split(statement))
        if index % 2 == 0
    )


def _fill(statement: str, params: Any, paramstyle: str, pattern: re.Pattern[str]) -> str:
    """Replace placeholders outside string literals with rendered values."""
    positional = iter(params.values() if isinstance(params, Mapping) else params)

    def lookup(match: re.Match[str]) -> str:
        key = match.group(1) if match.groups() else None
        try:
            if key is None:
                return format_value(next(positional))
            if paramstyle in ("numeric", "numeric_dollar"):
                return format_value(_by_position(params, int(key)))
            return format_value(params[key])
        except (StopIteration, KeyError, IndexError, TypeError):
            return match.group(0)

    segments = _LITERAL.split(statement)
    return "".join(
        pattern.sub(lookup, segment) if index % 2 == 0 else segment
        for index, segment in enumerate(segments)
    )


def _by_position(params: Any, position: int) -> Any:
    if isinstance(params, Mapping):
        return params[str(position)]
    if position < 1:
        raise IndexError(position)
    return params[position - 1]
