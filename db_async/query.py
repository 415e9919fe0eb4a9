"""
List-view query builder.

Builds the SELECT statement behind ``Database.query`` and
``Database.query_with_select``, plus the COUNT statement that backs
pagination.

Usage:
    from db_async.query import build_query

    plan = build_query({"key": "foo", "page": "2", "pagecap": "5"}, "items", ["name"])
    plan.sql        # SELECT * FROM items WHERE (name LIKE '%foo%') LIMIT 5 OFFSET 5
    plan.count_sql  # SELECT COUNT(*) AS count FROM items WHERE (name LIKE '%foo%')
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from db_async.config import DatabaseConfig, config as default_config
from db_async.errors import InvalidArgumentError


@dataclass
class QueryOptions:
    """Keyword filter, raw condition and pagination for a list query."""

    key: Optional[str] = None        # Searched with LIKE in every key column
    condition: Optional[str] = None  # Raw SQL condition
    page: Optional[str] = None       # 1-based page number
    pagecap: Optional[str] = None    # Rows per page

    @classmethod
    def coerce(cls, options: Union["QueryOptions", Mapping[str, Any], None]) -> "QueryOptions":
        """Accept an instance, a plain mapping or None."""
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        if isinstance(options, Mapping):
            return cls(**{f.name: options.get(f.name) for f in fields(cls)})
        raise InvalidArgumentError(
            f"QueryOptions: expected a mapping, got {type(options).__name__}"
        )


@dataclass
class QueryResult:
    """Rows of one list query; pagination fields are set only for paged queries."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    allcount: Optional[int] = None
    page: Optional[int] = None
    pagecap: Optional[int] = None
    pagecount: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"rows": self.rows}
        for name in ("allcount", "page", "pagecap", "pagecount"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


@dataclass(frozen=True)
class QueryPlan:
    """Statements for one list query."""

    sql: str
    count_sql: Optional[str] = None
    page: Optional[int] = None
    pagecap: Optional[int] = None


def _like_literal(key: str) -> str:
    escaped = key.replace("'", "''")
    return f"'%{escaped}%'"


def _parse_int(name: str, value: Any) -> int:
    try:
        return int(str(value).strip(), 10)
    except ValueError:
        raise InvalidArgumentError(f"QueryOptions.{name} is not a number: {value!r}")


def build_query(
    options: Union[QueryOptions, Mapping[str, Any], None],
    table: str,
    keys: Sequence[str],
    select: str = "*",
    config: Optional[DatabaseConfig] = None,
) -> QueryPlan:
    """
    Build the statements for a list query.

    Args:
        options: Keyword, condition and pagination options
        table: Table to select from
        keys: Columns searched for ``options.key``
        select: Projection, ``*`` by default
        config: Supplies the default page size and the count fallback

    Returns:
        QueryPlan; ``count_sql`` is None unless a page was requested

    Raises:
        InvalidArgumentError: page or pagecap is not a positive number
    """
    options = QueryOptions.coerce(options)
    config = config or default_config

    conditions = []
    if options.key and keys:
        literal = _like_literal(options.key)
        conditions.append("(" + " OR ".join(f"{k} LIKE {literal}" for k in keys) + ")")
    if options.condition:
        conditions.append(options.condition)
    where = " AND ".join(conditions)

    sql = f"SELECT {select} FROM {table}"
    if where:
        sql += f" WHERE {where}"

    if not options.page:
        return QueryPlan(sql)

    page = _parse_int("page", options.page)
    pagecap = _parse_int("pagecap", options.pagecap or config.default_pagecap)
    if pagecap < 1:
        raise InvalidArgumentError(f"QueryOptions.pagecap must be positive: {pagecap}")

    sql += f" LIMIT {pagecap} OFFSET {(page - 1) * pagecap}"

    count_sql = f"SELECT COUNT(*) AS count FROM {table}"
    count_filter = where or config.count_fallback_condition
    if count_filter:
        count_sql += f" WHERE {count_filter}"

    return QueryPlan(sql, count_sql, page, pagecap)
