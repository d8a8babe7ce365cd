"""
Productivity statements: merge-by-name and the multi-table conditional insert.

`merge_by_name` resolves the columns two tables share by name and issues a
single MERGE, so the caller never spells out a column list.

`multi_table_insert` routes every row of a source table to one or more targets
in one statement. The source is scanned once (a MATERIALIZED CTE) and each
route is a writable CTE over it:

- mode "all": every route whose condition holds receives the row; the ELSE
  route only receives rows no condition matched.
- mode "first": a row goes to the first route whose condition holds, or to
  the ELSE route when none does.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from psycopg import sql

from warehouse_demo.domain.tables import (
    HIGH_VALUE_SALES,
    LOW_VALUE_SALES,
    MEDIUM_VALUE_SALES,
    SALES_STAGING,
    SALES_STAGING_ROWS,
    SALES_UPDATE_ROWS,
    SALES_UPDATES,
    TableSpec,
)
from warehouse_demo.errors import EngineError
from warehouse_demo.infrastructure.store import WarehouseStore
from warehouse_demo.utils.logging import get_logger

log = get_logger(__name__)

ROUTING_MODES = ("all", "first")


@dataclass(frozen=True)
class Route:
    """
    One INTO clause. `condition` is a SQL predicate over the source columns;
    None marks the ELSE route, which must come last.
    """

    target: str
    columns: Tuple[str, ...]
    condition: Optional[str] = None

    @property
    def is_else(self) -> bool:
        return self.condition is None


@dataclass(frozen=True)
class MergeResult:
    columns: Tuple[str, ...]
    rows_affected: int


@dataclass(frozen=True)
class RoutingSummary:
    category: str
    count: int
    total: Decimal


_TIER_COLUMNS = ("id", "amount")

VALUE_TIER_ROUTES: Tuple[Route, ...] = (
    Route(HIGH_VALUE_SALES.name, _TIER_COLUMNS, "amount > 5000"),
    Route(MEDIUM_VALUE_SALES.name, _TIER_COLUMNS, "amount >= 1000"),
    Route(LOW_VALUE_SALES.name, _TIER_COLUMNS),
)
VALUE_TIER_TABLES: Tuple[TableSpec, ...] = (HIGH_VALUE_SALES, MEDIUM_VALUE_SALES, LOW_VALUE_SALES)
VALUE_TIER_CATEGORIES: Tuple[str, ...] = ("HIGH", "MEDIUM", "LOW")


# ---------------------------------------------------------------------- #
# Merge by name
# ---------------------------------------------------------------------- #


def resolve_common_columns(
    target_columns: Sequence[str], source_columns: Sequence[str], key: str
) -> Tuple[str, ...]:
    """
    Columns present in both tables, compared case-insensitively, in target order.
    """
    source = {c.lower() for c in source_columns}
    common = tuple(c for c in target_columns if c.lower() in source)
    if key.lower() not in {c.lower() for c in common}:
        raise EngineError(f"Merge key '{key}' is not a column of both tables.")
    return common


def merge_statement(target: str, source: str, columns: Sequence[str], key: str) -> sql.Composed:
    key_lower = key.lower()
    key_column = next(c for c in columns if c.lower() == key_lower)
    updates = [c for c in columns if c.lower() != key_lower]
    if updates:
        matched = sql.SQL("UPDATE SET {}").format(
            sql.SQL(", ").join(
                sql.SQL("{} = src.{}").format(sql.Identifier(c), sql.Identifier(c)) for c in updates
            )
        )
    else:
        matched = sql.SQL("DO NOTHING")
    return sql.SQL(
        "MERGE INTO {target} AS tgt USING {source} AS src ON tgt.{key} = src.{key} "
        "WHEN MATCHED THEN {matched} "
        "WHEN NOT MATCHED THEN INSERT ({columns}) VALUES ({values})"
    ).format(
        target=sql.Identifier(target),
        source=sql.Identifier(source),
        key=sql.Identifier(key_column),
        matched=matched,
        columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        values=sql.SQL(", ").join(sql.SQL("src.{}").format(sql.Identifier(c)) for c in columns),
    )


def merge_by_name(store: WarehouseStore, target: str, source: str, key: str = "id") -> MergeResult:
    """Upsert `source` into `target` on `key`, matching the remaining columns by name."""
    columns = resolve_common_columns(store.table_columns(target), store.table_columns(source), key)
    rows = store.execute(merge_statement(target, source, columns, key))
    log.info(
        "[MERGE] By name",
        extra={"target": target, "source": source, "columns": list(columns), "rows": rows},
    )
    if rows > 0:
        store.notify_write(target, rows)
    return MergeResult(columns=columns, rows_affected=rows)


# ---------------------------------------------------------------------- #
# Multi-table insert
# ---------------------------------------------------------------------- #


def validate_routes(routes: Sequence[Route], mode: str) -> None:
    if mode not in ROUTING_MODES:
        raise ValueError(f"Unknown routing mode '{mode}'. Expected one of {ROUTING_MODES}.")
    if not routes:
        raise ValueError("At least one route is required.")
    else_positions = [i for i, r in enumerate(routes) if r.is_else]
    if len(else_positions) > 1:
        raise ValueError("Only one ELSE route is allowed.")
    if else_positions and else_positions[0] != len(routes) - 1:
        raise ValueError("The ELSE route must be the last route.")


def _predicate(condition: str) -> sql.Composed:
    # NULL predicates count as false, so NOT(...) stays well defined.
    return sql.SQL("COALESCE(({}), false)").format(sql.SQL(condition))


def _route_filter(routes: Sequence[Route], index: int, mode: str) -> sql.Composable:
    route = routes[index]
    earlier = [r for r in routes[:index] if not r.is_else]
    if route.is_else:
        excluded = [r for r in routes if not r.is_else]
        clauses = [sql.SQL("NOT {}").format(_predicate(r.condition)) for r in excluded]
    elif mode == "first":
        clauses = [sql.SQL("NOT {}").format(_predicate(r.condition)) for r in earlier]
        clauses.append(_predicate(route.condition))
    else:
        clauses = [_predicate(route.condition)]
    if not clauses:
        return sql.SQL("true")
    return sql.SQL(" AND ").join(clauses)


def multi_table_insert_statement(
    source: str, routes: Sequence[Route], mode: str = "all"
) -> sql.Composed:
    validate_routes(routes, mode)
    ctes = [sql.SQL("src AS MATERIALIZED (SELECT * FROM {})").format(sql.Identifier(source))]
    counts = []
    for index, route in enumerate(routes):
        alias = sql.Identifier(f"ins_{index}")
        columns = sql.SQL(", ").join(sql.Identifier(c) for c in route.columns)
        ctes.append(
            sql.SQL("{} AS (INSERT INTO {} ({}) SELECT {} FROM src WHERE {} RETURNING 1)").format(
                alias,
                sql.Identifier(route.target),
                columns,
                columns,
                _route_filter(routes, index, mode),
            )
        )
        counts.append(sql.SQL("(SELECT count(*) FROM {})").format(alias))
    return sql.SQL("WITH {} SELECT {}").format(
        sql.SQL(", ").join(ctes), sql.SQL(", ").join(counts)
    )


def multi_table_insert(
    store: WarehouseStore, source: str, routes: Sequence[Route], mode: str = "all"
) -> Dict[str, int]:
    """Route the rows of `source` into the targets in one scan; returns rows inserted per target."""
    row = store.fetch_one(multi_table_insert_statement(source, routes, mode))
    inserted: Dict[str, int] = {}
    for route, count in zip(routes, row or ()):
        inserted[route.target] = inserted.get(route.target, 0) + int(count)
    log.info(
        "[MULTI-TABLE INSERT] Routed",
        extra={"source": source, "mode": mode, "inserted": inserted},
    )
    for target, count in inserted.items():
        if count:
            store.notify_write(target, count)
    return inserted


# ---------------------------------------------------------------------- #
# Demo data
# ---------------------------------------------------------------------- #


def prepare_merge_demo(store: WarehouseStore) -> None:
    store.replace_table(SALES_UPDATES)
    store.insert_rows(SALES_UPDATES.name, SALES_UPDATES.column_names, SALES_UPDATE_ROWS)


def prepare_routing_demo(store: WarehouseStore) -> None:
    store.replace_table(SALES_STAGING)
    for spec in VALUE_TIER_TABLES:
        store.replace_table(spec)
    store.insert_rows(SALES_STAGING.name, SALES_STAGING.column_names, SALES_STAGING_ROWS)


def value_tier_summary(store: WarehouseStore) -> List[RoutingSummary]:
    """One row per tier, in HIGH, MEDIUM, LOW order; empty tiers report zero."""
    selects = [
        sql.SQL("SELECT {}, count(*), COALESCE(sum(amount), 0) FROM {}").format(
            sql.Literal(category), sql.Identifier(spec.name)
        )
        for category, spec in zip(VALUE_TIER_CATEGORIES, VALUE_TIER_TABLES)
    ]
    rows = store.fetch_all(sql.SQL(" UNION ALL ").join(selects))
    return [
        RoutingSummary(category=category, count=int(count), total=Decimal(total))
        for category, count, total in rows
    ]


__all__ = [
    "MergeResult",
    "ROUTING_MODES",
    "Route",
    "RoutingSummary",
    "VALUE_TIER_CATEGORIES",
    "VALUE_TIER_ROUTES",
    "VALUE_TIER_TABLES",
    "merge_by_name",
    "merge_statement",
    "multi_table_insert",
    "multi_table_insert_statement",
    "prepare_merge_demo",
    "prepare_routing_demo",
    "resolve_common_columns",
    "validate_routes",
    "value_tier_summary",
]
