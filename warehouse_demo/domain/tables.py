"""
Table catalog for the demo schema.

Each domain has a source table (`source_<domain>`) and a processed table
(`processed_<domain>`) with the same value columns plus `processed_at`.
The productivity demo adds a staging/update pair and three value-tier tables.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

DOMAINS: Tuple[str, ...] = ("sales", "inventory", "customers")


@dataclass(frozen=True)
class Column:
    name: str
    sql_type: str
    default: Optional[str] = None


@dataclass(frozen=True)
class TableSpec:
    name: str
    columns: Tuple[Column, ...]

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(c.name for c in self.columns)


ID = Column("id", "INTEGER")
# Stamped by the engine as the row is inserted, never by the client.
PROCESSED_AT = Column("processed_at", "TIMESTAMPTZ", "clock_timestamp()")

VALUE_COLUMNS: Dict[str, Tuple[Column, ...]] = {
    "sales": (Column("amount", "NUMERIC(10, 2)"),),
    "inventory": (Column("qty", "INTEGER"),),
    "customers": (Column("name", "VARCHAR"),),
}

SEED_ROWS: Dict[str, Tuple[Any, ...]] = {
    "sales": (1, Decimal("1000")),
    "inventory": (1, 100),
    "customers": (1, "John"),
}


def source_table(domain: str) -> TableSpec:
    return TableSpec(f"source_{domain}", (ID,) + VALUE_COLUMNS[domain])


def processed_table(domain: str) -> TableSpec:
    return TableSpec(f"processed_{domain}", (ID,) + VALUE_COLUMNS[domain] + (PROCESSED_AT,))


ALERT_HISTORY = TableSpec(
    "alert_history",
    (
        Column("name", "VARCHAR"),
        Column("scheduled_time", "TIMESTAMPTZ"),
        Column("completed_time", "TIMESTAMPTZ"),
        Column("state", "VARCHAR"),
        Column("trigger", "VARCHAR"),
        Column("error", "VARCHAR"),
    ),
)

# Productivity demo
_SALES_PAIR = (ID, Column("amount", "NUMERIC(10, 2)"))

SALES_UPDATES = TableSpec("sales_updates", _SALES_PAIR)
SALES_STAGING = TableSpec("sales_staging", _SALES_PAIR)
HIGH_VALUE_SALES = TableSpec(
    "high_value_sales", _SALES_PAIR + (Column("category", "VARCHAR", "'HIGH'"),)
)
MEDIUM_VALUE_SALES = TableSpec(
    "medium_value_sales", _SALES_PAIR + (Column("category", "VARCHAR", "'MEDIUM'"),)
)
LOW_VALUE_SALES = TableSpec(
    "low_value_sales", _SALES_PAIR + (Column("category", "VARCHAR", "'LOW'"),)
)

SALES_UPDATE_ROWS = [(1, Decimal("1500")), (2, Decimal("2500")), (99, Decimal("9999"))]
SALES_STAGING_ROWS = [
    (101, Decimal("8000")),
    (102, Decimal("3500")),
    (103, Decimal("500")),
    (104, Decimal("12000")),
    (105, Decimal("4500")),
    (106, Decimal("800")),
]


__all__ = [
    "ALERT_HISTORY",
    "Column",
    "DOMAINS",
    "HIGH_VALUE_SALES",
    "LOW_VALUE_SALES",
    "MEDIUM_VALUE_SALES",
    "SALES_STAGING",
    "SALES_STAGING_ROWS",
    "SALES_UPDATES",
    "SALES_UPDATE_ROWS",
    "SEED_ROWS",
    "TableSpec",
    "VALUE_COLUMNS",
    "processed_table",
    "source_table",
]
