# Warehouse connection

import re
from pathlib import Path
from typing import Any, Protocol

import duckdb
import structlog
from fastapi import Request

from game_analytics.core.config import settings

logger = structlog.get_logger()

TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

EVENT_PARAMS_TYPE = (
    "STRUCT(key VARCHAR, value STRUCT("
    "string_value VARCHAR, int_value BIGINT, float_value DOUBLE, double_value DOUBLE))[]"
)

# Firebase-style export columns, in table order
EVENT_COLUMNS = {
    "event_timestamp": "BIGINT",
    "event_name": "VARCHAR",
    "user_pseudo_id": "VARCHAR",
    "event_params": EVENT_PARAMS_TYPE,
    "platform": "VARCHAR",
    "geo": "STRUCT(country VARCHAR, region VARCHAR, city VARCHAR)",
    "app_info": "STRUCT(id VARCHAR, version VARCHAR)",
}


class Warehouse(Protocol):
    """Anything that runs a parameterized query and returns rows as dicts"""

    def query(self, sql: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        ...


def validate_table_name(table: str) -> str:
    if not TABLE_NAME_PATTERN.match(table):
        raise ValueError(f"Invalid table name: {table!r}")
    return table


class DuckDBWarehouse:
    """DuckDB-backed event warehouse.

    One base connection is opened per process; every query runs on its own
    cursor so concurrent requests never share a statement.
    """

    def __init__(self, database: str = ":memory:", table: str = "events"):
        self.database = database
        self.table = validate_table_name(table)
        self.conn = duckdb.connect(database)

    def ensure_schema(self):
        """Create the events table if it does not exist yet"""
        columns = ",\n    ".join(f"{name} {sql_type}" for name, sql_type in EVENT_COLUMNS.items())
        self.conn.execute(f"CREATE TABLE IF NOT EXISTS {self.table} (\n    {columns}\n)")

    def query(self, sql: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        with self.conn.cursor() as cursor:
            cursor.execute(sql, params or None)
            columns = [description[0] for description in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def count_events(self) -> int:
        return self.conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()[0]

    def load_events(self, path: str | Path) -> int:
        """
        Append a newline-delimited JSON export to the events table

        Returns:
            Number of rows loaded
        """
        self.ensure_schema()
        source = str(path).replace("'", "''")
        column_spec = ", ".join(f"'{name}': '{sql_type}'" for name, sql_type in EVENT_COLUMNS.items())
        column_list = ", ".join(EVENT_COLUMNS)

        before = self.count_events()
        self.conn.execute(f"""
            INSERT INTO {self.table} ({column_list})
            SELECT {column_list}
            FROM read_json('{source}', format = 'newline_delimited', columns = {{{column_spec}}})
        """)
        loaded = self.count_events() - before

        logger.info("events_loaded", path=str(path), rows=loaded, table=self.table)
        return loaded

    def close(self):
        """Close DuckDB connection"""
        self.conn.close()


def connect_warehouse() -> DuckDBWarehouse:
    """Open the configured warehouse, creating the file and table when missing"""
    if settings.warehouse_path != ":memory:":
        Path(settings.warehouse_path).parent.mkdir(parents=True, exist_ok=True)

    warehouse = DuckDBWarehouse(settings.warehouse_path, settings.events_table)
    warehouse.ensure_schema()
    return warehouse


def get_warehouse(request: Request) -> Warehouse:
    """Dependency for getting the process-wide warehouse"""
    return request.app.state.warehouse
