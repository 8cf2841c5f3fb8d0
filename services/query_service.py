"""
services/query_service.py
-------------------------
Read-only access: ad-hoc SELECT queries and schema introspection.
Nothing here ever holds a connection past the end of the call.
"""

import asyncio
import time

import psycopg2
from psycopg2 import extras

from db.connection import lease_connection
from repositories.schema_repo import SchemaRepository
from services.errors import (
    ConnectionUnavailable,
    MissingArgument,
    NotReadOnly,
    QueryFailed,
    TableNotFound,
)
from utils.logger import get_logger
from utils.sql import is_read_only_query

logger = get_logger(__name__)


def _run_read_only(conn, sql: str) -> dict:
    """Run one statement in a read-only transaction and commit it."""
    conn.readonly = True
    try:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            start = time.perf_counter()
            cur.execute(sql)
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            rows = [dict(r) for r in cur.fetchall()] if cur.description else []
            fields = [
                {"name": col.name, "data_type_id": col.type_code}
                for col in (cur.description or [])
            ]
            row_count = cur.rowcount
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if not conn.closed:
            conn.readonly = None
    return {
        "rows": rows,
        "row_count": row_count,
        "fields": fields,
        "execution_time_ms": elapsed_ms,
    }


class QueryService:
    """Runs read-only SQL and catalog lookups."""

    def __init__(self, schema_repo: SchemaRepository | None = None):
        self.schema_repo = schema_repo or SchemaRepository()

    async def run_query(self, sql: str) -> dict:
        """
        Execute a read-only statement.

        Returns:
            Dict with rows, row_count, fields and execution_time_ms.

        Raises:
            MissingArgument: Empty statement.
            NotReadOnly: The statement is not classified read-only.
            ConnectionUnavailable: No connection could be acquired.
            QueryFailed: The database rejected the statement.
        """
        if not sql or not sql.strip():
            raise MissingArgument("No SQL query provided.")
        if not is_read_only_query(sql):
            raise NotReadOnly(
                "Only SELECT queries are allowed here. Use /execute for other statements."
            )

        try:
            async with lease_connection() as conn:
                try:
                    return await asyncio.to_thread(_run_read_only, conn, sql)
                except psycopg2.Error as e:
                    logger.error(f"Read-only query failed: {e}")
                    raise QueryFailed(f"Error executing query: {e}") from e
        except (psycopg2.Error, RuntimeError) as e:
            logger.error(f"Could not acquire a connection: {e}")
            raise ConnectionUnavailable(f"Could not acquire a database connection: {e}") from e

    async def list_tables(self, schema: str = "public") -> list[dict]:
        """Base tables of ``schema``."""
        try:
            return await asyncio.to_thread(self.schema_repo.list_tables, schema or "public")
        except psycopg2.Error as e:
            raise QueryFailed(f"Error listing tables: {e}") from e

    async def describe_table(self, table: str, schema: str = "public") -> dict:
        """
        Full description of one table.

        Raises:
            MissingArgument: No table name.
            TableNotFound: The table does not exist in ``schema``.
            QueryFailed: A catalog query failed.
        """
        if not table:
            raise MissingArgument("No table name provided.")
        schema = schema or "public"
        try:
            description = await asyncio.to_thread(self.schema_repo.describe_table, table, schema)
        except psycopg2.Error as e:
            raise QueryFailed(f"Error describing table: {e}") from e
        if description is None:
            raise TableNotFound(f"Table {schema}.{table} not found.", table_name=table, schema_name=schema)
        return description
