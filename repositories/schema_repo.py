"""
repositories/schema_repo.py
---------------------------
Catalog queries used to describe the database to the user.
All identifiers are passed as query parameters.
"""

from typing import Optional

from psycopg2 import extras

from db.connection import get_connection, release_connection
from utils.logger import get_logger

logger = get_logger(__name__)

_NAMESPACE_OID = "(SELECT oid FROM pg_catalog.pg_namespace WHERE nspname = %(schema)s)"


class SchemaRepository:
    """Read-only access to information_schema and pg_catalog."""

    def list_tables(self, schema: str = "public") -> list[dict]:
        """Base tables of a schema with their column count and comment."""
        sql = f"""
            SELECT
                t.table_name,
                pg_catalog.obj_description(pgc.oid, 'pg_class') AS table_description,
                (SELECT COUNT(*) FROM information_schema.columns c
                  WHERE c.table_schema = t.table_schema
                    AND c.table_name = t.table_name) AS column_count
            FROM information_schema.tables t
            JOIN pg_catalog.pg_class pgc
              ON pgc.relname = t.table_name
             AND pgc.relnamespace = {_NAMESPACE_OID}
            WHERE t.table_schema = %(schema)s
              AND t.table_type = 'BASE TABLE'
            ORDER BY t.table_name;
        """
        conn = get_connection()
        try:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(sql, {"schema": schema})
                return [dict(r) for r in cur.fetchall()]
        except Exception as e:
            logger.error(f"Failed to list tables of schema {schema}: {e}")
            raise
        finally:
            release_connection(conn)

    def describe_table(self, table: str, schema: str = "public") -> Optional[dict]:
        """
        Columns, keys, indexes and size estimate of one table.

        Returns:
            A dict, or None if the table does not exist in the schema.
        """
        params = {"schema": schema, "table": table}
        conn = get_connection()
        try:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(
                    f"""
                    SELECT pg_catalog.obj_description(pgc.oid, 'pg_class') AS table_description,
                           pgc.reltuples::bigint AS approximate_row_count
                    FROM pg_catalog.pg_class pgc
                    WHERE pgc.relname = %(table)s AND pgc.relnamespace = {_NAMESPACE_OID}
                      AND pgc.relkind IN ('r', 'p');
                    """,
                    params,
                )
                table_row = cur.fetchone()
                if table_row is None:
                    return None

                cur.execute(
                    f"""
                    SELECT c.column_name, c.data_type, c.character_maximum_length,
                           c.column_default, c.is_nullable,
                           pg_catalog.col_description(pgc.oid, c.ordinal_position) AS column_description
                    FROM information_schema.columns c
                    JOIN pg_catalog.pg_class pgc
                      ON pgc.relname = c.table_name
                     AND pgc.relnamespace = {_NAMESPACE_OID}
                    WHERE c.table_name = %(table)s AND c.table_schema = %(schema)s
                    ORDER BY c.ordinal_position;
                    """,
                    params,
                )
                columns = [dict(r) for r in cur.fetchall()]

                cur.execute(
                    f"""
                    SELECT a.attname AS column_name
                    FROM pg_catalog.pg_index i
                    JOIN pg_catalog.pg_class t ON t.oid = i.indrelid
                    JOIN pg_catalog.pg_attribute a
                      ON a.attrelid = i.indrelid AND a.attnum = ANY(i.indkey)
                    WHERE t.relname = %(table)s AND t.relnamespace = {_NAMESPACE_OID}
                      AND i.indisprimary;
                    """,
                    params,
                )
                primary_keys = [r["column_name"] for r in cur.fetchall()]

                cur.execute(
                    """
                    SELECT kcu.column_name,
                           ccu.table_name AS foreign_table_name,
                           ccu.column_name AS foreign_column_name
                    FROM information_schema.table_constraints tc
                    JOIN information_schema.key_column_usage kcu
                      ON tc.constraint_name = kcu.constraint_name
                     AND tc.table_schema = kcu.table_schema
                    JOIN information_schema.constraint_column_usage ccu
                      ON ccu.constraint_name = tc.constraint_name
                     AND ccu.table_schema = tc.table_schema
                    WHERE tc.constraint_type = 'FOREIGN KEY'
                      AND tc.table_name = %(table)s AND tc.table_schema = %(schema)s;
                    """,
                    params,
                )
                foreign_keys = [dict(r) for r in cur.fetchall()]

                cur.execute(
                    f"""
                    SELECT i.relname AS index_name,
                           am.amname AS index_type,
                           array_agg(a.attname) AS column_names,
                           ix.indisunique AS is_unique
                    FROM pg_catalog.pg_class t
                    JOIN pg_catalog.pg_index ix ON ix.indrelid = t.oid
                    JOIN pg_catalog.pg_class i ON i.oid = ix.indexrelid
                    JOIN pg_catalog.pg_am am ON am.oid = i.relam
                    JOIN pg_catalog.pg_attribute a
                      ON a.attrelid = t.oid AND a.attnum = ANY(ix.indkey)
                    WHERE t.relkind = 'r'
                      AND t.relname = %(table)s AND t.relnamespace = {_NAMESPACE_OID}
                    GROUP BY i.relname, am.amname, ix.indisunique
                    ORDER BY i.relname;
                    """,
                    params,
                )
                indexes = [dict(r) for r in cur.fetchall()]

            return {
                "schema_name": schema,
                "table_name": table,
                "description": table_row["table_description"],
                # reltuples is -1 until the table is first analyzed
                "approximate_row_count": max(table_row["approximate_row_count"] or 0, 0),
                "columns": columns,
                "primary_keys": primary_keys,
                "foreign_keys": foreign_keys,
                "indexes": indexes,
            }
        except Exception as e:
            logger.error(f"Failed to describe table {schema}.{table}: {e}")
            raise
        finally:
            release_connection(conn)
