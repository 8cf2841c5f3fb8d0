import psycopg2
import pytest

from services.errors import (
    ConnectionUnavailable,
    MissingArgument,
    NotReadOnly,
    QueryFailed,
    TableNotFound,
)
from services.query_service import QueryService
from tests.fakes import Column


class DummySchemaRepo:
    def __init__(self, tables=None, description=None, error=None):
        self.tables = tables or []
        self.description = description
        self.error = error

    def list_tables(self, schema="public"):
        if self.error:
            raise self.error
        return self.tables

    def describe_table(self, table, schema="public"):
        if self.error:
            raise self.error
        return self.description


@pytest.mark.asyncio
async def test_select_returns_rows_and_releases(fake_pool):
    conn = fake_pool.prepare(
        rows=[{"id": 1, "name": "a"}, {"id": 2, "name": "b"}],
        description=[Column("id", 23), Column("name", 25)],
        rowcount=2,
    )

    result = await QueryService(DummySchemaRepo()).run_query("SELECT id, name FROM t")

    assert result["rows"] == [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]
    assert result["row_count"] == 2
    assert result["fields"] == [
        {"name": "id", "data_type_id": 23},
        {"name": "name", "data_type_id": 25},
    ]
    assert result["execution_time_ms"] >= 0
    assert conn.commits == 1
    assert conn.readonly is None
    assert fake_pool.in_use == 0


@pytest.mark.asyncio
async def test_write_on_read_path_is_rejected_before_acquire(fake_pool):
    with pytest.raises(NotReadOnly):
        await QueryService(DummySchemaRepo()).run_query("INSERT INTO t VALUES (1)")
    assert fake_pool.getconn_calls == 0
    assert fake_pool.in_use == 0


@pytest.mark.asyncio
async def test_empty_query_is_rejected(fake_pool):
    with pytest.raises(MissingArgument):
        await QueryService(DummySchemaRepo()).run_query("   ")
    assert fake_pool.getconn_calls == 0


@pytest.mark.asyncio
async def test_failed_query_still_releases(fake_pool):
    conn = fake_pool.prepare(fail_execute=psycopg2.ProgrammingError("relation does not exist"))

    with pytest.raises(QueryFailed):
        await QueryService(DummySchemaRepo()).run_query("SELECT * FROM missing")

    assert conn.rollbacks == 1
    assert conn.commits == 0
    assert conn.readonly is None
    assert fake_pool.release_count(conn) == 1
    assert fake_pool.in_use == 0


@pytest.mark.asyncio
async def test_exhausted_pool_is_a_resource_error(fake_pool):
    fake_pool.maxconn = 0
    with pytest.raises(ConnectionUnavailable):
        await QueryService(DummySchemaRepo()).run_query("SELECT 1")


@pytest.mark.asyncio
async def test_list_tables():
    repo = DummySchemaRepo(tables=[{"table_name": "users", "column_count": 3, "table_description": None}])
    tables = await QueryService(repo).list_tables()
    assert tables[0]["table_name"] == "users"


@pytest.mark.asyncio
async def test_list_tables_failure():
    repo = DummySchemaRepo(error=psycopg2.OperationalError("server closed the connection"))
    with pytest.raises(QueryFailed):
        await QueryService(repo).list_tables("public")


@pytest.mark.asyncio
async def test_describe_unknown_table():
    with pytest.raises(TableNotFound) as exc_info:
        await QueryService(DummySchemaRepo(description=None)).describe_table("nope")
    assert exc_info.value.details()["table_name"] == "nope"


@pytest.mark.asyncio
async def test_describe_requires_table_name():
    with pytest.raises(MissingArgument):
        await QueryService(DummySchemaRepo()).describe_table("")


@pytest.mark.asyncio
async def test_describe_table():
    description = {"table_name": "users", "schema_name": "public", "columns": [], "primary_keys": ["id"]}
    result = await QueryService(DummySchemaRepo(description=description)).describe_table("users")
    assert result["primary_keys"] == ["id"]
