import psycopg2
import pytest

from repositories.schema_repo import SchemaRepository
from services.errors import QueryFailed, TableNotFound
from services.query_service import QueryService


@pytest.fixture
def query_service():
    return QueryService(SchemaRepository())


@pytest.mark.asyncio
async def test_list_tables_passes_schema_as_parameter(fake_pool, query_service):
    conn = fake_pool.prepare(rows=[{"table_name": "users", "table_description": None, "column_count": 3}])

    tables = await query_service.list_tables("sales")

    assert tables == [{"table_name": "users", "table_description": None, "column_count": 3}]
    assert conn.params == [{"schema": "sales"}]
    assert fake_pool.in_use == 0


@pytest.mark.asyncio
async def test_describe_unknown_table(fake_pool, query_service):
    conn = fake_pool.prepare(rows=())

    with pytest.raises(TableNotFound) as exc_info:
        await query_service.describe_table("ghost")

    assert exc_info.value.details()["table_name"] == "ghost"
    assert conn.params[0] == {"schema": "public", "table": "ghost"}
    assert fake_pool.in_use == 0


@pytest.mark.asyncio
async def test_describe_only_matches_tables(fake_pool, query_service):
    conn = fake_pool.prepare(rows=())

    with pytest.raises(TableNotFound):
        await query_service.describe_table("users_view")

    lookup_sql = conn.calls[0][1]
    assert "relkind IN ('r', 'p')" in lookup_sql
    assert "users_view" not in lookup_sql


@pytest.mark.asyncio
async def test_describe_unanalyzed_table_reports_zero_rows(fake_pool, query_service):
    row = {"table_description": "people", "approximate_row_count": -1, "column_name": "id"}
    conn = fake_pool.prepare(rows=[row])

    description = await query_service.describe_table("users", "sales")

    assert description["approximate_row_count"] == 0
    assert description["schema_name"] == "sales"
    assert description["description"] == "people"
    assert description["primary_keys"] == ["id"]
    assert all(p == {"schema": "sales", "table": "users"} for p in conn.params)
    assert fake_pool.in_use == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("operation", ["list_tables", "describe_table"])
async def test_catalog_failure_releases_connection(fake_pool, query_service, operation):
    fake_pool.prepare(fail_execute=psycopg2.OperationalError("server closed the connection"))

    with pytest.raises(QueryFailed):
        await getattr(query_service, operation)("users")

    assert fake_pool.in_use == 0
    assert fake_pool.getconn_calls == 1
