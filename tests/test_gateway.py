import sys

import pytest

from claimsboard.core.errors import INSTALL_HINT, ConnectivityFailure, DependencyUnavailable
from claimsboard.core.source.gateway import (
    Credentials,
    DatabricksClient,
    databricks_client_factory,
    run_statement,
)


# Stand-ins for the connector's connection / cursor / Row objects
class Row:
    def __init__(self, **values):
        self._values = values

    def asDict(self):
        return dict(self._values)


class Cursor:
    def __init__(self, rows, error=None):
        self.rows = rows
        self.error = error
        self.executed = []
        self.fetched_with = None
        self.closed = 0

    def execute(self, sql):
        self.executed.append(sql)
        if self.error:
            raise self.error

    def fetchmany(self, size):
        self.fetched_with = ("fetchmany", size)
        return self.rows[:size]

    def fetchall(self):
        self.fetched_with = ("fetchall", None)
        return list(self.rows)

    def close(self):
        self.closed += 1


class Connection:
    def __init__(self, cursor):
        self._cursor = cursor
        self.closed = 0

    def cursor(self):
        return self._cursor

    def close(self):
        self.closed += 1


class SqlModule:
    def __init__(self, cursor):
        self.connection = Connection(cursor)
        self.connect_kwargs = None

    def connect(self, **kwargs):
        self.connect_kwargs = kwargs
        return self.connection


CREDENTIALS = Credentials(host="adb-1.net", path="/sql/1.0/warehouses/x", token="dapi")


async def connected(cursor):
    sql = SqlModule(cursor)
    client = DatabricksClient(sql)
    await client.connect(CREDENTIALS)
    return client, sql


@pytest.mark.asyncio
async def test_connect_passes_credentials():
    _, sql = await connected(Cursor([]))
    assert sql.connect_kwargs == {
        "server_hostname": "adb-1.net",
        "http_path": "/sql/1.0/warehouses/x",
        "access_token": "dapi",
    }


@pytest.mark.asyncio
async def test_rows_come_back_as_dicts():
    cursor = Cursor([Row(Entity="Acme", Year="2023-24"), {"Entity": "Globex"}])
    client, _ = await connected(cursor)
    session = await client.open_session()

    rows = await run_statement(session, "SELECT * FROM t")

    assert rows == [{"Entity": "Acme", "Year": "2023-24"}, {"Entity": "Globex"}]
    assert cursor.executed == ["SELECT * FROM t"]
    assert cursor.fetched_with == ("fetchall", None)
    assert cursor.closed == 1


@pytest.mark.asyncio
async def test_row_cap_uses_fetchmany():
    cursor = Cursor([Row(n=1), Row(n=2), Row(n=3)])
    client, _ = await connected(cursor)
    session = await client.open_session()

    rows = await run_statement(session, "SELECT * FROM t", max_rows=2)

    assert rows == [{"n": 1}, {"n": 2}]
    assert cursor.fetched_with == ("fetchmany", 2)


@pytest.mark.asyncio
async def test_cursor_closed_when_execute_fails():
    cursor = Cursor([], error=RuntimeError("[TABLE_OR_VIEW_NOT_FOUND] t"))
    client, _ = await connected(cursor)
    session = await client.open_session()

    with pytest.raises(ConnectivityFailure, match="TABLE_OR_VIEW_NOT_FOUND"):
        await run_statement(session, "SELECT * FROM t")
    assert cursor.closed == 1


@pytest.mark.asyncio
async def test_open_session_before_connect():
    client = DatabricksClient(SqlModule(Cursor([])))
    with pytest.raises(ConnectivityFailure, match="not connected"):
        await client.open_session()


@pytest.mark.asyncio
async def test_close_is_idempotent():
    client, sql = await connected(Cursor([]))

    await client.close()
    await client.close()

    assert sql.connection.closed == 1


@pytest.mark.asyncio
async def test_close_without_connect_is_a_no_op():
    client = DatabricksClient(SqlModule(Cursor([])))
    await client.close()


def test_missing_connector_is_dependency_unavailable(monkeypatch):
    monkeypatch.setitem(sys.modules, "databricks", None)
    monkeypatch.setitem(sys.modules, "databricks.sql", None)

    with pytest.raises(DependencyUnavailable) as exc_info:
        databricks_client_factory()
    assert exc_info.value.hint == INSTALL_HINT
    assert INSTALL_HINT in exc_info.value.message
