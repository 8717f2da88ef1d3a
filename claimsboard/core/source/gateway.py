"""
GATEWAY MODULE - talk to the Databricks SQL warehouse

Purpose:
    1. Build a client through an explicit factory (no module-wide singleton)
    2. Connect / open a session / execute statements / fetch rows
    3. Always release the session and the connection

The Databricks connector is blocking, so every call runs in a worker thread
and the pipeline awaits it like any other network call.

Data Flow:
    client_factory() → connect() → open_session() → execute_statement()
        → fetch_all() → handle.close() → session.close() → client.close()
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Protocol

from claimsboard.core.config import Settings
from claimsboard.core.errors import (
    ClaimsSourceError,
    ConnectivityFailure,
    DependencyUnavailable,
    INSTALL_HINT,
)

logger = logging.getLogger(__name__)

RawRow = Dict[str, Any]


@dataclass(frozen=True)
class Credentials:
    host: str
    path: str
    token: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "Credentials":
        return cls(
            host=settings.DATABRICKS_SERVER_HOSTNAME or "",
            path=settings.DATABRICKS_HTTP_PATH or "",
            token=settings.DATABRICKS_TOKEN or "",
        )

    @property
    def complete(self) -> bool:
        return bool(self.token and self.host and self.path)


# =============================================================================
# EXECUTION CAPABILITY
# =============================================================================


class StatementHandle(Protocol):
    async def fetch_all(self) -> List[RawRow]: ...

    async def close(self) -> None: ...


class Session(Protocol):
    async def execute_statement(
        self, sql: str, max_rows: Optional[int] = None
    ) -> StatementHandle: ...

    async def close(self) -> None: ...


class Client(Protocol):
    async def connect(self, credentials: Credentials) -> None: ...

    async def open_session(self) -> Session: ...

    async def close(self) -> None: ...


ClientFactory = Callable[[], Client]


# =============================================================================
# DATABRICKS IMPLEMENTATION
# =============================================================================


def _row_to_dict(row: Any) -> RawRow:
    if isinstance(row, dict):
        return dict(row)
    if hasattr(row, "asDict"):
        return row.asDict()
    return dict(row)


class DatabricksStatement:
    """One executed statement, backed by its own cursor."""

    def __init__(self, cursor: Any, max_rows: Optional[int] = None):
        self._cursor = cursor
        self._max_rows = max_rows

    async def fetch_all(self) -> List[RawRow]:
        if self._max_rows:
            rows = await asyncio.to_thread(self._cursor.fetchmany, self._max_rows)
        else:
            rows = await asyncio.to_thread(self._cursor.fetchall)
        return [_row_to_dict(row) for row in rows]

    async def close(self) -> None:
        await asyncio.to_thread(self._cursor.close)


class DatabricksSession:
    """The connector has no separate session; this just hands out cursors."""

    def __init__(self, connection: Any):
        self._connection = connection

    async def execute_statement(
        self, sql: str, max_rows: Optional[int] = None
    ) -> DatabricksStatement:
        cursor = await asyncio.to_thread(self._connection.cursor)
        try:
            await asyncio.to_thread(cursor.execute, sql)
        except Exception:
            await asyncio.to_thread(cursor.close)
            raise
        return DatabricksStatement(cursor, max_rows)

    async def close(self) -> None:
        return None


class DatabricksClient:
    """Thin async wrapper around databricks.sql.connect()."""

    def __init__(self, sql_module: Any):
        self._sql = sql_module
        self._connection: Any = None

    async def connect(self, credentials: Credentials) -> None:
        self._connection = await asyncio.to_thread(
            self._sql.connect,
            server_hostname=credentials.host,
            http_path=credentials.path,
            access_token=credentials.token,
        )

    async def open_session(self) -> DatabricksSession:
        if self._connection is None:
            raise ConnectivityFailure("Databricks client is not connected")
        return DatabricksSession(self._connection)

    async def close(self) -> None:
        if self._connection is None:
            return
        connection, self._connection = self._connection, None
        await asyncio.to_thread(connection.close)


def databricks_client_factory() -> DatabricksClient:
    """
    Default client factory.

    The connector is imported here so the service (and /databricks/status)
    starts without it installed.
    """
    try:
        from databricks import sql
    except ImportError as e:
        raise DependencyUnavailable(
            f"databricks-sql-connector not installed. {INSTALL_HINT}"
        ) from e
    return DatabricksClient(sql)


# =============================================================================
# SCOPED ACQUISITION
# =============================================================================


async def _release(step: str, close) -> None:
    try:
        await close()
    except Exception as e:
        logger.warning(f"[databricks] Failed to close {step}: {e}")


@asynccontextmanager
async def open_session(
    settings: Settings, client_factory: ClientFactory
) -> AsyncIterator[Session]:
    """
    Connect and open a session; close both on every exit path.

    Raises:
        DependencyUnavailable: the client factory cannot build a client
        ConnectivityFailure: connect or open session failed
    """
    client = client_factory()
    logger.info(f"[databricks] Connecting to: {settings.DATABRICKS_SERVER_HOSTNAME}")

    try:
        try:
            await client.connect(Credentials.from_settings(settings))
            session = await client.open_session()
        except ClaimsSourceError:
            raise
        except Exception as e:
            raise ConnectivityFailure(str(e)) from e

        logger.info("[databricks] Session opened")
        try:
            yield session
        finally:
            await _release("session", session.close)
    finally:
        await _release("connection", client.close)
        logger.info("[databricks] Connection closed")


async def run_statement(
    session: Session, sql: str, max_rows: Optional[int] = None
) -> List[RawRow]:
    """
    Execute one statement and fetch every row, closing the handle afterwards.

    Raises:
        ConnectivityFailure: execution or fetching failed
    """
    try:
        handle = await session.execute_statement(sql, max_rows=max_rows)
    except ClaimsSourceError:
        raise
    except Exception as e:
        raise ConnectivityFailure(str(e)) from e

    try:
        return await handle.fetch_all()
    except ClaimsSourceError:
        raise
    except Exception as e:
        raise ConnectivityFailure(str(e)) from e
    finally:
        await _release("statement", handle.close)
