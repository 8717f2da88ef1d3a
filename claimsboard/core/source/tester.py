import logging
from typing import Any, Dict, List, Optional

from claimsboard.core.config import Settings
from claimsboard.core.errors import (
    CREDENTIALS_HINT,
    INSTALL_HINT,
    DependencyUnavailable,
)
from claimsboard.core.schemas import ConnectionStatus
from claimsboard.core.source.gateway import (
    ClientFactory,
    Credentials,
    open_session,
    run_statement,
)


# -----------------------------------------------------------------------------
# TESTER MODULE
# Purpose: check credentials and reachability without a full load.
# Always returns a ConnectionStatus, failures included.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

_CONNECTOR_MARKERS = ("databricks-sql-connector", "databricks.sql", "no module named")


def read_row_count(rows: List[Dict[str, Any]]) -> Optional[int]:
    """COUNT(*) comes back as "cnt", or as "count(1)" on some warehouses."""
    if not rows:
        return None
    value = rows[0].get("cnt")
    if value is None:
        value = rows[0].get("count(1)")
    return int(value) if value is not None else None


def remediation_hint(error: Exception) -> str:
    if isinstance(error, DependencyUnavailable):
        return INSTALL_HINT
    message = str(error).lower()
    if any(marker in message for marker in _CONNECTOR_MARKERS):
        return INSTALL_HINT
    return CREDENTIALS_HINT


async def check_connection(
    settings: Settings, client_factory: ClientFactory
) -> ConnectionStatus:
    """
    Connect, open a session and count rows of the configured table.

    A failing COUNT(*) does not fail the check; it only leaves row_count empty.
    """
    if not Credentials.from_settings(settings).complete:
        return ConnectionStatus(
            success=False,
            message="Databricks credentials not configured in .env",
            configured=False,
        )

    table = settings.DATABRICKS_TABLE
    try:
        row_count = None
        async with open_session(settings, client_factory) as session:
            # Quick row count if table is known
            if table:
                try:
                    rows = await run_statement(
                        session, f"SELECT COUNT(*) AS cnt FROM {table}", max_rows=1
                    )
                    row_count = read_row_count(rows)
                except Exception as e:
                    logger.warning(f"[databricks] Count query failed: {e}")

        return ConnectionStatus(
            success=True,
            message="Databricks connection successful",
            configured=True,
            host=settings.DATABRICKS_SERVER_HOSTNAME,
            table=table or "not set",
            row_count=row_count,
        )
    except Exception as e:
        logger.warning(f"[databricks] Connection test failed: {e}")
        return ConnectionStatus(
            success=False,
            message=str(e),
            configured=True,
            host=settings.DATABRICKS_SERVER_HOSTNAME,
            table=table or "not set",
            hint=remediation_hint(e),
        )
