from enum import Enum
from typing import Optional


# -----------------------------------------------------------------------------
# ERRORS
# Purpose: name every way a remote load can fail.
# Fatal kinds are raised; advisories are only logged and reported in metadata.
# -----------------------------------------------------------------------------

INSTALL_HINT = "Run: pip install databricks-sql-connector, then restart the server"
CREDENTIALS_HINT = (
    "Check DATABRICKS_TOKEN, DATABRICKS_SERVER_HOSTNAME and DATABRICKS_HTTP_PATH in .env"
)
TABLE_HINT = "Set DATABRICKS_TABLE=catalog.schema.table_name in .env"


class ClaimsSourceError(Exception):
    """Base class for failures of the remote claims source."""

    hint: Optional[str] = None

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if hint is not None:
            self.hint = hint


class ConfigurationError(ClaimsSourceError):
    """Credentials are missing or no table could be resolved."""

    hint = CREDENTIALS_HINT


class DependencyUnavailable(ClaimsSourceError):
    """The Databricks SQL connector is not installed."""

    hint = INSTALL_HINT


class ConnectivityFailure(ClaimsSourceError):
    """Connecting, opening a session or executing a statement failed."""

    hint = CREDENTIALS_HINT


class EmptyResult(ClaimsSourceError):
    """The query ran but returned no rows."""

    hint = "Check the table name and DATABRICKS_POLICY_YEARS filter"


class LoadAdvisory(str, Enum):
    """Non-fatal conditions noticed during a load."""

    INTROSPECTION_DEGRADED = "introspection_degraded"
    SHAPE_MISMATCH = "shape_mismatch"
