import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from claimsboard.core.claims.aggregate import (
    aggregate_claims_to_clients,
    is_claims_level_data,
)
from claimsboard.core.claims.normalize import normalize_row
from claimsboard.core.config import Settings
from claimsboard.core.errors import (
    TABLE_HINT,
    ConfigurationError,
    EmptyResult,
    LoadAdvisory,
)
from claimsboard.core.schemas import ConnectionStatus, LoadLogEntry, LoadMeta, LoadResult
from claimsboard.core.source.discovery import discover_claims_table
from claimsboard.core.source.gateway import (
    ClientFactory,
    Credentials,
    RawRow,
    databricks_client_factory,
    open_session,
    run_statement,
)
from claimsboard.core.source.introspect import get_table_columns
from claimsboard.core.source.query import build_claims_query, parse_years
from claimsboard.core.source.resolver import ResolvedRoles, resolve_roles
from claimsboard.core.source.tester import check_connection


# -----------------------------------------------------------------------------
# PIPELINE MODULE - Orchestration
# Purpose: connect → introspect → resolve → query → aggregate → package
# Why: one entry point that never queries a column the table does not have
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 5


class LoadLogger:
    """Step logger for one load; entries end up in the result metadata."""

    def __init__(self):
        self.start_time = time.perf_counter()
        self.logs: List[LoadLogEntry] = []

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self.start_time

    def log(self, step: str, message: str, level: str = "info"):
        """
        Log a pipeline message.
        Why: centralized logs make debugging a remote load easier.
        """
        self.logs.append(
            LoadLogEntry(
                timestamp=datetime.now(timezone.utc),
                step=step,
                message=message,
                level=level,
                elapsed_seconds=round(self.elapsed, 3),
            )
        )

        # Also log to console
        if level == "error":
            logger.error(f"[databricks] {step}: {message}")
        elif level == "warning":
            logger.warning(f"[databricks] {step}: {message}")
        else:
            logger.info(f"[databricks] {step}: {message}")


@dataclass(frozen=True)
class ClaimsAggregator:
    """Aggregation engine the pipeline hands raw rows to."""

    normalize_row: Callable[[RawRow], Dict[str, Any]] = normalize_row
    is_claims_level_data: Callable[[List[Dict[str, Any]]], bool] = is_claims_level_data
    aggregate_claims_to_clients: Callable[[List[RawRow]], List[Dict[str, Any]]] = (
        aggregate_claims_to_clients
    )


@dataclass
class FetchOutcome:
    rows: List[RawRow]
    table: str
    resolved: ResolvedRoles
    advisories: List[LoadAdvisory] = field(default_factory=list)


class ClaimsSource:
    """
    Databricks claims source.

    Every call builds its own client and session through the client
    factory; nothing is shared between calls.
    """

    def __init__(
        self,
        settings: Settings,
        client_factory: ClientFactory = databricks_client_factory,
        aggregator: ClaimsAggregator = ClaimsAggregator(),
    ):
        self.settings = settings
        self.client_factory = client_factory
        self.aggregator = aggregator

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def is_configured(self) -> bool:
        return Credentials.from_settings(self.settings).complete

    def is_table_set(self) -> bool:
        return bool(self.settings.DATABRICKS_TABLE)

    # -------------------------------------------------------------------------
    # Fetch
    # -------------------------------------------------------------------------

    async def fetch(self, load_logger: Optional[LoadLogger] = None) -> FetchOutcome:
        """
        Connect, introspect, resolve roles, query and fetch every row.

        The session and connection are closed on every exit path.

        Raises:
            ConfigurationError: credentials missing or no table found
            DependencyUnavailable: Databricks connector not installed
            ConnectivityFailure: connect / session / query failed
        """
        if not self.is_configured():
            raise ConfigurationError(
                "Databricks not configured. Set DATABRICKS_TOKEN, "
                "DATABRICKS_SERVER_HOSTNAME, DATABRICKS_HTTP_PATH in .env"
            )

        load_logger = load_logger or LoadLogger()
        max_rows = self.settings.DATABRICKS_MAX_ROWS

        async with open_session(self.settings, self.client_factory) as session:
            load_logger.log("connect", "Session opened")

            # Discover table if not set
            table = self.settings.DATABRICKS_TABLE
            if not table:
                table = await discover_claims_table(session)
                if not table:
                    raise ConfigurationError(
                        "No table found. Set DATABRICKS_TABLE=catalog.schema.table_name in .env",
                        hint=TABLE_HINT,
                    )
                load_logger.log("discover", f"Using discovered table {table}")

            years = parse_years(self.settings.DATABRICKS_POLICY_YEARS)

            # Introspect actual columns before querying
            load_logger.log("introspect", f"Introspecting columns: {table}")
            columns = await get_table_columns(session, table)
            advisories = []
            if not columns:
                advisories.append(LoadAdvisory.INTROSPECTION_DEGRADED)

            resolved = resolve_roles(columns)
            load_logger.log(
                "resolve", f"Matched {resolved.matched}/{resolved.known} known columns"
            )

            sql = build_claims_query(table, resolved, years=years, limit=max_rows)
            load_logger.log("query", f"SQL preview: {sql[:300]}")

            rows = await run_statement(session, sql, max_rows=max_rows)
            load_logger.log("query", f"Fetched {len(rows):,} rows")

        return FetchOutcome(rows=rows, table=table, resolved=resolved, advisories=advisories)

    async def fetch_rows(self, load_logger: Optional[LoadLogger] = None) -> FetchOutcome:
        """
        fetch(), then reject an empty result.

        Raises:
            EmptyResult: the query returned no rows
            plus everything fetch() raises
        """
        load_logger = load_logger or LoadLogger()
        outcome = await self.fetch(load_logger)
        if not outcome.rows:
            load_logger.log("pipeline", "Databricks returned 0 rows", "error")
            raise EmptyResult("Databricks returned 0 rows. Check table name and filters.")
        return outcome

    async def fetch_raw_rows(self) -> List[RawRow]:
        """Fetch raw claim rows; same failures as fetch_rows()."""
        outcome = await self.fetch_rows()
        return outcome.rows

    # -------------------------------------------------------------------------
    # Load and aggregate
    # -------------------------------------------------------------------------

    async def load_and_aggregate(self) -> LoadResult:
        """
        Full pipeline: fetch → check shape → aggregate → package.

        Raises:
            EmptyResult: the query returned no rows
            plus everything fetch() raises
        """
        load_logger = LoadLogger()
        load_logger.log("pipeline", "Starting data load...")

        outcome = await self.fetch_rows(load_logger)
        rows = outcome.rows

        # Validate it's claim-level data (advisory only)
        sample = [self.aggregator.normalize_row(row) for row in rows[:SAMPLE_SIZE]]
        if not self.aggregator.is_claims_level_data(sample):
            outcome.advisories.append(LoadAdvisory.SHAPE_MISMATCH)
            load_logger.log(
                "validate",
                "Data may not be HMO claim-level format, attempting aggregation anyway",
                "warning",
            )

        load_logger.log("aggregate", f"Aggregating {len(rows):,} claims by Entity...")
        clients = self.aggregator.aggregate_claims_to_clients(rows)

        elapsed = round(load_logger.elapsed, 1)
        load_logger.log(
            "pipeline",
            f"Done - {len(clients)} clients from {len(rows):,} claims in {elapsed}s",
        )

        meta = LoadMeta(
            host=self.settings.DATABRICKS_SERVER_HOSTNAME,
            table=self.settings.DATABRICKS_TABLE or "auto-discovered",
            resolved_table=outcome.table,
            parsed_at=datetime.now(timezone.utc),
            total_clients=len(clients),
            total_claims=len(rows),
            load_time_seconds=elapsed,
            matched_roles={
                role.value: column for role, column in outcome.resolved.columns.items()
            },
            advisories=outcome.advisories,
            logs=load_logger.logs,
        )
        return LoadResult(clients=clients, claims_data=rows, meta=meta)

    # -------------------------------------------------------------------------
    # Connection test
    # -------------------------------------------------------------------------

    async def test_connection(self) -> ConnectionStatus:
        """Lightweight reachability check; never raises."""
        return await check_connection(self.settings, self.client_factory)
