import logging
from typing import List, Optional, Sequence

from claimsboard.core.source.resolver import WILDCARD, ResolvedRoles
from claimsboard.core.source.roles import YEAR_FILTER_ROLE


# -----------------------------------------------------------------------------
# QUERY MODULE
# Purpose: build the claims SELECT from resolved columns only.
# No ORDER BY: sorting happens in memory during aggregation.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)


def quote_identifier(column: str) -> str:
    """Back-tick quote a column so dots, spaces and brackets survive."""
    return "`" + column.replace("`", "``") + "`"


def quote_literal(value: str) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def parse_years(raw: Optional[str]) -> Optional[List[str]]:
    """
    Parse the comma separated policy year filter.

    Example:
        "2023-24, 2024-25" -> ["2023-24", "2024-25"]
        "" -> None
    """
    if not raw:
        return None
    years = [year.strip() for year in raw.split(",") if year.strip()]
    return years or None


def build_claims_query(
    table: str,
    resolved: ResolvedRoles,
    years: Optional[Sequence[str]] = None,
    limit: Optional[int] = None,
) -> str:
    """
    Build the claims query for one table.

    Args:
        table: Fully qualified table name
        resolved: Role -> column map for this table
        years: Policy year values to filter on (optional)
        limit: Row cap (optional)

    Returns:
        SQL string

    Example:
        SELECT `Entity`, `Year` FROM main.hmo.claims
        WHERE `Year` IN ('2023-24', '2024-25') LIMIT 500000
    """
    projection = resolved.projection
    if projection:
        column_list = ", ".join(quote_identifier(column) for column in projection)
    else:
        column_list = WILDCARD

    sql = f"SELECT {column_list} FROM {table}"

    # WHERE only against a year column this table really has
    if years:
        year_column = resolved.get(YEAR_FILTER_ROLE)
        if year_column:
            year_list = ", ".join(quote_literal(year) for year in years)
            sql += f" WHERE {quote_identifier(year_column)} IN ({year_list})"
            logger.info(f"[databricks] Year filter: {year_column} IN ({year_list})")
        else:
            logger.warning(
                "[databricks] Year filter skipped, no year column found in table"
            )

    if limit:
        sql += f" LIMIT {int(limit)}"

    return sql
