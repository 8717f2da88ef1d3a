import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from claimsboard.core.source.gateway import Session, run_statement


# -----------------------------------------------------------------------------
# DISCOVERY MODULE
# Purpose: pick a claims table when DATABRICKS_TABLE is not set.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

SHOW_TABLES_MAX_ROWS = 100

CLAIMS_TABLE_PATTERN = re.compile(r"claims|insurance|hmo|indicators", re.IGNORECASE)


def _first(row: Dict[str, Any], *fields: str) -> str:
    for field in fields:
        value = row.get(field)
        if value:
            return str(value).strip()
    return ""


def table_identifier(row: Dict[str, Any]) -> str:
    """
    Join whatever catalog / schema / table parts a SHOW TABLES row has.

    Example:
        {"catalog": "main", "namespace": "hmo", "tableName": "claims"} -> "main.hmo.claims"
        {"database": "hmo", "tableName": "claims"} -> "hmo.claims"
    """
    catalog = _first(row, "catalog")
    schema = _first(row, "namespace", "schema", "database")
    name = _first(row, "tableName", "table_name", "name")
    return ".".join(part for part in (catalog, schema, name) if part).strip(".")


def select_claims_table(names: Sequence[str]) -> Optional[str]:
    """First name that looks like a claims table, else the first name, else None."""
    for name in names:
        if CLAIMS_TABLE_PATTERN.search(name):
            return name
    return names[0] if names else None


async def discover_claims_table(session: Session) -> Optional[str]:
    """
    Look for a claims table in the current schema.

    Returns:
        Table identifier, or None when SHOW TABLES fails or lists nothing
    """
    logger.info("[databricks] Discovering available tables...")
    try:
        rows = await run_statement(
            session, "SHOW TABLES", max_rows=SHOW_TABLES_MAX_ROWS
        )
    except Exception as e:
        logger.warning(f"[databricks] Table discovery failed: {e}")
        return None

    names: List[str] = [name for name in map(table_identifier, rows) if name]
    table = select_claims_table(names)

    if table and CLAIMS_TABLE_PATTERN.search(table):
        logger.info(f"[databricks] Discovered table: {table}")
    else:
        logger.info(f"[databricks] Tables found: {names[:10]}")
    return table
