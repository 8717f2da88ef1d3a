import logging
from typing import List

from claimsboard.core.source.gateway import Session, run_statement


# -----------------------------------------------------------------------------
# INTROSPECT MODULE
# Purpose: find out which columns a table really has before querying it.
# Never raises: an empty list means "unknown", and the query falls back to *.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

DESCRIBE_MAX_ROWS = 200

# DESCRIBE rows name the column under one of these keys
_NAME_FIELDS = ("col_name", "column_name", "name")


def _preview(columns: List[str]) -> str:
    return ", ".join(columns[:6]) + ("..." if len(columns) > 6 else "")


def columns_from_describe(rows: List[dict]) -> List[str]:
    """
    Pull column names out of DESCRIBE TABLE output.

    Skips blank rows and "# ..." section headers. Partition sections
    repeat columns already listed above them, so names are de-duplicated.
    """
    columns = []
    for row in rows:
        name = next((row.get(f) for f in _NAME_FIELDS if row.get(f)), "")
        name = str(name).strip()
        if not name or name.startswith("#"):
            continue
        if name not in columns:
            columns.append(name)
    return columns


async def get_table_columns(session: Session, table: str) -> List[str]:
    """
    Introspect a table's columns.

    Strategy:
        1. DESCRIBE TABLE
        2. SELECT * ... LIMIT 1 and read the keys of the row
        3. Give up and return []

    Args:
        session: Open session
        table: Fully qualified table name

    Returns:
        Actual column names (possibly empty)
    """
    # Strategy 1: DESCRIBE TABLE
    try:
        rows = await run_statement(
            session, f"DESCRIBE TABLE {table}", max_rows=DESCRIBE_MAX_ROWS
        )
        columns = columns_from_describe(rows)
        if columns:
            logger.info(
                f"[databricks] DESCRIBE: {len(columns)} cols - {_preview(columns)}"
            )
            return columns
        logger.warning(
            "[databricks] DESCRIBE returned 0 columns, trying LIMIT 1 fallback"
        )
    except Exception as e:
        logger.warning(f"[databricks] DESCRIBE failed: {e}, trying LIMIT 1 fallback")

    # Strategy 2: SELECT * LIMIT 1
    try:
        rows = await run_statement(session, f"SELECT * FROM {table} LIMIT 1", max_rows=1)
        if rows:
            columns = [str(key) for key in rows[0].keys()]
            logger.info(
                f"[databricks] LIMIT 1 fallback: {len(columns)} cols - {_preview(columns)}"
            )
            return columns
        logger.warning("[databricks] LIMIT 1 returned no rows, table may be empty")
    except Exception as e:
        logger.warning(f"[databricks] LIMIT 1 fallback failed: {e}")

    # Strategy 3: nothing known
    logger.warning(
        "[databricks] Column introspection failed, will use SELECT * with no WHERE"
    )
    return []
