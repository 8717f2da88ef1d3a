from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from claimsboard.core.errors import LoadAdvisory


# =========================
# Base
# =========================
class CamelModel(BaseModel):
    """Serialized with camelCase keys, which is what the dashboard reads."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =========================
# CONNECTION
# =========================
class SourceStatus(CamelModel):
    configured: bool
    table_set: bool
    host: Optional[str] = None
    table: Optional[str] = None


class ConnectionStatus(CamelModel):
    success: bool
    message: str
    configured: bool
    host: Optional[str] = None
    table: Optional[str] = None
    row_count: Optional[int] = None
    hint: Optional[str] = None


# =========================
# LOAD
# =========================
class LoadLogEntry(CamelModel):
    timestamp: datetime
    step: str
    message: str
    level: str = "info"
    elapsed_seconds: float


class LoadMeta(CamelModel):
    source: str = "databricks"
    host: Optional[str] = None
    table: str
    resolved_table: str
    parsed_at: datetime
    total_clients: int
    total_claims: int
    data_format: str = "hmo-claims-level"
    currency: str = "₱"
    load_time_seconds: float
    matched_roles: Dict[str, str] = Field(default_factory=dict)
    advisories: List[LoadAdvisory] = Field(default_factory=list)
    logs: List[LoadLogEntry] = Field(default_factory=list)


class LoadResult(CamelModel):
    clients: List[Dict[str, Any]]
    # Raw rows are kept for drill-downs
    claims_data: List[Dict[str, Any]]
    stories: List[Dict[str, Any]] = Field(default_factory=list)
    narratives: Dict[str, Any] = Field(default_factory=dict)
    sheets: Dict[str, Any] = Field(default_factory=dict)
    meta: LoadMeta
