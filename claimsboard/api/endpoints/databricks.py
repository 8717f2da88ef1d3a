from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from claimsboard.core import schemas
from claimsboard.core.dependencies import get_claims_source
from claimsboard.core.errors import (
    ClaimsSourceError,
    ConfigurationError,
    ConnectivityFailure,
    DependencyUnavailable,
    EmptyResult,
)
from claimsboard.core.source.pipeline import ClaimsSource

router = APIRouter(prefix="/databricks", tags=["Databricks"])

source_dep = Annotated[ClaimsSource, Depends(get_claims_source)]

_STATUS_BY_ERROR = {
    ConfigurationError: status.HTTP_400_BAD_REQUEST,
    EmptyResult: status.HTTP_404_NOT_FOUND,
    ConnectivityFailure: status.HTTP_502_BAD_GATEWAY,
    DependencyUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@router.get("/status", response_model=schemas.SourceStatus)
async def get_status(source: source_dep):
    """Whether credentials and a table are configured (no network call)."""
    return schemas.SourceStatus(
        configured=source.is_configured(),
        table_set=source.is_table_set(),
        host=source.settings.DATABRICKS_SERVER_HOSTNAME,
        table=source.settings.DATABRICKS_TABLE,
    )


@router.get("/test", response_model=schemas.ConnectionStatus)
async def test_connection(source: source_dep):
    """Connection check; failures are reported in the body, not as errors."""
    return await source.test_connection()


@router.post("/load", response_model=schemas.LoadResult)
async def load_claims(source: source_dep):
    """
    Run the full Databricks pipeline:
    connect -> introspect -> query -> aggregate.
    """
    try:
        return await source.load_and_aggregate()
    except ClaimsSourceError as e:
        code = _STATUS_BY_ERROR.get(type(e), status.HTTP_500_INTERNAL_SERVER_ERROR)
        raise HTTPException(code, {"message": e.message, "hint": e.hint}) from e
