from fastapi import APIRouter
from claimsboard.api.endpoints import databricks

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(databricks.router)
