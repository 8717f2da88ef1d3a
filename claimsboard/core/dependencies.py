from claimsboard.core.config import settings
from claimsboard.core.source.pipeline import ClaimsSource

# Holds settings and the client factory only; clients are built per call
claims_source = ClaimsSource(settings)


# The "Bridge" that gives routes access to the Databricks claims source
def get_claims_source() -> ClaimsSource:
    return claims_source
