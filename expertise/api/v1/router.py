"""API v1 router aggregator.

All v1 endpoint routers are included here under the /api/v1 prefix.
"""

from fastapi import APIRouter

from expertise.api.v1 import analyses, credits, pricing, reports

router = APIRouter()

# =============================================================================
# Analyses and Reports
# =============================================================================

router.include_router(analyses.router, prefix="/analyses", tags=["analyses"])
router.include_router(reports.router, prefix="/reports", tags=["reports"])

# =============================================================================
# Credits
# =============================================================================

router.include_router(credits.router, prefix="/credits", tags=["credits"])
router.include_router(pricing.router, prefix="/pricing", tags=["pricing"])
