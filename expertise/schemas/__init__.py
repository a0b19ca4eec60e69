"""Pydantic request/response schemas for API endpoints."""

from expertise.schemas.analysis import (
    AnalysisRequest,
    AnalysisStartedResponse,
    ComprehensiveRequest,
    ReportResponse,
    ReportSummaryResponse,
    VehicleInfo,
)
from expertise.schemas.credits import (
    BalanceResponse,
    CreditTransactionResponse,
    PricingResponse,
    PurchaseRequest,
    PurchaseResponse,
)

__all__ = [
    # Analyses and reports
    "AnalysisRequest",
    "AnalysisStartedResponse",
    "ComprehensiveRequest",
    "ReportResponse",
    "ReportSummaryResponse",
    "VehicleInfo",
    # Credits
    "BalanceResponse",
    "CreditTransactionResponse",
    "PricingResponse",
    "PurchaseRequest",
    "PurchaseResponse",
]
