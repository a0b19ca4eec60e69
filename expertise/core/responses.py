"""Response envelope models.

Every success response is {"data": ...}; collections add {"meta": ...};
every error is {"error": {...}}. Clients can branch on the top-level key.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, computed_field

T = TypeVar("T")


class PaginationMeta(BaseModel):
    """Pagination metadata for report and transaction listings.

    Attributes:
        total: Total number of items across all pages.
        page: Current page number (1-indexed).
        per_page: Number of items per page.
    """

    total: int
    page: int
    per_page: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pages(self) -> int:
        """Number of pages needed for total items (0 when empty)."""
        if self.total == 0:
            return 0
        return (self.total + self.per_page - 1) // self.per_page


class DataResponse(BaseModel, Generic[T]):
    """Envelope for a single resource.

    Usage:
        @router.get("/reports/{report_id}")
        async def get_report(...) -> DataResponse[ReportResponse]:
            report = await services.reports.get(report_id, user_id)
            return DataResponse(data=report_to_response(report))
    """

    data: T


class ListResponse(BaseModel, Generic[T]):
    """Envelope for a paginated collection."""

    data: list[T]
    meta: PaginationMeta


class ErrorDetail(BaseModel):
    """Error detail for response body.

    Attributes:
        code: Machine-readable error code (e.g., "INSUFFICIENT_CREDITS").
        message: Human-readable error message.
        details: Optional list of structured details (field errors,
            refund outcome of a failed analysis, etc.).
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope: {"error": {...}}."""

    error: ErrorDetail
