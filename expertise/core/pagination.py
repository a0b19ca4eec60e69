"""Pagination for report and ledger listings.

page defaults to 1; per_page defaults to 20 and is capped at 100.
"""

from dataclasses import dataclass

from fastapi import Query

from expertise.core.responses import PaginationMeta


@dataclass
class PaginationParams:
    """Validated page/per_page pair.

    Attributes:
        page: Current page number (1-indexed).
        per_page: Number of items per page.
    """

    page: int
    per_page: int

    @property
    def offset(self) -> int:
        """Items to skip before this page (0 for page 1)."""
        return (self.page - 1) * self.per_page

    @property
    def limit(self) -> int:
        return self.per_page

    def meta(self, total: int) -> PaginationMeta:
        """Meta block for a listing of total reports or ledger entries."""
        return PaginationMeta(total=total, page=self.page, per_page=self.per_page)


def pagination_params(
    page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
    per_page: int = Query(
        default=20,
        ge=1,
        le=100,
        description="Items per page (max 100)",
    ),
) -> PaginationParams:
    """FastAPI dependency for pagination query parameters.

    Args:
        page: Page number (default 1, must be >= 1).
        per_page: Items per page (default 20, between 1 and 100).

    Returns:
        PaginationParams with validated page and per_page.
    """
    return PaginationParams(page=page, per_page=per_page)
