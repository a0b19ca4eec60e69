"""Reports API router.

Reports are only ever visible to their owner; a report that exists but
belongs to someone else answers 404, exactly like a missing one.
"""

import uuid
from collections.abc import Mapping
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from expertise.api.deps import CurrentUserId, Services
from expertise.core.pagination import PaginationParams, pagination_params
from expertise.core.pricing import ModuleType
from expertise.core.responses import DataResponse, ListResponse
from expertise.models.report import Report
from expertise.schemas.analysis import ReportResponse, ReportSummaryResponse
from expertise.services.report_status import ReportStatus
from expertise.services.verdict import ComprehensiveVerdict, verdict_from_payload

router = APIRouter()

# =============================================================================
# Shared types
# =============================================================================

_CREDITS_FMT = "{:.2f}"
Pagination = Annotated[PaginationParams, Depends(pagination_params)]

ModuleFilter = Annotated[
    ModuleType | None,
    Query(description="Filter: paint, damage, audio, value, comprehensive"),
]


def report_to_response(
    report: Report,
    verdict: ComprehensiveVerdict | None = None,
    weights: Mapping[ModuleType, float] | None = None,
) -> ReportResponse:
    """Build the API view of a report.

    A COMPLETED comprehensive report carries its verdict, recomputed from
    the stored module results with the given weights unless one is passed in.
    """
    if (
        verdict is None
        and report.module_type == ModuleType.COMPREHENSIVE.value
        and report.status == ReportStatus.COMPLETED.value
        and report.result_payload
    ):
        verdict = verdict_from_payload(report.result_payload, weights)

    return ReportResponse(
        id=str(report.id),
        module_type=report.module_type,
        status=report.status,
        cost_charged=_CREDITS_FMT.format(report.cost_charged),
        result=report.result_payload,
        verdict=verdict.to_dict() if verdict is not None else None,
        failure_note=report.failure_note,
        exported_at=report.exported_at,
        created_at=report.created_at,
        updated_at=report.updated_at,
    )


# =============================================================================
# GET /
# =============================================================================


@router.get("")
async def list_reports(
    user_id: CurrentUserId,
    services: Services,
    pagination: Pagination,
    module_type: ModuleFilter = None,
) -> ListResponse[ReportSummaryResponse]:
    """Return the user's reports, newest first."""
    reports, total = await services.reports.list_for_user(
        user_id,
        offset=pagination.offset,
        limit=pagination.limit,
        module_type=module_type,
    )
    return ListResponse(
        data=[
            ReportSummaryResponse(
                id=str(report.id),
                module_type=report.module_type,
                status=report.status,
                cost_charged=_CREDITS_FMT.format(report.cost_charged),
                created_at=report.created_at,
                updated_at=report.updated_at,
            )
            for report in reports
        ],
        meta=pagination.meta(total),
    )


# =============================================================================
# GET /{report_id}
# =============================================================================


@router.get("/{report_id}")
async def get_report(
    report_id: uuid.UUID,
    user_id: CurrentUserId,
    services: Services,
) -> DataResponse[ReportResponse]:
    """Return one report with its result, verdict or failure note."""
    report = await services.reports.get(report_id, user_id)
    return DataResponse(
        data=report_to_response(report, weights=services.comprehensive.weights)
    )


# =============================================================================
# POST /{report_id}/export
# =============================================================================


@router.post("/{report_id}/export")
async def export_report(
    report_id: uuid.UUID,
    user_id: CurrentUserId,
    services: Services,
) -> DataResponse[ReportResponse]:
    """Record that a PDF export of a COMPLETED report was produced.

    Returns 422 INVALID_STATE for reports that have not completed.
    """
    report = await services.reports.mark_exported(report_id, user_id)
    return DataResponse(
        data=report_to_response(report, weights=services.comprehensive.weights)
    )
