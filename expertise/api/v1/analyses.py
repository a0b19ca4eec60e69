"""Analyses API router.

Runs paid evaluator analyses. Every endpoint reserves credits before the
evaluator is called; a failed analysis answers 502 with the refund outcome
so the client can tell the user whether their credits came back.

Route order matters: /comprehensive is declared before /{module}.
"""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Path, Request, status

from expertise.api.deps import CurrentUserId, Services
from expertise.api.v1.reports import report_to_response
from expertise.core.config import settings
from expertise.core.errors import AnalysisFailedError
from expertise.core.pricing import ModuleType
from expertise.core.rate_limiting import limiter
from expertise.core.responses import DataResponse
from expertise.schemas.analysis import (
    AnalysisRequest,
    AnalysisStartedResponse,
    ComponentModuleName,
    ComprehensiveRequest,
    ReportResponse,
)
from expertise.services.analysis_orchestrator import (
    AnalysisOrchestrator,
    AnalysisOutcome,
    AnalysisTicket,
)
from expertise.services.report_status import ReportStatus

logger = structlog.get_logger()

router = APIRouter()

ModulePath = Annotated[
    ComponentModuleName,
    Path(description="Analysis module: paint, damage, audio or value"),
]


def _raise_if_failed(outcome: AnalysisOutcome) -> None:
    if not outcome.succeeded:
        raise AnalysisFailedError(
            report_id=str(outcome.report_id),
            refunded=outcome.refunded,
            amount_refunded=outcome.amount_refunded,
            message=outcome.message,
        )


async def _execute_in_background(
    orchestrator: AnalysisOrchestrator, ticket: AnalysisTicket
) -> None:
    """Finish a started analysis after the 202 response has been sent.

    The orchestrator has already moved the report to a terminal state (and
    refunded) by the time an unexpected error reaches here; all that is left
    is to record it.
    """
    try:
        outcome = await orchestrator.execute(ticket)
    except Exception:
        logger.exception(
            "Background analysis crashed",
            report_id=str(ticket.report_id),
            module=ticket.module.value,
        )
        return
    logger.info(
        "Background analysis finished",
        report_id=str(outcome.report_id),
        status=outcome.status.value,
        refunded=outcome.refunded,
    )


def _input_refs(body: Any) -> dict[str, Any]:
    return body.model_dump(mode="json", exclude_none=True)


# =============================================================================
# POST /comprehensive
# =============================================================================


@router.post("/comprehensive", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit_analysis)
async def run_comprehensive(
    request: Request,  # noqa: ARG001 - Required by rate limiter
    body: ComprehensiveRequest,
    user_id: CurrentUserId,
    services: Services,
) -> DataResponse[ReportResponse]:
    """Run a comprehensive report over the requested modules.

    The flat comprehensive price is reserved once. Modules that fail are
    listed in the result as missing; only a report where every module
    failed is refunded (502).
    """
    payload = body.to_payload()
    module_payloads = {
        ModuleType.from_string(name): dict(payload) for name in body.modules
    }
    outcome = await services.comprehensive.run(
        user_id, module_payloads, input_refs=_input_refs(body)
    )
    _raise_if_failed(outcome.analysis)

    report = await services.reports.get(outcome.analysis.report_id, user_id)
    return DataResponse(data=report_to_response(report, verdict=outcome.verdict))


# =============================================================================
# POST /{module}
# =============================================================================


@router.post("/{module}", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit_analysis)
async def run_analysis(
    request: Request,  # noqa: ARG001 - Required by rate limiter
    module: ModulePath,
    body: AnalysisRequest,
    user_id: CurrentUserId,
    services: Services,
) -> DataResponse[ReportResponse]:
    """Run one module analysis and wait for its result.

    Returns 201 with the COMPLETED report, 402 when the balance is too low
    (nothing is charged), or 502 with the refund outcome.
    """
    outcome = await services.orchestrator.run(
        user_id,
        ModuleType.from_string(module),
        body.to_payload(),
        input_refs=_input_refs(body),
    )
    _raise_if_failed(outcome)

    report = await services.reports.get(outcome.report_id, user_id)
    return DataResponse(
        data=report_to_response(report, weights=services.comprehensive.weights)
    )


# =============================================================================
# POST /{module}/start
# =============================================================================


@router.post("/{module}/start", status_code=status.HTTP_202_ACCEPTED)
@limiter.limit(settings.rate_limit_analysis)
async def start_analysis(
    request: Request,  # noqa: ARG001 - Required by rate limiter
    module: ModulePath,
    body: AnalysisRequest,
    user_id: CurrentUserId,
    services: Services,
    background_tasks: BackgroundTasks,
) -> DataResponse[AnalysisStartedResponse]:
    """Reserve credits, create the report, and evaluate in the background.

    Poll GET /api/v1/reports/{report_id} for the terminal state.
    """
    ticket = await services.orchestrator.start(
        user_id,
        ModuleType.from_string(module),
        body.to_payload(),
        input_refs=_input_refs(body),
    )
    background_tasks.add_task(
        _execute_in_background, services.orchestrator, ticket
    )
    return DataResponse(
        data=AnalysisStartedResponse(
            report_id=str(ticket.report_id),
            status=ReportStatus.PROCESSING.value,
        )
    )
