"""Analysis orchestrator: reserve, create, evaluate, then commit or compensate.

One analysis runs as a small saga:

    reserve credits ──► create report (PROCESSING) ──► invoke evaluator
                                                          │
                               success ◄──────────────────┴──────► failure
                                  │                                  │
                           complete report                 refund reservation
                                                                     │
                                                     fail report (ALWAYS, with a
                                                     note chosen by refund outcome)

The refund is attempted before the failure transition, and the failure
transition is never skipped because the refund failed. A report therefore
always reaches a terminal state that tells the user whether their credits
came back.
"""

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from expertise.core.errors import (
    ReportWriteError,
    ValidationError,
)
from expertise.core.pricing import COMPONENT_MODULES, MODULE_PRICES, ModuleType
from expertise.evaluator.errors import (
    EvaluatorError,
    EvaluatorMalformedResponseError,
    EvaluatorTimeoutError,
)
from expertise.evaluator.gateway import EvaluatorGateway
from expertise.services.credit_ledger import CreditLedger
from expertise.services.report_status import ReportStatus
from expertise.services.report_store import ReportStore

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")

# =============================================================================
# Compensation Table
# =============================================================================


class RefundOutcome(Enum):
    """Result of the compensating refund."""

    REFUNDED = "refunded"
    REFUND_FAILED = "refund_failed"


_COMPENSATION_NOTES: dict[RefundOutcome, str] = {
    RefundOutcome.REFUNDED: (
        "The analysis could not be completed: {reason}. "
        "{amount} credits have been refunded to your account."
    ),
    RefundOutcome.REFUND_FAILED: (
        "The analysis could not be completed: {reason}. "
        "We could not refund your {amount} credits automatically. "
        "Please contact support and quote report {report_id}."
    ),
}

_SUCCESS_MESSAGE = "Analysis completed."


def describe_failure(error: Exception) -> str:
    """User-facing reason for an evaluator failure. Never leaks internals."""
    if isinstance(error, EvaluatorTimeoutError):
        return "the analysis service did not respond in time"
    if isinstance(error, EvaluatorMalformedResponseError):
        return "the analysis service returned an incomplete result"
    if isinstance(error, EvaluatorError):
        return "the analysis service is currently unavailable"
    return "an internal error interrupted the analysis"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class AnalysisTicket:
    """A reserved, PROCESSING analysis waiting for its result.

    Attributes:
        report_id: The PROCESSING report.
        user_id: Owner and payer.
        module: Module the report is for.
        cost: Credits reserved.
        usage_transaction_id: The reservation's USAGE entry.
        payload: Evaluator input.
    """

    report_id: uuid.UUID
    user_id: uuid.UUID
    module: ModuleType
    cost: Decimal
    usage_transaction_id: uuid.UUID
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AnalysisOutcome:
    """How an analysis ended, in terms the HTTP layer can show the user.

    Attributes:
        report_id: The report.
        status: COMPLETED or FAILED.
        refunded: Whether the reservation was returned.
        amount_refunded: Credits returned (zero unless refunded).
        message: User-facing summary; for failures, the report's note.
        result: Validated result on success.
    """

    report_id: uuid.UUID
    status: ReportStatus
    refunded: bool
    amount_refunded: Decimal
    message: str
    result: Any = None

    @property
    def succeeded(self) -> bool:
        return self.status is ReportStatus.COMPLETED


# =============================================================================
# Orchestrator
# =============================================================================


class AnalysisOrchestrator:
    """Runs one module analysis end to end.

    Args:
        ledger: Credit ledger for the reservation and any refund.
        reports: Report store for the lifecycle.
        gateway: Evaluator gateway.
        prices: Credit price per module. Defaults to MODULE_PRICES.
    """

    def __init__(
        self,
        ledger: CreditLedger,
        reports: ReportStore,
        gateway: EvaluatorGateway,
        prices: Mapping[ModuleType, Decimal] | None = None,
    ) -> None:
        self._ledger = ledger
        self._reports = reports
        self._gateway = gateway
        self._prices = dict(prices) if prices is not None else MODULE_PRICES

    async def start(
        self,
        user_id: uuid.UUID,
        module: ModuleType,
        payload: dict[str, Any],
        input_refs: dict[str, Any] | None = None,
    ) -> AnalysisTicket:
        """Reserve credits and create the PROCESSING report.

        Args:
            user_id: Payer and owner.
            module: Module to analyse (comprehensive reserves its flat price).
            payload: Evaluator input.
            input_refs: References stored on the report (defaults to payload).

        Returns:
            Ticket for execute() / complete() / compensate().

        Raises:
            InsufficientCreditsError: Balance too low; no report is created.
            LedgerWriteError: Reservation could not be written.
            ReportWriteError: Report could not be created. The reservation
                is refunded first.
        """
        cost = self._prices[module]
        report_id = uuid.uuid4()

        usage = await self._ledger.reserve(
            user_id,
            cost,
            report_id,
            description=f"{module.value} analysis",
        )

        try:
            await self._reports.create(
                report_id=report_id,
                user_id=user_id,
                module_type=module,
                cost=cost,
                usage_transaction_id=usage.id,
                input_refs=input_refs if input_refs is not None else payload,
            )
        except ReportWriteError:
            try:
                await self._ledger.refund(
                    user_id,
                    report_id,
                    cost,
                    reason="report could not be created",
                )
            except Exception:
                logger.exception(
                    "Orphaned reservation: report %s was not created and the "
                    "refund of %s credits to user %s failed",
                    report_id,
                    cost,
                    user_id,
                )
            raise

        return AnalysisTicket(
            report_id=report_id,
            user_id=user_id,
            module=module,
            cost=cost,
            usage_transaction_id=usage.id,
            payload=payload,
        )

    async def evaluate_module(
        self, module: ModuleType, payload: dict[str, Any]
    ) -> Any:
        """Invoke the evaluator for one module. No ledger or report side effects."""
        return await self._gateway.invoke(module, payload)

    async def execute(self, ticket: AnalysisTicket) -> AnalysisOutcome:
        """Evaluate a started analysis and commit or compensate.

        Args:
            ticket: Ticket from start() for a component module.

        Returns:
            COMPLETED outcome with the result, or FAILED outcome describing
            the refund.

        Raises:
            ValidationError: If the ticket is for a comprehensive report.
            ReportWriteError: If even the FAILED transition cannot be written.
        """
        if ticket.module not in COMPONENT_MODULES:
            raise ValidationError(
                f"'{ticket.module.value}' reports are not evaluated directly"
            )

        try:
            result = await self.evaluate_module(ticket.module, ticket.payload)
        except EvaluatorError as e:
            logger.warning(
                "Evaluation failed for report %s (%s): %s",
                ticket.report_id,
                ticket.module.value,
                e,
            )
            return await self.compensate(ticket, describe_failure(e))
        except Exception as e:
            logger.exception("Unexpected error evaluating report %s", ticket.report_id)
            await self.compensate(ticket, describe_failure(e))
            raise

        return await self.complete(ticket, result, result.model_dump(mode="json"))

    async def run(
        self,
        user_id: uuid.UUID,
        module: ModuleType,
        payload: dict[str, Any],
        input_refs: dict[str, Any] | None = None,
    ) -> AnalysisOutcome:
        """start() then execute(): one module analysis from reservation to terminal state.

        Raises:
            ValidationError: If module is not a component module.
            InsufficientCreditsError: Balance too low; nothing was written.
        """
        if module not in COMPONENT_MODULES:
            raise ValidationError(
                f"Unknown analysis module '{module.value}'",
                details=[{"valid": [m.value for m in COMPONENT_MODULES]}],
            )
        ticket = await self.start(user_id, module, payload, input_refs)
        return await self.execute(ticket)

    async def complete(
        self,
        ticket: AnalysisTicket,
        result: Any,
        stored_payload: dict[str, Any],
    ) -> AnalysisOutcome:
        """Commit a successful analysis.

        If the report cannot be completed (invalid payload or write failure)
        the analysis is compensated instead, so it still ends in a terminal
        state.

        Args:
            ticket: The started analysis.
            result: Value returned to the caller in the outcome.
            stored_payload: JSON payload written to the report.
        """
        try:
            await self._reports.complete(
                ticket.report_id, ticket.user_id, stored_payload
            )
        except (ValidationError, ReportWriteError):
            logger.exception(
                "Could not complete report %s; compensating", ticket.report_id
            )
            return await self.compensate(ticket, "the result could not be saved")

        return AnalysisOutcome(
            report_id=ticket.report_id,
            status=ReportStatus.COMPLETED,
            refunded=False,
            amount_refunded=_ZERO,
            message=_SUCCESS_MESSAGE,
            result=result,
        )

    async def compensate(self, ticket: AnalysisTicket, reason: str) -> AnalysisOutcome:
        """Refund the reservation, then ALWAYS mark the report FAILED.

        Args:
            ticket: The started analysis.
            reason: User-facing reason for the failure.

        Returns:
            FAILED outcome carrying the note written to the report.

        Raises:
            ReportWriteError: If the FAILED transition cannot be written.
                Logged with full context first.
        """
        refund_outcome = await self._refund(ticket)
        refunded = refund_outcome is RefundOutcome.REFUNDED
        note = _COMPENSATION_NOTES[refund_outcome].format(
            reason=reason,
            amount=ticket.cost,
            report_id=ticket.report_id,
        )

        try:
            await self._reports.fail(ticket.report_id, ticket.user_id, note)
        except ReportWriteError:
            logger.exception(
                "Report %s could not be marked FAILED (user %s, refund %s); "
                "manual follow-up required",
                ticket.report_id,
                ticket.user_id,
                refund_outcome.value,
            )
            raise

        return AnalysisOutcome(
            report_id=ticket.report_id,
            status=ReportStatus.FAILED,
            refunded=refunded,
            amount_refunded=ticket.cost if refunded else _ZERO,
            message=note,
        )

    async def _refund(self, ticket: AnalysisTicket) -> RefundOutcome:
        try:
            await self._ledger.refund(
                ticket.user_id,
                ticket.report_id,
                ticket.cost,
                reason=f"{ticket.module.value} analysis failed",
            )
        except Exception:
            # Any refund error still ends in FAILED, with a contact-support note
            logger.exception(
                "Refund of %s credits failed for report %s (user %s)",
                ticket.cost,
                ticket.report_id,
                ticket.user_id,
            )
            return RefundOutcome.REFUND_FAILED
        return RefundOutcome.REFUNDED
