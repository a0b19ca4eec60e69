"""API error classes.

Every error the analysis and billing layers raise toward a caller derives
from APIError, so the exception handlers in main.py can render one
consistent envelope with the right HTTP status.

Evaluator failures are NOT APIErrors; they live in expertise.evaluator.errors
and never cross the orchestrator boundary unconverted.
"""

from decimal import Decimal


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Raised before any side effect: bad amounts, unknown module types,
    empty or schema-incomplete report payloads.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401)."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class InsufficientCreditsError(APIError):
    """Balance too low for the requested analysis (402).

    Raised by CreditLedger.reserve before anything is written, so the
    caller can surface it without any compensation.

    Args:
        required: Credits the analysis costs.
        available: Credits currently on the account.
    """

    def __init__(self, required: Decimal, available: Decimal) -> None:
        self.required = required
        self.available = available
        super().__init__(
            code="INSUFFICIENT_CREDITS",
            message=f"insufficient credits: need {required}, have {available}",
            status_code=402,
            details=[
                {
                    "required": str(required),
                    "available": str(available),
                }
            ],
        )


class ForbiddenError(APIError):
    """Not allowed to access resource (403)."""

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
        )


class ReportOwnershipError(ForbiddenError):
    """A report transition was attempted by someone other than its owner (403).

    Reads never raise this; ReportStore.get answers NotFoundError instead.
    """

    def __init__(self, report_id: str) -> None:
        APIError.__init__(
            self,
            code="REPORT_OWNERSHIP",
            message=f"Report '{report_id}' does not belong to the caller",
            status_code=403,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Use when requested resource doesn't exist OR doesn't belong to user.
    Revealing "exists but not yours" leaks information.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class InvalidStateError(APIError):
    """Business rule violation (422).

    Use when request is syntactically valid but violates business rules.
    E.g., exporting a report that has not completed.
    """

    def __init__(self, message: str) -> None:
        super().__init__(
            code="INVALID_STATE_TRANSITION",
            message=message,
            status_code=422,
        )


class LedgerWriteError(APIError):
    """The credit ledger could not be read or written (500).

    Always propagates. A ledger failure must never be reported to the
    caller as a successful analysis.
    """

    def __init__(self, message: str = "Credit ledger write failed") -> None:
        super().__init__(
            code="LEDGER_WRITE_FAILED",
            message=message,
            status_code=500,
        )


class RefundFailureError(LedgerWriteError):
    """A compensating refund could not be written.

    Caught by the orchestrator's compensation step, which records it in the
    report's failure note instead of propagating.
    """

    def __init__(self, report_id: str, amount: Decimal) -> None:
        self.report_id = report_id
        self.amount = amount
        APIError.__init__(
            self,
            code="REFUND_FAILED",
            message=f"Refund of {amount} credits for report '{report_id}' failed",
            status_code=500,
        )


class ReportWriteError(APIError):
    """A report row could not be created or transitioned (500)."""

    def __init__(self, message: str = "Report write failed") -> None:
        super().__init__(
            code="REPORT_WRITE_FAILED",
            message=message,
            status_code=500,
        )


class AnalysisFailedError(APIError):
    """The evaluator failed after every retry (502).

    Raised by the HTTP layer from a FAILED AnalysisOutcome so the client
    learns whether its credits came back.

    Args:
        report_id: The FAILED report.
        refunded: Whether the reservation was refunded.
        amount_refunded: Credits returned to the account.
        message: User-facing explanation (mirrors the report's failure note).
    """

    def __init__(
        self,
        report_id: str,
        refunded: bool,
        amount_refunded: Decimal,
        message: str,
    ) -> None:
        self.report_id = report_id
        self.refunded = refunded
        self.amount_refunded = amount_refunded
        super().__init__(
            code="ANALYSIS_FAILED",
            message=message,
            status_code=502,
            details=[
                {
                    "report_id": report_id,
                    "refunded": refunded,
                    "amount_refunded": str(amount_refunded),
                    "message": message,
                }
            ],
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
