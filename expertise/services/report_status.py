"""Report lifecycle state machine.

- PENDING    → PROCESSING
- PROCESSING → COMPLETED, FAILED
- COMPLETED  → (terminal)
- FAILED     → (terminal)

Reports are created directly in PROCESSING. Each report reaches exactly one
terminal state, exactly once; nothing ever moves a report backwards.
"""

from enum import Enum

from expertise.core.errors import APIError

# =============================================================================
# Exceptions
# =============================================================================


class InvalidStatusTransitionError(APIError):
    """Raised when attempting an invalid report status transition (422)."""

    def __init__(
        self,
        current_status: "ReportStatus",
        target_status: "ReportStatus",
        valid_transitions: list["ReportStatus"],
    ) -> None:
        """Initialize with transition details.

        Args:
            current_status: The current status of the report.
            target_status: The attempted target status.
            valid_transitions: List of valid target statuses from current.
        """
        self.current_status = current_status
        self.target_status = target_status
        self.valid_transitions = valid_transitions
        valid_names = [s.value for s in valid_transitions]
        super().__init__(
            code="INVALID_STATUS_TRANSITION",
            message=(
                f"Cannot transition report from {current_status.value} to "
                f"{target_status.value}. "
                f"Valid transitions: {valid_names or 'none (terminal state)'}"
            ),
            status_code=422,
        )


# =============================================================================
# Enums
# =============================================================================


class ReportStatus(Enum):
    """Report status values. Values match ck_report_status_valid."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @classmethod
    def from_string(cls, value: str) -> "ReportStatus":
        """Convert a database string to enum.

        Args:
            value: Status string from database.

        Returns:
            The corresponding ReportStatus.

        Raises:
            ValueError: If the string doesn't match any status.
        """
        for status in cls:
            if status.value == value:
                return status
        valid = [s.value for s in cls]
        raise ValueError(f"Invalid report status: '{value}'. Valid: {valid}")

    @property
    def is_terminal(self) -> bool:
        return not _VALID_TRANSITIONS[self]


# =============================================================================
# State Machine Definition
# =============================================================================

_VALID_TRANSITIONS: dict[ReportStatus, list[ReportStatus]] = {
    ReportStatus.PENDING: [ReportStatus.PROCESSING],
    ReportStatus.PROCESSING: [ReportStatus.COMPLETED, ReportStatus.FAILED],
    ReportStatus.COMPLETED: [],
    ReportStatus.FAILED: [],
}


def is_valid_transition(current: ReportStatus, target: ReportStatus) -> bool:
    """Check if a status transition is allowed."""
    return target in _VALID_TRANSITIONS.get(current, [])


def get_valid_transitions(status: ReportStatus) -> list[ReportStatus]:
    """Get valid target statuses from current status."""
    return _VALID_TRANSITIONS.get(status, [])


def ensure_transition(current: ReportStatus, target: ReportStatus) -> None:
    """Validate a transition before it is written.

    Args:
        current: The report's current status.
        target: The desired status.

    Raises:
        InvalidStatusTransitionError: If the transition is not allowed.
    """
    if not is_valid_transition(current, target):
        raise InvalidStatusTransitionError(
            current_status=current,
            target_status=target,
            valid_transitions=get_valid_transitions(current),
        )
