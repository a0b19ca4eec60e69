"""Report store: persistence of the report lifecycle.

Reports are created in PROCESSING and reach exactly one terminal state.
complete() accepts only a non-empty payload that validates against the
module's result schema, so a COMPLETED report never lacks a usable result.

Reads are ownership-opaque (a report owned by someone else is "not
found"); a transition attempted by a non-owner is refused outright.
"""

import logging
import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from expertise.core.errors import (
    InvalidStateError,
    NotFoundError,
    ReportOwnershipError,
    ReportWriteError,
    ValidationError,
)
from expertise.core.pricing import ModuleType
from expertise.evaluator.errors import EvaluatorMalformedResponseError
from expertise.evaluator.schemas import parse_report_payload
from expertise.models.report import Report
from expertise.repositories.base import ReportRepository
from expertise.services.report_status import (
    InvalidStatusTransitionError,
    ReportStatus,
    ensure_transition,
    get_valid_transitions,
)

logger = logging.getLogger(__name__)

_STORAGE_ERRORS: tuple[type[Exception], ...] = (SQLAlchemyError, OSError)

_RESOURCE = "Report"


class ReportStore:
    """Creates, transitions and reads reports.

    Args:
        repository: Persistence for reports.
    """

    def __init__(self, repository: ReportRepository) -> None:
        self._repo = repository

    async def create(
        self,
        *,
        report_id: uuid.UUID,
        user_id: uuid.UUID,
        module_type: ModuleType,
        cost: Decimal,
        usage_transaction_id: uuid.UUID | None,
        input_refs: dict[str, Any] | None = None,
    ) -> Report:
        """Create a report in PROCESSING, linked to its reservation.

        Args:
            report_id: Id chosen before the reservation was made.
            user_id: Owner.
            module_type: Module being analysed.
            cost: Credits reserved for it.
            usage_transaction_id: The reservation's USAGE entry.
            input_refs: Opaque references to the analysed media.

        Returns:
            The stored report.

        Raises:
            ReportWriteError: If the report cannot be written.
        """
        report = Report(
            id=report_id,
            user_id=user_id,
            module_type=module_type.value,
            status=ReportStatus.PROCESSING.value,
            cost_charged=cost,
            usage_transaction_id=usage_transaction_id,
            input_refs=input_refs or {},
        )
        try:
            stored = await self._repo.insert(report)
        except _STORAGE_ERRORS as e:
            logger.exception(
                "Failed to create report %s for user %s", report_id, user_id
            )
            raise ReportWriteError("Could not create report") from e

        logger.info(
            "Created %s report %s for user %s", module_type.value, report_id, user_id
        )
        return stored

    async def get(self, report_id: uuid.UUID, user_id: uuid.UUID) -> Report:
        """Return the caller's report.

        Raises:
            NotFoundError: If the report does not exist or is not the caller's.
            ReportWriteError: If storage cannot be read.
        """
        report = await self._load(report_id)
        if report is None or report.user_id != user_id:
            raise NotFoundError(_RESOURCE, str(report_id))
        return report

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        *,
        offset: int = 0,
        limit: int = 50,
        module_type: ModuleType | None = None,
    ) -> tuple[list[Report], int]:
        """Return one page of the user's reports (newest first) and the total."""
        try:
            return await self._repo.list_by_user(
                user_id,
                offset=offset,
                limit=limit,
                module_type=module_type.value if module_type else None,
            )
        except _STORAGE_ERRORS as e:
            logger.exception("Failed to list reports for user %s", user_id)
            raise ReportWriteError("Could not read reports") from e

    async def complete(
        self,
        report_id: uuid.UUID,
        user_id: uuid.UUID,
        payload: dict[str, Any],
    ) -> Report:
        """Store the result and move the report to COMPLETED.

        Args:
            report_id: Report to complete.
            user_id: Caller; must own the report.
            payload: Result payload (a ModuleResult or ComprehensivePayload dump).

        Returns:
            The COMPLETED report.

        Raises:
            ValidationError: If the payload is empty or fails the module's schema.
            NotFoundError: If the report does not exist.
            ReportOwnershipError: If the caller does not own the report.
            InvalidStatusTransitionError: If the report is not PROCESSING.
            ReportWriteError: If the transition cannot be written.
        """
        report = await self._load_for_transition(report_id, user_id)
        module = ModuleType.from_string(report.module_type)
        try:
            validated = parse_report_payload(module, payload)
        except EvaluatorMalformedResponseError as e:
            raise ValidationError(
                f"Cannot complete report with an invalid {module.value} payload",
                details=[{"missing_fields": e.missing_fields, "error": str(e)}],
            ) from e

        return await self._transition(
            report,
            ReportStatus.COMPLETED,
            {"result_payload": validated.model_dump(mode="json")},
        )

    async def fail(
        self,
        report_id: uuid.UUID,
        user_id: uuid.UUID,
        note: str,
    ) -> Report:
        """Move the report to FAILED with a user-facing note.

        Raises:
            NotFoundError: If the report does not exist.
            ReportOwnershipError: If the caller does not own the report.
            InvalidStatusTransitionError: If the report is not PROCESSING.
            ReportWriteError: If the transition cannot be written.
        """
        report = await self._load_for_transition(report_id, user_id)
        return await self._transition(
            report,
            ReportStatus.FAILED,
            {"failure_note": note},
        )

    async def mark_exported(self, report_id: uuid.UUID, user_id: uuid.UUID) -> Report:
        """Stamp the PDF export time on a COMPLETED report.

        Raises:
            NotFoundError: If the report does not exist or is not the caller's.
            InvalidStateError: If the report has not completed.
            ReportWriteError: If the update cannot be written.
        """
        report = await self.get(report_id, user_id)
        if report.status != ReportStatus.COMPLETED.value:
            raise InvalidStateError(
                f"Only completed reports can be exported (status: {report.status})"
            )
        try:
            updated = await self._repo.set_exported(report_id, datetime.now(UTC))
        except _STORAGE_ERRORS as e:
            logger.exception("Failed to mark report %s exported", report_id)
            raise ReportWriteError("Could not update report") from e
        if updated is None:
            raise InvalidStateError("Report is no longer exportable")
        return updated

    async def _load(self, report_id: uuid.UUID) -> Report | None:
        try:
            return await self._repo.get(report_id)
        except _STORAGE_ERRORS as e:
            logger.exception("Failed to read report %s", report_id)
            raise ReportWriteError("Could not read report") from e

    async def _load_for_transition(
        self, report_id: uuid.UUID, user_id: uuid.UUID
    ) -> Report:
        report = await self._load(report_id)
        if report is None:
            raise NotFoundError(_RESOURCE, str(report_id))
        if report.user_id != user_id:
            logger.warning(
                "User %s attempted to transition report %s owned by %s",
                user_id,
                report_id,
                report.user_id,
            )
            raise ReportOwnershipError(str(report_id))
        return report

    async def _transition(
        self,
        report: Report,
        target: ReportStatus,
        values: dict[str, Any],
    ) -> Report:
        current = ReportStatus.from_string(report.status)
        ensure_transition(current, target)
        try:
            updated = await self._repo.transition(
                report.id,
                expected_status=current.value,
                new_status=target.value,
                values=values,
            )
        except _STORAGE_ERRORS as e:
            logger.exception(
                "Failed to move report %s from %s to %s",
                report.id,
                current.value,
                target.value,
            )
            raise ReportWriteError(
                f"Could not mark report {target.value.lower()}"
            ) from e

        if updated is None:
            # Another writer moved the report first
            latest = await self._load(report.id)
            latest_status = (
                ReportStatus.from_string(latest.status) if latest else current
            )
            raise InvalidStatusTransitionError(
                current_status=latest_status,
                target_status=target,
                valid_transitions=get_valid_transitions(latest_status),
            )

        logger.info("Report %s is now %s", report.id, target.value)
        return updated
