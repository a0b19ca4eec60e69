"""PostgreSQL implementation of the report repository.

Status transitions are compare-and-set UPDATEs (WHERE status = expected),
so two writers racing to finish the same report cannot both succeed.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from expertise.models.report import Report
from expertise.repositories.base import ReportRepository
from expertise.services.report_status import ReportStatus


class SqlReportRepository(ReportRepository):
    """Report storage backed by PostgreSQL.

    Args:
        session_factory: Factory for the sessions each unit of work runs in.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert(self, report: Report) -> Report:
        async with self._session_factory() as db, db.begin():
            db.add(report)
            await db.flush()
            await db.refresh(report)
        return report

    async def get(self, report_id: uuid.UUID) -> Report | None:
        async with self._session_factory() as db:
            return await db.get(Report, report_id)

    async def transition(
        self,
        report_id: uuid.UUID,
        *,
        expected_status: str,
        new_status: str,
        values: dict[str, Any] | None = None,
    ) -> Report | None:
        """Compare-and-set the report status.

        Args:
            report_id: Report to update.
            expected_status: Status the row must still have.
            new_status: Status to write.
            values: Extra columns to write in the same statement
                (result_payload, failure_note).

        Returns:
            The updated report, or None if no row matched.
        """
        async with self._session_factory() as db, db.begin():
            result = await db.execute(
                update(Report)
                .where(Report.id == report_id, Report.status == expected_status)
                .values(status=new_status, **(values or {}))
                .returning(Report)
                .execution_options(synchronize_session=False)
            )
            return result.scalar_one_or_none()

    async def set_exported(
        self,
        report_id: uuid.UUID,
        exported_at: datetime,
    ) -> Report | None:
        async with self._session_factory() as db, db.begin():
            result = await db.execute(
                update(Report)
                .where(
                    Report.id == report_id,
                    Report.status == ReportStatus.COMPLETED.value,
                )
                .values(exported_at=exported_at)
                .returning(Report)
                .execution_options(synchronize_session=False)
            )
            return result.scalar_one_or_none()

    async def list_by_user(
        self,
        user_id: uuid.UUID,
        *,
        offset: int = 0,
        limit: int = 50,
        module_type: str | None = None,
    ) -> tuple[list[Report], int]:
        """List a user's reports with pagination.

        Args:
            user_id: Owner to query reports for.
            offset: Number of records to skip.
            limit: Maximum records to return.
            module_type: Optional module filter.

        Returns:
            Tuple of (reports list, total count).
        """
        conditions = [Report.user_id == user_id]
        if module_type is not None:
            conditions.append(Report.module_type == module_type)

        async with self._session_factory() as db:
            total = await db.scalar(
                select(func.count()).select_from(Report).where(*conditions)
            )
            result = await db.execute(
                select(Report)
                .where(*conditions)
                .order_by(Report.created_at.desc())
                .offset(offset)
                .limit(limit)
            )
            reports = list(result.scalars().all())

        return reports, total or 0
