"""Service container.

All long-lived collaborators (database engine, evaluator client, ledger,
store, orchestrators) are built once at process start by build_services()
and passed explicitly to whoever needs them. The FastAPI app keeps the
container on app.state; tests build their own with in-memory repositories
and a mock evaluator.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncEngine

from expertise.core.config import Settings, settings
from expertise.core.database import create_engine, create_session_factory
from expertise.core.pricing import ModuleType
from expertise.evaluator.client import EvaluatorClient
from expertise.evaluator.config import EvaluatorConfig
from expertise.evaluator.factory import create_evaluator_client
from expertise.evaluator.gateway import EvaluatorGateway
from expertise.repositories.base import CreditRepository, ReportRepository
from expertise.repositories.credit_repository import SqlCreditRepository
from expertise.repositories.memory import (
    InMemoryCreditRepository,
    InMemoryReportRepository,
)
from expertise.repositories.report_repository import SqlReportRepository
from expertise.services.analysis_orchestrator import AnalysisOrchestrator
from expertise.services.comprehensive import ComprehensiveAggregator
from expertise.services.credit_ledger import CreditLedger
from expertise.services.report_store import ReportStore

logger = logging.getLogger(__name__)


@dataclass
class AnalysisServices:
    """Everything the API layer calls into.

    Attributes:
        ledger: Credit ledger.
        reports: Report store.
        gateway: Evaluator gateway.
        orchestrator: Single-module orchestrator.
        comprehensive: Comprehensive aggregator.
        engine: Database engine, when the PostgreSQL backend is used.
    """

    ledger: CreditLedger
    reports: ReportStore
    gateway: EvaluatorGateway
    orchestrator: AnalysisOrchestrator
    comprehensive: ComprehensiveAggregator
    engine: AsyncEngine | None = None

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()


def assemble_services(
    credit_repository: CreditRepository,
    report_repository: ReportRepository,
    client: EvaluatorClient,
    config: EvaluatorConfig,
    engine: AsyncEngine | None = None,
    prices: Mapping[ModuleType, Decimal] | None = None,
    weights: Mapping[ModuleType, float] | None = None,
) -> AnalysisServices:
    """Wire services from already-built collaborators.

    Args:
        credit_repository: Ledger persistence.
        report_repository: Report persistence.
        client: Evaluator client.
        config: Evaluator timeout and retry policy.
        engine: Engine to dispose on shutdown, if any.
        prices: Price list override; defaults to the published prices.
        weights: Comprehensive score weights merged over the defaults.

    Returns:
        AnalysisServices.
    """
    ledger = CreditLedger(credit_repository)
    reports = ReportStore(report_repository)
    gateway = EvaluatorGateway(
        client,
        policy=config.retry_policy,
        timeout_seconds=config.timeout_seconds,
    )
    orchestrator = AnalysisOrchestrator(ledger, reports, gateway, prices=prices)
    return AnalysisServices(
        ledger=ledger,
        reports=reports,
        gateway=gateway,
        orchestrator=orchestrator,
        comprehensive=ComprehensiveAggregator(orchestrator, weights=weights),
        engine=engine,
    )


def build_services(source: Settings | None = None) -> AnalysisServices:
    """Build the process-wide services from settings.

    Args:
        source: Settings to read; defaults to the process settings.

    Returns:
        AnalysisServices backed by PostgreSQL or memory per PERSISTENCE_BACKEND.
    """
    s = source or settings
    config = EvaluatorConfig.from_settings(s)
    client = create_evaluator_client(config)

    if s.persistence_backend == "memory":
        logger.warning("Using in-memory persistence; data is lost on restart")
        return assemble_services(
            InMemoryCreditRepository(),
            InMemoryReportRepository(),
            client,
            config,
        )

    engine = create_engine(s.database_url)
    session_factory = create_session_factory(engine)
    return assemble_services(
        SqlCreditRepository(session_factory),
        SqlReportRepository(session_factory),
        client,
        config,
        engine=engine,
    )
