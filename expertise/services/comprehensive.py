"""Comprehensive report aggregation.

A comprehensive report is billed as one unit: its flat price is reserved
before any module starts. The requested modules are then evaluated
concurrently, and:

- every module fails  -> the report is FAILED and the full price refunded;
- some modules fail   -> the report is COMPLETED, lists the missing modules,
                         and nothing is refunded (flat pricing);
- all modules succeed -> the report is COMPLETED.
"""

import asyncio
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from expertise.core.errors import ValidationError
from expertise.core.pricing import COMPONENT_MODULES, ModuleType
from expertise.evaluator.errors import EvaluatorError
from expertise.evaluator.schemas import ComprehensivePayload
from expertise.services.analysis_orchestrator import (
    AnalysisOrchestrator,
    AnalysisOutcome,
    AnalysisTicket,
    describe_failure,
)
from expertise.services.verdict import (
    ComprehensiveVerdict,
    compute_verdict,
    resolve_weights,
)

logger = logging.getLogger(__name__)

_TOTAL_FAILURE_REASON = "none of the requested analyses could be completed"


@dataclass(frozen=True)
class ComprehensiveOutcome:
    """Result of a comprehensive run.

    Attributes:
        analysis: Terminal outcome of the comprehensive report.
        verdict: Derived verdict (None when the report FAILED).
        missing_modules: Requested modules without a result.
    """

    analysis: AnalysisOutcome
    verdict: ComprehensiveVerdict | None = None
    missing_modules: list[str] = field(default_factory=list)


class ComprehensiveAggregator:
    """Runs a subset of modules under one reservation and merges the results.

    Args:
        orchestrator: Orchestrator providing reservation, evaluation and
            commit/compensate steps.
        weights: Per-module score weights merged over the defaults.

    Raises:
        ValueError: If a weight is not positive.
    """

    def __init__(
        self,
        orchestrator: AnalysisOrchestrator,
        weights: Mapping[ModuleType, float] | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._weights = resolve_weights(weights)

    @property
    def weights(self) -> dict[ModuleType, float]:
        return dict(self._weights)

    async def run(
        self,
        user_id: uuid.UUID,
        module_payloads: Mapping[ModuleType, dict[str, Any]],
        input_refs: dict[str, Any] | None = None,
    ) -> ComprehensiveOutcome:
        """Reserve the comprehensive price, evaluate modules, commit or refund.

        Args:
            user_id: Payer and owner.
            module_payloads: Evaluator input per requested module. Any subset
                of paint, damage, audio and value.
            input_refs: References stored on the report.

        Returns:
            ComprehensiveOutcome.

        Raises:
            ValidationError: If no module, or a non-component module, is requested.
            InsufficientCreditsError: Balance too low; nothing was written.
        """
        if not module_payloads:
            raise ValidationError("At least one analysis module is required")
        invalid = [m.value for m in module_payloads if m not in COMPONENT_MODULES]
        if invalid:
            raise ValidationError(
                "Comprehensive reports can only combine component modules",
                details=[{"invalid_modules": invalid}],
            )

        ticket = await self._orchestrator.start(
            user_id,
            ModuleType.COMPREHENSIVE,
            payload={m.value: p for m, p in module_payloads.items()},
            input_refs=input_refs,
        )
        return await self.execute(ticket, module_payloads)

    async def execute(
        self,
        ticket: AnalysisTicket,
        module_payloads: Mapping[ModuleType, dict[str, Any]],
    ) -> ComprehensiveOutcome:
        """Evaluate every requested module concurrently and settle the report.

        Args:
            ticket: Started comprehensive analysis.
            module_payloads: Evaluator input per requested module.

        Returns:
            ComprehensiveOutcome.
        """
        modules = list(module_payloads)
        outcomes = await asyncio.gather(
            *(
                self._orchestrator.evaluate_module(module, module_payloads[module])
                for module in modules
            ),
            return_exceptions=True,
        )

        results: dict[ModuleType, Any] = {}
        module_errors: dict[str, str] = {}
        unexpected: BaseException | None = None
        for module, outcome in zip(modules, outcomes, strict=True):
            if isinstance(outcome, EvaluatorError):
                logger.warning(
                    "Module %s failed for comprehensive report %s: %s",
                    module.value,
                    ticket.report_id,
                    outcome,
                )
                module_errors[module.value] = describe_failure(outcome)
            elif isinstance(outcome, BaseException):
                unexpected = unexpected or outcome
            else:
                results[module] = outcome

        if unexpected is not None:
            logger.error(
                "Unexpected error in comprehensive report %s",
                ticket.report_id,
                exc_info=unexpected,
            )
            await self._orchestrator.compensate(ticket, describe_failure(unexpected))
            raise unexpected

        missing = [m.value for m in modules if m not in results]

        if not results:
            analysis = await self._orchestrator.compensate(ticket, _TOTAL_FAILURE_REASON)
            return ComprehensiveOutcome(analysis=analysis, missing_modules=missing)

        payload = ComprehensivePayload(
            results={m.value: r for m, r in results.items()},
            missing_modules=missing,
            module_errors=module_errors,
        )
        analysis = await self._orchestrator.complete(
            ticket, payload, payload.model_dump(mode="json")
        )
        if not analysis.succeeded:
            return ComprehensiveOutcome(analysis=analysis, missing_modules=missing)

        if missing:
            logger.info(
                "Comprehensive report %s completed without %s",
                ticket.report_id,
                ", ".join(missing),
            )
        return ComprehensiveOutcome(
            analysis=analysis,
            verdict=compute_verdict(results, missing, self._weights),
            missing_modules=missing,
        )
