"""Mock evaluator client for local runs and tests.

With EVALUATOR_PROVIDER=mock the application answers every analysis with a
canned, schema-valid result, so the full billing flow can be exercised
without an API key.
"""

import copy
from collections.abc import Sequence
from typing import Any

from expertise.core.pricing import ModuleType
from expertise.evaluator.client import EvaluatorClient

# Schema-valid sample output per module
SAMPLE_RESULTS: dict[ModuleType, dict[str, Any]] = {
    ModuleType.PAINT: {
        "module": "paint",
        "overall_score": 82,
        "paint_quality": {"score": 84, "gloss_level": "high", "thickness_um": 118},
        "color_analysis": {"uniformity": "consistent", "repainted_panels": []},
        "surface_analysis": {"scratches": "light", "orange_peel": "none"},
        "findings": [
            {"title": "Light swirl marks", "severity": "low", "description": ""}
        ],
    },
    ModuleType.DAMAGE: {
        "module": "damage",
        "overall_score": 74,
        "vehicle_summary": {"make": "Renault", "model": "Clio", "year": 2019},
        "visual_damage_analysis": {"areas_inspected": 12, "areas_damaged": 1},
        "technical_condition": {"expertise_result": "roadworthy"},
        "repair_cost_breakdown": {"parts": 2400, "labour": 1800, "paint": 1200},
        "insurance_assessment": {"claim_recommended": False},
        "expert_commentary": {"summary": "Minor cosmetic damage on the rear bumper."},
        "decision_summary": {"damage_free": False, "verdict": "minor damage"},
        "damage_areas": [
            {
                "position": "rear bumper, right",
                "damage_type": "dent",
                "severity": "low",
                "affected_parts": ["rear bumper"],
                "repair_cost": 5400,
            }
        ],
    },
    ModuleType.AUDIO: {
        "module": "audio",
        "overall_score": 78,
        "engine_health": {"status": "good", "misfire_detected": False},
        "rpm_analysis": {"idle_rpm": 780, "stability": "stable"},
        "sound_quality": {"noise_level": "normal", "anomalies": []},
    },
    ModuleType.VALUE: {
        "module": "value",
        "overall_score": 70,
        "estimated_value": 845000,
        "market_position": "fair",
        "market_analysis": {"comparables": 24, "median_listing": 860000},
    },
}


class MockEvaluatorClient(EvaluatorClient):
    """Scripted evaluator.

    Each module can be given a sequence of outcomes consumed one per call;
    an outcome is either a result to return or an exception to raise. Once
    a script runs out its last outcome repeats. Modules without a script
    answer with SAMPLE_RESULTS.

    Attributes:
        scripts: Outcome sequences keyed by module.
        calls: Record of every evaluate() call for test assertions.
    """

    @property
    def provider_name(self) -> str:
        return "mock"

    def __init__(
        self,
        scripts: dict[ModuleType, Sequence[Any]] | None = None,
    ) -> None:
        self.scripts: dict[ModuleType, list[Any]] = {
            module: list(outcomes) for module, outcomes in (scripts or {}).items()
        }
        self.calls: list[dict[str, Any]] = []

    def set_outcomes(self, module: ModuleType, *outcomes: Any) -> None:
        """Replace the script for a module.

        Args:
            module: Module to script.
            outcomes: Results to return and/or exceptions to raise, in order.
        """
        self.scripts[module] = list(outcomes)

    def calls_for(self, module: ModuleType) -> int:
        """Number of evaluate() calls made for a module."""
        return sum(1 for call in self.calls if call["module"] is module)

    async def evaluate(
        self,
        module: ModuleType,
        payload: dict[str, Any],
        timeout_seconds: float,
    ) -> Any:
        self.calls.append(
            {"module": module, "payload": payload, "timeout_seconds": timeout_seconds}
        )

        script = self.scripts.get(module)
        if script:
            outcome = script.pop(0) if len(script) > 1 else script[0]
        else:
            outcome = SAMPLE_RESULTS.get(module, {})

        if isinstance(outcome, BaseException):
            raise outcome
        return copy.deepcopy(outcome)
