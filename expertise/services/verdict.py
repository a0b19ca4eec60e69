"""Comprehensive verdict: one score, grade and recommendation from N modules.

The verdict is derived, never stored: it is recomputed from the stored
module results on every read, so retuning a policy table below changes
every report's verdict without a migration.

Rules:
1. overall_score is the weighted mean of the PRESENT modules' scores;
   a missing module is excluded from numerator and denominator.
2. grade comes from GRADE_THRESHOLDS.
3. recommendation starts from RECOMMENDATION_THRESHOLDS, moves one step
   with the value module's market position, then is capped: any critical
   finding caps it at NEUTRAL, a structural compromise caps it at AVOID.
4. risk_level and investment_decision follow from the same inputs.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from expertise.core.pricing import ModuleType
from expertise.evaluator.schemas import ComprehensivePayload, ValueResult

# =============================================================================
# Enums
# =============================================================================


class ExpertiseGrade(Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"


class Recommendation(Enum):
    """Purchase recommendation, ordered worst to best by LADDER."""

    STRONGLY_BUY = "strongly_buy"
    BUY = "buy"
    NEUTRAL = "neutral"
    AVOID = "avoid"
    STRONGLY_AVOID = "strongly_avoid"


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class InvestmentDecision(Enum):
    EXCELLENT_INVESTMENT = "excellent_investment"
    GOOD_INVESTMENT = "good_investment"
    FAIR_INVESTMENT = "fair_investment"
    POOR_INVESTMENT = "poor_investment"
    AVOID = "avoid"


# =============================================================================
# Policy Tables
# =============================================================================

# Relative weight of each module in the overall score. Equal by default.
DEFAULT_MODULE_WEIGHTS: dict[ModuleType, float] = {
    ModuleType.PAINT: 1.0,
    ModuleType.DAMAGE: 1.0,
    ModuleType.AUDIO: 1.0,
    ModuleType.VALUE: 1.0,
}

if any(w <= 0 for w in DEFAULT_MODULE_WEIGHTS.values()):
    raise RuntimeError("Module weights must be positive")


def resolve_weights(
    overrides: Mapping[ModuleType, float] | None = None,
) -> dict[ModuleType, float]:
    """Merge weight overrides over DEFAULT_MODULE_WEIGHTS.

    Modules not named in overrides keep their default weight.

    Raises:
        ValueError: If a weight is not positive or names a non-component module.
    """
    weights = dict(DEFAULT_MODULE_WEIGHTS)
    for module, weight in (overrides or {}).items():
        if module not in DEFAULT_MODULE_WEIGHTS:
            raise ValueError(f"No score weight applies to module '{module.value}'")
        if weight <= 0:
            raise ValueError(
                f"Weight for '{module.value}' must be positive, got {weight}"
            )
        weights[module] = float(weight)
    return weights


# (minimum score, grade), checked top to bottom; below all -> CRITICAL
GRADE_THRESHOLDS: tuple[tuple[float, ExpertiseGrade], ...] = (
    (90, ExpertiseGrade.EXCELLENT),
    (75, ExpertiseGrade.GOOD),
    (60, ExpertiseGrade.FAIR),
    (40, ExpertiseGrade.POOR),
)

# (minimum score, recommendation); below all -> STRONGLY_AVOID
RECOMMENDATION_THRESHOLDS: tuple[tuple[float, Recommendation], ...] = (
    (85, Recommendation.STRONGLY_BUY),
    (70, Recommendation.BUY),
    (55, Recommendation.NEUTRAL),
    (40, Recommendation.AVOID),
)

# Worst to best
LADDER: tuple[Recommendation, ...] = (
    Recommendation.STRONGLY_AVOID,
    Recommendation.AVOID,
    Recommendation.NEUTRAL,
    Recommendation.BUY,
    Recommendation.STRONGLY_BUY,
)

# Steps up (+) or down (-) the ladder for the value module's market position
MARKET_ADJUSTMENT: dict[str, int] = {
    "undervalued": 1,
    "fair": 0,
    "overvalued": -1,
}

# Best recommendation allowed when the condition holds
CRITICAL_FINDING_CAP = Recommendation.NEUTRAL
STRUCTURAL_COMPROMISE_CAP = Recommendation.AVOID

INVESTMENT_BY_RECOMMENDATION: dict[Recommendation, InvestmentDecision] = {
    Recommendation.STRONGLY_BUY: InvestmentDecision.EXCELLENT_INVESTMENT,
    Recommendation.BUY: InvestmentDecision.GOOD_INVESTMENT,
    Recommendation.NEUTRAL: InvestmentDecision.FAIR_INVESTMENT,
    Recommendation.AVOID: InvestmentDecision.POOR_INVESTMENT,
    Recommendation.STRONGLY_AVOID: InvestmentDecision.AVOID,
}

# (minimum score, risk) when no critical/structural/high finding applies
RISK_THRESHOLDS: tuple[tuple[float, RiskLevel], ...] = (
    (75, RiskLevel.LOW),
    (55, RiskLevel.MEDIUM),
)


# =============================================================================
# Verdict
# =============================================================================


@dataclass(frozen=True)
class ComprehensiveVerdict:
    """Derived verdict of a comprehensive report.

    Attributes:
        overall_score: Weighted mean of present module scores (0-100, 1 dp).
        grade: Discretized score.
        recommendation: Purchase recommendation after overrides.
        risk_level: Overall risk.
        investment_decision: Investment ranking.
        critical_findings: "module: title" for every critical finding.
        structural_compromise: Whether any structural damage was reported.
        market_position: Value module's signal, if it ran.
        scored_modules: Modules that contributed to the score.
        missing_modules: Requested modules without a result.
    """

    overall_score: float
    grade: ExpertiseGrade
    recommendation: Recommendation
    risk_level: RiskLevel
    investment_decision: InvestmentDecision
    critical_findings: list[str]
    structural_compromise: bool
    market_position: str | None
    scored_modules: list[str]
    missing_modules: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "grade": self.grade.value,
            "recommendation": self.recommendation.value,
            "risk_level": self.risk_level.value,
            "investment_decision": self.investment_decision.value,
            "critical_findings": list(self.critical_findings),
            "structural_compromise": self.structural_compromise,
            "market_position": self.market_position,
            "scored_modules": list(self.scored_modules),
            "missing_modules": list(self.missing_modules),
        }


def _band(score: float, table: tuple[tuple[float, Any], ...], floor: Any) -> Any:
    for minimum, value in table:
        if score >= minimum:
            return value
    return floor


def weighted_score(
    results: Mapping[ModuleType, Any],
    weights: Mapping[ModuleType, float] | None = None,
) -> float:
    """Weighted mean of the present modules' overall_score.

    Args:
        results: Validated results keyed by module.
        weights: Overrides merged over DEFAULT_MODULE_WEIGHTS.

    Raises:
        ValueError: If results is empty or a weight is invalid.
    """
    if not results:
        raise ValueError("Cannot score a report without module results")
    table = resolve_weights(weights)
    total_weight = sum(table[module] for module in results)
    weighted = sum(table[module] * r.overall_score for module, r in results.items())
    return round(weighted / total_weight, 1)


def grade_for(score: float) -> ExpertiseGrade:
    return _band(score, GRADE_THRESHOLDS, ExpertiseGrade.CRITICAL)


def _cap(recommendation: Recommendation, ceiling: Recommendation) -> Recommendation:
    return min(recommendation, ceiling, key=LADDER.index)


def recommendation_for(
    score: float,
    *,
    has_critical: bool,
    structural_compromise: bool,
    market_position: str | None,
) -> Recommendation:
    """Score band, shifted by market position, then capped by safety overrides."""
    base = _band(score, RECOMMENDATION_THRESHOLDS, Recommendation.STRONGLY_AVOID)
    step = MARKET_ADJUSTMENT.get(market_position or "fair", 0)
    index = min(max(LADDER.index(base) + step, 0), len(LADDER) - 1)
    recommendation = LADDER[index]

    if has_critical:
        recommendation = _cap(recommendation, CRITICAL_FINDING_CAP)
    if structural_compromise:
        recommendation = _cap(recommendation, STRUCTURAL_COMPROMISE_CAP)
    return recommendation


def risk_for(
    score: float,
    *,
    has_critical: bool,
    has_high: bool,
    structural_compromise: bool,
) -> RiskLevel:
    if has_critical or structural_compromise:
        return RiskLevel.VERY_HIGH
    if has_high:
        return RiskLevel.HIGH
    return _band(score, RISK_THRESHOLDS, RiskLevel.HIGH)


def compute_verdict(
    results: Mapping[ModuleType, Any],
    missing_modules: list[str] | None = None,
    weights: Mapping[ModuleType, float] | None = None,
) -> ComprehensiveVerdict:
    """Combine module results into one verdict.

    Args:
        results: Validated results of the modules that succeeded.
        missing_modules: Requested modules that produced no result.
        weights: Overrides merged over DEFAULT_MODULE_WEIGHTS.

    Returns:
        ComprehensiveVerdict.

    Raises:
        ValueError: If results is empty.
    """
    score = weighted_score(results, weights)

    critical_findings: list[str] = []
    has_high = False
    structural = False
    for module, result in results.items():
        for finding in result.findings:
            if finding.severity == "critical":
                critical_findings.append(f"{module.value}: {finding.title}")
        for area in getattr(result, "damage_areas", []):
            if area.severity == "critical":
                critical_findings.append(f"{module.value}: {area.position}")
        has_high = has_high or "high" in result.severities()
        structural = structural or result.has_structural_compromise()

    value = results.get(ModuleType.VALUE)
    market_position = value.market_position if isinstance(value, ValueResult) else None

    recommendation = recommendation_for(
        score,
        has_critical=bool(critical_findings),
        structural_compromise=structural,
        market_position=market_position,
    )
    investment = INVESTMENT_BY_RECOMMENDATION[recommendation]
    if structural:
        investment = InvestmentDecision.AVOID

    return ComprehensiveVerdict(
        overall_score=score,
        grade=grade_for(score),
        recommendation=recommendation,
        risk_level=risk_for(
            score,
            has_critical=bool(critical_findings),
            has_high=has_high,
            structural_compromise=structural,
        ),
        investment_decision=investment,
        critical_findings=critical_findings,
        structural_compromise=structural,
        market_position=market_position,
        scored_modules=[m.value for m in results],
        missing_modules=list(missing_modules or []),
    )


def verdict_from_payload(
    payload: dict[str, Any],
    weights: Mapping[ModuleType, float] | None = None,
) -> ComprehensiveVerdict:
    """Recompute the verdict from a stored comprehensive payload.

    Pass the same weights the aggregator used, so a read reproduces the
    verdict returned when the report was created.
    """
    parsed = ComprehensivePayload.model_validate(payload)
    results = {
        ModuleType.from_string(key): result for key, result in parsed.results.items()
    }
    return compute_verdict(results, parsed.missing_modules, weights)
