"""Tests for the comprehensive verdict.

Tests verify:
- Weighted mean over present modules only
- Grade and recommendation bands
- Market position moves the recommendation one step
- Critical findings and structural damage cap the recommendation
"""

import copy
from typing import Any

import pytest

from expertise.core.pricing import ModuleType
from expertise.evaluator.mock_client import SAMPLE_RESULTS
from expertise.evaluator.schemas import parse_module_result
from expertise.services.verdict import (
    ExpertiseGrade,
    InvestmentDecision,
    Recommendation,
    RiskLevel,
    compute_verdict,
    grade_for,
    resolve_weights,
    weighted_score,
)


def _result(module: ModuleType, **overrides: Any):
    raw = copy.deepcopy(SAMPLE_RESULTS[module])
    raw.update(overrides)
    return parse_module_result(module, raw)


def _paint(score: float, findings: list[dict] | None = None):
    return _result(ModuleType.PAINT, overall_score=score, findings=findings or [])


# =============================================================================
# Scoring
# =============================================================================


class TestWeightedScore:
    """overall_score is the mean of present module scores."""

    def test_equal_weights(self):
        results = {
            ModuleType.PAINT: _paint(80),
            ModuleType.AUDIO: _result(ModuleType.AUDIO, overall_score=60),
        }
        assert weighted_score(results) == 70.0

    def test_rounds_to_one_decimal(self):
        results = {
            ModuleType.PAINT: _paint(82),
            ModuleType.DAMAGE: _result(ModuleType.DAMAGE),
            ModuleType.VALUE: _result(ModuleType.VALUE),
        }
        assert weighted_score(results) == 75.3

    def test_custom_weights(self):
        results = {
            ModuleType.PAINT: _paint(90),
            ModuleType.AUDIO: _result(ModuleType.AUDIO, overall_score=60),
        }
        weights = {ModuleType.PAINT: 2.0, ModuleType.AUDIO: 1.0}
        assert weighted_score(results, weights) == 80.0

    def test_partial_override_keeps_default_weights(self):
        """Modules not named in the override keep weight 1."""
        results = {
            ModuleType.PAINT: _paint(90),
            ModuleType.DAMAGE: _result(ModuleType.DAMAGE, overall_score=60),
        }
        assert weighted_score(results, {ModuleType.PAINT: 2.0}) == 80.0

    @pytest.mark.parametrize("weight", [0, -1.5])
    def test_non_positive_weight_is_rejected(self, weight):
        with pytest.raises(ValueError, match="must be positive"):
            resolve_weights({ModuleType.PAINT: weight})

    def test_comprehensive_has_no_weight(self):
        with pytest.raises(ValueError):
            resolve_weights({ModuleType.COMPREHENSIVE: 1.0})

    def test_missing_module_is_excluded_not_zeroed(self):
        """One module at 90 scores 90, not 90/4."""
        verdict = compute_verdict(
            {ModuleType.PAINT: _paint(90)},
            missing_modules=["damage", "audio", "value"],
        )
        assert verdict.overall_score == 90.0
        assert verdict.missing_modules == ["damage", "audio", "value"]

    def test_empty_results_are_rejected(self):
        with pytest.raises(ValueError):
            weighted_score({})


class TestGrades:
    """Score bands."""

    @pytest.mark.parametrize(
        ("score", "grade"),
        [
            (100, ExpertiseGrade.EXCELLENT),
            (90, ExpertiseGrade.EXCELLENT),
            (89.9, ExpertiseGrade.GOOD),
            (75, ExpertiseGrade.GOOD),
            (60, ExpertiseGrade.FAIR),
            (40, ExpertiseGrade.POOR),
            (39.9, ExpertiseGrade.CRITICAL),
            (0, ExpertiseGrade.CRITICAL),
        ],
    )
    def test_bands(self, score, grade):
        assert grade_for(score) is grade


# =============================================================================
# Recommendation
# =============================================================================


class TestRecommendation:
    """Bands, market adjustment and safety caps."""

    def test_high_score_is_strong_buy(self):
        verdict = compute_verdict({ModuleType.PAINT: _paint(92)})

        assert verdict.recommendation is Recommendation.STRONGLY_BUY
        assert verdict.investment_decision is InvestmentDecision.EXCELLENT_INVESTMENT
        assert verdict.risk_level is RiskLevel.LOW

    def test_critical_finding_caps_at_neutral(self):
        """A score of 95 with a critical finding is at best neutral."""
        paint = _paint(
            95,
            [{"title": "Frame repaint hides rust", "severity": "critical"}],
        )

        verdict = compute_verdict({ModuleType.PAINT: paint})

        assert verdict.grade is ExpertiseGrade.EXCELLENT
        assert verdict.recommendation is Recommendation.NEUTRAL
        assert verdict.risk_level is RiskLevel.VERY_HIGH
        assert verdict.critical_findings == ["paint: Frame repaint hides rust"]

    def test_critical_damage_area_counts(self):
        damage = copy.deepcopy(SAMPLE_RESULTS[ModuleType.DAMAGE])
        damage["overall_score"] = 88
        damage["damage_areas"][0]["severity"] = "critical"

        verdict = compute_verdict(
            {ModuleType.DAMAGE: parse_module_result(ModuleType.DAMAGE, damage)}
        )

        assert verdict.recommendation is Recommendation.NEUTRAL
        assert verdict.critical_findings == ["damage: rear bumper, right"]

    def test_structural_damage_caps_at_avoid(self):
        damage = copy.deepcopy(SAMPLE_RESULTS[ModuleType.DAMAGE])
        damage["overall_score"] = 90
        damage["damage_areas"][0]["damage_type"] = "structural"

        verdict = compute_verdict(
            {ModuleType.DAMAGE: parse_module_result(ModuleType.DAMAGE, damage)}
        )

        assert verdict.structural_compromise is True
        assert verdict.recommendation is Recommendation.AVOID
        assert verdict.investment_decision is InvestmentDecision.AVOID
        assert verdict.risk_level is RiskLevel.VERY_HIGH

    def test_caps_never_raise_a_low_recommendation(self):
        """A critical cap of NEUTRAL leaves a score of 30 at STRONGLY_AVOID."""
        paint = _paint(30, [{"title": "Delamination", "severity": "critical"}])

        verdict = compute_verdict({ModuleType.PAINT: paint})

        assert verdict.recommendation is Recommendation.STRONGLY_AVOID

    def test_undervalued_moves_up_one_step(self):
        results = {
            ModuleType.PAINT: _paint(74),
            ModuleType.VALUE: _result(
                ModuleType.VALUE, overall_score=72, market_position="undervalued"
            ),
        }

        verdict = compute_verdict(results)

        assert verdict.market_position == "undervalued"
        assert verdict.recommendation is Recommendation.STRONGLY_BUY

    def test_overvalued_moves_down_one_step(self):
        results = {
            ModuleType.PAINT: _paint(90),
            ModuleType.VALUE: _result(
                ModuleType.VALUE, overall_score=88, market_position="overvalued"
            ),
        }

        verdict = compute_verdict(results)

        assert verdict.recommendation is Recommendation.BUY

    def test_high_severity_raises_risk(self):
        paint = _paint(92, [{"title": "Deep scratch", "severity": "high"}])

        verdict = compute_verdict({ModuleType.PAINT: paint})

        assert verdict.risk_level is RiskLevel.HIGH
        assert verdict.recommendation is Recommendation.STRONGLY_BUY

    def test_to_dict_uses_plain_values(self):
        verdict = compute_verdict({ModuleType.PAINT: _paint(80)})

        data = verdict.to_dict()

        assert data["grade"] == "good"
        assert data["recommendation"] == "buy"
        assert data["scored_modules"] == ["paint"]
