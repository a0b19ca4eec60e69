"""Tests for module result schemas.

Tests verify:
- Every sample result validates against its module's schema
- Missing required sections are reported by name
- Empty damage lists need an explicit damage-free verdict
- Tags must match the requested module
- Comprehensive payloads need at least one module result
"""

import copy
from typing import Any

import pytest

from expertise.core.pricing import COMPONENT_MODULES, ModuleType
from expertise.evaluator.errors import EvaluatorMalformedResponseError
from expertise.evaluator.mock_client import SAMPLE_RESULTS
from expertise.evaluator.schemas import (
    ComprehensivePayload,
    DamageResult,
    ValueResult,
    module_result_adapter,
    parse_module_result,
    parse_report_payload,
)


def _sample(module: ModuleType) -> dict[str, Any]:
    return copy.deepcopy(SAMPLE_RESULTS[module])


class TestSampleResults:
    """The mock evaluator's canned answers are themselves valid."""

    @pytest.mark.parametrize("module", COMPONENT_MODULES, ids=lambda m: m.value)
    def test_sample_validates(self, module):
        result = parse_module_result(module, _sample(module))
        assert result.module == module.value

    def test_union_dispatches_on_module_tag(self):
        """The tagged union picks the variant from the module field."""
        result = module_result_adapter.validate_python(_sample(ModuleType.VALUE))
        assert isinstance(result, ValueResult)


class TestRequiredSections:
    """Required sections must be present and non-empty."""

    def test_missing_section_is_named(self):
        raw = _sample(ModuleType.AUDIO)
        del raw["rpm_analysis"]

        with pytest.raises(EvaluatorMalformedResponseError) as exc_info:
            parse_module_result(ModuleType.AUDIO, raw)

        assert exc_info.value.missing_fields == ["rpm_analysis"]

    def test_empty_section_is_rejected(self):
        raw = _sample(ModuleType.PAINT)
        raw["color_analysis"] = {}

        with pytest.raises(EvaluatorMalformedResponseError):
            parse_module_result(ModuleType.PAINT, raw)

    def test_score_out_of_range_is_rejected(self):
        raw = _sample(ModuleType.PAINT)
        raw["overall_score"] = 140

        with pytest.raises(EvaluatorMalformedResponseError):
            parse_module_result(ModuleType.PAINT, raw)

    def test_unknown_severity_is_rejected(self):
        raw = _sample(ModuleType.PAINT)
        raw["findings"][0]["severity"] = "catastrophic"

        with pytest.raises(EvaluatorMalformedResponseError):
            parse_module_result(ModuleType.PAINT, raw)

    def test_extra_keys_are_preserved(self):
        raw = _sample(ModuleType.AUDIO)
        raw["model_version"] = "2024-08"

        result = parse_module_result(ModuleType.AUDIO, raw)

        assert result.model_dump()["model_version"] == "2024-08"


class TestDamageAreas:
    """Damage results cannot silently omit their damage list."""

    def test_empty_list_without_damage_free_is_rejected(self):
        raw = _sample(ModuleType.DAMAGE)
        raw["damage_areas"] = []

        with pytest.raises(EvaluatorMalformedResponseError):
            parse_module_result(ModuleType.DAMAGE, raw)

    def test_empty_list_with_damage_free_is_accepted(self):
        raw = _sample(ModuleType.DAMAGE)
        raw["damage_areas"] = []
        raw["decision_summary"] = {"damage_free": True, "verdict": "no damage"}

        result = parse_module_result(ModuleType.DAMAGE, raw)

        assert isinstance(result, DamageResult)
        assert result.damage_areas == []

    def test_structural_damage_is_detected(self):
        raw = _sample(ModuleType.DAMAGE)
        raw["damage_areas"][0]["damage_type"] = "crack"

        result = parse_module_result(ModuleType.DAMAGE, raw)

        assert result.has_structural_compromise() is True

    def test_severities_include_damage_areas(self):
        result = parse_module_result(ModuleType.DAMAGE, _sample(ModuleType.DAMAGE))
        assert "low" in result.severities()


class TestValueBasis:
    """Value estimates need a calculation or a market analysis."""

    def test_no_basis_is_rejected(self):
        raw = _sample(ModuleType.VALUE)
        del raw["market_analysis"]

        with pytest.raises(EvaluatorMalformedResponseError):
            parse_module_result(ModuleType.VALUE, raw)

    def test_market_position_defaults_to_fair(self):
        raw = _sample(ModuleType.VALUE)
        del raw["market_position"]

        result = parse_module_result(ModuleType.VALUE, raw)

        assert result.market_position == "fair"


class TestTagsAndPayloads:
    """Tagging and stored-payload validation."""

    def test_mismatched_tag_is_rejected(self):
        with pytest.raises(EvaluatorMalformedResponseError, match="tagged 'audio'"):
            parse_module_result(ModuleType.PAINT, _sample(ModuleType.AUDIO))

    def test_untagged_answer_is_tagged_by_request(self):
        raw = _sample(ModuleType.PAINT)
        del raw["module"]

        result = parse_module_result(ModuleType.PAINT, raw)

        assert result.module == "paint"

    @pytest.mark.parametrize("raw", [None, [], {}, "text"])
    def test_non_object_answers_are_rejected(self, raw):
        with pytest.raises(EvaluatorMalformedResponseError):
            parse_module_result(ModuleType.PAINT, raw)

    def test_comprehensive_payload_requires_a_result(self):
        with pytest.raises(EvaluatorMalformedResponseError):
            parse_report_payload(
                ModuleType.COMPREHENSIVE,
                {"module": "comprehensive", "results": {}},
            )

    def test_comprehensive_payload_validates_nested_results(self):
        payload = {
            "results": {"paint": _sample(ModuleType.PAINT)},
            "missing_modules": ["audio"],
        }

        parsed = parse_report_payload(ModuleType.COMPREHENSIVE, payload)

        assert isinstance(parsed, ComprehensivePayload)
        assert parsed.results["paint"].overall_score == 82
        assert parsed.missing_modules == ["audio"]
