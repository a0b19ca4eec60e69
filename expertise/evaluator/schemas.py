"""Module result schemas.

A module result is a tagged union discriminated by ``module``:

    ModuleResult = PaintResult | DamageResult | AudioResult | ValueResult

The evaluator's scoring content is opaque; these models only enforce that
every section a module must report is present and non-empty, that scores
lie in 0-100, and that severities and damage types use the known
vocabulary. Unknown extra keys are preserved.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic import ValidationError as PydanticValidationError

from expertise.core.pricing import ModuleType
from expertise.evaluator.errors import EvaluatorMalformedResponseError

# =============================================================================
# Vocabulary
# =============================================================================

Severity = Literal["minimal", "low", "medium", "high", "critical"]

DamageType = Literal[
    "scratch",
    "dent",
    "rust",
    "oxidation",
    "crack",
    "break",
    "paint_damage",
    "structural",
    "mechanical",
    "electrical",
]

MarketPosition = Literal["undervalued", "fair", "overvalued"]

# Damage types that compromise the body structure
STRUCTURAL_DAMAGE_TYPES: frozenset[str] = frozenset({"structural", "crack", "break"})

# A required section: any JSON object with at least one key
Section = Annotated[dict[str, Any], Field(min_length=1)]

Score = Annotated[float, Field(ge=0, le=100)]


# =============================================================================
# Shared parts
# =============================================================================


class Finding(BaseModel):
    """One notable observation from a module.

    Attributes:
        title: Short label (e.g., "Knocking at idle").
        severity: minimal, low, medium, high or critical.
        description: Free-text detail.
    """

    model_config = ConfigDict(extra="allow")

    title: str
    severity: Severity
    description: str = ""


class _ResultBase(BaseModel):
    model_config = ConfigDict(extra="allow")

    overall_score: Score
    findings: list[Finding] = Field(default_factory=list)

    def severities(self) -> list[str]:
        """All severities this result reports."""
        return [f.severity for f in self.findings]

    def has_structural_compromise(self) -> bool:
        return False


# =============================================================================
# Paint
# =============================================================================


class PaintQuality(BaseModel):
    model_config = ConfigDict(extra="allow")

    score: Score


class PaintResult(_ResultBase):
    """Paint and bodywork finish analysis."""

    module: Literal["paint"] = "paint"
    paint_quality: PaintQuality
    color_analysis: Section
    surface_analysis: Section


# =============================================================================
# Damage
# =============================================================================


class DamageArea(BaseModel):
    """One damaged region of the vehicle.

    Attributes:
        position: Where on the vehicle (e.g., "front bumper, left").
        damage_type: Kind of damage.
        severity: How bad it is.
        affected_parts: Parts that need repair or replacement.
        repair_cost: Estimated repair cost in TRY.
    """

    model_config = ConfigDict(extra="allow")

    position: str = Field(min_length=1)
    damage_type: DamageType
    severity: Severity
    affected_parts: list[str]
    repair_cost: float = Field(ge=0)


class DecisionSummary(BaseModel):
    """Bottom line of a damage analysis.

    damage_free must be true for a result with no damage areas to be trusted.
    """

    model_config = ConfigDict(extra="allow")

    damage_free: bool = False
    verdict: str | None = None


class DamageResult(_ResultBase):
    """Collision and body damage analysis."""

    module: Literal["damage"] = "damage"
    vehicle_summary: Section
    visual_damage_analysis: Section
    technical_condition: Section
    repair_cost_breakdown: Section
    insurance_assessment: Section
    expert_commentary: Section
    decision_summary: DecisionSummary
    damage_areas: list[DamageArea]

    @model_validator(mode="after")
    def check_empty_damage_areas(self) -> "DamageResult":
        """Reject an empty damage list unless the vehicle is declared damage-free."""
        if not self.damage_areas and not self.decision_summary.damage_free:
            msg = (
                "damage_areas is empty but decision_summary does not declare "
                "the vehicle damage-free"
            )
            raise ValueError(msg)
        return self

    def severities(self) -> list[str]:
        return super().severities() + [a.severity for a in self.damage_areas]

    def has_structural_compromise(self) -> bool:
        return any(a.damage_type in STRUCTURAL_DAMAGE_TYPES for a in self.damage_areas)


# =============================================================================
# Engine sound
# =============================================================================


class AudioResult(_ResultBase):
    """Engine sound analysis."""

    module: Literal["audio"] = "audio"
    engine_health: Section
    rpm_analysis: Section
    sound_quality: Section


# =============================================================================
# Value estimation
# =============================================================================


class ValueResult(_ResultBase):
    """Market value estimation.

    Either value_calculation or market_analysis must be present.
    """

    module: Literal["value"] = "value"
    estimated_value: float = Field(ge=0)
    market_position: MarketPosition = "fair"
    value_calculation: Section | None = None
    market_analysis: Section | None = None

    @model_validator(mode="after")
    def check_has_basis(self) -> "ValueResult":
        if self.value_calculation is None and self.market_analysis is None:
            raise ValueError("value_calculation or market_analysis is required")
        return self


# =============================================================================
# Tagged union
# =============================================================================

ModuleResult = Annotated[
    PaintResult | DamageResult | AudioResult | ValueResult,
    Field(discriminator="module"),
]

_RESULT_MODELS: dict[ModuleType, type[_ResultBase]] = {
    ModuleType.PAINT: PaintResult,
    ModuleType.DAMAGE: DamageResult,
    ModuleType.AUDIO: AudioResult,
    ModuleType.VALUE: ValueResult,
}

module_result_adapter: TypeAdapter[Any] = TypeAdapter(ModuleResult)


class ComprehensivePayload(BaseModel):
    """Stored payload of a comprehensive report.

    The verdict is never stored; it is derived from these results on read.

    Attributes:
        results: Successful module results keyed by module value.
        missing_modules: Requested modules that produced no result.
        module_errors: Failure message per missing module.
    """

    module: Literal["comprehensive"] = "comprehensive"
    results: dict[str, ModuleResult] = Field(min_length=1)
    missing_modules: list[str] = Field(default_factory=list)
    module_errors: dict[str, str] = Field(default_factory=dict)


def _missing_fields(exc: PydanticValidationError) -> list[str]:
    return [
        ".".join(str(part) for part in err["loc"])
        for err in exc.errors()
        if err["type"] == "missing"
    ]


def parse_module_result(module: ModuleType, raw: Any) -> Any:
    """Validate raw evaluator output against the module's schema.

    Args:
        module: Module the output was requested for.
        raw: Decoded evaluator output.

    Returns:
        The matching ModuleResult variant.

    Raises:
        EvaluatorMalformedResponseError: If the output is empty, tagged for a
            different module, or fails validation.
    """
    model = _RESULT_MODELS.get(module)
    if model is None:
        raise EvaluatorMalformedResponseError(
            f"No result schema for module '{module.value}'"
        )
    if not isinstance(raw, dict) or not raw:
        raise EvaluatorMalformedResponseError(
            f"Empty or non-object {module.value} response"
        )
    tag = raw.get("module", module.value)
    if tag != module.value:
        raise EvaluatorMalformedResponseError(
            f"Response tagged '{tag}' for a {module.value} request"
        )
    try:
        return model.model_validate({**raw, "module": module.value})
    except PydanticValidationError as exc:
        missing = _missing_fields(exc)
        raise EvaluatorMalformedResponseError(
            f"Invalid {module.value} response: {exc.error_count()} error(s)",
            missing_fields=missing,
        ) from exc


def parse_report_payload(module: ModuleType, payload: Any) -> Any:
    """Validate a payload about to be stored on a report.

    Args:
        module: The report's module type.
        payload: Payload dict (a ModuleResult dump or a ComprehensivePayload dump).

    Returns:
        The validated model.

    Raises:
        EvaluatorMalformedResponseError: If the payload is empty or invalid.
    """
    if module is ModuleType.COMPREHENSIVE:
        if not isinstance(payload, dict) or not payload:
            raise EvaluatorMalformedResponseError("Empty comprehensive payload")
        try:
            return ComprehensivePayload.model_validate(payload)
        except PydanticValidationError as exc:
            raise EvaluatorMalformedResponseError(
                f"Invalid comprehensive payload: {exc.error_count()} error(s)",
                missing_fields=_missing_fields(exc),
            ) from exc
    return parse_module_result(module, payload)
