"""Request/response schemas for analysis and report endpoints.

Credit amounts are serialized as strings with 2 decimals so clients never
round-trip them through floats.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ComponentModuleName = Literal["paint", "damage", "audio", "value"]

_MAX_MEDIA_REFS = 30
_MAX_REF_LENGTH = 500
_MAX_NOTES_LENGTH = 2000


class VehicleInfo(BaseModel):
    """Vehicle identification passed to the evaluator.

    Attributes:
        make: Manufacturer (e.g. "Toyota").
        model: Model name.
        year: Model year.
        mileage_km: Odometer reading in kilometers.
        vin: Vehicle identification number.
    """

    model_config = ConfigDict(extra="forbid")

    make: str | None = Field(default=None, max_length=100)
    model: str | None = Field(default=None, max_length=100)
    year: int | None = Field(default=None, ge=1900, le=2100)
    mileage_km: int | None = Field(default=None, ge=0)
    vin: str | None = Field(default=None, min_length=11, max_length=17)


class _AnalysisInputs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    vehicle: VehicleInfo | None = None
    image_urls: list[str] = Field(default_factory=list, max_length=_MAX_MEDIA_REFS)
    audio_url: str | None = Field(default=None, max_length=_MAX_REF_LENGTH)
    notes: str | None = Field(default=None, max_length=_MAX_NOTES_LENGTH)

    @field_validator("image_urls")
    @classmethod
    def _refs_not_blank(cls, refs: list[str]) -> list[str]:
        for ref in refs:
            if not ref.strip() or len(ref) > _MAX_REF_LENGTH:
                raise ValueError("image references must be non-empty paths or URLs")
        return refs

    def to_payload(self) -> dict[str, Any]:
        """Evaluator input: the request minus unset fields."""
        return self.model_dump(mode="json", exclude_none=True)


class AnalysisRequest(_AnalysisInputs):
    """Request body for POST /api/v1/analyses/{module}.

    Attributes:
        vehicle: Vehicle identification.
        image_urls: References to uploaded photos.
        audio_url: Reference to an uploaded engine recording.
        notes: Free-text context from the inspector.
    """


class ComprehensiveRequest(_AnalysisInputs):
    """Request body for POST /api/v1/analyses/comprehensive.

    The same inputs are sent to every requested module.

    Attributes:
        modules: Component modules to include (any non-empty subset).
    """

    modules: list[ComponentModuleName] = Field(min_length=1, max_length=4)

    @field_validator("modules")
    @classmethod
    def _unique_modules(cls, modules: list[str]) -> list[str]:
        if len(set(modules)) != len(modules):
            raise ValueError("modules must not repeat")
        return modules

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True, exclude={"modules"})


class AnalysisStartedResponse(BaseModel):
    """Response for POST /api/v1/analyses/{module}/start (202)."""

    model_config = ConfigDict(extra="forbid")

    report_id: str
    status: str


class ReportResponse(BaseModel):
    """A vehicle condition report.

    Attributes:
        id: Report UUID.
        module_type: paint, damage, audio, value or comprehensive.
        status: PENDING, PROCESSING, COMPLETED or FAILED.
        cost_charged: Credits reserved for the report (2 decimals).
        result: Stored evaluator result (COMPLETED only).
        verdict: Recomputed verdict (COMPLETED comprehensive reports only).
        failure_note: Explanation including the refund outcome (FAILED only).
        exported_at: When a PDF export was produced.
        created_at: Creation time.
        updated_at: Last transition time.
    """

    model_config = ConfigDict(extra="forbid")

    id: str
    module_type: str
    status: str
    cost_charged: str
    result: dict[str, Any] | None = None
    verdict: dict[str, Any] | None = None
    failure_note: str | None = None
    exported_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ReportSummaryResponse(BaseModel):
    """List item for GET /api/v1/reports (no result payload)."""

    model_config = ConfigDict(extra="forbid")

    id: str
    module_type: str
    status: str
    cost_charged: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
