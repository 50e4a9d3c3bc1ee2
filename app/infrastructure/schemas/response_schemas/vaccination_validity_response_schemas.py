"""
Response schemas for vaccination validity API endpoints.
"""

from datetime import date

from pydantic import BaseModel, Field

from app.infrastructure.schemas.enums import ValidityRule


class ValidityRangeSchema(BaseModel):
    """Half-open range during which a shot counts as protection."""

    person_uuid: str = Field(..., description="Person identifier")
    vaccination_shot_uuid: str = Field(..., description="Vaccination shot identifier")
    rule: ValidityRule = Field(..., description="Rule family that granted the range")
    start: date = Field(..., description="First valid day (inclusive)")
    end: date = Field(..., description="First invalid day (exclusive)")


class CasePhaseDatesSchema(BaseModel):
    """Derived first/last known dates of an index phase."""

    case_uuid: str
    phase_uuid: str
    person_uuid: str
    first_test_date: date | None = None
    last_test_date: date | None = None
    case_first_known_date: date
    case_last_known_date: date


class ComputationIssueSchema(BaseModel):
    """Entity skipped during computation."""

    reason: str = Field(..., description="Why the entity was skipped")
    message: str = Field(..., description="Human readable description")
    case_uuid: str | None = None
    phase_uuid: str | None = None
    vaccination_shot_uuid: str | None = None


class ValidityMetadataSchema(BaseModel):
    """Schema for computation metadata."""

    description: str = Field(..., description="Description of the computation")
    generated_at: str = Field(..., description="Timestamp of the computation")
    person_count: int = Field(..., description="Number of people evaluated")
    range_count: int = Field(..., description="Number of emitted ranges")
    rule_counts: dict[str, int] = Field(
        ..., description="Number of ranges emitted per rule family"
    )
    data_format_version: str = Field(..., description="Format version")


class VaccinationValidityResponse(BaseModel):
    """
    Validity ranges of every shot.

    Ranges are neither deduplicated nor merged: a shot may be listed once per
    rule family that judged it valid. Callers needing a single window per shot
    must union the ranges themselves.
    """

    metadata: ValidityMetadataSchema
    ranges: list[ValidityRangeSchema]
    issues: list[ComputationIssueSchema] = Field(default_factory=list)


class CasePhaseDatesResponse(BaseModel):
    case_phase_dates: list[CasePhaseDatesSchema]
    issues: list[ComputationIssueSchema] = Field(default_factory=list)


class ProtectionWindowSchema(BaseModel):
    start: date
    end: date


class ProtectionStatusResponse(BaseModel):
    """Whether a person is protected on a given date."""

    person_uuid: str
    on_date: date
    is_protected: bool
    covering_ranges: list[ValidityRangeSchema] = Field(
        ..., description="Ranges containing the requested date"
    )
    protection_windows: list[ProtectionWindowSchema] = Field(
        ..., description="All ranges of the person, merged"
    )


class ReloadResponse(BaseModel):
    people: int
    vaccination_shots: int
    cases: int
    phases: int
    tests: int


class ValiditySummaryResponse(ValidityMetadataSchema):
    """Metadata of the last full computation."""

    issue_count: int = Field(..., description="Number of skipped phases and shots")
