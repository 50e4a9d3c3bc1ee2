"""
Request schemas for vaccination validity API endpoints.
"""

import datetime as dt

from pydantic import BaseModel, Field

from app.infrastructure.schemas.enums import PhaseType


class VaccinationShotSchema(BaseModel):
    """A single administered vaccination."""

    uuid: str = Field(..., description="Vaccination shot identifier")
    vaccine_type: str = Field(
        ..., description="Vaccine type, e.g. pfizer, moderna, janssen"
    )
    date: dt.date = Field(..., description="Administration date (YYYY-MM-DD)")


class LabTestSchema(BaseModel):
    """Laboratory test linked to a case."""

    uuid: str = Field(..., description="Test identifier")
    result: str = Field(..., description="Test result, e.g. positive, negative")
    tested_at: dt.date | None = Field(None, description="Sampling date")
    laboratory_reported_at: dt.date | None = Field(
        None, description="Date the laboratory reported the result"
    )


class PhaseSchema(BaseModel):
    """Case phase; only index phases influence validity."""

    uuid: str = Field(..., description="Phase identifier")
    type: PhaseType = Field(..., description="Phase type (index, possible_index)")
    start: dt.date | None = Field(None, description="Phase start date")
    end: dt.date | None = Field(None, description="Phase end date")
    order_date: dt.date | None = Field(None, description="Isolation order date")
    inserted_at: dt.datetime | None = Field(None, description="Phase creation time")


class CaseSchema(BaseModel):
    """Case with its phases and tests."""

    uuid: str = Field(..., description="Case identifier")
    inserted_at: dt.datetime | None = Field(None, description="Case creation time")
    symptom_start: dt.date | None = Field(None, description="Reported symptom onset")
    phases: list[PhaseSchema] = Field(default_factory=list)
    tests: list[LabTestSchema] = Field(default_factory=list)


class PersonSchema(BaseModel):
    """Person with vaccination and case history."""

    uuid: str = Field(..., description="Person identifier")
    convalescent_externally: bool = Field(
        False, description="Infection confirmed outside the system"
    )
    vaccination_shots: list[VaccinationShotSchema] = Field(default_factory=list)
    cases: list[CaseSchema] = Field(default_factory=list)


class VaccinationValidityRequest(BaseModel):
    """Request schema for an inline validity computation."""

    people: list[PersonSchema] = Field(..., description="People to evaluate")
