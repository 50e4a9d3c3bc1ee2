"""
Input snapshot for the vaccination validity computation.

A snapshot holds the people, vaccination shots, cases, phases and tests the
rules read. It is built once (from CSV files or from request payloads) and
never mutated afterwards; every computation derives new frames from it.
"""

import logging
from pathlib import Path
from typing import Any

import pandas as pd

from app.infrastructure.schemas.request_schemas.vaccination_validity_request_schemas import (
    PersonSchema,
)
from app.infrastructure.utils.date_range_utils import normalize_dates
from app.infrastructure.utils.exception_utils import (
    InputUnavailableError,
    PersonNotFoundError,
)

logger = logging.getLogger(__name__)

# file name -> (id columns, date columns, other columns)
SNAPSHOT_TABLES: dict[str, tuple[list[str], list[str], list[str]]] = {
    "people": (["person_uuid"], [], ["convalescent_externally"]),
    "vaccination_shots": (
        ["vaccination_shot_uuid", "person_uuid"],
        ["date"],
        ["vaccine_type"],
    ),
    "cases": (
        ["case_uuid", "person_uuid"],
        ["inserted_at", "symptom_start"],
        [],
    ),
    "phases": (
        ["phase_uuid", "case_uuid"],
        ["start", "end", "order_date", "inserted_at"],
        ["type"],
    ),
    "tests": (
        ["test_uuid", "case_uuid"],
        ["tested_at", "laboratory_reported_at"],
        ["result"],
    ),
}

TRUTHY_VALUES = {"true", "t", "1", "yes", "y"}


def _normalize_table(name: str, df: pd.DataFrame) -> pd.DataFrame:
    id_columns, date_columns, other_columns = SNAPSHOT_TABLES[name]
    missing = [
        column
        for column in id_columns + date_columns + other_columns
        if column not in df.columns
    ]
    if missing:
        raise InputUnavailableError(
            f"Table '{name}' is missing required columns: {', '.join(missing)}"
        )

    df = df[id_columns + date_columns + other_columns].copy().reset_index(drop=True)

    for column in id_columns:
        if df[column].isna().any():
            raise InputUnavailableError(f"Table '{name}' has empty '{column}' values")
        df[column] = df[column].astype(str).str.strip()

    for column in date_columns:
        try:
            df[column] = normalize_dates(df[column])
        except (ValueError, TypeError) as e:
            raise InputUnavailableError(
                f"Table '{name}' has unparsable dates in '{column}': {e}"
            ) from e

    if name == "people":
        df["convalescent_externally"] = (
            df["convalescent_externally"]
            .astype(str)
            .str.strip()
            .str.lower()
            .isin(TRUTHY_VALUES)
        )
    for column in ("vaccine_type", "type", "result"):
        if column in df.columns:
            df[column] = df[column].fillna("").astype(str).str.strip().str.lower()

    return df


class ValiditySnapshot:
    """Read-only view of the records the validity rules consume."""

    def __init__(
        self,
        people: pd.DataFrame,
        vaccination_shots: pd.DataFrame,
        cases: pd.DataFrame,
        phases: pd.DataFrame,
        tests: pd.DataFrame,
    ):
        self.people = _normalize_table("people", people)
        self.vaccination_shots = _normalize_table("vaccination_shots", vaccination_shots)
        self.cases = _normalize_table("cases", cases)
        self.phases = _normalize_table("phases", phases)
        self.tests = _normalize_table("tests", tests)

    @property
    def person_uuids(self) -> list[str]:
        return sorted(self.people["person_uuid"].unique())

    def counts(self) -> dict[str, int]:
        return {name: len(getattr(self, name)) for name in SNAPSHOT_TABLES}

    def for_person(self, person_uuid: str) -> "ValiditySnapshot":
        """Restrict every table to the records of one person."""
        if person_uuid not in self.person_uuids:
            raise PersonNotFoundError(person_uuid)

        cases = self.cases[self.cases["person_uuid"] == person_uuid]
        case_uuids = set(cases["case_uuid"])
        return ValiditySnapshot(
            people=self.people[self.people["person_uuid"] == person_uuid],
            vaccination_shots=self.vaccination_shots[
                self.vaccination_shots["person_uuid"] == person_uuid
            ],
            cases=cases,
            phases=self.phases[self.phases["case_uuid"].isin(case_uuids)],
            tests=self.tests[self.tests["case_uuid"].isin(case_uuids)],
        )


def load_snapshot_from_csv(data_dir: Path | str) -> ValiditySnapshot:
    """Load people.csv, vaccination_shots.csv, cases.csv, phases.csv and tests.csv."""
    data_dir = Path(data_dir)
    frames = {}
    for name in SNAPSHOT_TABLES:
        file_path = data_dir / f"{name}.csv"
        if not file_path.exists():
            logger.error(f"Snapshot file not found: {file_path}")
            raise InputUnavailableError(f"Required data file not found: {file_path}")

        logger.info(f"Loading {name} data...")
        frames[name] = pd.read_csv(file_path, dtype=str)

    snapshot = ValiditySnapshot(**frames)
    logger.info(
        f"Loaded snapshot with {len(snapshot.people)} people and "
        f"{len(snapshot.vaccination_shots)} vaccination shots"
    )
    return snapshot


def snapshot_from_people(people: list[PersonSchema]) -> ValiditySnapshot:
    """Flatten request payloads into a snapshot."""
    rows: dict[str, list[dict[str, Any]]] = {name: [] for name in SNAPSHOT_TABLES}

    for person in people:
        rows["people"].append(
            {
                "person_uuid": person.uuid,
                "convalescent_externally": person.convalescent_externally,
            }
        )
        for shot in person.vaccination_shots:
            rows["vaccination_shots"].append(
                {
                    "vaccination_shot_uuid": shot.uuid,
                    "person_uuid": person.uuid,
                    "date": shot.date,
                    "vaccine_type": shot.vaccine_type,
                }
            )
        for case in person.cases:
            rows["cases"].append(
                {
                    "case_uuid": case.uuid,
                    "person_uuid": person.uuid,
                    "inserted_at": case.inserted_at,
                    "symptom_start": case.symptom_start,
                }
            )
            for phase in case.phases:
                rows["phases"].append(
                    {
                        "phase_uuid": phase.uuid,
                        "case_uuid": case.uuid,
                        "start": phase.start,
                        "end": phase.end,
                        "order_date": phase.order_date,
                        "inserted_at": phase.inserted_at,
                        "type": phase.type.value,
                    }
                )
            for test in case.tests:
                rows["tests"].append(
                    {
                        "test_uuid": test.uuid,
                        "case_uuid": case.uuid,
                        "tested_at": test.tested_at,
                        "laboratory_reported_at": test.laboratory_reported_at,
                        "result": test.result,
                    }
                )

    frames = {
        name: pd.DataFrame(
            rows[name],
            columns=ids + dates + others,
        )
        for name, (ids, dates, others) in SNAPSHOT_TABLES.items()
    }
    return ValiditySnapshot(**frames)
