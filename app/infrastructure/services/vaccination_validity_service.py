#!/usr/bin/env python3
"""
Vaccination Validity Service

Computes, for every vaccination shot, the date ranges during which the shot
counts as protection. Five rule families are evaluated independently and
their results are concatenated:

- janssen: single dose, valid after a 22 day waiting period for one year
- combo threshold: 2nd+ shot of pfizer/moderna/astra_zeneca combined
- double dose: 2nd+ shot of the same vaccine type
- externally convalescent: 1st shot of a person infected outside the system
- internally convalescent: 1st shot evaluated against the person's index phases

Ranges are never deduplicated or merged. A shot judged valid by several
families appears once per family; callers needing a single window per shot
must union the ranges themselves (see ``merge_date_ranges``).
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from app.core.config import data_directory
from app.infrastructure.schemas.enums import RangeRelation, ValidityRule, VaccineType
from app.infrastructure.schemas.request_schemas.vaccination_validity_request_schemas import (
    PersonSchema,
)
from app.infrastructure.services.case_phase_dates_service import (
    CASE_PHASE_DATES_COLUMNS,
    derive_case_phase_dates,
)
from app.infrastructure.services.validity_snapshot_service import (
    ValiditySnapshot,
    load_snapshot_from_csv,
    snapshot_from_people,
)
from app.infrastructure.utils.date_range_utils import (
    CONVALESCENT_SLACK,
    WAITING_PERIOD,
    DateRange,
    add_years,
    as_date,
    merge_date_ranges,
    range_relations,
    to_day_numbers,
)
from app.infrastructure.utils.exception_utils import (
    CasePhaseError,
    log_exception_details,
)

logger = logging.getLogger(__name__)

RANGE_COLUMNS = ["person_uuid", "vaccination_shot_uuid", "rule", "start", "end"]

JANSSEN_TYPES = {VaccineType.JANSSEN.value}
COMBO_TYPES = {
    VaccineType.PFIZER.value,
    VaccineType.MODERNA.value,
    VaccineType.ASTRA_ZENECA.value,
}
DOUBLE_DOSE_TYPES = COMBO_TYPES | {
    VaccineType.SINOPHARM.value,
    VaccineType.SINOVAC.value,
    VaccineType.COVAXIN.value,
}
MODELLED_TYPES = JANSSEN_TYPES | DOUBLE_DOSE_TYPES


# ---------------- Helpers ----------------
def rank_shots(shots: pd.DataFrame, partition: list[str]) -> pd.Series:
    """
    Sequential shot number within each partition, starting at 1.

    Shots are ordered by date, ties by shot uuid, so the numbering does not
    depend on input order.
    """
    ordered = shots.sort_values(["date", "vaccination_shot_uuid"], kind="mergesort")
    ranks = ordered.groupby(partition, sort=False).cumcount() + 1
    return ranks.reindex(shots.index)


def _shots_of_types(snapshot: ValiditySnapshot, types: set[str]) -> pd.DataFrame:
    shots = snapshot.vaccination_shots
    return shots[shots["vaccine_type"].isin(types) & shots["date"].notna()]


def _ranges(
    shots: pd.DataFrame, rule: ValidityRule, starts: Any, ends: Any
) -> pd.DataFrame:
    """Build range rows for ``shots``; null or empty ranges are dropped."""
    ranges = pd.DataFrame(
        {
            "person_uuid": shots["person_uuid"].to_numpy(),
            "vaccination_shot_uuid": shots["vaccination_shot_uuid"].to_numpy(),
            "rule": np.full(len(shots), rule.value, dtype=object),
            "start": np.asarray(starts, dtype="datetime64[ns]"),
            "end": np.asarray(ends, dtype="datetime64[ns]"),
        },
        columns=RANGE_COLUMNS,
    )
    valid = ranges["start"].notna() & ranges["end"].notna()
    valid &= ranges["start"] < ranges["end"]
    return ranges[valid].reset_index(drop=True)


# ---------------- Rule families ----------------
def janssen_rule(snapshot: ValiditySnapshot) -> pd.DataFrame:
    """Every janssen shot is valid for [date + 22d, date + 1y + 22d)."""
    shots = _shots_of_types(snapshot, JANSSEN_TYPES)
    # PostgreSQL adds '1 year 22 day' years first, then days
    return _ranges(
        shots,
        ValidityRule.JANSSEN,
        shots["date"] + WAITING_PERIOD,
        add_years(shots["date"]) + WAITING_PERIOD,
    )


def combo_threshold_rule(snapshot: ValiditySnapshot) -> pd.DataFrame:
    """From the 2nd pfizer/moderna/astra_zeneca shot on, counted together."""
    shots = _shots_of_types(snapshot, COMBO_TYPES)
    shots = shots[rank_shots(shots, ["person_uuid"]) >= 2]
    return _ranges(
        shots, ValidityRule.COMBO_THRESHOLD, shots["date"], add_years(shots["date"])
    )


def double_dose_rule(snapshot: ValiditySnapshot) -> pd.DataFrame:
    """From the 2nd shot of the same vaccine type on."""
    shots = _shots_of_types(snapshot, DOUBLE_DOSE_TYPES)
    shots = shots[rank_shots(shots, ["person_uuid", "vaccine_type"]) >= 2]
    return _ranges(
        shots, ValidityRule.DOUBLE_DOSE, shots["date"], add_years(shots["date"])
    )


def externally_convalescent_rule(snapshot: ValiditySnapshot) -> pd.DataFrame:
    """1st shot per vaccine type of people infected outside the system."""
    people = snapshot.people
    convalescent = set(people.loc[people["convalescent_externally"], "person_uuid"])

    shots = _shots_of_types(snapshot, DOUBLE_DOSE_TYPES)
    shots = shots[rank_shots(shots, ["person_uuid", "vaccine_type"]) == 1]
    shots = shots[shots["person_uuid"].isin(convalescent)]
    return _ranges(
        shots,
        ValidityRule.EXTERNALLY_CONVALESCENT,
        shots["date"],
        add_years(shots["date"]),
    )


def internally_convalescent_rule(
    snapshot: ValiditySnapshot, case_phase_dates: pd.DataFrame
) -> pd.DataFrame:
    """
    1st shot per vaccine type, evaluated against every index phase of the person.

    Shots are numbered before they are joined with the phases, not over the
    joined shot x phase rows. A person with two index phases therefore gets
    the same first shot checked against each phase.

    With the case window W = [first test (or first known date) - 4w,
    last known date + 4w) and the shot window S = [date, date + 1y):

    - W << S: valid for all of S
    - W >> S: not valid
    - W && S: valid from last known date + 4w until the end of S
    """
    shots = _shots_of_types(snapshot, DOUBLE_DOSE_TYPES)
    shots = shots[rank_shots(shots, ["person_uuid", "vaccine_type"]) == 1]
    pairs = shots.merge(
        case_phase_dates[CASE_PHASE_DATES_COLUMNS], on="person_uuid", how="inner"
    )

    case_window_start = (
        pairs["first_test_date"].fillna(pairs["case_first_known_date"])
        - CONVALESCENT_SLACK
    )
    case_window_end = pairs["case_last_known_date"] + CONVALESCENT_SLACK
    shot_window_end = add_years(pairs["date"])

    relations = range_relations(
        to_day_numbers(case_window_start),
        to_day_numbers(case_window_end),
        to_day_numbers(pairs["date"]),
        to_day_numbers(shot_window_end),
    )
    starts = np.select(
        [
            relations == RangeRelation.LEFT.value,
            relations == RangeRelation.OVERLAP.value,
        ],
        [pairs["date"].to_numpy(), case_window_end.to_numpy()],
        default=np.datetime64("NaT", "ns"),
    )
    return _ranges(
        pairs, ValidityRule.INTERNALLY_CONVALESCENT, starts, shot_window_end
    )


# ---------------- Aggregation ----------------
@dataclass
class ValidityComputation:
    ranges: pd.DataFrame
    case_phase_dates: pd.DataFrame
    person_count: int
    issues: list[CasePhaseError] = field(default_factory=list)
    unmodelled_shots: pd.DataFrame | None = None

    def rule_counts(self) -> dict[str, int]:
        counts = self.ranges["rule"].value_counts()
        return {rule.value: int(counts.get(rule.value, 0)) for rule in ValidityRule}

    def range_records(self) -> list[dict[str, Any]]:
        return [
            {
                "person_uuid": row.person_uuid,
                "vaccination_shot_uuid": row.vaccination_shot_uuid,
                "rule": row.rule,
                "start": as_date(row.start),
                "end": as_date(row.end),
            }
            for row in self.ranges.itertuples(index=False)
        ]

    def issue_records(self) -> list[dict[str, Any]]:
        return issue_records(self.issues, self.unmodelled_shots)


def issue_records(
    issues: list[CasePhaseError], unmodelled_shots: pd.DataFrame | None = None
) -> list[dict[str, Any]]:
    """Skipped phases and shots, in response format."""
    records = [
        {
            "reason": issue.reason,
            "message": str(issue),
            "case_uuid": issue.case_uuid,
            "phase_uuid": issue.phase_uuid,
        }
        for issue in issues
    ]
    if unmodelled_shots is None:
        return records

    for shot in unmodelled_shots.itertuples(index=False):
        if pd.isna(shot.date):
            reason = "missing_shot_date"
            message = f"Shot {shot.vaccination_shot_uuid} has no date"
        else:
            reason = "unmodelled_vaccine_type"
            message = (
                f"Shot {shot.vaccination_shot_uuid} has unmodelled "
                f"vaccine type '{shot.vaccine_type}'"
            )
        records.append(
            {
                "reason": reason,
                "message": message,
                "vaccination_shot_uuid": shot.vaccination_shot_uuid,
            }
        )
    return records


def compute_validity(
    snapshot: ValiditySnapshot, person_uuid: str | None = None
) -> ValidityComputation:
    """
    Run all five rule families over the snapshot, or over one person.

    Raises:
        PersonNotFoundError: ``person_uuid`` is not part of the snapshot
    """
    if person_uuid is not None:
        snapshot = snapshot.for_person(person_uuid)

    shots = snapshot.vaccination_shots
    unmodelled = shots[~shots["vaccine_type"].isin(MODELLED_TYPES) | shots["date"].isna()]
    if not unmodelled.empty:
        logger.warning(
            f"Ignoring {len(unmodelled)} shots without date or with unmodelled "
            f"vaccine type: {sorted(unmodelled['vaccine_type'].unique())}"
        )

    case_phase_result = derive_case_phase_dates(snapshot)

    ranges = pd.concat(
        [
            janssen_rule(snapshot),
            combo_threshold_rule(snapshot),
            double_dose_rule(snapshot),
            externally_convalescent_rule(snapshot),
            internally_convalescent_rule(snapshot, case_phase_result.case_phase_dates),
        ],
        ignore_index=True,
    )
    ranges = ranges.sort_values(RANGE_COLUMNS, kind="mergesort").reset_index(drop=True)

    return ValidityComputation(
        ranges=ranges,
        case_phase_dates=case_phase_result.case_phase_dates,
        person_count=len(snapshot.people),
        issues=case_phase_result.issues,
        unmodelled_shots=unmodelled.reset_index(drop=True),
    )


def protection_status(
    computation: ValidityComputation, person_uuid: str, on_date: date
) -> dict[str, Any]:
    """Whether any validity range of the person contains ``on_date``."""
    records = [
        (record, DateRange.from_bounds(record["start"], record["end"]))
        for record in computation.range_records()
        if record["person_uuid"] == person_uuid
    ]
    covering = [record for record, window in records if window.contains(on_date)]
    windows = merge_date_ranges([window for _, window in records])
    return {
        "person_uuid": person_uuid,
        "on_date": on_date,
        "is_protected": bool(covering),
        "covering_ranges": covering,
        "protection_windows": [
            {"start": window.start, "end": window.end} for window in windows
        ],
    }


# ---------------- Service ----------------
class VaccinationValidityService:
    """
    Service computing vaccination validity for the configured dataset.

    The CSV snapshot is loaded lazily and kept until ``reload_snapshot`` is
    called; computations never modify it.
    """

    def __init__(self, data_dir: Path | str | None = None):
        self.data_dir = Path(data_dir) if data_dir is not None else data_directory
        self.snapshot: ValiditySnapshot | None = None
        self.last_computation: ValidityComputation | None = None

    def reload_snapshot(self) -> ValiditySnapshot:
        """Load the CSV snapshot from the data directory."""
        snapshot = load_snapshot_from_csv(self.data_dir)
        self.snapshot = snapshot
        self.last_computation = None
        return snapshot

    def get_snapshot(self) -> ValiditySnapshot:
        if self.snapshot is None:
            return self.reload_snapshot()
        return self.snapshot

    @staticmethod
    def format_computation(
        computation: ValidityComputation, description: str
    ) -> dict[str, Any]:
        return {
            "metadata": {
                "description": description,
                "generated_at": datetime.now().isoformat(),
                "person_count": computation.person_count,
                "range_count": len(computation.ranges),
                "rule_counts": computation.rule_counts(),
                "data_format_version": "1.0",
            },
            "ranges": computation.range_records(),
            "issues": computation.issue_records(),
        }

    async def run_validity_pipeline(self) -> dict[str, Any]:
        """Compute validity ranges for every person of the snapshot."""
        try:
            logger.info("Starting vaccination validity pipeline...")

            computation = compute_validity(self.get_snapshot())
            self.last_computation = computation

            logger.info(
                f"Vaccination validity pipeline completed: "
                f"{len(computation.ranges)} ranges for {computation.person_count} people"
            )
            return self.format_computation(
                computation, "Vaccination validity for all people"
            )

        except Exception as e:
            logger.error(f"Error in vaccination validity pipeline: {str(e)}")
            log_exception_details(logger)
            raise

    async def get_summary(self) -> dict[str, Any]:
        """Metadata of the last full computation, running one if needed."""
        if self.last_computation is None:
            logger.info("No previous computation found, running validity pipeline")
            await self.run_validity_pipeline()

        summary = self.format_computation(
            self.last_computation, "Vaccination validity summary"
        )
        return {**summary["metadata"], "issue_count": len(summary["issues"])}

    def get_person_validity(self, person_uuid: str) -> dict[str, Any]:
        computation = compute_validity(self.get_snapshot(), person_uuid)
        return self.format_computation(
            computation, f"Vaccination validity for person {person_uuid}"
        )

    def get_protection_status(self, person_uuid: str, on_date: date) -> dict[str, Any]:
        computation = compute_validity(self.get_snapshot(), person_uuid)
        return protection_status(computation, person_uuid, on_date)

    def get_case_phase_dates(self) -> dict[str, Any]:
        result = derive_case_phase_dates(self.get_snapshot())
        date_columns = CASE_PHASE_DATES_COLUMNS[3:]
        records = [
            {
                column: as_date(value) if column in date_columns else value
                for column, value in record.items()
            }
            for record in result.case_phase_dates.to_dict("records")
        ]
        return {"case_phase_dates": records, "issues": issue_records(result.issues)}

    def compute_for_people(self, people: list[PersonSchema]) -> dict[str, Any]:
        """Compute validity for an inline snapshot posted by a caller."""
        computation = compute_validity(snapshot_from_people(people))
        return self.format_computation(
            computation, "Vaccination validity for submitted people"
        )


# Service instance
vaccination_validity_service = VaccinationValidityService()
