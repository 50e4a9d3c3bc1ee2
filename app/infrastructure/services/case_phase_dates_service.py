"""
Case Phase Dates Service

Derives, for every (case, index phase) pair, the first and last dates on
which the infection is known to have been active. The validity rule for
internally convalescent persons evaluates first shots against these dates.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from app.infrastructure.schemas.enums import LabTestResult, PhaseType
from app.infrastructure.services.validity_snapshot_service import ValiditySnapshot
from app.infrastructure.utils.exception_utils import (
    CasePhaseError,
    MalformedInputDataError,
    MissingTemporalAnchorError,
)

logger = logging.getLogger(__name__)

CASE_PHASE_DATES_COLUMNS = [
    "case_uuid",
    "phase_uuid",
    "person_uuid",
    "first_test_date",
    "last_test_date",
    "case_first_known_date",
    "case_last_known_date",
]


def _is_known(value: Any) -> bool:
    return value is not None and not pd.isna(value)


def _known(values: tuple[Any, ...]) -> list[Any]:
    return [value for value in values if _is_known(value)]


def _least(*values: Any) -> Any:
    known = _known(values)
    return min(known) if known else None


def _greatest(*values: Any) -> Any:
    known = _known(values)
    return max(known) if known else None


def _coalesce(*values: Any) -> Any:
    known = _known(values)
    return known[0] if known else None


@dataclass
class CasePhaseDatesResult:
    case_phase_dates: pd.DataFrame
    issues: list[CasePhaseError] = field(default_factory=list)


def aggregate_positive_tests(tests: pd.DataFrame) -> pd.DataFrame:
    """First and last positive test date per case.

    Both the sampling and the laboratory report date count; nulls are ignored.
    """
    positive = tests[tests["result"] == LabTestResult.POSITIVE.value]
    by_case = positive.groupby("case_uuid").agg(
        min_tested_at=("tested_at", "min"),
        min_reported_at=("laboratory_reported_at", "min"),
        max_tested_at=("tested_at", "max"),
        max_reported_at=("laboratory_reported_at", "max"),
    )
    return pd.DataFrame(
        {
            "first_test_date": by_case[["min_tested_at", "min_reported_at"]].min(axis=1),
            "last_test_date": by_case[["max_tested_at", "max_reported_at"]].max(axis=1),
        },
        index=by_case.index,
    )


def derive_phase_dates(
    phase: dict[str, Any],
    case: dict[str, Any],
    first_test_date: Any = None,
    last_test_date: Any = None,
) -> dict[str, Any]:
    """
    Derive the known dates of one index phase.

    Args:
        phase: phase record (phase_uuid, start, end, order_date, inserted_at)
        case: owning case record (case_uuid, person_uuid, symptom_start, inserted_at)
        first_test_date: earliest positive test date of the case, if any
        last_test_date: latest positive test date of the case, if any

    Returns:
        dict: one CasePhaseDates record

    Raises:
        MalformedInputDataError: the phase ends before it starts
        MissingTemporalAnchorError: no date source is available at all
    """
    start, end = phase.get("start"), phase.get("end")
    if _is_known(start) and _is_known(end) and end < start:
        raise MalformedInputDataError(
            case["case_uuid"],
            phase["phase_uuid"],
            f"phase ends ({end:%Y-%m-%d}) before it starts ({start:%Y-%m-%d})",
        )

    fallbacks = (
        phase.get("order_date"),
        phase.get("inserted_at"),
        case.get("inserted_at"),
    )
    case_first_known_date = _coalesce(
        _least(first_test_date, case.get("symptom_start"), start), *fallbacks
    )
    case_last_known_date = _coalesce(
        _greatest(last_test_date, case.get("symptom_start"), end), *fallbacks
    )
    if case_first_known_date is None or case_last_known_date is None:
        raise MissingTemporalAnchorError(
            case["case_uuid"],
            phase["phase_uuid"],
            "no test, symptom, phase, order or insertion date is known",
        )

    return {
        "case_uuid": case["case_uuid"],
        "phase_uuid": phase["phase_uuid"],
        "person_uuid": case["person_uuid"],
        "first_test_date": _coalesce(first_test_date),
        "last_test_date": _coalesce(last_test_date),
        "case_first_known_date": case_first_known_date,
        "case_last_known_date": case_last_known_date,
    }


def derive_case_phase_dates(snapshot: ValiditySnapshot) -> CasePhaseDatesResult:
    """
    Derive CasePhaseDates for every index phase of the snapshot.

    A case with several index phases yields one record per phase. Pairs that
    cannot be derived are logged and reported as issues; they never abort
    the batch.
    """
    test_dates = aggregate_positive_tests(snapshot.tests)
    cases = snapshot.cases.drop_duplicates("case_uuid").set_index(
        "case_uuid", drop=False
    )
    index_phases = snapshot.phases[snapshot.phases["type"] == PhaseType.INDEX.value]

    records = []
    issues: list[CasePhaseError] = []
    for phase in index_phases.to_dict("records"):
        case_uuid = phase["case_uuid"]
        if case_uuid not in cases.index:
            logger.warning(
                f"Phase {phase['phase_uuid']} references unknown case {case_uuid}"
            )
            continue

        case = cases.loc[case_uuid].to_dict()
        first_test_date, last_test_date = None, None
        if case_uuid in test_dates.index:
            first_test_date = test_dates.at[case_uuid, "first_test_date"]
            last_test_date = test_dates.at[case_uuid, "last_test_date"]

        try:
            records.append(
                derive_phase_dates(phase, case, first_test_date, last_test_date)
            )
        except CasePhaseError as e:
            logger.warning(f"Skipping index phase: {e}")
            issues.append(e)

    case_phase_dates = pd.DataFrame(records, columns=CASE_PHASE_DATES_COLUMNS)
    # id dtypes must match the snapshot frames for the shot merge
    for column in CASE_PHASE_DATES_COLUMNS[:3]:
        case_phase_dates[column] = case_phase_dates[column].astype(str)
    for column in CASE_PHASE_DATES_COLUMNS[3:]:
        case_phase_dates[column] = pd.to_datetime(case_phase_dates[column])

    logger.info(
        f"Derived {len(case_phase_dates)} case phase dates ({len(issues)} skipped)"
    )
    return CasePhaseDatesResult(case_phase_dates=case_phase_dates, issues=issues)
