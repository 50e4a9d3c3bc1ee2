"""
Comprehensive unit tests for the vaccination validity service.
Tests every rule family, the aggregation, protection status and the service layer.
"""

from datetime import date

import pandas as pd
import pytest

from app.infrastructure.schemas.request_schemas.vaccination_validity_request_schemas import (
    VaccinationValidityRequest,
)
from app.infrastructure.services.case_phase_dates_service import derive_case_phase_dates
from app.infrastructure.services.vaccination_validity_service import (
    VaccinationValidityService,
    combo_threshold_rule,
    compute_validity,
    double_dose_rule,
    externally_convalescent_rule,
    internally_convalescent_rule,
    janssen_rule,
    protection_status,
    rank_shots,
)
from app.infrastructure.utils.exception_utils import (
    InputUnavailableError,
    PersonNotFoundError,
)
from tests.fixtures.sample_data import (
    case,
    create_sample_request,
    create_snapshot,
    lab_test,
    person,
    phase,
    shot,
)


def ranges_of(frame: pd.DataFrame) -> list[tuple]:
    """(shot, rule, start, end) tuples of a range frame."""
    return [
        (row.vaccination_shot_uuid, row.rule, row.start.date(), row.end.date())
        for row in frame.itertuples(index=False)
    ]


def convalescent_snapshot(shot_date: str, **phase_dates):
    """One person with a single pfizer shot and one index phase."""
    return create_snapshot(
        people=[person("P1")],
        vaccination_shots=[shot("S1", "P1", "pfizer", shot_date)],
        cases=[case("C1", "P1")],
        phases=[phase("PH1", "C1", **phase_dates)],
    )


def internal_ranges(snapshot) -> list[tuple]:
    case_phase_dates = derive_case_phase_dates(snapshot).case_phase_dates
    return ranges_of(internally_convalescent_rule(snapshot, case_phase_dates))


class TestRankShots:
    """Test sequential shot numbering."""

    def test_ranks_by_date_within_partition(self):
        snapshot = create_snapshot(
            vaccination_shots=[
                shot("S3", "P1", "pfizer", "2021-03-01"),
                shot("S1", "P1", "pfizer", "2021-01-01"),
                shot("S2", "P2", "pfizer", "2021-02-01"),
            ]
        )
        shots = snapshot.vaccination_shots

        ranks = rank_shots(shots, ["person_uuid"])

        assert dict(zip(shots["vaccination_shot_uuid"], ranks)) == {
            "S3": 2,
            "S1": 1,
            "S2": 1,
        }

    def test_same_day_ties_broken_by_uuid(self):
        snapshot = create_snapshot(
            vaccination_shots=[
                shot("S-b", "P1", "pfizer", "2021-01-01"),
                shot("S-a", "P1", "pfizer", "2021-01-01"),
            ]
        )
        shots = snapshot.vaccination_shots

        ranks = rank_shots(shots, ["person_uuid"])

        assert dict(zip(shots["vaccination_shot_uuid"], ranks)) == {"S-a": 1, "S-b": 2}


class TestJanssenRule:
    """Test the single dose janssen rule."""

    def test_waiting_period_and_one_year(self):
        snapshot = create_snapshot(
            people=[person("P1")],
            vaccination_shots=[shot("S1", "P1", "janssen", "2021-01-01")],
        )

        assert ranges_of(janssen_rule(snapshot)) == [
            ("S1", "janssen", date(2021, 1, 23), date(2022, 1, 23))
        ]

    def test_leap_day_adds_year_before_days(self):
        snapshot = create_snapshot(
            people=[person("P1")],
            vaccination_shots=[shot("S1", "P1", "janssen", "2020-02-29")],
        )

        assert ranges_of(janssen_rule(snapshot)) == [
            ("S1", "janssen", date(2020, 3, 22), date(2021, 3, 22))
        ]

    def test_every_janssen_shot_counts(self):
        snapshot = create_snapshot(
            people=[person("P1")],
            vaccination_shots=[
                shot("S1", "P1", "janssen", "2021-01-01"),
                shot("S2", "P1", "janssen", "2021-06-01"),
                shot("S3", "P1", "pfizer", "2021-07-01"),
            ],
        )

        assert [r[0] for r in ranges_of(janssen_rule(snapshot))] == ["S1", "S2"]


class TestComboThresholdRule:
    """Test the combined pfizer/moderna/astra_zeneca threshold."""

    def test_mixed_types_count_together(self):
        snapshot = create_snapshot(
            people=[person("P1")],
            vaccination_shots=[
                shot("S1", "P1", "pfizer", "2021-01-01"),
                shot("S2", "P1", "moderna", "2021-02-01"),
                shot("S3", "P1", "astra_zeneca", "2021-09-01"),
            ],
        )

        assert ranges_of(combo_threshold_rule(snapshot)) == [
            ("S2", "combo_threshold", date(2021, 2, 1), date(2022, 2, 1)),
            ("S3", "combo_threshold", date(2021, 9, 1), date(2022, 9, 1)),
        ]

    def test_other_types_do_not_count(self):
        snapshot = create_snapshot(
            people=[person("P1")],
            vaccination_shots=[
                shot("S1", "P1", "sinovac", "2021-01-01"),
                shot("S2", "P1", "pfizer", "2021-02-01"),
            ],
        )

        assert combo_threshold_rule(snapshot).empty

    def test_shots_of_different_people_are_not_combined(self):
        snapshot = create_snapshot(
            people=[person("P1"), person("P2")],
            vaccination_shots=[
                shot("S1", "P1", "pfizer", "2021-01-01"),
                shot("S2", "P2", "pfizer", "2021-02-01"),
            ],
        )

        assert combo_threshold_rule(snapshot).empty


class TestDoubleDoseRule:
    """Test the per vaccine type double dose rule."""

    def test_second_shot_of_same_type(self):
        snapshot = create_snapshot(
            people=[person("P1")],
            vaccination_shots=[
                shot("S1", "P1", "sinovac", "2021-01-01"),
                shot("S2", "P1", "sinovac", "2021-02-01"),
            ],
        )

        assert ranges_of(double_dose_rule(snapshot)) == [
            ("S2", "double_dose", date(2021, 2, 1), date(2022, 2, 1))
        ]

    def test_mixed_types_are_counted_separately(self):
        snapshot = create_snapshot(
            people=[person("P1")],
            vaccination_shots=[
                shot("S1", "P1", "pfizer", "2021-01-01"),
                shot("S2", "P1", "moderna", "2021-02-01"),
            ],
        )

        assert double_dose_rule(snapshot).empty

    def test_janssen_is_not_a_double_dose_type(self):
        snapshot = create_snapshot(
            people=[person("P1")],
            vaccination_shots=[
                shot("S1", "P1", "janssen", "2021-01-01"),
                shot("S2", "P1", "janssen", "2021-02-01"),
            ],
        )

        assert double_dose_rule(snapshot).empty


class TestExternallyConvalescentRule:
    """Test the first shot rule for people infected outside the system."""

    def test_first_shot_is_valid(self):
        snapshot = create_snapshot(
            people=[person("P1", convalescent_externally=True)],
            vaccination_shots=[shot("S1", "P1", "moderna", "2021-03-01")],
        )

        assert ranges_of(externally_convalescent_rule(snapshot)) == [
            ("S1", "externally_convalescent", date(2021, 3, 1), date(2022, 3, 1))
        ]

    def test_first_shot_per_vaccine_type(self):
        snapshot = create_snapshot(
            people=[person("P1", convalescent_externally=True)],
            vaccination_shots=[
                shot("S1", "P1", "moderna", "2021-03-01"),
                shot("S2", "P1", "moderna", "2021-04-01"),
                shot("S3", "P1", "pfizer", "2021-05-01"),
            ],
        )

        assert [r[0] for r in ranges_of(externally_convalescent_rule(snapshot))] == [
            "S1",
            "S3",
        ]

    def test_not_convalescent(self):
        snapshot = create_snapshot(
            people=[person("P1")],
            vaccination_shots=[shot("S1", "P1", "moderna", "2021-03-01")],
        )

        assert externally_convalescent_rule(snapshot).empty


class TestInternallyConvalescentRule:
    """Test the first shot rule evaluated against index phases.

    Phase 2021-01-01..2021-01-15 without tests gives the case window
    [2020-12-04, 2021-02-12).
    """

    def test_case_window_left_of_shot_window(self):
        snapshot = convalescent_snapshot("2021-06-01", start="2021-01-01", end="2021-01-15")

        assert internal_ranges(snapshot) == [
            ("S1", "internally_convalescent", date(2021, 6, 1), date(2022, 6, 1))
        ]

    def test_adjacent_windows_count_as_left(self):
        snapshot = convalescent_snapshot("2021-02-12", start="2021-01-01", end="2021-01-15")

        assert internal_ranges(snapshot) == [
            ("S1", "internally_convalescent", date(2021, 2, 12), date(2022, 2, 12))
        ]

    def test_overlap_starts_four_weeks_after_last_known_date(self):
        snapshot = convalescent_snapshot("2021-01-10", start="2021-01-01", end="2021-01-15")

        assert internal_ranges(snapshot) == [
            ("S1", "internally_convalescent", date(2021, 2, 12), date(2022, 1, 10))
        ]

    def test_case_window_right_of_shot_window(self):
        snapshot = convalescent_snapshot("2019-06-01", start="2021-01-01", end="2021-01-15")

        assert internal_ranges(snapshot) == []

    def test_overlap_leaving_an_empty_range(self):
        """Infection ending just before the shot window ends yields nothing."""
        snapshot = convalescent_snapshot("2021-01-10", start="2021-12-01", end="2021-12-20")

        assert internal_ranges(snapshot) == []

    def test_first_positive_test_opens_case_window(self):
        """Window starts four weeks before the first positive test."""
        snapshot = create_snapshot(
            people=[person("P1")],
            vaccination_shots=[shot("S1", "P1", "pfizer", "2021-02-10")],
            cases=[case("C1", "P1")],
            phases=[phase("PH1", "C1", start="2021-03-01", end="2021-03-05")],
            tests=[lab_test("T1", "C1", tested_at="2021-03-15")],
        )

        # window [2021-02-15, 2021-04-12) overlaps the shot window
        assert internal_ranges(snapshot) == [
            ("S1", "internally_convalescent", date(2021, 4, 12), date(2022, 2, 10))
        ]

    def test_every_index_phase_is_evaluated(self):
        """The same first shot is checked against each index phase."""
        snapshot = create_snapshot(
            people=[person("P1")],
            vaccination_shots=[shot("S1", "P1", "pfizer", "2021-01-10")],
            cases=[case("C1", "P1")],
            phases=[
                phase("PH1", "C1", start="2021-01-01", end="2021-01-15"),
                phase("PH2", "C1", start="2021-03-01", end="2021-03-10"),
            ],
        )

        assert sorted(internal_ranges(snapshot)) == [
            ("S1", "internally_convalescent", date(2021, 2, 12), date(2022, 1, 10)),
            ("S1", "internally_convalescent", date(2021, 4, 7), date(2022, 1, 10)),
        ]

    def test_only_first_shot_per_type(self):
        snapshot = create_snapshot(
            people=[person("P1")],
            vaccination_shots=[
                shot("S1", "P1", "pfizer", "2021-06-01"),
                shot("S2", "P1", "pfizer", "2021-07-01"),
            ],
            cases=[case("C1", "P1")],
            phases=[phase("PH1", "C1", start="2021-01-01", end="2021-01-15")],
        )

        assert [r[0] for r in internal_ranges(snapshot)] == ["S1"]

    def test_no_case_phase_dates(self):
        snapshot = create_snapshot(
            people=[person("P1")],
            vaccination_shots=[shot("S1", "P1", "pfizer", "2021-06-01")],
        )

        assert internal_ranges(snapshot) == []


class TestComputeValidity:
    """Test aggregation of all rule families."""

    def test_two_pfizer_shots_keep_duplicate_ranges(self):
        """combo threshold and double dose both grant the second shot."""
        snapshot = create_snapshot(
            people=[person("P1")],
            vaccination_shots=[
                shot("S1", "P1", "pfizer", "2021-01-01"),
                shot("S2", "P1", "pfizer", "2021-02-01"),
            ],
        )

        computation = compute_validity(snapshot)

        assert ranges_of(computation.ranges) == [
            ("S2", "combo_threshold", date(2021, 2, 1), date(2022, 2, 1)),
            ("S2", "double_dose", date(2021, 2, 1), date(2022, 2, 1)),
        ]
        assert computation.rule_counts() == {
            "janssen": 0,
            "combo_threshold": 1,
            "double_dose": 1,
            "externally_convalescent": 0,
            "internally_convalescent": 0,
        }

    def test_sample_snapshot(self, sample_snapshot):
        computation = compute_validity(sample_snapshot)

        assert computation.person_count == 4
        assert ranges_of(computation.ranges) == [
            ("S002", "combo_threshold", date(2021, 2, 1), date(2022, 2, 1)),
            ("S002", "double_dose", date(2021, 2, 1), date(2022, 2, 1)),
            ("S003", "externally_convalescent", date(2021, 3, 1), date(2022, 3, 1)),
            ("S004", "janssen", date(2021, 1, 23), date(2022, 1, 23)),
            ("S005", "internally_convalescent", date(2021, 6, 1), date(2022, 6, 1)),
        ]

    def test_unmodelled_vaccine_type_is_reported(self, sample_snapshot):
        computation = compute_validity(sample_snapshot)

        issues = computation.issue_records()

        assert issues == [
            {
                "reason": "unmodelled_vaccine_type",
                "message": "Shot S006 has unmodelled vaccine type 'novavax'",
                "vaccination_shot_uuid": "S006",
            }
        ]
        assert "S006" not in set(computation.ranges["vaccination_shot_uuid"])

    def test_shot_without_date_is_reported(self):
        snapshot = create_snapshot(
            people=[person("P1")],
            vaccination_shots=[shot("S1", "P1", "janssen", None)],
        )

        computation = compute_validity(snapshot)

        assert computation.ranges.empty
        assert computation.issue_records()[0]["reason"] == "missing_shot_date"

    def test_case_phase_issues_do_not_abort(self):
        snapshot = create_snapshot(
            people=[person("P1"), person("P2")],
            vaccination_shots=[
                shot("S1", "P1", "pfizer", "2021-06-01"),
                shot("S2", "P2", "janssen", "2021-01-01"),
            ],
            cases=[case("C1", "P1", inserted_at=None)],
            phases=[phase("PH1", "C1")],
        )

        computation = compute_validity(snapshot)

        assert [r[1] for r in ranges_of(computation.ranges)] == ["janssen"]
        assert computation.issue_records()[0]["reason"] == "missing_temporal_anchor"
        assert computation.issue_records()[0]["phase_uuid"] == "PH1"

    def test_idempotent(self, sample_snapshot):
        first = compute_validity(sample_snapshot)
        second = compute_validity(sample_snapshot)

        pd.testing.assert_frame_equal(first.ranges, second.ranges)

    def test_input_order_does_not_change_result(self):
        """Same-day shots are numbered by uuid, whatever the input order."""
        shots = [
            shot("S-a", "P1", "pfizer", "2021-01-01"),
            shot("S-b", "P1", "pfizer", "2021-01-01"),
        ]
        forward = compute_validity(
            create_snapshot(people=[person("P1")], vaccination_shots=shots)
        )
        backward = compute_validity(
            create_snapshot(people=[person("P1")], vaccination_shots=shots[::-1])
        )

        pd.testing.assert_frame_equal(forward.ranges, backward.ranges)
        assert set(forward.ranges["vaccination_shot_uuid"]) == {"S-b"}

    def test_empty_snapshot(self):
        computation = compute_validity(create_snapshot())

        assert computation.ranges.empty
        assert computation.person_count == 0
        assert computation.issue_records() == []

    def test_restricted_to_one_person(self, sample_snapshot):
        computation = compute_validity(sample_snapshot, "P003")

        assert computation.person_count == 1
        assert set(computation.ranges["person_uuid"]) == {"P003"}

    def test_unknown_person(self, sample_snapshot):
        with pytest.raises(PersonNotFoundError):
            compute_validity(sample_snapshot, "P404")

    def test_does_not_modify_snapshot(self, sample_snapshot):
        shots_before = sample_snapshot.vaccination_shots.copy()

        compute_validity(sample_snapshot)

        pd.testing.assert_frame_equal(sample_snapshot.vaccination_shots, shots_before)


class TestProtectionStatus:
    """Test protection checks on a date."""

    @pytest.fixture
    def computation(self, sample_snapshot):
        return compute_validity(sample_snapshot, "P001")

    def test_protected_on_date(self, computation):
        status = protection_status(computation, "P001", date(2021, 6, 1))

        assert status["is_protected"] is True
        assert {r["rule"] for r in status["covering_ranges"]} == {
            "combo_threshold",
            "double_dose",
        }
        assert status["protection_windows"] == [
            {"start": date(2021, 2, 1), "end": date(2022, 2, 1)}
        ]

    def test_end_date_is_exclusive(self, computation):
        status = protection_status(computation, "P001", date(2022, 2, 1))

        assert status["is_protected"] is False
        assert status["covering_ranges"] == []

    def test_before_second_shot(self, computation):
        assert not protection_status(computation, "P001", date(2021, 1, 15))["is_protected"]


class TestVaccinationValidityService:
    """Test the service layer."""

    def test_snapshot_is_loaded_once(self, fresh_service):
        snapshot = fresh_service.get_snapshot()

        assert fresh_service.get_snapshot() is snapshot
        assert snapshot.counts()["people"] == 4

    def test_reload_replaces_snapshot(self, fresh_service):
        first = fresh_service.get_snapshot()
        fresh_service.last_computation = object()

        second = fresh_service.reload_snapshot()

        assert second is not first
        assert fresh_service.last_computation is None

    @pytest.mark.asyncio
    async def test_run_validity_pipeline(self, fresh_service):
        results = await fresh_service.run_validity_pipeline()

        assert results["metadata"]["person_count"] == 4
        assert results["metadata"]["range_count"] == 5
        assert results["metadata"]["rule_counts"]["janssen"] == 1
        assert len(results["issues"]) == 1
        assert fresh_service.last_computation is not None

    @pytest.mark.asyncio
    async def test_summary_runs_pipeline_when_needed(self, fresh_service):
        summary = await fresh_service.get_summary()

        assert summary["range_count"] == 5
        assert summary["issue_count"] == 1
        assert summary["description"] == "Vaccination validity summary"

    @pytest.mark.asyncio
    async def test_pipeline_missing_data(self, test_data_dir):
        service = VaccinationValidityService(data_dir=test_data_dir / "missing")

        with pytest.raises(InputUnavailableError):
            await service.run_validity_pipeline()

    def test_get_person_validity(self, fresh_service):
        results = fresh_service.get_person_validity("P003")

        assert results["ranges"] == [
            {
                "person_uuid": "P003",
                "vaccination_shot_uuid": "S004",
                "rule": "janssen",
                "start": date(2021, 1, 23),
                "end": date(2022, 1, 23),
            }
        ]

    def test_get_protection_status(self, fresh_service):
        status = fresh_service.get_protection_status("P002", date(2021, 3, 1))

        assert status["is_protected"] is True

    def test_get_case_phase_dates(self, fresh_service):
        results = fresh_service.get_case_phase_dates()

        assert results["case_phase_dates"] == [
            {
                "case_uuid": "C001",
                "phase_uuid": "PH001",
                "person_uuid": "P004",
                "first_test_date": None,
                "last_test_date": None,
                "case_first_known_date": date(2021, 1, 1),
                "case_last_known_date": date(2021, 1, 15),
            }
        ]
        assert results["issues"] == []

    def test_compute_for_people(self):
        request = VaccinationValidityRequest(**create_sample_request())

        results = VaccinationValidityService().compute_for_people(request.people)

        assert results["metadata"]["person_count"] == 2
        assert [(r["vaccination_shot_uuid"], r["rule"], r["start"]) for r in results["ranges"]] == [
            ("S002", "combo_threshold", date(2021, 2, 1)),
            ("S002", "double_dose", date(2021, 2, 1)),
            ("S005", "internally_convalescent", date(2021, 2, 12)),
        ]
