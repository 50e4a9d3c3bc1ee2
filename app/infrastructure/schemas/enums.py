"""
Enumeration types for vaccination validity computation.
"""

from enum import Enum


class VaccineType(str, Enum):
    """Vaccine types with modelled validity rules."""

    PFIZER = "pfizer"
    MODERNA = "moderna"
    ASTRA_ZENECA = "astra_zeneca"
    JANSSEN = "janssen"
    SINOPHARM = "sinopharm"
    SINOVAC = "sinovac"
    COVAXIN = "covaxin"


class PhaseType(str, Enum):
    """Case phase types."""

    INDEX = "index"
    POSSIBLE_INDEX = "possible_index"


class LabTestResult(str, Enum):
    """Laboratory test results."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    INCONCLUSIVE = "inconclusive"


class ValidityRule(str, Enum):
    """Rule family that granted a validity range."""

    JANSSEN = "janssen"
    COMBO_THRESHOLD = "combo_threshold"
    DOUBLE_DOSE = "double_dose"
    EXTERNALLY_CONVALESCENT = "externally_convalescent"
    INTERNALLY_CONVALESCENT = "internally_convalescent"


class RangeRelation(int, Enum):
    """Relation of one date range to another."""

    EMPTY = 0  # at least one range is empty, nothing holds
    LEFT = 1  # strictly left of (<<)
    RIGHT = 2  # strictly right of (>>)
    OVERLAP = 3  # shares at least one day (&&)
