import sys
import traceback
from logging import Logger
from typing import Any

from fastapi import HTTPException, status


class CustomHttpError(HTTPException):
    def __init__(
        self,
        status_code: int,
        detail: str | dict[str, Any] | list[dict[str, Any]] | None = None,
        headers: dict[str, Any] | None = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class CustomBadRequestHttpError(CustomHttpError):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class CustomNotFoundHttpError(CustomHttpError):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class CustomServiceUnavailableHttpError(CustomHttpError):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


class VaccinationValidityError(Exception):
    """Base class for errors raised by the validity computation."""


class InputUnavailableError(VaccinationValidityError):
    """The data collaborator could not supply the records for a computation."""


class PersonNotFoundError(VaccinationValidityError):
    def __init__(self, person_uuid: str):
        self.person_uuid = person_uuid
        super().__init__(f"Person {person_uuid} not found")


class CasePhaseError(VaccinationValidityError):
    """A single (case, phase) pair could not be used; the batch continues."""

    reason = "case_phase_error"

    def __init__(self, case_uuid: str, phase_uuid: str, message: str):
        self.case_uuid = case_uuid
        self.phase_uuid = phase_uuid
        self.message = message
        super().__init__(f"Case {case_uuid}, phase {phase_uuid}: {message}")


class MissingTemporalAnchorError(CasePhaseError):
    reason = "missing_temporal_anchor"


class MalformedInputDataError(CasePhaseError):
    reason = "malformed_input_data"


def log_exception_details(logger: Logger) -> None:
    exc_type, exc_value, exc_tb = sys.exc_info()
    tb = traceback.extract_tb(exc_tb)
    if tb:
        filename, lineno, func, text = tb[-1]
        logger.error(f"Exception in {filename}, line {lineno}, in {func}")
        logger.error(f"Code: {text}")
