"""
API endpoints for vaccination validity functionality.
"""

import logging
from datetime import date

from fastapi import APIRouter, HTTPException, Query, status

from app.infrastructure.schemas.request_schemas.vaccination_validity_request_schemas import (
    VaccinationValidityRequest,
)
from app.infrastructure.schemas.response_schemas.vaccination_validity_response_schemas import (
    CasePhaseDatesResponse,
    ProtectionStatusResponse,
    ReloadResponse,
    VaccinationValidityResponse,
    ValiditySummaryResponse,
)
from app.infrastructure.services.vaccination_validity_service import (
    vaccination_validity_service,
)
from app.infrastructure.utils.exception_utils import (
    CustomBadRequestHttpError,
    CustomNotFoundHttpError,
    CustomServiceUnavailableHttpError,
    InputUnavailableError,
    PersonNotFoundError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/compute",
    response_model=VaccinationValidityResponse,
    status_code=status.HTTP_200_OK,
    summary="Compute validity ranges for submitted people",
    description="""
    Compute vaccination validity ranges for the people in the request body.

    Every rule family is evaluated independently:
    - janssen: valid 22 days after the shot, for one year
    - combo threshold: 2nd+ pfizer/moderna/astra_zeneca shot, counted together
    - double dose: 2nd+ shot of the same vaccine type
    - externally / internally convalescent: 1st shot after a known infection

    Ranges are not deduplicated: a shot is listed once per rule family that
    judged it valid.
    """,
)
async def compute_vaccination_validity(
    request: VaccinationValidityRequest,
) -> VaccinationValidityResponse:
    """
    Compute validity ranges for an inline snapshot.

    Args:
        request: People with their vaccination shots, cases, phases and tests

    Returns:
        VaccinationValidityResponse: Validity ranges, metadata and skipped entities
    """
    try:
        logger.info(f"Computing vaccination validity for {len(request.people)} people")

        results = vaccination_validity_service.compute_for_people(request.people)

        logger.info(
            f"Vaccination validity computed: {results['metadata']['range_count']} ranges"
        )

        return VaccinationValidityResponse(**results)

    except InputUnavailableError as e:
        logger.error(f"Submitted data is unusable: {str(e)}")
        raise CustomBadRequestHttpError(f"Data validation error: {str(e)}")

    except Exception as e:
        logger.error(f"Unexpected error in vaccination validity computation: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during vaccination validity computation",
        )


@router.get(
    "/ranges",
    response_model=VaccinationValidityResponse,
    status_code=status.HTTP_200_OK,
    summary="Get validity ranges of all people",
    description="Compute validity ranges for every person of the configured dataset.",
)
async def get_all_validity_ranges() -> VaccinationValidityResponse:
    """
    Get validity ranges for the whole dataset.

    Raises:
        HTTPException: If the dataset is unavailable or the computation fails
    """
    try:
        results = await vaccination_validity_service.run_validity_pipeline()
        return VaccinationValidityResponse(**results)

    except InputUnavailableError as e:
        raise CustomServiceUnavailableHttpError(str(e))

    except Exception as e:
        logger.error(f"Error computing validity ranges: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error computing validity ranges",
        )


@router.get(
    "/summary",
    response_model=ValiditySummaryResponse,
    status_code=status.HTTP_200_OK,
    summary="Get validity computation summary",
    description="Get metadata of the last full computation, running one if none exists.",
)
async def get_validity_summary() -> ValiditySummaryResponse:
    try:
        summary = await vaccination_validity_service.get_summary()
        return ValiditySummaryResponse(**summary)

    except InputUnavailableError as e:
        raise CustomServiceUnavailableHttpError(str(e))

    except Exception as e:
        logger.error(f"Error generating summary: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error generating validity summary",
        )


@router.get(
    "/people/{person_uuid}",
    response_model=VaccinationValidityResponse,
    status_code=status.HTTP_200_OK,
    summary="Get validity ranges of one person",
)
async def get_person_validity(person_uuid: str) -> VaccinationValidityResponse:
    """
    Get validity ranges of a specific person.

    Args:
        person_uuid: The person identifier

    Raises:
        HTTPException: If the person is unknown or the computation fails
    """
    try:
        logger.info(f"Computing vaccination validity for person {person_uuid}")
        results = vaccination_validity_service.get_person_validity(person_uuid)
        return VaccinationValidityResponse(**results)

    except PersonNotFoundError as e:
        raise CustomNotFoundHttpError(str(e))

    except InputUnavailableError as e:
        raise CustomServiceUnavailableHttpError(str(e))

    except Exception as e:
        logger.error(f"Error computing validity for person {person_uuid}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error computing validity for person {person_uuid}",
        )


@router.get(
    "/people/{person_uuid}/protection",
    response_model=ProtectionStatusResponse,
    status_code=status.HTTP_200_OK,
    summary="Check whether a person is protected on a date",
    description="""
    Check whether any validity range of the person contains the date.

    Also returns the person's validity ranges merged into protection windows.
    """,
)
async def get_protection_status(
    person_uuid: str,
    on_date: date | None = Query(
        None, description="Date to check (YYYY-MM-DD), defaults to today"
    ),
) -> ProtectionStatusResponse:
    try:
        on_date = on_date or date.today()
        status_data = vaccination_validity_service.get_protection_status(
            person_uuid, on_date
        )
        return ProtectionStatusResponse(**status_data)

    except PersonNotFoundError as e:
        raise CustomNotFoundHttpError(str(e))

    except InputUnavailableError as e:
        raise CustomServiceUnavailableHttpError(str(e))

    except Exception as e:
        logger.error(f"Error checking protection of person {person_uuid}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error checking protection of person {person_uuid}",
        )


@router.get(
    "/case-phase-dates",
    response_model=CasePhaseDatesResponse,
    status_code=status.HTTP_200_OK,
    summary="Get derived case phase dates",
    description="First and last known dates of every index phase, with skipped phases.",
)
async def get_case_phase_dates() -> CasePhaseDatesResponse:
    try:
        return CasePhaseDatesResponse(
            **vaccination_validity_service.get_case_phase_dates()
        )

    except InputUnavailableError as e:
        raise CustomServiceUnavailableHttpError(str(e))

    except Exception as e:
        logger.error(f"Error deriving case phase dates: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error deriving case phase dates",
        )


@router.post(
    "/reload",
    response_model=ReloadResponse,
    status_code=status.HTTP_200_OK,
    summary="Reload the dataset",
    description="Re-read the CSV files of the configured data directory.",
)
async def reload_dataset() -> ReloadResponse:
    try:
        snapshot = vaccination_validity_service.reload_snapshot()
        logger.info(f"Dataset reloaded: {snapshot.counts()}")
        return ReloadResponse(**snapshot.counts())

    except InputUnavailableError as e:
        raise CustomServiceUnavailableHttpError(str(e))
