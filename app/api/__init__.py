from fastapi import APIRouter

from app.api.endpoints.vaccination_validity_endpoint import (
    router as vaccination_validity_endpoint,
)
from app.core.config import settings

api_v1_router = APIRouter(prefix=settings.API_V1_STR)

api_v1_router.include_router(
    vaccination_validity_endpoint,
    prefix="/vaccination-validity",
    tags=["vaccination-validity"],
)
