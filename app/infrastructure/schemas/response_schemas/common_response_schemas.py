import uuid
from typing import Any

from pydantic import BaseModel, Field


class GeneralResponse(BaseModel):
    reference_no: str = Field(default_factory=lambda: str(uuid.uuid1()))
    data: Any | None = None
    details: Any | None = None

    def dict(self, *args: Any, **kwargs: Any) -> dict[str, Any]:
        return super().model_dump(*args, exclude_none=True, **kwargs)


class HealthCheckResponse(BaseModel):
    is_alive: bool
    version: str
    root_path: str | None = None
