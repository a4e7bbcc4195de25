import logging
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel

from pto_balances.api.deps import ServicesDep
from pto_balances.config import get_settings
from pto_balances.exceptions import StorageUnavailable, TableNotFoundError
from pto_balances.services.storage import BALANCES_TABLE

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["ok", "degraded", "error"]
    version: str
    environment: str


@router.get("/health", response_model=HealthResponse)
async def health(services: ServicesDep) -> HealthResponse:
    """Return the health status of the API service."""
    settings = get_settings()
    status: Literal["ok", "degraded", "error"] = "ok"

    try:
        await services.store.read_all(BALANCES_TABLE)
    except TableNotFoundError:
        pass
    except StorageUnavailable:
        logger.exception("Health check: storage connectivity failed")
        status = "degraded"

    return HealthResponse(
        status=status,
        version=settings.app_version,
        environment=settings.environment,
    )
