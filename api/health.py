"""Liveness endpoint with provider availability."""

from fastapi import APIRouter, Depends

from models.gateway import ProviderName
from services.tutor_service import TutorService, get_tutor_service

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health(service: TutorService = Depends(get_tutor_service)):
    """Report liveness and whether each provider can currently be called."""
    gateway = service.gateway
    return {
        "status": "healthy",
        "providers": {
            ProviderName.PRIMARY.value: {
                "available": gateway.is_available(ProviderName.PRIMARY),
            },
            ProviderName.SECONDARY.value: {
                "configured": gateway.secondary_enabled,
                "available": gateway.secondary_enabled
                and gateway.is_available(ProviderName.SECONDARY),
            },
        },
    }
