"""Health check and system info routes."""

from fastapi import APIRouter, Depends

from src.api.deps import get_studio_service, to_http_error
from src.config import get_settings
from src.schemas.schemas import HealthResponse, LanguageInfo, VoiceInfoResponse
from src.services.errors import StudioError
from src.services.studio import StudioService

router = APIRouter(tags=["System"])

settings = get_settings()

SERVICE_VERSION = "1.0.0"


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the service and its dependencies.",
)
async def health_check(studio: StudioService = Depends(get_studio_service)):
    """
    Health check endpoint.

    Returns the status of:
    - Persistence store (Redis)
    - Content storage
    """
    persistence_status = "ok"
    check = getattr(studio.store, "health_check", None)
    if check is not None and not check():
        persistence_status = "error"

    storage_status = "ok" if studio.pipeline.storage.health_check() else "error"

    overall_status = "healthy"
    if "error" in (persistence_status, storage_status):
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=SERVICE_VERSION,
        persistence=persistence_status,
        storage=storage_status,
    )


@router.get(
    "/v1/languages",
    response_model=list[LanguageInfo],
    summary="List dubbing languages",
)
async def list_languages():
    return [
        LanguageInfo(code=code, name=name)
        for code, name in settings.dubbing_languages.items()
    ]


@router.get(
    "/v1/voices",
    response_model=list[VoiceInfoResponse],
    summary="List AI voices",
)
async def list_voices(studio: StudioService = Depends(get_studio_service)):
    try:
        voices = await studio.ai_service.list_voices()
    except StudioError as e:
        raise to_http_error(e)
    return [
        VoiceInfoResponse(voice_id=v.voice_id, name=v.name, description=v.description)
        for v in voices
    ]


@router.get(
    "/v1/info",
    summary="Service information",
    description="Get general information about the service.",
)
async def service_info():
    """Get service information."""
    return {
        "name": settings.app_name,
        "version": SERVICE_VERSION,
        "environment": settings.app_env,
        "storage_provider": settings.storage_provider,
        "weekly_limits": {
            "save": settings.weekly_save_limit,
            "ai_voice": settings.weekly_ai_voice_limit,
            "dubbing": settings.weekly_dubbing_limit,
        },
        "documentation": "/docs",
        "redoc": "/redoc",
    }
