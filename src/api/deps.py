"""Shared API dependencies."""

from functools import lru_cache

from fastapi import HTTPException, status

from src.services.ai import AITransformService
from src.services.chain import ChainRecorder
from src.services.errors import (
    DuplicateTransformError,
    LedgerError,
    NoVersionsSelectedError,
    QuotaExceededError,
    StudioError,
    TransformError,
    ValidationError,
    VersionNotFoundError,
    WalletNotConnectedError,
)
from src.services.mission import MissionClient
from src.services.persistence import create_persistence_store
from src.services.publish import PublishPipeline
from src.services.storage import create_content_storage
from src.services.studio import StudioService


@lru_cache
def get_studio_service() -> StudioService:
    """Process-wide studio service wired from settings."""
    pipeline = PublishPipeline(
        storage=create_content_storage(),
        recorder=ChainRecorder(),
        missions=MissionClient(),
    )
    return StudioService(
        store=create_persistence_store(),
        pipeline=pipeline,
        ai_service=AITransformService(),
    )


def to_http_error(exc: StudioError) -> HTTPException:
    """Map a studio error onto an HTTP status code."""
    if isinstance(exc, NoVersionsSelectedError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, QuotaExceededError):
        code = status.HTTP_402_PAYMENT_REQUIRED
    elif isinstance(exc, (WalletNotConnectedError, DuplicateTransformError)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, VersionNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (LedgerError, ValidationError)):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, TransformError):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail={"error": exc.message, "code": exc.code})
