"""Publishing, quota and wallet routes."""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.api.deps import get_studio_service, to_http_error
from src.config import get_settings
from src.middleware.rate_limit import rate_limit_publish
from src.schemas.schemas import (
    PublishAttemptResponse,
    PublishCreate,
    PublishResponse,
    QuotaResponse,
    TierUpdate,
    WalletConnect,
    WalletResponse,
)
from src.services.errors import StudioError
from src.services.publish import PublishRequest, PublishResult
from src.services.quota import QuotaGate, ResourceClass
from src.services.studio import StudioService, StudioSession

router = APIRouter(prefix="/v1/sessions/{session_id}", tags=["Publishing"])

settings = get_settings()


def require_tier_overrides() -> None:
    """Client-declared tiers are only trusted in debug mode."""
    if not settings.debug:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "Tier is derived from the connected wallet",
                "code": "tier_override_disabled",
            },
        )


def quota_to_response(quota: QuotaGate) -> QuotaResponse:
    return QuotaResponse(
        tier=quota.tier,
        window_start=quota.window_start,
        used={r.value: quota.used(r) for r in ResourceClass},
        remaining=quota.remaining_all(),
    )


def wallet_to_response(session: StudioSession) -> WalletResponse:
    return WalletResponse(
        connected=session.wallet.is_connected,
        address=session.wallet.address or None,
        delegated_account=session.wallet.delegated_account,
        tier=session.quota.tier,
    )


def result_to_response(result: PublishResult) -> PublishResponse:
    return PublishResponse(
        status=result.status.value,
        strategy=result.strategy,
        succeeded=result.succeeded,
        failed=result.failed,
        mission_id=result.mission_id,
        attempts=[
            PublishAttemptResponse(
                version_id=a.version_id,
                success=a.success,
                storage_hash=a.storage_hash,
                storage_url=a.storage_url,
                chain_reference=a.chain_reference,
                error_kind=a.error_kind.value if a.error_kind else None,
                error=a.error,
            )
            for a in result.attempts
        ],
    )


@router.post(
    "/publish",
    response_model=PublishResponse,
    summary="Publish selected versions",
    description=(
        "Upload each selected version to content-addressed storage and record it "
        "on-chain. Versions are published one after another; per-version failures "
        "are reported in the response instead of failing the request."
    ),
)
@rate_limit_publish()
async def publish_versions(
    request: Request,
    session_id: str,
    body: PublishCreate,
    studio: StudioService = Depends(get_studio_service),
):
    publish_request = PublishRequest(
        version_ids=body.version_ids,
        title=body.title.strip() or "Untitled recording",
        description=body.description,
        tags=body.tags,
        is_public=body.is_public,
        mission_id=body.mission_id,
    )
    try:
        result = await studio.publish(session_id, publish_request)
    except StudioError as e:
        raise to_http_error(e)
    return result_to_response(result)


@router.get("/quota", response_model=QuotaResponse, summary="Weekly usage and limits")
async def get_quota(
    session_id: str,
    studio: StudioService = Depends(get_studio_service),
):
    return quota_to_response(studio.get_quota(session_id))


@router.put("/tier", response_model=QuotaResponse, summary="Change the session tier")
async def set_tier(
    session_id: str,
    body: TierUpdate,
    studio: StudioService = Depends(get_studio_service),
):
    """Counters are kept; a tier change never starts a new window."""
    require_tier_overrides()
    return quota_to_response(studio.set_tier(session_id, body.tier))


@router.put("/wallet", response_model=WalletResponse, summary="Connect a wallet")
async def connect_wallet(
    session_id: str,
    body: WalletConnect,
    studio: StudioService = Depends(get_studio_service),
):
    if body.token_tier is not None:
        require_tier_overrides()
    session = studio.connect_wallet(
        session_id, body.address, body.delegated_account, body.token_tier
    )
    return wallet_to_response(session)


@router.delete("/wallet", response_model=WalletResponse, summary="Disconnect the wallet")
async def disconnect_wallet(
    session_id: str,
    studio: StudioService = Depends(get_studio_service),
):
    return wallet_to_response(studio.disconnect_wallet(session_id))
