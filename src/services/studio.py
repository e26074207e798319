"""Studio session service: ledger, quota, wallet and draft per session."""

import base64
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from src.services.ai import AITransformService, DubResult
from src.services.errors import (
    DuplicateTransformError,
    QuotaExceededError,
    VersionNotFoundError,
)
from src.services.ledger import (
    FAMILY_AI_VOICE,
    AudioVersion,
    VersionLedger,
    ai_voice_source,
    dub_source,
)
from src.services.persistence import PersistenceStore, session_key
from src.services.publish import PublishPipeline, PublishRequest, PublishResult
from src.services.quota import QuotaCeilings, QuotaGate, ResourceClass, TokenTier, UserTier
from src.services.wallet import WalletConnection

logger = logging.getLogger(__name__)


@dataclass
class StudioSession:
    session_id: str
    ledger: VersionLedger
    quota: QuotaGate
    wallet: WalletConnection


@dataclass
class Draft:
    blob: bytes
    mime_type: str


class StudioService:
    """
    Drives the ledger, quota gate and publish pipeline on behalf of a user.

    Sessions are rebuilt from their snapshots on every call, so nothing is
    held in process memory between requests.
    """

    def __init__(
        self,
        store: PersistenceStore,
        pipeline: PublishPipeline,
        ai_service: AITransformService,
        ceilings: Optional[QuotaCeilings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.pipeline = pipeline
        self.ai_service = ai_service
        self.ceilings = ceilings
        self.clock = clock

    # ============== Session state ==============

    def load_session(self, session_id: str) -> StudioSession:
        ledger = VersionLedger.load(self.store, session_key("ledger", session_id))
        wallet = WalletConnection.from_dict(self.store.get(session_key("wallet", session_id)))

        quota_snapshot = self.store.get(session_key("quota", session_id))
        if quota_snapshot:
            quota = QuotaGate.from_snapshot(quota_snapshot, ceilings=self.ceilings, clock=self.clock)
        else:
            quota = QuotaGate(tier=wallet.user_tier, ceilings=self.ceilings, clock=self.clock)

        return StudioSession(session_id=session_id, ledger=ledger, quota=quota, wallet=wallet)

    def _save_quota(self, session: StudioSession) -> None:
        self.store.set(session_key("quota", session.session_id), session.quota.to_snapshot())

    def _save_wallet(self, session: StudioSession) -> None:
        self.store.set(session_key("wallet", session.session_id), session.wallet.to_dict())

    def reset_session(self, session_id: str) -> None:
        """Drop the recording, its versions and the draft. Quota survives."""
        session = self.load_session(session_id)
        session.ledger.clear()
        self.clear_draft(session_id)

    # ============== Recording & versions ==============

    def start_recording(
        self, session_id: str, blob: bytes, duration: float, mime_type: str = "audio/webm"
    ) -> AudioVersion:
        session = self.load_session(session_id)
        return session.ledger.seed(blob, duration, mime_type)

    def _resolve_parent(self, session: StudioSession, parent_id: Optional[str]) -> AudioVersion:
        parent_id = parent_id or session.ledger.active_version_id
        parent = session.ledger.get_version(parent_id) if parent_id else None
        if parent is None:
            raise VersionNotFoundError(parent_id or "active")
        return parent

    def _check_transform(
        self,
        session: StudioSession,
        parent: AudioVersion,
        source_or_family: str,
        resource: ResourceClass,
        duplicate_message: str,
        quota_message: str,
    ) -> None:
        """Idempotency and quota checks, run before the AI call and again after it."""
        if parent.id not in session.ledger:
            raise VersionNotFoundError(parent.id)
        if session.ledger.has_child_of_family(parent.id, source_or_family):
            raise DuplicateTransformError(duplicate_message, version_id=parent.id)
        if not session.quota.can_use(resource):
            raise QuotaExceededError(quota_message)

    async def transform_voice(
        self,
        session_id: str,
        voice_id: str,
        voice_name: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> AudioVersion:
        """
        Convert a version into another voice and append the result.

        Raises:
            VersionNotFoundError: parent missing
            DuplicateTransformError: parent already has an AI voice child
            QuotaExceededError: weekly AI voice allowance used up
        """
        session = self.load_session(session_id)
        parent = self._resolve_parent(session, parent_id)
        checks = (
            parent,
            FAMILY_AI_VOICE,
            ResourceClass.AI_VOICE,
            f"{parent.label} already has an AI voice version",
            "Weekly AI voice limit reached",
        )
        self._check_transform(session, *checks)

        blob = await self.ai_service.transform_voice(parent.blob, voice_id, parent.mime_type)

        # Other requests on this session may have run while the transform was in flight
        session = self.load_session(session_id)
        self._check_transform(session, *checks)
        version_id = session.ledger.add_version(
            blob,
            ai_voice_source(voice_id),
            parent.id,
            duration=parent.metadata.duration,
            voice_id=voice_id,
            voice_name=voice_name,
            mime_type="audio/mpeg",
        )
        session.quota.increment(ResourceClass.AI_VOICE)
        self._save_quota(session)
        return session.ledger.get_version(version_id)

    async def dub(
        self,
        session_id: str,
        target_language: str,
        source_language: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> tuple[AudioVersion, DubResult]:
        """
        Dub a version into ``target_language`` and append the result.

        Raises:
            VersionNotFoundError: parent missing
            DuplicateTransformError: parent already has a dub in that language
            QuotaExceededError: weekly dubbing allowance used up
        """
        session = self.load_session(session_id)
        parent = self._resolve_parent(session, parent_id)
        source = dub_source(target_language)
        checks = (
            parent,
            source,
            ResourceClass.DUBBING,
            f"{parent.label} is already dubbed into {target_language}",
            "Weekly dubbing limit reached",
        )
        self._check_transform(session, *checks)

        result = await self.ai_service.dub(
            parent.blob, target_language, source_language, parent.mime_type
        )

        session = self.load_session(session_id)
        self._check_transform(session, *checks)
        version_id = session.ledger.add_version(
            result.audio,
            source,
            parent.id,
            duration=parent.metadata.duration,
            language=target_language,
            voice_id=parent.metadata.voice_id,
            voice_name=parent.metadata.voice_name,
            mime_type="audio/mpeg",
        )
        session.quota.increment(ResourceClass.DUBBING)
        self._save_quota(session)
        return session.ledger.get_version(version_id), result

    # ============== Publishing ==============

    async def publish(self, session_id: str, request: PublishRequest) -> PublishResult:
        session = self.load_session(session_id)
        result = await self.pipeline.run(request, session.ledger, session.quota, session.wallet)

        # Count against the stored quota, not the one loaded before the uploads
        session = self.load_session(session_id)
        for _ in result.successful_attempts:
            session.quota.increment(ResourceClass.SAVE)
        self._save_quota(session)
        return result

    # ============== Wallet & tier ==============

    def connect_wallet(
        self,
        session_id: str,
        address: str,
        delegated_account: Optional[str] = None,
        token_tier: Optional[TokenTier] = None,
    ) -> StudioSession:
        session = self.load_session(session_id)
        session.wallet = WalletConnection(
            address=address,
            delegated_account=delegated_account,
            token_tier=TokenTier(token_tier) if token_tier else None,
        )
        session.quota.set_tier(session.wallet.user_tier)
        self._save_wallet(session)
        self._save_quota(session)
        logger.info(f"Session {session_id} connected wallet {address} as {session.quota.tier.value}")
        return session

    def disconnect_wallet(self, session_id: str) -> StudioSession:
        session = self.load_session(session_id)
        session.wallet = WalletConnection()
        session.quota.set_tier(UserTier.GUEST)
        self.store.delete(session_key("wallet", session_id))
        self._save_quota(session)
        return session

    def get_quota(self, session_id: str) -> QuotaGate:
        return self.load_session(session_id).quota

    def set_tier(self, session_id: str, tier: UserTier) -> QuotaGate:
        session = self.load_session(session_id)
        session.quota.set_tier(tier)
        self._save_quota(session)
        return session.quota

    # ============== Draft ==============

    def save_draft(self, session_id: str, blob: bytes, mime_type: str = "audio/webm") -> None:
        self.store.set(
            session_key("draft", session_id),
            {"blob_b64": base64.b64encode(blob).decode("ascii"), "mime_type": mime_type},
        )

    def get_draft(self, session_id: str) -> Optional[Draft]:
        data = self.store.get(session_key("draft", session_id))
        if not data:
            return None
        return Draft(blob=base64.b64decode(data["blob_b64"]), mime_type=data["mime_type"])

    def clear_draft(self, session_id: str) -> None:
        self.store.delete(session_key("draft", session_id))
