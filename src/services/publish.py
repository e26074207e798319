"""Publish pipeline: selected ledger versions -> content storage -> on-chain record."""

import enum
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from src.services.chain import (
    ChainRecord,
    ChainRecorder,
    CommitStrategy,
    select_commit_strategy,
    strategy_name,
)
from src.services.errors import (
    NoVersionsSelectedError,
    QuotaExceededError,
    WalletNotConnectedError,
)
from src.services.ledger import AudioVersion, VersionLedger
from src.services.mission import MissionClient
from src.services.quota import QuotaGate, ResourceClass, UserTier
from src.services.storage import ContentStorage, UploadMetadata, get_extension
from src.services.wallet import WalletConnection

logger = logging.getLogger(__name__)


class PublishStatus(str, enum.Enum):
    """Aggregate outcome of a batch."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some versions published, some failed
    FAILED = "failed"


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    UPLOAD = "upload"
    CHAIN_SUBMISSION = "chain_submission"
    MISSION = "mission"


@dataclass
class PublishRequest:
    version_ids: list[str]
    title: str
    description: str = ""
    tags: list[str] = field(default_factory=list)
    is_public: bool = True
    mission_id: Optional[str] = None

    def selected_ids(self) -> list[str]:
        """Selection as an ordered set."""
        return list(dict.fromkeys(self.version_ids))


@dataclass
class PublishAttempt:
    version_id: str
    success: bool
    storage_hash: Optional[str] = None
    storage_url: Optional[str] = None
    chain_reference: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None


@dataclass
class PublishResult:
    status: PublishStatus
    strategy: str
    attempts: list[PublishAttempt]
    mission_id: Optional[str] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for a in self.attempts if a.success)

    @property
    def failed(self) -> int:
        return sum(1 for a in self.attempts if not a.success)

    @property
    def successful_attempts(self) -> list[PublishAttempt]:
        return [a for a in self.attempts if a.success]


def build_filename(title: str, mime_type: str, now: Optional[datetime] = None) -> str:
    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    timestamp = re.sub(r"[:.+]", "-", timestamp)
    safe_title = re.sub(r"[^a-zA-Z0-9]", "_", title) or "recording"
    return f"{safe_title}_{timestamp}{get_extension(mime_type)}"


def derive_tags(version: AudioVersion, extra: list[str]) -> list[str]:
    """Version tags (transform chain, language, voice) unioned with caller tags."""
    tags: list[str] = []
    if version.is_root:
        tags.append("original")
    tags.extend(version.metadata.transform_chain)
    if version.metadata.language:
        tags.append(version.metadata.language)
    if version.metadata.voice_id:
        tags.append(version.metadata.voice_id)
    tags.extend(extra)
    return list(dict.fromkeys(t for t in tags if t))


def aggregate_status(attempts: list[PublishAttempt]) -> PublishStatus:
    succeeded = sum(1 for a in attempts if a.success)
    if succeeded == len(attempts):
        return PublishStatus.SUCCESS
    if succeeded == 0:
        return PublishStatus.FAILED
    return PublishStatus.PARTIAL


class PublishPipeline:
    """
    Turns selected ledger versions into stored, on-chain-referenced artifacts.

    The pipeline reads the ledger and quota gate but never mutates them;
    callers increment the save counter for each successful attempt. Versions
    are processed one at a time, and a failing version never stops the batch.
    """

    def __init__(
        self,
        storage: ContentStorage,
        recorder: ChainRecorder,
        missions: Optional[MissionClient] = None,
    ):
        self.storage = storage
        self.recorder = recorder
        self.missions = missions

    def check_preconditions(
        self,
        request: PublishRequest,
        quota: QuotaGate,
        wallet: WalletConnection,
    ) -> list[str]:
        """
        Batch-level validation. Runs before any network call.

        Raises:
            NoVersionsSelectedError: empty selection
            QuotaExceededError: not enough weekly saves left
            WalletNotConnectedError: no wallet to record the batch with
        """
        selected = request.selected_ids()
        if not selected:
            raise NoVersionsSelectedError()

        if not quota.can_use(ResourceClass.SAVE):
            if quota.tier == UserTier.GUEST:
                raise QuotaExceededError("Guests cannot publish. Connect a wallet to save recordings.")
            raise QuotaExceededError("Weekly save limit reached")

        remaining = quota.remaining(ResourceClass.SAVE)
        if remaining is not None and len(selected) > remaining:
            raise QuotaExceededError(
                f"Not enough saves remaining: {remaining} left but {len(selected)} selected"
            )

        if not wallet.is_connected:
            raise WalletNotConnectedError()

        return selected

    async def run(
        self,
        request: PublishRequest,
        ledger: VersionLedger,
        quota: QuotaGate,
        wallet: WalletConnection,
    ) -> PublishResult:
        selected = self.check_preconditions(request, quota, wallet)
        strategy = select_commit_strategy(wallet)
        logger.info(
            f"Publishing {len(selected)} version(s) via {strategy_name(strategy)} "
            f"for {wallet.address}"
        )

        if request.mission_id:
            return await self._run_mission(request, selected[0], ledger, strategy)

        attempts: list[PublishAttempt] = []
        for version_id in selected:
            attempt = await self._publish_one(version_id, request, ledger, strategy)
            attempts.append(attempt)

        result = PublishResult(
            status=aggregate_status(attempts),
            strategy=strategy_name(strategy),
            attempts=attempts,
        )
        logger.info(
            f"Publish batch finished: {result.status.value} "
            f"({result.succeeded} succeeded, {result.failed} failed)"
        )
        return result

    async def _publish_one(
        self,
        version_id: str,
        request: PublishRequest,
        ledger: VersionLedger,
        strategy: CommitStrategy,
        extra_tags: Optional[list[str]] = None,
    ) -> PublishAttempt:
        version = ledger.get_version(version_id)
        if version is None:
            logger.warning(f"Version {version_id} vanished before publishing")
            return PublishAttempt(
                version_id=version_id,
                success=False,
                error_kind=ErrorKind.NOT_FOUND,
                error=f"Version {version_id} not found",
            )

        title = request.title if version.is_root else f"{request.title} - {version.label}"

        try:
            upload = await self.storage.upload(
                version.blob,
                UploadMetadata(
                    filename=build_filename(request.title, version.mime_type),
                    mime_type=version.mime_type,
                    duration=version.metadata.duration,
                ),
            )
        except Exception as e:
            logger.warning(f"Upload of {version_id} failed: {e}")
            return PublishAttempt(
                version_id=version_id,
                success=False,
                error_kind=ErrorKind.UPLOAD,
                error=str(e),
            )

        record = ChainRecord(
            content_hash=upload.hash,
            title=title,
            description=request.description,
            tags=derive_tags(version, [*(extra_tags or []), *request.tags]),
            is_public=request.is_public,
        )
        try:
            receipt = await self.recorder.submit(strategy, record)
        except Exception as e:
            # The uploaded content stays in storage; it is harmless without a record
            logger.warning(f"On-chain submission of {version_id} ({upload.hash}) failed: {e}")
            return PublishAttempt(
                version_id=version_id,
                success=False,
                storage_hash=upload.hash,
                storage_url=upload.url,
                error_kind=ErrorKind.CHAIN_SUBMISSION,
                error=str(e),
            )

        return PublishAttempt(
            version_id=version_id,
            success=True,
            storage_hash=upload.hash,
            storage_url=upload.url,
            chain_reference=receipt.reference,
        )

    async def _run_mission(
        self,
        request: PublishRequest,
        version_id: str,
        ledger: VersionLedger,
        strategy: CommitStrategy,
    ) -> PublishResult:
        mission_id = request.mission_id
        attempt = await self._publish_one(
            version_id,
            request,
            ledger,
            strategy,
            extra_tags=["mission-submission", mission_id],
        )

        if attempt.success and self.missions is not None:
            try:
                await self.missions.complete_mission(
                    mission_id,
                    attempt.storage_hash,
                    title=request.title,
                    description=request.description,
                )
            except Exception as e:
                logger.warning(f"Mission {mission_id} completion failed: {e}")
                attempt.success = False
                attempt.error_kind = ErrorKind.MISSION
                attempt.error = str(e)

        return PublishResult(
            status=aggregate_status([attempt]),
            strategy=strategy_name(strategy),
            attempts=[attempt],
            mission_id=mission_id,
        )
