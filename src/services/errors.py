"""Error taxonomy shared by the studio services."""

from typing import Optional


class StudioError(Exception):
    """Base class for all studio errors."""

    code = "studio_error"

    def __init__(self, message: str, version_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.version_id = version_id


# ============== Batch-level preconditions ==============


class ValidationError(StudioError):
    """Request rejected before any side effect."""

    code = "validation_error"


class NoVersionsSelectedError(ValidationError):
    code = "no_versions_selected"

    def __init__(self, message: str = "Select at least one version to publish"):
        super().__init__(message)


class QuotaExceededError(ValidationError):
    code = "quota_exceeded"


class DuplicateTransformError(ValidationError):
    code = "duplicate_transform"


class WalletNotConnectedError(StudioError):
    code = "wallet_not_connected"

    def __init__(self, message: str = "Connect a wallet before publishing"):
        super().__init__(message)


# ============== Ledger ==============


class LedgerError(StudioError):
    """Rejected ledger mutation (e.g. deleting the original recording)."""

    code = "ledger_error"


class VersionNotFoundError(StudioError):
    code = "version_not_found"

    def __init__(self, version_id: str):
        super().__init__(f"Version {version_id} not found", version_id=version_id)


# ============== Collaborators ==============


class UploadError(StudioError):
    code = "upload_failed"


class ChainSubmissionError(StudioError):
    code = "chain_submission_failed"


class TransformError(StudioError):
    code = "transform_failed"


class MissionSubmissionError(StudioError):
    code = "mission_submission_failed"
