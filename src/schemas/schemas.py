"""Pydantic schemas for request/response validation."""

import base64
import binascii
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.services.quota import TokenTier, UserTier


def normalize_language(lang: str | None) -> str | None:
    """Normalize language code to standard format."""
    if lang is None:
        return None
    return lang.lower().strip() or None


def decode_audio(audio_b64: str) -> bytes:
    try:
        return base64.b64decode(audio_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("audio_b64 is not valid base64") from e


# ============== Recording & Version Schemas ==============


class RecordingCreate(BaseModel):
    """A finished recording that becomes the root version."""

    audio_b64: str = Field(..., min_length=1, description="Base64-encoded audio data")
    duration: float = Field(..., ge=0, description="Duration in seconds")
    mime_type: str = Field("audio/webm", description="Content type of the audio")

    @field_validator("audio_b64")
    @classmethod
    def check_base64(cls, v: str) -> str:
        decode_audio(v)
        return v


class VersionMetadataResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    duration: float
    size: int
    created_at: datetime
    transform_chain: list[str]
    language: Optional[str] = None
    voice_id: Optional[str] = None
    voice_name: Optional[str] = None


class VersionResponse(BaseModel):
    """One ledger version, without its audio payload."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    label: str
    source: str
    parent_version_id: Optional[str] = None
    mime_type: str
    metadata: VersionMetadataResponse


class LedgerResponse(BaseModel):
    versions: list[VersionResponse]
    active_version_id: str


class SetActiveRequest(BaseModel):
    version_id: str


class DeleteVersionResponse(BaseModel):
    deleted: list[str]
    active_version_id: str


# ============== Transform Schemas ==============


class VoiceTransformRequest(BaseModel):
    voice_id: str = Field(..., min_length=1)
    voice_name: Optional[str] = None
    parent_version_id: Optional[str] = Field(
        None, description="Version to transform (defaults to the active version)"
    )


class DubRequest(BaseModel):
    target_language: str = Field(..., min_length=2, max_length=10)
    source_language: Optional[str] = Field(None, description="Source language (auto-detect if not provided)")
    parent_version_id: Optional[str] = None

    @field_validator("target_language", "source_language", mode="before")
    @classmethod
    def normalize_lang(cls, v: str | None) -> str | None:
        return normalize_language(v)


class DubResponse(BaseModel):
    version: VersionResponse
    transcript: str
    translated_transcript: str


# ============== Quota & Wallet Schemas ==============


class QuotaResponse(BaseModel):
    tier: UserTier
    window_start: datetime
    used: dict[str, int]
    remaining: dict[str, Optional[int]] = Field(
        ..., description="Remaining weekly allowance per resource; null means unlimited"
    )


class TierUpdate(BaseModel):
    tier: UserTier


class WalletConnect(BaseModel):
    address: str = Field(..., min_length=1)
    delegated_account: Optional[str] = Field(
        None, description="Delegated sub-account enabling gasless saves"
    )
    token_tier: Optional[TokenTier] = Field(
        None, description="Declared token tier; accepted only when the service runs in debug mode"
    )


class WalletResponse(BaseModel):
    connected: bool
    address: Optional[str] = None
    delegated_account: Optional[str] = None
    tier: UserTier


class DraftUpdate(BaseModel):
    audio_b64: str = Field(..., min_length=1)
    mime_type: str = "audio/webm"

    @field_validator("audio_b64")
    @classmethod
    def check_base64(cls, v: str) -> str:
        decode_audio(v)
        return v


class DraftResponse(BaseModel):
    audio_b64: str
    mime_type: str


# ============== Publish Schemas ==============


class PublishCreate(BaseModel):
    """Request to publish a selection of versions."""

    version_ids: list[str] = Field(default_factory=list, description="Versions to publish")
    title: str = Field("", max_length=200)
    description: str = Field("", max_length=2000)
    tags: list[str] = Field(default_factory=list)
    is_public: bool = True
    mission_id: Optional[str] = Field(None, description="Submit the recording to this mission")


class PublishAttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    version_id: str
    success: bool
    storage_hash: Optional[str] = None
    storage_url: Optional[str] = None
    chain_reference: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None


class PublishResponse(BaseModel):
    status: str
    strategy: str
    succeeded: int
    failed: int
    mission_id: Optional[str] = None
    attempts: list[PublishAttemptResponse]


# ============== Health & Misc Schemas ==============


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    persistence: str
    storage: str


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: Optional[str] = None
    code: Optional[str] = None


class LanguageInfo(BaseModel):
    code: str
    name: str


class VoiceInfoResponse(BaseModel):
    voice_id: str
    name: str
    description: Optional[str] = None
