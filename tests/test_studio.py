"""Tests for the studio session service."""

import asyncio
from datetime import datetime

import pytest

from src.services.errors import (
    DuplicateTransformError,
    QuotaExceededError,
    TransformError,
    VersionNotFoundError,
)
from src.services.ledger import ROOT_VERSION_ID
from src.services.publish import PublishRequest, PublishStatus
from src.services.quota import ResourceClass, TokenTier, UserTier


@pytest.mark.asyncio
async def test_voice_transform_appends_child_and_counts(studio, session_id, ai_service):
    studio.start_recording(session_id, b"take-1", 8.0)

    version = await studio.transform_voice(session_id, "warm", "Warm")

    session = studio.load_session(session_id)
    assert version.parent_version_id == ROOT_VERSION_ID
    assert version.source == "aiVoice-warm"
    assert version.blob == b"voice:warm:take-1"
    assert version.metadata.transform_chain == ["voice:warm"]
    assert session.ledger.active_version_id == ROOT_VERSION_ID
    assert session.quota.used(ResourceClass.AI_VOICE) == 1


@pytest.mark.asyncio
async def test_second_voice_child_is_rejected(studio, session_id, ai_service):
    studio.start_recording(session_id, b"take-1", 8.0)
    await studio.transform_voice(session_id, "warm")

    with pytest.raises(DuplicateTransformError):
        await studio.transform_voice(session_id, "calm")
    assert ai_service.voice_calls == ["warm"]


@pytest.mark.asyncio
async def test_dub_is_unique_per_language(studio, session_id):
    studio.start_recording(session_id, b"take-1", 8.0)
    await studio.dub(session_id, "pt")
    await studio.dub(session_id, "es")

    with pytest.raises(DuplicateTransformError):
        await studio.dub(session_id, "pt")

    ledger = studio.load_session(session_id).ledger
    assert len(ledger) == 3


@pytest.mark.asyncio
async def test_transforms_chain_from_selected_parent(studio, session_id):
    studio.start_recording(session_id, b"take-1", 8.0)
    dubbed, result = await studio.dub(session_id, "fr")
    voiced = await studio.transform_voice(session_id, "warm", parent_id=dubbed.id)

    assert result.translated_transcript == "hello in fr"
    assert voiced.metadata.transform_chain == ["dub:fr", "voice:warm"]
    assert voiced.metadata.language is None


@pytest.mark.asyncio
async def test_transform_quota_exhaustion(studio, session_id, ai_service):
    studio.start_recording(session_id, b"take-1", 8.0)
    for language in ("pt", "es", "fr"):
        await studio.dub(session_id, language)

    with pytest.raises(QuotaExceededError):
        await studio.dub(session_id, "de")
    assert ai_service.dub_calls == ["pt", "es", "fr"]


@pytest.mark.asyncio
async def test_failed_transform_changes_nothing(studio, session_id, ai_service):
    studio.start_recording(session_id, b"take-1", 8.0)
    ai_service.fail = True

    with pytest.raises(TransformError):
        await studio.transform_voice(session_id, "warm")

    session = studio.load_session(session_id)
    assert len(session.ledger) == 1
    assert session.quota.used(ResourceClass.AI_VOICE) == 0


@pytest.mark.asyncio
async def test_transform_without_recording(studio, session_id):
    with pytest.raises(VersionNotFoundError):
        await studio.transform_voice(session_id, "warm")


@pytest.mark.asyncio
async def test_publish_counts_only_successes(studio, session_id, storage):
    studio.start_recording(session_id, b"take-1", 8.0)
    voiced = await studio.transform_voice(session_id, "warm")
    studio.connect_wallet(session_id, "0xabc")
    storage.fail_blobs.add(voiced.blob)

    result = await studio.publish(
        session_id, PublishRequest(version_ids=[ROOT_VERSION_ID, voiced.id], title="Take")
    )

    assert result.status == PublishStatus.PARTIAL
    quota = studio.load_session(session_id).quota
    assert quota.used(ResourceClass.SAVE) == 1
    assert quota.remaining(ResourceClass.SAVE) == 4


@pytest.mark.asyncio
async def test_guest_session_cannot_publish(studio, session_id, storage):
    studio.start_recording(session_id, b"take-1", 8.0)

    with pytest.raises(QuotaExceededError):
        await studio.publish(
            session_id, PublishRequest(version_ids=[ROOT_VERSION_ID], title="Take")
        )
    assert storage.uploads == []


def test_connect_wallet_derives_tier(studio, session_id):
    session = studio.connect_wallet(session_id, "0xabc", token_tier=TokenTier.PRO)
    assert session.quota.tier == UserTier.PREMIUM

    session = studio.disconnect_wallet(session_id)
    assert session.quota.tier == UserTier.GUEST
    assert not studio.load_session(session_id).wallet.is_connected


def test_tier_change_keeps_usage(studio, session_id):
    studio.connect_wallet(session_id, "0xabc")
    session = studio.load_session(session_id)
    session.quota.increment(ResourceClass.SAVE)
    studio.store.set(f"quota:{session_id}", session.quota.to_snapshot())

    quota = studio.set_tier(session_id, UserTier.FREE)
    assert quota.used(ResourceClass.SAVE) == 1


def test_quota_window_rolls_over_between_loads(studio, session_id, clock):
    studio.connect_wallet(session_id, "0xabc")
    session = studio.load_session(session_id)
    for _ in range(5):
        session.quota.increment(ResourceClass.SAVE)
    studio.store.set(f"quota:{session_id}", session.quota.to_snapshot())
    assert not studio.load_session(session_id).quota.can_use(ResourceClass.SAVE)

    clock.now = datetime(2026, 10, 19, 9, 0)

    assert studio.load_session(session_id).quota.can_use(ResourceClass.SAVE)


def test_draft_round_trip(studio, session_id):
    assert studio.get_draft(session_id) is None

    studio.save_draft(session_id, b"\x01\x02draft", "audio/ogg")
    draft = studio.get_draft(session_id)
    assert draft.blob == b"\x01\x02draft"
    assert draft.mime_type == "audio/ogg"

    studio.clear_draft(session_id)
    assert studio.get_draft(session_id) is None


def test_reset_session_keeps_quota(studio, session_id):
    studio.start_recording(session_id, b"take-1", 8.0)
    studio.save_draft(session_id, b"draft")
    studio.set_tier(session_id, UserTier.PREMIUM)

    studio.reset_session(session_id)

    session = studio.load_session(session_id)
    assert len(session.ledger) == 0
    assert studio.get_draft(session_id) is None
    assert session.quota.tier == UserTier.PREMIUM


@pytest.mark.asyncio
async def test_publish_keeps_usage_recorded_while_uploading(studio, session_id, storage):
    studio.start_recording(session_id, b"take-1", 8.0)
    studio.connect_wallet(session_id, "0xabc")
    uploading = asyncio.Event()
    release = asyncio.Event()
    upload = storage.upload

    async def held_upload(blob, metadata):
        uploading.set()
        await release.wait()
        return await upload(blob, metadata)

    storage.upload = held_upload
    publishing = asyncio.create_task(
        studio.publish(session_id, PublishRequest(version_ids=[ROOT_VERSION_ID], title="Take"))
    )
    await uploading.wait()

    await studio.transform_voice(session_id, "warm")
    assert studio.load_session(session_id).quota.used(ResourceClass.AI_VOICE) == 1

    release.set()
    result = await publishing

    quota = studio.load_session(session_id).quota
    assert result.status == PublishStatus.SUCCESS
    assert quota.used(ResourceClass.AI_VOICE) == 1
    assert quota.used(ResourceClass.SAVE) == 1


@pytest.mark.asyncio
async def test_concurrent_voice_transforms_add_one_child(studio, session_id, ai_service):
    studio.start_recording(session_id, b"take-1", 8.0)
    arrived = []
    both_waiting = asyncio.Event()
    release = asyncio.Event()
    convert = ai_service.transform_voice

    async def held_convert(blob, voice_id, mime_type="audio/webm"):
        arrived.append(voice_id)
        if len(arrived) == 2:
            both_waiting.set()
        await release.wait()
        return await convert(blob, voice_id, mime_type)

    ai_service.transform_voice = held_convert
    tasks = [
        asyncio.create_task(studio.transform_voice(session_id, voice))
        for voice in ("warm", "calm")
    ]
    await both_waiting.wait()
    release.set()
    outcomes = await asyncio.gather(*tasks, return_exceptions=True)

    assert sum(isinstance(o, DuplicateTransformError) for o in outcomes) == 1
    session = studio.load_session(session_id)
    assert len(session.ledger) == 2
    assert session.quota.used(ResourceClass.AI_VOICE) == 1


@pytest.mark.asyncio
async def test_concurrent_dubs_respect_remaining_quota(studio, session_id, ai_service):
    studio.start_recording(session_id, b"take-1", 8.0)
    await studio.dub(session_id, "pt")
    await studio.dub(session_id, "es")
    arrived = []
    both_waiting = asyncio.Event()
    release = asyncio.Event()
    dub = ai_service.dub

    async def held_dub(blob, target_language, source_language=None, mime_type="audio/webm"):
        arrived.append(target_language)
        if len(arrived) == 2:
            both_waiting.set()
        await release.wait()
        return await dub(blob, target_language, source_language, mime_type)

    ai_service.dub = held_dub
    tasks = [
        asyncio.create_task(studio.dub(session_id, language)) for language in ("fr", "de")
    ]
    await both_waiting.wait()
    release.set()
    outcomes = await asyncio.gather(*tasks, return_exceptions=True)

    assert sum(isinstance(o, QuotaExceededError) for o in outcomes) == 1
    session = studio.load_session(session_id)
    assert len(session.ledger) == 4
    assert session.quota.used(ResourceClass.DUBBING) == 3
