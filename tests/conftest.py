"""Pytest configuration and fixtures."""

import hashlib
from datetime import datetime
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.api.deps import get_studio_service
from src.main import app
from src.services.ai import DubResult, VoiceInfo
from src.services.chain import ChainReceipt
from src.services.errors import ChainSubmissionError, TransformError, UploadError
from src.services.persistence import InMemoryPersistenceStore
from src.services.publish import PublishPipeline
from src.services.quota import QuotaCeilings
from src.services.storage import UploadResult
from src.services.studio import StudioService


class FakeClock:
    """Settable clock; a Wednesday afternoon unless moved."""

    def __init__(self, now: datetime = datetime(2026, 10, 14, 15, 30)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeStorage:
    """Content storage double that records every upload."""

    def __init__(self):
        self.uploads = []
        self.fail_blobs: set[bytes] = set()

    async def upload(self, blob, metadata):
        self.uploads.append((blob, metadata))
        if blob in self.fail_blobs:
            raise UploadError("storage unavailable")
        digest = hashlib.sha256(blob).hexdigest()
        return UploadResult(hash=digest, size=len(blob), url=f"https://cdn.test/{digest}")

    def health_check(self) -> bool:
        return True


class FakeRecorder:
    """Chain recorder double that records every submission."""

    def __init__(self):
        self.submissions = []
        self.fail_hashes: set[str] = set()

    async def submit(self, strategy, record):
        self.submissions.append((strategy, record))
        if record.content_hash in self.fail_hashes:
            raise ChainSubmissionError("transaction reverted")
        return ChainReceipt(reference=f"0xtx{len(self.submissions)}")


class FakeMissions:
    def __init__(self):
        self.completed = []

    async def complete_mission(self, mission_id, recording_hash, title, description=""):
        self.completed.append((mission_id, recording_hash))
        return {"ok": True}


class FakeAIService:
    def __init__(self):
        self.voice_calls = []
        self.dub_calls = []
        self.fail = False

    async def list_voices(self):
        if self.fail:
            raise TransformError("voice service down")
        return [VoiceInfo(voice_id="warm", name="Warm", description="soft and low")]

    async def transform_voice(self, blob, voice_id, mime_type="audio/webm"):
        self.voice_calls.append(voice_id)
        if self.fail:
            raise TransformError("voice service down")
        return b"voice:" + voice_id.encode() + b":" + blob

    async def dub(self, blob, target_language, source_language=None, mime_type="audio/webm"):
        self.dub_calls.append(target_language)
        if self.fail:
            raise TransformError("dubbing service down")
        return DubResult(
            audio=b"dub:" + target_language.encode() + b":" + blob,
            transcript="hello",
            translated_transcript=f"hello in {target_language}",
            target_language=target_language,
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryPersistenceStore:
    return InMemoryPersistenceStore()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def recorder() -> FakeRecorder:
    return FakeRecorder()


@pytest.fixture
def missions() -> FakeMissions:
    return FakeMissions()


@pytest.fixture
def ai_service() -> FakeAIService:
    return FakeAIService()


@pytest.fixture
def ceilings() -> QuotaCeilings:
    return QuotaCeilings(saves=5, ai_voice=3, dubbing=3)


@pytest.fixture
def pipeline(storage, recorder, missions) -> PublishPipeline:
    return PublishPipeline(storage=storage, recorder=recorder, missions=missions)


@pytest.fixture
def studio(store, pipeline, ai_service, ceilings, clock) -> StudioService:
    return StudioService(
        store=store,
        pipeline=pipeline,
        ai_service=ai_service,
        ceilings=ceilings,
        clock=clock,
    )


@pytest.fixture
def session_id() -> str:
    return f"test-{uuid4().hex[:12]}"


@pytest_asyncio.fixture
async def client(studio: StudioService) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    app.dependency_overrides[get_studio_service] = lambda: studio

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
