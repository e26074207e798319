"""AI voice conversion and dubbing via the ElevenLabs HTTP API."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from src.config import get_settings
from src.services.errors import TransformError
from src.services.storage import get_extension

logger = logging.getLogger(__name__)


@dataclass
class DubResult:
    """Result from a dubbing job."""

    audio: bytes
    transcript: str
    translated_transcript: str
    target_language: str


@dataclass
class VoiceInfo:
    voice_id: str
    name: str
    description: Optional[str] = None


class AITransformService:
    """Black-box request/response client for voice transforms and dubbing."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        settings = get_settings()
        self._settings = settings
        self._base_url = settings.elevenlabs_base_url.rstrip("/")
        self._client = client
        self._voices_cache: Optional[list[VoiceInfo]] = None

    def _headers(self) -> dict:
        return {"xi-api-key": self._settings.elevenlabs_api_key}

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self._base_url}{path}"
        if self._client is not None:
            response = await self._client.request(method, url, headers=self._headers(), **kwargs)
        else:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout_seconds) as client:
                response = await client.request(method, url, headers=self._headers(), **kwargs)
        response.raise_for_status()
        return response

    async def list_voices(self) -> list[VoiceInfo]:
        if self._voices_cache is not None:
            return self._voices_cache
        try:
            response = await self._request("GET", "/v1/voices")
        except httpx.HTTPError as e:
            raise TransformError(f"Failed to list voices: {e}") from e

        self._voices_cache = [
            VoiceInfo(voice_id=v["voice_id"], name=v["name"], description=v.get("description"))
            for v in response.json().get("voices", [])
        ]
        return self._voices_cache

    async def transform_voice(
        self, blob: bytes, voice_id: str, mime_type: str = "audio/webm"
    ) -> bytes:
        """Speech-to-speech conversion into the target voice."""
        files = {"audio": (f"input{get_extension(mime_type)}", blob, mime_type)}
        data = {
            "model_id": self._settings.elevenlabs_sts_model_id,
            "output_format": self._settings.elevenlabs_output_format,
        }
        try:
            response = await self._request(
                "POST", f"/v1/speech-to-speech/{voice_id}", files=files, data=data
            )
        except httpx.HTTPStatusError as e:
            logger.error(f"Voice transform failed: {e.response.status_code} {e.response.text[:200]}")
            raise TransformError(f"Voice transform failed: {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise TransformError(f"Voice transform failed: {e}") from e

        return response.content

    async def dub(
        self,
        blob: bytes,
        target_language: str,
        source_language: Optional[str] = None,
        mime_type: str = "audio/webm",
    ) -> DubResult:
        """
        Dub audio into ``target_language``.

        Creates a dubbing job, polls until it is done, then fetches the dubbed
        audio and transcripts.
        """
        files = {"file": (f"input{get_extension(mime_type)}", blob, mime_type)}
        data = {"target_lang": target_language, "source_lang": source_language or "auto"}

        try:
            response = await self._request("POST", "/v1/dubbing", files=files, data=data)
            dubbing_id = response.json()["dubbing_id"]

            await self._wait_for_dubbing(dubbing_id)

            audio = await self._request("GET", f"/v1/dubbing/{dubbing_id}/audio/{target_language}")
            translated = await self._fetch_transcript(dubbing_id, target_language)
            transcript = (
                await self._fetch_transcript(dubbing_id, source_language) if source_language else ""
            )
        except httpx.HTTPStatusError as e:
            logger.error(f"Dubbing failed: {e.response.status_code} {e.response.text[:200]}")
            raise TransformError(f"Dubbing failed: {e.response.status_code}") from e
        except (httpx.RequestError, KeyError, ValueError) as e:
            raise TransformError(f"Dubbing failed: {e}") from e

        return DubResult(
            audio=audio.content,
            transcript=transcript,
            translated_transcript=translated,
            target_language=target_language,
        )

    async def _wait_for_dubbing(self, dubbing_id: str) -> None:
        for _ in range(self._settings.dubbing_max_polls):
            response = await self._request("GET", f"/v1/dubbing/{dubbing_id}")
            status = response.json().get("status")
            if status == "dubbed":
                return
            if status == "failed":
                raise TransformError(f"Dubbing job {dubbing_id} failed: {response.json().get('error')}")
            await asyncio.sleep(self._settings.dubbing_poll_interval_seconds)
        raise TransformError(f"Dubbing job {dubbing_id} did not finish in time")

    async def _fetch_transcript(self, dubbing_id: str, language: str) -> str:
        try:
            response = await self._request(
                "GET",
                f"/v1/dubbing/{dubbing_id}/transcript/{language}",
                params={"format_type": "srt"},
            )
        except httpx.HTTPStatusError as e:
            # Transcripts are optional extras; the dubbed audio is what matters
            logger.warning(f"Transcript {language} for {dubbing_id} unavailable: {e.response.status_code}")
            return ""
        return response.text
