"""Mission completion client."""

import logging
from typing import Optional

import httpx

from src.config import get_settings
from src.services.errors import MissionSubmissionError

logger = logging.getLogger(__name__)


class MissionClient:
    """Forwards a published recording to the missions API."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        settings = get_settings()
        self._base_url = settings.missions_api_url.rstrip("/")
        self._timeout = settings.http_timeout_seconds
        self._client = client

    async def complete_mission(
        self,
        mission_id: str,
        recording_hash: str,
        title: str,
        description: str = "",
    ) -> dict:
        payload = {
            "missionId": mission_id,
            "recordingId": recording_hash,
            "title": title,
            "transcription": description,
            "context": "Recording Studio",
        }
        url = f"{self._base_url}/submit"
        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Mission {mission_id} submission failed: {e.response.status_code}")
            raise MissionSubmissionError(
                f"Mission submission failed ({e.response.status_code})"
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Mission {mission_id} submission failed: {e}")
            raise MissionSubmissionError(f"Mission submission failed: {e}") from e

        return response.json() if response.content else {}
