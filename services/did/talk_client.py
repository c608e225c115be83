"""D-ID talking-avatar API client."""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from utils.errors import NotFoundError, UpstreamProviderError, ValidationError
from utils.polling import PollingPolicy

LOGGER = logging.getLogger(__name__)
PROVIDER = "d-id"
DID_BASE_URL = "https://api.d-id.com"
DEFAULT_VOICE_MODEL = "eleven_multilingual_v2"


def build_talk_payload(
    source_url: str,
    script: str,
    *,
    voice_id: Optional[str] = None,
    emotion: str = "neutral",
    stability: float = 0.5,
    similarity: float = 0.75,
    voice_model: str = DEFAULT_VOICE_MODEL,
    ssml: bool = False,
) -> Dict[str, Any]:
    """Return the `/talks` request body for one scene."""
    if not source_url:
        raise ValidationError("Scene sourceUrl is required")
    if not script or not script.strip():
        raise ValidationError("Scene script is required")
    script_block: Dict[str, Any] = {"type": "text", "input": script.strip()}
    if ssml:
        script_block["ssml"] = True
    if voice_id:
        script_block["provider"] = {
            "type": "elevenlabs",
            "voice_id": voice_id,
            "voice_config": {"stability": stability, "similarity_boost": similarity},
            "model_id": voice_model,
        }
    return {
        "source_url": source_url,
        "script": script_block,
        "config": {
            "driver_expressions": {
                "expressions": [{"start_frame": 0, "expression": emotion or "neutral", "intensity": 1.0}]
            }
        },
    }


class DIDTalkClient:
    """Create talks, look them up, and wait for rendered videos."""

    def __init__(
        self,
        api_key: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        polling: Optional[PollingPolicy] = None,
        elevenlabs_api_key: Optional[str] = None,
    ) -> None:
        if not api_key:
            raise ValueError("D-ID API key must be provided.")
        self.api_key = api_key
        self.elevenlabs_api_key = elevenlabs_api_key
        self.http_client = http_client or httpx.AsyncClient(base_url=DID_BASE_URL, timeout=30.0)
        self.polling = polling or PollingPolicy(interval_seconds=2.0, max_attempts=30)

    def _headers(self) -> Dict[str, str]:
        headers = {"Authorization": f"Basic {self.api_key}", "accept": "application/json"}
        if self.elevenlabs_api_key:
            headers["x-api-key-external"] = json.dumps({"elevenlabs": self.elevenlabs_api_key})
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self.http_client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            LOGGER.error("D-ID request %s %s failed: %s", method, path, exc)
            raise UpstreamProviderError(PROVIDER, f"D-ID request failed: {exc}") from exc
        if response.status_code == 404:
            raise NotFoundError("Talk not found")
        if response.status_code >= 400:
            LOGGER.error("D-ID %s %s returned %s: %s", method, path, response.status_code, response.text[:500])
            raise UpstreamProviderError(PROVIDER, f"D-ID returned HTTP {response.status_code}", response.text[:500])
        return response.json()

    async def create_talk(self, payload: Dict[str, Any]) -> str:
        """Submit a talk and return its id."""
        data = await self._request("POST", "/talks", json=payload)
        talk_id = data.get("id")
        if not talk_id:
            raise UpstreamProviderError(PROVIDER, "D-ID did not return a talk id")
        LOGGER.info("Created D-ID talk %s", talk_id)
        return talk_id

    async def get_talk(self, talk_id: str) -> Dict[str, Any]:
        if not talk_id:
            raise ValidationError("Missing id")
        return await self._request("GET", f"/talks/{talk_id}")

    async def list_talks(self, limit: int = 100) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/talks", params={"limit": limit})
        return list(data.get("talks") or [])

    async def wait_for_talk(self, talk_id: str) -> str:
        """Poll until the talk is rendered and return its result URL.

        Raises:
            UpstreamProviderError: If D-ID reports the talk as failed.
            PollingTimeoutError: If the attempt budget runs out first.
        """

        async def probe() -> Optional[str]:
            talk = await self.get_talk(talk_id)
            status = talk.get("status")
            if status == "done" and talk.get("result_url"):
                return talk["result_url"]
            if status in ("error", "rejected"):
                raise UpstreamProviderError(PROVIDER, f"Talk {talk_id} failed with status {status}")
            return None

        return await self.polling.run(probe, description=f"D-ID talk {talk_id}")

    async def download(self, url: str) -> bytes:
        """Fetch a rendered video from its result URL."""
        try:
            response = await self.http_client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UpstreamProviderError(PROVIDER, f"Failed to download talk video: {exc}") from exc
        return response.content

    async def aclose(self) -> None:
        await self.http_client.aclose()
