"""Content generation - asks the upstream LLM endpoint for outreach text."""
import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 240

PROMPTS = {
    "morning": (
        "Write one short, warm good-morning notification (under 200 characters) "
        "encouraging the user to set a single intention for the day. "
        "Reply with the notification text only."
    ),
    "evening": (
        "Write one short, calm evening check-in notification (under 200 characters) "
        "inviting the user to reflect on something that went well today. "
        "Reply with the notification text only."
    ),
}

FALLBACK_MESSAGES = {
    "morning": "Good morning! Take a moment to set one intention for today.",
    "evening": "Good evening! Take a moment to look back on what went well today.",
}


class ContentGenerator:
    """Fetches notification text, falling back to canned copy on any failure."""

    def __init__(
        self,
        endpoint_url: Optional[str],
        timeout_seconds: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._endpoint_url = endpoint_url
        self._timeout = timeout_seconds
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    async def generate(self, kind: str) -> str:
        """Return text for a morning or evening outreach. Never raises."""
        fallback = FALLBACK_MESSAGES[kind]
        if not self._endpoint_url:
            return fallback

        try:
            text = await asyncio.wait_for(self._request(kind), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Content generation for {kind} timed out after {self._timeout}s")
            return fallback
        except httpx.HTTPError as e:
            logger.warning(f"Content generation for {kind} failed: {type(e).__name__}: {e}")
            return fallback
        except ValueError as e:
            logger.warning(f"Content generation for {kind} returned a malformed response: {e}")
            return fallback

        return text[:MAX_MESSAGE_LENGTH]

    async def _request(self, kind: str) -> str:
        response = await self._http.post(
            self._endpoint_url,
            json={"kind": kind, "prompt": PROMPTS[kind]},
        )
        response.raise_for_status()

        data = response.json()
        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, str) or not message.strip():
            raise ValueError("missing 'message' string")
        return message.strip()

    async def aclose(self):
        if self._owns_client:
            await self._http.aclose()
