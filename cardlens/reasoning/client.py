"""Reasoning capability clients."""

import asyncio
from typing import Any, Dict, Optional, Protocol

import aiohttp

from ..core.constants import (
    REASONING_ATTEMPTS,
    REASONING_BACKOFF_BASE_S,
    TRANSIENT_HTTP_STATUSES,
)
from ..utils.error_handler import ReasoningUnavailable, SchemaValidationError, TransientExternalError
from ..utils.log import LoggerMixin, get_logger
from ..utils.retry import retry
from .prompts import ReasoningPrompt

logger = get_logger(__name__)


class ReasoningClient(Protocol):
    async def reason(self, prompt: ReasoningPrompt) -> str:
        ...


def _response_text(body: Dict[str, Any]) -> str:
    """Accept either ``{"text": ...}`` or a messages-style ``content`` list."""
    if isinstance(body.get("text"), str):
        return body["text"]
    content = body.get("content")
    if isinstance(content, list):
        return "".join(
            part.get("text", "") for part in content
            if isinstance(part, dict) and part.get("type", "text") == "text"
        )
    if isinstance(content, str):
        return content
    raise SchemaValidationError(
        "Reasoning endpoint returned no text",
        details={"keys": sorted(body.keys())},
    )


class HttpReasoningClient(LoggerMixin):
    """Posts prompts to an HTTP reasoning endpoint."""

    def __init__(self, url: str, api_key: Optional[str] = None, timeout_s: float = 30.0):
        self.url = url
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @retry(
        max_attempts=REASONING_ATTEMPTS,
        base_delay=REASONING_BACKOFF_BASE_S,
        jitter=False,
        exceptions=TransientExternalError,
        logger=logger,
    )
    async def reason(self, prompt: ReasoningPrompt) -> str:
        payload = {
            "system": prompt.system,
            "prompt": prompt.user,
            "max_tokens": prompt.max_tokens,
            "temperature": prompt.temperature,
        }
        try:
            async with aiohttp.ClientSession(headers=self._headers(), timeout=self.timeout) as session:
                async with session.post(self.url, json=payload) as response:
                    if response.status in TRANSIENT_HTTP_STATUSES:
                        raise TransientExternalError(
                            f"Reasoning endpoint returned {response.status}",
                            details={"status": response.status},
                        )
                    response.raise_for_status()
                    body = await response.json()
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            raise TransientExternalError(
                f"Reasoning endpoint unreachable: {e}",
                details={"error_type": type(e).__name__},
            ) from e

        text = _response_text(body)
        self.logger.debug("Reasoning response received", chars=len(text))
        return text


class DisabledReasoningClient:
    """Stands in when no endpoint is configured; every call takes the fallback path."""

    async def reason(self, prompt: ReasoningPrompt) -> str:
        raise ReasoningUnavailable("No reasoning endpoint configured")
