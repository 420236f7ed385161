"""
ElevenLabs text-to-speech client.

Rate limits (429) are retried with exponential backoff; authentication and
malformed-request failures are raised immediately.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Protocol

import httpx

from surveycall.shared.logging import get_logger
from surveycall.speech.config import SpeechConfig

logger = get_logger(__name__)


class SynthesisError(Exception):
    """Base exception for speech synthesis errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        voice_id: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.voice_id = voice_id
        self.original_error = original_error


class SynthesisAuthError(SynthesisError):
    """Invalid or missing API key (not retryable)."""


class SynthesisRequestError(SynthesisError):
    """Provider rejected the request as malformed (not retryable)."""


class SynthesisRateLimitError(SynthesisError):
    """Quota or rate limit still exceeded after retries."""

    def __init__(self, message: str, retry_after: float | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class SynthesisProvider(Protocol):
    """Anything that turns text into audio bytes."""

    async def synthesize(self, text: str, voice_id: str) -> bytes: ...


class ElevenLabsClient:
    """Async ElevenLabs text-to-speech client over httpx."""

    def __init__(
        self,
        config: SpeechConfig,
        client: httpx.AsyncClient | None = None,
        sleep_func: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize client.

        Args:
            config: Speech configuration (API key, model, voice settings, retry).
            client: Optional pre-built httpx client (tests inject a MockTransport).
            sleep_func: Optional injected async sleep for backoff (tests: no-op).
        """
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._sleep_func = sleep_func

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._config.elevenlabs_api_base,
                timeout=self._config.request_timeout_seconds,
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _sleep(self, seconds: float) -> None:
        if self._sleep_func is not None:
            await self._sleep_func(seconds)
            return
        await asyncio.sleep(seconds)

    def _payload(self, text: str) -> dict[str, Any]:
        return {
            "text": text,
            "model_id": self._config.model_id,
            "voice_settings": {
                "stability": self._config.stability,
                "similarity_boost": self._config.similarity_boost,
            },
        }

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        """Generate speech audio (mp3 bytes) for text.

        Raises:
            SynthesisAuthError: On 401.
            SynthesisRequestError: On 400/422.
            SynthesisRateLimitError: When 429 persists beyond the retry budget.
            SynthesisError: On any other failure or an implausibly small body.
        """
        if not self._config.enabled:
            raise SynthesisAuthError("Synthesis API key is not configured", voice_id=voice_id)

        client = await self._get_client()
        url = f"{self._config.elevenlabs_api_base.rstrip('/')}/v1/text-to-speech/{voice_id}"
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": self._config.elevenlabs_api_key,
        }

        retries = self._config.max_rate_limit_retries
        for attempt in range(retries + 1):
            try:
                response = await client.post(url, json=self._payload(text), headers=headers)
            except httpx.TimeoutException as e:
                raise SynthesisError(
                    "Synthesis request timed out",
                    voice_id=voice_id,
                    original_error=e,
                ) from e
            except httpx.RequestError as e:
                raise SynthesisError(
                    f"Synthesis request failed: {e}",
                    voice_id=voice_id,
                    original_error=e,
                ) from e

            status_code = response.status_code

            if status_code == 200:
                audio = response.content
                if len(audio) < self._config.min_audio_bytes:
                    raise SynthesisError(
                        f"Synthesis returned too little audio ({len(audio)} bytes)",
                        status_code=status_code,
                        voice_id=voice_id,
                    )
                return audio

            if status_code == 401:
                logger.error("Synthesis authentication failed", extra={"voice_id": voice_id})
                raise SynthesisAuthError(
                    "Invalid synthesis API key",
                    status_code=status_code,
                    voice_id=voice_id,
                )

            if status_code in (400, 422):
                raise SynthesisRequestError(
                    f"Synthesis request rejected: {response.text[:200]}",
                    status_code=status_code,
                    voice_id=voice_id,
                )

            if status_code == 429:
                delay = self._config.backoff_base_seconds * (2 ** attempt)
                if attempt < retries:
                    logger.warning(
                        "Synthesis rate limited, retrying",
                        extra={"voice_id": voice_id, "attempt": attempt + 1, "delay_seconds": delay},
                    )
                    await self._sleep(delay)
                    continue
                raise SynthesisRateLimitError(
                    "Synthesis rate limit exceeded",
                    retry_after=delay,
                    status_code=status_code,
                    voice_id=voice_id,
                )

            raise SynthesisError(
                f"Synthesis API error: {status_code}",
                status_code=status_code,
                voice_id=voice_id,
            )

        raise SynthesisError("Synthesis failed", voice_id=voice_id)
