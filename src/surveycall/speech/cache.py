"""
Speech synthesis cache.

Audio is keyed by a hash of (normalized text, voice) and stored once; every
later request for the same pair resolves to the same URL without contacting
the provider.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from surveycall.shared.logging import get_logger
from surveycall.speech.elevenlabs import (
    SynthesisAuthError,
    SynthesisError,
    SynthesisProvider,
    SynthesisRateLimitError,
)
from surveycall.speech.models import AudioAsset
from surveycall.speech.storage import AudioStorage

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    return _WHITESPACE.sub(" ", (text or "").strip())


def asset_key(text: str, voice_id: str) -> str:
    """Stable content hash for a (text, voice) pair."""
    payload = f"{normalize_text(text)}|{voice_id}".encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


class SpeechSynthesisCache:
    """Resolve (text, voice) pairs to audio URLs, synthesizing on a miss."""

    def __init__(
        self,
        session: AsyncSession,
        provider: SynthesisProvider,
        storage: AudioStorage,
    ) -> None:
        self._session = session
        self._provider = provider
        self._storage = storage

    async def lookup(self, text: str, voice_id: str) -> str | None:
        stmt = select(AudioAsset.url).where(AudioAsset.key == asset_key(text, voice_id))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def synthesize(self, text: str, voice_id: str) -> str:
        """Return the audio URL for text spoken in voice_id.

        Raises:
            SynthesisError: When the provider, the audio storage or the asset
                insert fails on a cache miss.
        """
        normalized = normalize_text(text)
        if not normalized:
            raise SynthesisError("Cannot synthesize empty text", voice_id=voice_id)

        key = asset_key(normalized, voice_id)
        cached = await self.lookup(normalized, voice_id)
        if cached is not None:
            logger.debug("Audio cache hit", extra={"asset_key": key[:12], "voice_id": voice_id})
            return cached

        audio = await self._provider.synthesize(normalized, voice_id)
        try:
            url = await self._storage.save(f"{voice_id}_{key[:16]}.mp3", audio)
        except OSError as e:
            raise SynthesisError(f"Audio storage failed: {e}", voice_id=voice_id, original_error=e) from e

        try:
            async with self._session.begin_nested():
                self._session.add(AudioAsset(key=key, voice_id=voice_id, text=normalized, url=url))
        except IntegrityError as e:
            # A concurrent turn stored the same pair first; keep its URL.
            existing = await self.lookup(normalized, voice_id)
            if existing is not None:
                return existing
            raise SynthesisError("Audio asset insert failed", voice_id=voice_id, original_error=e) from e
        except SQLAlchemyError as e:
            raise SynthesisError("Audio asset insert failed", voice_id=voice_id, original_error=e) from e

        logger.info(
            "Audio synthesized",
            extra={"asset_key": key[:12], "voice_id": voice_id, "chars": len(normalized)},
        )
        return url

    async def prepare_script(self, texts: Sequence[str], voice_id: str) -> list[str]:
        """Synthesize segments in order, skipping blank ones.

        URLs come back in segment order; callers index into the list by position.
        """
        urls: list[str] = []
        for text in texts:
            if not normalize_text(text):
                continue
            urls.append(await self.synthesize(text, voice_id))
        return urls


class SpeechRenderer:
    """Map spoken segments to audio URLs, or None where the gateway TTS must speak instead."""

    def __init__(self, cache: SpeechSynthesisCache | None) -> None:
        self._cache = cache

    @property
    def available(self) -> bool:
        return self._cache is not None

    async def render(
        self,
        texts: Sequence[str],
        voice_id: str,
        use_synthesis: bool,
    ) -> list[str | None]:
        """One entry per input segment, aligned by position."""
        if not use_synthesis or self._cache is None:
            return [None] * len(texts)

        urls: list[str | None] = []
        for index, text in enumerate(texts):
            if not normalize_text(text):
                urls.append(None)
                continue
            try:
                urls.append(await self._cache.synthesize(text, voice_id))
            except SynthesisAuthError:
                logger.warning(
                    "Synthesis credentials rejected; falling back to gateway voice for the turn",
                    extra={"voice_id": voice_id},
                )
                return [None] * len(texts)
            except SynthesisRateLimitError:
                # The retry budget is spent once per turn, not once per segment.
                logger.warning(
                    "Synthesis rate limited; falling back to gateway voice for the turn",
                    extra={"voice_id": voice_id, "segment": index},
                )
                return [None] * len(texts)
            except SynthesisError as e:
                logger.warning(
                    "Segment synthesis failed; falling back to gateway voice",
                    extra={"voice_id": voice_id, "segment": index, "error": str(e)},
                )
                urls.append(None)
        return urls
