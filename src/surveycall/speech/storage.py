"""
Storage for synthesized audio files.
"""

from __future__ import annotations

from typing import Protocol

import anyio

from surveycall.shared.logging import get_logger

logger = get_logger(__name__)


class AudioStorage(Protocol):
    """Persists audio bytes and returns a URL the telephony gateway can fetch."""

    async def save(self, filename: str, audio: bytes, content_type: str = "audio/mpeg") -> str: ...


class LocalAudioStorage:
    """Writes audio under a directory that the app serves as static files."""

    def __init__(self, directory: str, public_base_url: str, url_path: str = "/audio") -> None:
        self._directory = anyio.Path(directory)
        self._public_base_url = public_base_url.rstrip("/")
        self._url_path = "/" + url_path.strip("/")

    def url_for(self, filename: str) -> str:
        return f"{self._public_base_url}{self._url_path}/{filename}"

    async def save(self, filename: str, audio: bytes, content_type: str = "audio/mpeg") -> str:
        await self._directory.mkdir(parents=True, exist_ok=True)
        target = self._directory / filename
        await target.write_bytes(audio)
        logger.info(
            "Audio stored",
            extra={"audio_file": filename, "bytes": len(audio), "content_type": content_type},
        )
        return self.url_for(filename)
