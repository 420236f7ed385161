"""
Speech synthesis wiring.
"""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession

from surveycall.config import get_settings
from surveycall.shared.logging import get_logger
from surveycall.speech.cache import SpeechRenderer, SpeechSynthesisCache
from surveycall.speech.config import SpeechConfig, get_speech_config
from surveycall.speech.elevenlabs import ElevenLabsClient, SynthesisProvider
from surveycall.speech.storage import AudioStorage, LocalAudioStorage

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_cached_speech_config() -> SpeechConfig:
    return get_speech_config()


@lru_cache(maxsize=1)
def get_synthesis_provider() -> SynthesisProvider | None:
    """Shared provider client, or None when no API key is configured."""
    cfg = get_cached_speech_config()
    if not cfg.enabled:
        logger.info("Speech synthesis disabled; gateway voices only")
        return None
    logger.info(
        "Speech synthesis enabled",
        extra={"model_id": cfg.model_id, "api_base": cfg.elevenlabs_api_base},
    )
    return ElevenLabsClient(cfg)


@lru_cache(maxsize=1)
def get_audio_storage() -> AudioStorage:
    cfg = get_cached_speech_config()
    return LocalAudioStorage(cfg.audio_dir, get_settings().public_base_url, cfg.audio_url_path)


def build_speech_renderer(
    session: AsyncSession,
    provider: SynthesisProvider | None = None,
    storage: AudioStorage | None = None,
) -> SpeechRenderer:
    """Renderer bound to the request session; no cache when synthesis is off."""
    provider = provider or get_synthesis_provider()
    if provider is None:
        return SpeechRenderer(None)
    return SpeechRenderer(SpeechSynthesisCache(session, provider, storage or get_audio_storage()))
