"""
Voice option resolution.

A stored voice option is either a gateway TTS voice (e.g. ``Google.en-US-Wavenet-F``,
``Polly.Joanna``) or a synthesis provider voice, written as a name (``RACHEL``),
a prefixed name (``ELEVENLABS_RACHEL``) or a raw provider voice id.
"""

from __future__ import annotations

ELEVENLABS_PREFIX = "ELEVENLABS_"

ELEVENLABS_VOICES: dict[str, str] = {
    "RACHEL": "EXAVITQu4vr4xnSDxMaL",
    "ADAM": "29vD33N1CtxCmqQRPOHJ",
    "ANTONI": "ErXwobaYiN019PkySvjV",
    "JOSH": "TxGEqnHWrfWFTfGW9XjX",
    "ELLI": "MF3mGyEYCl7XYWbV9V6O",
    "DOMI": "AZnzlk1XvdvUeBnXmlld",
    "BELLA": "EXAVITQu4vr4xnSDxMaL",
    "CALLUM": "N2lVS1w4EtoT3dr4eOWO",
}

DEFAULT_ELEVENLABS_VOICE = ELEVENLABS_VOICES["RACHEL"]

_KNOWN_IDS = frozenset(ELEVENLABS_VOICES.values())
_GATEWAY_PREFIXES = ("Google.", "Polly.", "alice", "man", "woman")


def is_synthesis_voice(voice_option: str | None) -> bool:
    """True when the option names a synthesis provider voice rather than a gateway voice."""
    if not voice_option:
        return False
    option = voice_option.strip()
    if option.startswith(_GATEWAY_PREFIXES):
        return False
    if option.upper().startswith(ELEVENLABS_PREFIX):
        return True
    return option.upper() in ELEVENLABS_VOICES or option in _KNOWN_IDS


def resolve_voice_id(voice_option: str | None) -> str:
    """Provider voice id for an option.

    Resolution order: named voice, known id, anything long enough to be a
    provider id, else the default voice.
    """
    if not voice_option:
        return DEFAULT_ELEVENLABS_VOICE

    option = voice_option.strip()
    if option.upper().startswith(ELEVENLABS_PREFIX):
        option = option[len(ELEVENLABS_PREFIX):]

    named = ELEVENLABS_VOICES.get(option.upper())
    if named:
        return named
    if option in _KNOWN_IDS:
        return option
    if len(option) > 20:
        return option
    return DEFAULT_ELEVENLABS_VOICE
