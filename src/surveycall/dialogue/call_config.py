"""
Call-scoped configuration.

Resolved once when a call is placed and re-derived identically from the stored
CallAttempt on every callback, so no turn decides voice or synthesis mode ad hoc.
"""

from __future__ import annotations

from dataclasses import dataclass

from surveycall.speech.voices import is_synthesis_voice, resolve_voice_id


@dataclass(frozen=True)
class CallConfig:
    """Immutable voice settings for one call."""

    voice_option: str
    say_voice: str
    language: str
    use_synthesis: bool
    synthesis_voice_id: str | None = None

    @classmethod
    def resolve(
        cls,
        voice_option: str | None,
        language_option: str | None,
        *,
        default_voice: str,
        default_language: str,
        synthesis_available: bool,
    ) -> "CallConfig":
        """Build the config from stored attempt options and service defaults.

        A provider voice with no synthesis credentials degrades to the gateway
        default voice.
        """
        voice = (voice_option or "").strip() or default_voice
        wants_synthesis = is_synthesis_voice(voice)
        return cls(
            voice_option=voice,
            say_voice=default_voice if wants_synthesis else voice,
            language=(language_option or "").strip() or default_language,
            use_synthesis=wants_synthesis and synthesis_available,
            synthesis_voice_id=resolve_voice_id(voice) if wants_synthesis else None,
        )

    def callback_params(self) -> dict[str, str]:
        """Informational parameters echoed on every gateway callback URL."""
        return {"voice": self.voice_option, "synth": "1" if self.use_synthesis else "0"}
