"""Tests for question voice formatting, name extraction and call voice configuration."""

import pytest

from surveycall.dialogue.call_config import CallConfig
from surveycall.dialogue.names import PatternNameExtractor, is_placeholder_name
from surveycall.speech.voices import (
    DEFAULT_ELEVENLABS_VOICE,
    ELEVENLABS_VOICES,
    is_synthesis_voice,
    resolve_voice_id,
)
from surveycall.surveys.formatting import (
    answer_hint,
    format_question_for_voice,
    normalize_response_type,
    validate_voice_question,
)
from surveycall.surveys.models import ResponseType


class TestFormatQuestionForVoice:
    def test_appends_question_mark_and_hint(self) -> None:
        assert (
            format_question_for_voice("How was your visit", "numeric")
            == "How was your visit? Please say a number."
        )

    def test_keeps_existing_punctuation(self) -> None:
        assert format_question_for_voice("Did we help?", "yes-no") == 'Did we help? Please say "Yes" or "No".'

    def test_lists_options(self) -> None:
        text = format_question_for_voice("Which store", "multiple-choice", ["North", "South"])
        assert text == 'Which store? Please say one of the following: "North", "South".'

    def test_already_prompted_text_is_untouched(self) -> None:
        text = "Please tell me what you liked most."
        assert format_question_for_voice(text, "open-ended") == text

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Yes_No", ResponseType.YES_NO),
            ("yes/no", ResponseType.YES_NO),
            ("Multiple Choice", ResponseType.MULTIPLE_CHOICE),
            ("numeric", ResponseType.NUMERIC),
            ("rating", None),
            (None, None),
        ],
    )
    def test_normalize_response_type(self, raw: str | None, expected: ResponseType | None) -> None:
        assert normalize_response_type(raw) == expected

    def test_unknown_type_gets_generic_hint(self) -> None:
        assert answer_hint("rating") == "Please respond with your answer."


class TestValidateVoiceQuestion:
    def test_good_question(self) -> None:
        assert validate_voice_question("How satisfied were you?", "numeric") == []

    def test_empty(self) -> None:
        assert validate_voice_question("  ") == ["Question text cannot be empty"]

    def test_reports_each_problem(self) -> None:
        options = ["a" * 60, "b", "c", "d", "e", "f"]
        problems = validate_voice_question("Pick", "multiple-choice", options)

        assert any("punctuation" in p for p in problems)
        assert any("too long" in p for p in problems)
        assert any("Too many options" in p for p in problems)
        assert any("too short" in p for p in problems)

    def test_multiple_choice_needs_two_options(self) -> None:
        problems = validate_voice_question("Which store did you visit?", "multiple-choice", ["North"])
        assert problems == ["Multiple-choice questions should have at least two options"]


class TestNameExtraction:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("My name is dana", "Dana"),
            ("Hi, this is Robin", "Robin"),
            ("Alex speaking", "Alex"),
            ("call me Sam please", "Sam"),
        ],
    )
    def test_extracts_names(self, text: str, expected: str) -> None:
        assert PatternNameExtractor().extract(text, introduction=True) == expected

    @pytest.mark.parametrize("text", ["yes", "ok", "I'm fine thanks", "it's good", "42", ""])
    def test_ignores_non_names(self, text: str) -> None:
        assert PatternNameExtractor().extract(text, introduction=True) is None

    @pytest.mark.parametrize(
        "text",
        ["it's terrible", "I'm satisfied", "I am unhappy", "this is excellent", "it's seven"],
    )
    def test_rating_answers_are_not_names(self, text: str) -> None:
        assert PatternNameExtractor().extract(text, introduction=True) is None

    @pytest.mark.parametrize("text", ["this is Robin", "I'm Jordan", "Casey here"])
    def test_conversational_forms_only_at_introduction(self, text: str) -> None:
        extractor = PatternNameExtractor()

        assert extractor.extract(text) is None
        assert extractor.extract(text, introduction=True) is not None

    def test_explicit_introduction_on_any_turn(self) -> None:
        assert PatternNameExtractor().extract("oh and my name is Morgan") == "Morgan"

    def test_placeholder_names(self) -> None:
        assert is_placeholder_name(None)
        assert is_placeholder_name(" ")
        assert is_placeholder_name("Customer")
        assert is_placeholder_name("3f2a9c1b", recipient_id="3f2a9c1b-0000-4000-8000-000000000000")
        assert not is_placeholder_name("Dana")


class TestVoices:
    def test_synthesis_voice_detection(self) -> None:
        assert is_synthesis_voice("RACHEL")
        assert is_synthesis_voice("elevenlabs_adam")
        assert is_synthesis_voice(ELEVENLABS_VOICES["JOSH"])
        assert not is_synthesis_voice("Polly.Joanna")
        assert not is_synthesis_voice("Google.en-US-Wavenet-F")
        assert not is_synthesis_voice(None)

    def test_resolve_voice_id(self) -> None:
        assert resolve_voice_id("ELEVENLABS_ADAM") == ELEVENLABS_VOICES["ADAM"]
        assert resolve_voice_id("callum") == ELEVENLABS_VOICES["CALLUM"]
        assert resolve_voice_id("abcdefghijklmnopqrstuvwxyz") == "abcdefghijklmnopqrstuvwxyz"
        assert resolve_voice_id("short") == DEFAULT_ELEVENLABS_VOICE
        assert resolve_voice_id(None) == DEFAULT_ELEVENLABS_VOICE


class TestCallConfig:
    def _resolve(self, voice: str | None, available: bool = True) -> CallConfig:
        return CallConfig.resolve(
            voice,
            None,
            default_voice="Google.en-US-Wavenet-F",
            default_language="en-US",
            synthesis_available=available,
        )

    def test_gateway_voice(self) -> None:
        config = self._resolve("Polly.Joanna")

        assert config.say_voice == "Polly.Joanna"
        assert config.language == "en-US"
        assert not config.use_synthesis
        assert config.synthesis_voice_id is None
        assert config.callback_params() == {"voice": "Polly.Joanna", "synth": "0"}

    def test_synthesis_voice(self) -> None:
        config = self._resolve("RACHEL")

        assert config.use_synthesis
        assert config.synthesis_voice_id == ELEVENLABS_VOICES["RACHEL"]
        assert config.say_voice == "Google.en-US-Wavenet-F"
        assert config.callback_params()["synth"] == "1"

    def test_synthesis_voice_without_credentials(self) -> None:
        config = self._resolve("RACHEL", available=False)

        assert not config.use_synthesis
        assert config.say_voice == "Google.en-US-Wavenet-F"

    def test_defaults_when_unset(self) -> None:
        config = self._resolve(None)
        assert config.voice_option == "Google.en-US-Wavenet-F"
        assert not config.use_synthesis
