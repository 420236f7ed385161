"""
Tests for settings, provider configuration and structured logging.
"""

import json
import logging

import pytest

from surveycall.config import Settings, get_settings
from surveycall.shared.logging import StructuredFormatter, correlation_id_var
from surveycall.speech.config import SpeechConfig
from surveycall.telephony.config import ProviderType, TelephonyConfig
from surveycall.telephony.factory import _mask


class TestSettings:
    def test_cors_origins_list(self) -> None:
        settings = Settings(cors_origins="http://a.test, http://b.test,")
        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_env_overrides_under_pytest(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DEFAULT_VOICE", "Polly.Joanna")
        assert get_settings().default_voice == "Polly.Joanna"

    def test_sweeper_interval_bounds(self) -> None:
        with pytest.raises(ValueError):
            Settings(sweeper_interval_seconds=1)


class TestTelephonyConfig:
    def test_default_values(self) -> None:
        # Environment may override the runtime value; check the declared default.
        assert TelephonyConfig.model_fields["provider_type"].default == ProviderType.TWILIO
        assert TelephonyConfig.model_fields["validate_signatures"].default is False

    def test_custom_values(self) -> None:
        config = TelephonyConfig(
            provider_type=ProviderType.MOCK,
            twilio_account_sid="AC_TEST",
            twilio_auth_token="test_token",
            twilio_from_number="+14155550000",
            call_timeout_seconds=120,
        )

        assert config.provider_type == ProviderType.MOCK
        assert config.has_twilio_credentials
        assert config.call_timeout_seconds == 120

    def test_reads_prefixed_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TELEPHONY_TWILIO_FROM_NUMBER", "+14155559999")
        assert TelephonyConfig().twilio_from_number == "+14155559999"

    def test_mask(self) -> None:
        assert _mask("AC1234567890") == "AC1234***"
        assert _mask("AC1") == "***"
        assert _mask("") == ""


class TestSpeechConfig:
    def test_enabled_only_with_key(self) -> None:
        assert not SpeechConfig(elevenlabs_api_key="  ").enabled
        assert SpeechConfig(elevenlabs_api_key="xi-key").enabled


class TestStructuredFormatter:
    def _record(self, **extra: object) -> logging.LogRecord:
        record = logging.LogRecord("surveycall.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_extra_fields_are_top_level(self) -> None:
        payload = json.loads(StructuredFormatter().format(self._record(attempt_id="abc")))

        assert payload["message"] == "hello world"
        assert payload["level"] == "INFO"
        assert payload["attempt_id"] == "abc"

    def test_correlation_id(self) -> None:
        token = correlation_id_var.set("CA123")
        try:
            payload = json.loads(StructuredFormatter().format(self._record()))
        finally:
            correlation_id_var.reset(token)

        assert payload["correlation_id"] == "CA123"
