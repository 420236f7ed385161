"""
Telephony provider configuration.
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderType(str, Enum):
    """Supported telephony provider types."""

    TWILIO = "twilio"
    MOCK = "mock"


class TelephonyConfig(BaseSettings):
    """Telephony provider configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="TELEPHONY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Provider selection
    provider_type: ProviderType = Field(default=ProviderType.TWILIO)

    # Provider credentials
    twilio_account_sid: str = Field(default="")
    twilio_auth_token: str = Field(default="")
    twilio_from_number: str = Field(default="")
    twilio_api_base: str = Field(default="https://api.twilio.com")

    # Timeouts
    call_timeout_seconds: int = Field(default=60, ge=10, le=300)
    request_timeout_seconds: float = Field(default=30.0, gt=0, le=120)

    # Reject webhooks without a valid X-Twilio-Signature
    validate_signatures: bool = Field(default=False)

    @property
    def has_twilio_credentials(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token)


def get_telephony_config() -> TelephonyConfig:
    return TelephonyConfig()
