"""
Telephony provider factory.

Single source of truth for configuration:
- use TelephonyConfig (pydantic-settings), which loads from OS env + .env
- never read raw os.getenv("TWILIO_*") here
"""

from __future__ import annotations

from functools import lru_cache

from surveycall.shared.logging import get_logger
from surveycall.telephony.adapters.mock import MockTelephonyProvider
from surveycall.telephony.adapters.twilio import TwilioAdapter
from surveycall.telephony.config import ProviderType, TelephonyConfig
from surveycall.telephony.config import get_telephony_config as _load_telephony_config
from surveycall.telephony.interface import TelephonyProvider

logger = get_logger(__name__)


def _mask(s: str, keep: int = 6) -> str:
    if not s:
        return ""
    if len(s) <= keep:
        return "*" * len(s)
    return f"{s[:keep]}***"


@lru_cache(maxsize=1)
def get_telephony_config() -> TelephonyConfig:
    """Cached TelephonyConfig loaded from OS env + .env."""
    return _load_telephony_config()


def build_telephony_provider(cfg: TelephonyConfig) -> TelephonyProvider:
    logger.info(
        "Telephony config resolved",
        extra={
            "provider_type": cfg.provider_type.value,
            "twilio_account_sid": _mask(cfg.twilio_account_sid),
            "twilio_from_number": cfg.twilio_from_number,
            "call_timeout_seconds": cfg.call_timeout_seconds,
        },
    )

    if cfg.provider_type == ProviderType.TWILIO:
        return TwilioAdapter(cfg)

    if cfg.provider_type == ProviderType.MOCK:
        return MockTelephonyProvider()

    raise ValueError(f"Unsupported telephony provider_type: {cfg.provider_type}")


@lru_cache(maxsize=1)
def get_telephony_provider() -> TelephonyProvider:
    """Create and cache the telephony provider (FastAPI dependency)."""
    return build_telephony_provider(get_telephony_config())
