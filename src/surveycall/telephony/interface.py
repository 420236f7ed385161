"""
Telephony provider interface definition.

A provider places outbound calls carrying initial call markup and parses the
gateway's status callbacks.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class CallStatus(str, Enum):
    """Gateway call status values."""

    QUEUED = "queued"
    INITIATED = "initiated"
    RINGING = "ringing"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    BUSY = "busy"
    NO_ANSWER = "no-answer"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_unreachable(self) -> bool:
        """The call ended without the recipient ever answering."""
        return self in (CallStatus.BUSY, CallStatus.NO_ANSWER, CallStatus.FAILED, CallStatus.CANCELED)


@dataclass(frozen=True)
class CallInitiationRequest:
    """Request to initiate an outbound call."""

    to: str
    from_number: str
    twiml: str
    status_callback_url: str
    attempt_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CallInitiationResponse:
    """Response from call initiation."""

    provider_call_id: str
    status: CallStatus
    created_at: datetime
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StatusCallback:
    """Parsed gateway status callback."""

    provider_call_id: str
    status: CallStatus
    raw_status: str
    duration_seconds: int | None = None
    error_code: str | None = None
    error_message: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)


class TelephonyProviderError(Exception):
    """Base exception for telephony provider errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider_response: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.provider_response = provider_response or {}


class CallInitiationError(TelephonyProviderError):
    """Error during call initiation."""


class WebhookParseError(TelephonyProviderError):
    """Error parsing webhook event."""


class TelephonyProvider(ABC):
    """Abstract interface for telephony providers."""

    @abstractmethod
    async def initiate_call(self, request: CallInitiationRequest) -> CallInitiationResponse:
        """Place an outbound call.

        Raises:
            CallInitiationError: If the gateway rejects or cannot be reached.
        """
        ...

    @abstractmethod
    def parse_status_callback(self, payload: dict[str, Any]) -> StatusCallback:
        """Parse a status callback from the provider.

        Raises:
            WebhookParseError: If required fields are missing.
        """
        ...

    @abstractmethod
    def validate_webhook_signature(self, params: dict[str, Any], signature: str, url: str) -> bool:
        """Validate webhook signature for authenticity."""
        ...

    async def close(self) -> None:
        """Release any network resources."""
        return None
