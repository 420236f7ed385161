from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from surveycall.telephony.interface import (
    CallInitiationRequest,
    CallInitiationResponse,
    CallStatus,
    StatusCallback,
    TelephonyProvider,
    WebhookParseError,
)


class MockTelephonyProvider(TelephonyProvider):
    """
    Provider for local development and tests.
    Never touches Twilio; records every request and returns a queued call.
    """

    def __init__(self) -> None:
        self.requests: list[CallInitiationRequest] = []
        self._counter = 0

    async def initiate_call(self, request: CallInitiationRequest) -> CallInitiationResponse:
        self.requests.append(request)
        self._counter += 1
        return CallInitiationResponse(
            provider_call_id=f"MOCK_CALL_{self._counter:06d}",
            status=CallStatus.QUEUED,
            created_at=datetime.now(timezone.utc),
            raw_response={"mock": True, "to": request.to},
        )

    def parse_status_callback(self, payload: dict[str, Any]) -> StatusCallback:
        call_sid = str(payload.get("CallSid") or "")
        if not call_sid:
            raise WebhookParseError("Missing CallSid in webhook payload")
        raw_status = str(payload.get("CallStatus") or "completed").lower()
        try:
            status = CallStatus(raw_status)
        except ValueError as e:
            raise WebhookParseError(f"Unknown call status: {raw_status!r}") from e
        duration = str(payload.get("CallDuration") or "")
        return StatusCallback(
            provider_call_id=call_sid,
            status=status,
            raw_status=raw_status,
            duration_seconds=int(duration) if duration.isdigit() else None,
            raw_payload=dict(payload),
        )

    def validate_webhook_signature(self, params: dict[str, Any], signature: str, url: str) -> bool:
        return True
