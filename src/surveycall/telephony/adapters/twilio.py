"""
Twilio telephony provider adapter.

Talks to the Twilio REST API over httpx. The initial call markup travels
inline in the `Twiml` parameter; later turns are fetched by Twilio from the
voice webhook.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import uuid
from datetime import datetime, timezone
from typing import Any

import httpx

from surveycall.shared.logging import get_logger
from surveycall.telephony.config import TelephonyConfig
from surveycall.telephony.interface import (
    CallInitiationError,
    CallInitiationRequest,
    CallInitiationResponse,
    CallStatus,
    StatusCallback,
    TelephonyProvider,
    WebhookParseError,
)

logger = get_logger(__name__)

# Twilio magic test numbers never reach the network.
TEST_NUMBER_PREFIX = "+1500555"

TWILIO_STATUS_MAP: dict[str, CallStatus] = {
    "queued": CallStatus.QUEUED,
    "initiated": CallStatus.INITIATED,
    "ringing": CallStatus.RINGING,
    "in-progress": CallStatus.IN_PROGRESS,
    "answered": CallStatus.IN_PROGRESS,
    "completed": CallStatus.COMPLETED,
    "busy": CallStatus.BUSY,
    "no-answer": CallStatus.NO_ANSWER,
    "failed": CallStatus.FAILED,
    "canceled": CallStatus.CANCELED,
}


def compute_signature(auth_token: str, url: str, params: dict[str, Any]) -> str:
    """Twilio request signature: HMAC-SHA1 over URL + sorted key/value pairs, base64."""
    payload = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), payload.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("utf-8")


class TwilioAdapter(TelephonyProvider):
    """Twilio implementation of the TelephonyProvider interface."""

    def __init__(self, config: TelephonyConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                auth=(self._config.twilio_account_sid, self._config.twilio_auth_token),
                timeout=self._config.request_timeout_seconds,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def initiate_call(self, request: CallInitiationRequest) -> CallInitiationResponse:
        now = datetime.now(timezone.utc)

        if request.to.startswith(TEST_NUMBER_PREFIX):
            logger.info(
                "Test phone number detected, skipping Twilio",
                extra={"attempt_id": request.attempt_id, "to": request.to},
            )
            return CallInitiationResponse(
                provider_call_id=f"TEST_CALL_SID_{uuid.uuid4().hex[:16]}",
                status=CallStatus.QUEUED,
                created_at=now,
                raw_response={"test": True},
            )

        if not self._config.has_twilio_credentials:
            raise CallInitiationError("Twilio credentials are not configured", error_code="not_configured")

        url = (
            f"{self._config.twilio_api_base.rstrip('/')}/2010-04-01/Accounts/"
            f"{self._config.twilio_account_sid}/Calls.json"
        )
        form_data = {
            "To": request.to,
            "From": request.from_number or self._config.twilio_from_number,
            "Twiml": request.twiml,
            "StatusCallback": request.status_callback_url,
            "StatusCallbackMethod": "POST",
            "StatusCallbackEvent": ["initiated", "ringing", "answered", "completed"],
            "Timeout": str(self._config.call_timeout_seconds),
        }

        logger.info(
            "Initiating Twilio call",
            extra={"attempt_id": request.attempt_id, "to": request.to},
        )

        try:
            response = await self._get_client().post(url, data=form_data)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            error_data: dict[str, Any] = {}
            try:
                error_data = e.response.json()
            except ValueError:
                error_data = {"body": e.response.text[:500]}

            logger.error(
                "Twilio call initiation failed",
                extra={
                    "attempt_id": request.attempt_id,
                    "status_code": e.response.status_code,
                    "error": error_data,
                },
            )
            raise CallInitiationError(
                error_data.get("message") or f"Twilio API error: {e.response.status_code}",
                error_code=str(error_data.get("code", e.response.status_code)),
                provider_response=error_data,
            ) from e
        except httpx.RequestError as e:
            logger.error(
                "Twilio request failed",
                extra={"attempt_id": request.attempt_id, "error": str(e)},
            )
            raise CallInitiationError(f"Twilio request failed: {e}") from e
        except ValueError as e:
            logger.error(
                "Twilio returned a non-JSON body",
                extra={"attempt_id": request.attempt_id, "body": response.text[:200]},
            )
            raise CallInitiationError("Twilio returned an unreadable response", error_code="bad_response") from e

        call_sid = data.get("sid") if isinstance(data, dict) else None
        if not call_sid:
            logger.error(
                "Twilio response has no call sid",
                extra={"attempt_id": request.attempt_id, "response": data},
            )
            raise CallInitiationError(
                "Twilio response is missing the call sid",
                error_code="bad_response",
                provider_response=data if isinstance(data, dict) else None,
            )

        raw_status = str(data.get("status", "queued")).lower()
        return CallInitiationResponse(
            provider_call_id=str(call_sid),
            status=TWILIO_STATUS_MAP.get(raw_status, CallStatus.QUEUED),
            created_at=now,
            raw_response=data,
        )

    def parse_status_callback(self, payload: dict[str, Any]) -> StatusCallback:
        provider_call_id = str(payload.get("CallSid") or "").strip()
        if not provider_call_id:
            raise WebhookParseError("Missing CallSid in webhook payload")

        raw_status = str(payload.get("CallStatus") or "").strip().lower()
        status = TWILIO_STATUS_MAP.get(raw_status)
        if status is None:
            raise WebhookParseError(f"Unknown Twilio call status: {raw_status!r}")

        duration_str = str(payload.get("CallDuration") or "").strip()
        duration = int(duration_str) if duration_str.isdigit() else None

        return StatusCallback(
            provider_call_id=provider_call_id,
            status=status,
            raw_status=raw_status,
            duration_seconds=duration,
            error_code=payload.get("ErrorCode") or None,
            error_message=payload.get("ErrorMessage") or None,
            raw_payload=dict(payload),
        )

    def validate_webhook_signature(self, params: dict[str, Any], signature: str, url: str) -> bool:
        if not signature or not url or not self._config.twilio_auth_token:
            logger.warning("Signature validation impossible: missing signature, url or token")
            return False
        expected = compute_signature(self._config.twilio_auth_token, url, params)
        return hmac.compare_digest(expected, signature)
