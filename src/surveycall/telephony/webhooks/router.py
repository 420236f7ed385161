"""
FastAPI router for telephony webhook endpoints.

Key constraints:
- the gateway must always receive valid markup, never a 5xx
- all call state lives in call_attempts; handlers are stateless
"""

from __future__ import annotations

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response

from sqlalchemy.ext.asyncio import AsyncSession

from surveycall.calls.queue import CallQueueManager
from surveycall.config import Settings, get_settings
from surveycall.dialogue.names import NameExtractor, get_name_extractor
from surveycall.dialogue.service import TurnService, VoiceCallback
from surveycall.shared.database import get_db_session
from surveycall.shared.logging import correlation_id_var, get_logger
from surveycall.speech.factory import build_speech_renderer
from surveycall.telephony.factory import get_telephony_config, get_telephony_provider
from surveycall.telephony.interface import TelephonyProvider, WebhookParseError
from surveycall.telephony.twiml import safe_hangup

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks/telephony", tags=["webhooks"])

XML = "application/xml"


def _int_param(value: str | None, default: int = 1) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


async def _form(request: Request) -> dict[str, Any]:
    try:
        return dict(await request.form())
    except Exception:
        logger.warning("Unreadable webhook form body")
        return {}


def _signature_ok(request: Request, form: dict[str, Any], provider: TelephonyProvider) -> bool:
    if not get_telephony_config().validate_signatures:
        return True
    signature = request.headers.get("x-twilio-signature", "")
    return provider.validate_webhook_signature(form, signature, str(request.url))


@router.post("/voice")
async def voice(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    provider: Annotated[TelephonyProvider, Depends(get_telephony_provider)],
    names: Annotated[NameExtractor, Depends(get_name_extractor)],
) -> Response:
    qs = request.query_params
    form = await _form(request)

    call_sid = str(form.get("CallSid") or qs.get("callSid") or "").strip() or None
    token = correlation_id_var.set(call_sid)
    try:
        if not _signature_ok(request, form, provider):
            logger.warning("Rejected voice webhook with bad signature", extra={"call_sid": call_sid})
            return Response(content=safe_hangup(), media_type=XML)

        callback = VoiceCallback(
            ordinal=_int_param(qs.get("question")),
            total_questions=_int_param(qs.get("totalQuestions")),
            attempt_id=(qs.get("attemptId") or "").strip() or None,
            call_sid=call_sid,
            voice=(qs.get("voice") or "").strip() or None,
            speech_result=str(form.get("SpeechResult") or ""),
            digits=str(form.get("Digits") or ""),
            confidence=str(form.get("Confidence") or ""),
        )

        logger.info(
            "Voice webhook",
            extra={
                "ordinal": callback.ordinal,
                "total_questions": callback.total_questions,
                "attempt_id": callback.attempt_id,
                "speech": (callback.recognized or "")[:80],
            },
        )

        try:
            service = TurnService(session, settings, build_speech_renderer(session), name_extractor=names)
            markup = await service.handle(callback)
        except Exception:
            logger.exception(
                "Voice webhook failed (returning safe TwiML)",
                extra={"attempt_id": callback.attempt_id, "ordinal": callback.ordinal},
            )
            await session.rollback()
            return Response(content=safe_hangup(), media_type=XML)

        return Response(content=markup, media_type=XML)
    finally:
        correlation_id_var.reset(token)


@router.post("/status")
async def status_callback(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db_session)],
    provider: Annotated[TelephonyProvider, Depends(get_telephony_provider)],
) -> dict[str, str]:
    form = await _form(request)
    attempt_param = (request.query_params.get("attemptId") or "").strip()

    try:
        callback = provider.parse_status_callback(form)
    except WebhookParseError as e:
        logger.warning("Unparseable status callback", extra={"error": e.message})
        return {"status": "ignored"}

    attempt_id: UUID | None = None
    try:
        attempt_id = UUID(attempt_param) if attempt_param else None
    except ValueError:
        logger.warning("Malformed attemptId on status callback", extra={"attempt_id": attempt_param})

    try:
        async with session.begin_nested():
            await CallQueueManager(session).record_gateway_status(callback, attempt_id)
    except Exception:
        logger.exception(
            "Failed to record gateway status",
            extra={"call_sid": callback.provider_call_id, "status": callback.raw_status},
        )

    return {"status": "ok"}
