"""
TwiML serialization for turn plans.
"""

from __future__ import annotations

from urllib.parse import urlencode

from surveycall.dialogue.call_config import CallConfig
from surveycall.dialogue.engine import HangUp, Listen, Speak, TurnPlan
from surveycall.dialogue.scripts import ERROR_GOODBYE

VOICE_WEBHOOK_PATH = "/webhooks/telephony/voice"
STATUS_WEBHOOK_PATH = "/webhooks/telephony/status"


def _twiml(s: str) -> str:
    return '<?xml version="1.0" encoding="UTF-8"?>\n<Response>\n' + s + "\n</Response>"


def _xml_escape(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def voice_callback_url(
    base_url: str,
    *,
    ordinal: int,
    total_questions: int,
    attempt_id: str | None,
    config: CallConfig,
    call_sid: str | None = None,
) -> str:
    params: dict[str, str] = {"question": str(ordinal), "totalQuestions": str(total_questions)}
    if attempt_id:
        params["attemptId"] = attempt_id
    if call_sid:
        params["callSid"] = call_sid
    params.update(config.callback_params())
    return f"{base_url.rstrip('/')}{VOICE_WEBHOOK_PATH}?{urlencode(params)}"


def status_callback_url(base_url: str, attempt_id: str | None = None) -> str:
    url = f"{base_url.rstrip('/')}{STATUS_WEBHOOK_PATH}"
    if attempt_id:
        url += "?" + urlencode({"attemptId": attempt_id})
    return url


class TwimlRenderer:
    """Serializes TurnPlans to TwiML for one call."""

    def __init__(
        self,
        base_url: str,
        config: CallConfig,
        attempt_id: str | None = None,
        call_sid: str | None = None,
    ) -> None:
        self._base_url = base_url
        self._config = config
        self._attempt_id = attempt_id
        self._call_sid = call_sid

    def _speak(self, step: Speak, indent: str) -> str:
        if step.audio_url:
            return f"{indent}<Play>{_xml_escape(step.audio_url)}</Play>"
        return (
            f'{indent}<Say voice="{_xml_escape(self._config.say_voice)}" '
            f'language="{_xml_escape(self._config.language)}">{_xml_escape(step.text)}</Say>'
        )

    def _listen(self, step: Listen) -> str:
        action = voice_callback_url(
            self._base_url,
            ordinal=step.ordinal,
            total_questions=step.total_questions,
            attempt_id=self._attempt_id,
            config=self._config,
            call_sid=self._call_sid,
        )
        inner = "\n".join(self._speak(prompt, "    ") for prompt in step.prompts)
        return (
            f'  <Gather input="dtmf speech" action="{_xml_escape(action)}" method="POST" '
            f'timeout="{step.timeout_seconds}" speechTimeout="auto" bargeIn="true" '
            f'language="{_xml_escape(self._config.language)}">\n{inner}\n  </Gather>'
        )

    def render(self, plan: TurnPlan) -> str:
        lines: list[str] = []
        for step in plan.steps:
            if isinstance(step, Speak):
                lines.append(self._speak(step, "  "))
            elif isinstance(step, Listen):
                lines.append(self._listen(step))
            elif isinstance(step, HangUp):
                lines.append("  <Hangup />")
        return _twiml("\n".join(lines))


def safe_hangup(message: str = ERROR_GOODBYE) -> str:
    """Markup that ends the call politely; never fails."""
    return _twiml(f"  <Say>{_xml_escape(message)}</Say>\n  <Hangup />")
