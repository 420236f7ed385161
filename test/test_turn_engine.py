"""Tests for the pure call turn engine."""

import pytest

from surveycall.dialogue import scripts
from surveycall.dialogue.engine import (
    HangUp,
    Listen,
    QuestionPrompt,
    Speak,
    SurveyScript,
    TurnInput,
    TurnState,
    follow_up_applies,
    introduction_plan,
    next_turn,
)


@pytest.fixture
def script() -> SurveyScript:
    return SurveyScript(
        survey_name="Customer satisfaction",
        description="It only takes a couple of minutes.",
        recipient_name="Dana",
        questions=(
            QuestionPrompt(id="q1", text="How would you rate your visit", response_type="numeric"),
            QuestionPrompt(
                id="q2",
                text="Would you recommend us",
                response_type="yes-no",
                follow_up_trigger="no",
                follow_up_text="Sorry to hear that, we will look into it.",
            ),
            QuestionPrompt(id="q3", text="What could we do better", response_type="open-ended"),
        ),
    )


def _listens(plan) -> list[Listen]:
    return [step for step in plan.steps if isinstance(step, Listen)]


class TestIntroduction:
    def test_greets_by_name_and_listens_for_consent(self, script: SurveyScript) -> None:
        plan = introduction_plan(script)

        assert plan.state == TurnState.INTRODUCTION
        assert plan.steps[0] == Speak("Hello Dana.")
        consent = _listens(plan)[0]
        assert consent.ordinal == 0
        assert consent.timeout_seconds == 5
        assert "It only takes a couple of minutes." in consent.prompts[0].text
        assert consent.prompts[0].text.endswith("Is that okay?")

    def test_falls_through_to_first_question_then_goodbye(self, script: SurveyScript) -> None:
        plan = introduction_plan(script)

        listens = _listens(plan)
        assert [listen.ordinal for listen in listens] == [0, 1, 1]
        assert "How would you rate your visit?" in listens[1].prompts[0].text
        assert plan.steps[-2] == Speak(scripts.DECLINE_GOODBYE)
        assert isinstance(plan.steps[-1], HangUp)

    def test_without_name(self, script: SurveyScript) -> None:
        anonymous = SurveyScript(survey_name="s", questions=script.questions)
        assert introduction_plan(anonymous).steps[0] == Speak("Hello.")

    def test_empty_survey_completes(self) -> None:
        plan = introduction_plan(SurveyScript(survey_name="empty", questions=()))
        assert plan.state == TurnState.COMPLETED
        assert plan.end_call


class TestNextTurn:
    def test_consent_starts_first_question(self, script: SurveyScript) -> None:
        plan = next_turn(script, TurnInput(ordinal=0, total_questions=3, recognized="Yes", confidence_present=True))

        assert plan.state == TurnState.QUESTION
        assert plan.record_answer is None
        assert plan.steps[0] == Speak(scripts.CONFIRMED_START)
        first, second = _listens(plan)
        assert first.ordinal == second.ordinal == 1
        assert first.prompts[1].text == scripts.QUESTION_PROMPT
        assert second.prompts[1].text == scripts.REPROMPT_HINT

    def test_decline_at_introduction(self, script: SurveyScript) -> None:
        plan = next_turn(script, TurnInput(ordinal=0, total_questions=3, recognized="No, not now"))

        assert plan.state == TurnState.DECLINED
        assert plan.end_call
        assert plan.steps[0] == Speak(scripts.DECLINE_GOODBYE)

    def test_yes_without_confidence_at_first_question_reasks(self, script: SurveyScript) -> None:
        plan = next_turn(script, TurnInput(ordinal=1, total_questions=3, recognized="yes"))

        assert plan.state == TurnState.QUESTION
        assert plan.record_answer is None
        assert plan.steps[0] == Speak(scripts.CONFIRMED_START)
        assert {listen.ordinal for listen in _listens(plan)} == {1}

    def test_yes_with_confidence_is_an_answer(self, script: SurveyScript) -> None:
        plan = next_turn(script, TurnInput(ordinal=1, total_questions=3, recognized="yes", confidence_present=True))

        assert plan.record_answer == "yes"
        assert plan.answered_ordinal == 1
        assert {listen.ordinal for listen in _listens(plan)} == {2}

    def test_answer_advances_with_ack_and_transition(self, script: SurveyScript) -> None:
        plan = next_turn(script, TurnInput(ordinal=1, total_questions=3, recognized="8", confidence_present=True))

        texts = plan.spoken_texts()
        assert texts[0] == scripts.acknowledgment(1)
        assert texts[1] == scripts.transition(2)
        assert "Would you recommend us?" in texts[2]
        assert texts[-1] == scripts.NO_RESPONSE_GOODBYE
        assert isinstance(plan.steps[-1], HangUp)
        assert not plan.end_call

    def test_follow_up_spoken_when_triggered(self, script: SurveyScript) -> None:
        plan = next_turn(script, TurnInput(ordinal=2, total_questions=3, recognized="No", confidence_present=True))

        texts = plan.spoken_texts()
        assert texts[1] == "Sorry to hear that, we will look into it."
        assert plan.answered_ordinal == 2

    def test_empty_input_advances_without_recording(self, script: SurveyScript) -> None:
        plan = next_turn(script, TurnInput(ordinal=1, total_questions=3, recognized="  "))

        assert plan.record_answer is None
        assert plan.answered_ordinal is None
        assert plan.spoken_texts()[0] == scripts.transition(2)

    def test_last_ordinal_completes_and_records(self, script: SurveyScript) -> None:
        plan = next_turn(
            script,
            TurnInput(ordinal=3, total_questions=3, recognized="Shorter queues", confidence_present=True),
        )

        assert plan.state == TurnState.COMPLETED
        assert plan.record_answer == "Shorter queues"
        assert plan.answered_ordinal == 3
        assert plan.steps == (Speak(scripts.COMPLETION), HangUp())
        assert plan.end_call

    def test_single_question_survey_completes_on_consent_phrase(self, script: SurveyScript) -> None:
        single = SurveyScript(survey_name="one", questions=script.questions[:1])
        plan = next_turn(single, TurnInput(ordinal=1, total_questions=1, recognized="yes"))

        assert plan.state == TurnState.COMPLETED
        assert plan.answered_ordinal == 1

    def test_claimed_total_is_bounded_by_script(self, script: SurveyScript) -> None:
        plan = next_turn(script, TurnInput(ordinal=3, total_questions=10, recognized="ok", confidence_present=True))
        assert plan.state == TurnState.COMPLETED

    def test_with_audio_keeps_order(self, script: SurveyScript) -> None:
        plan = next_turn(script, TurnInput(ordinal=1, total_questions=3, recognized="8", confidence_present=True))
        texts = plan.spoken_texts()
        urls = [f"https://cdn/{i}.mp3" for i in range(len(texts))]

        rendered = plan.with_audio(urls)

        first = rendered.steps[0]
        assert isinstance(first, Speak) and first.audio_url == urls[0]
        listen = _listens(rendered)[0]
        assert listen.prompts[0].audio_url == urls[2]
        assert rendered.spoken_texts() == texts


class TestFollowUp:
    def test_numeric_trigger(self) -> None:
        question = QuestionPrompt(id="q", text="Rate us", follow_up_trigger="2", follow_up_text="Why?")
        assert follow_up_applies(question, "two")
        assert not follow_up_applies(question, "nine")

    def test_requires_text(self) -> None:
        question = QuestionPrompt(id="q", text="Rate us", follow_up_trigger="bad")
        assert not follow_up_applies(question, "bad")
