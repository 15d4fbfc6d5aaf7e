from unittest.mock import MagicMock

from openai import OpenAIError
import pytest

from app.core.enums import ModerationStatus
from app.models.event import Event
from app.services import moderation_service as ms
from app.services.moderation_service import MODERATION_FAILED_REASON, ModerationDecision, ModerationService
from app.services.search.llm_schema import LLMModerationResponse
import app.tasks.moderation as moderation_tasks
from app.tasks.moderation import decision_to_status, enqueue_moderation, moderate_event, resubmit_for_moderation


def _event() -> Event:
    return Event(
        id="01JEVENT000000000000000000",
        title="Community garden working bee",
        description="Bring gloves",
        city="Melbourne",
        moderation_status=ModerationStatus.PENDING,
    )


def _openai_client(parsed=None, refusal=None, side_effect=None) -> MagicMock:
    message = MagicMock(parsed=parsed, refusal=refusal)
    response = MagicMock()
    response.choices = [MagicMock(message=message)]
    client = MagicMock()
    client.beta.chat.completions.parse = MagicMock(return_value=response, side_effect=side_effect)
    return client


class FakeModerationService:
    decision = ModerationDecision(approved=True, needs_review=False, reason="Ordinary community event")

    def moderate(self, event):
        return self.decision


@pytest.fixture
def mock_db(monkeypatch):
    db = MagicMock()
    monkeypatch.setattr(moderation_tasks, "SessionLocal", lambda: db)
    monkeypatch.setattr(moderation_tasks, "ModerationService", FakeModerationService)
    return db


def test_decision_to_status():
    assert decision_to_status(ModerationDecision(True, False, "ok")) == ModerationStatus.APPROVED
    assert decision_to_status(ModerationDecision(False, True, "unsure")) == ModerationStatus.NEEDS_REVIEW
    assert decision_to_status(ModerationDecision(False, False, "spam")) == ModerationStatus.REJECTED


def test_moderate_event_persists_decision(mock_db):
    event = _event()
    mock_db.get.return_value = event

    result = moderate_event.run(event.id)

    assert result["status"] == "success"
    assert result["moderation_status"] == "APPROVED"
    assert event.moderation_status == ModerationStatus.APPROVED
    assert event.moderation_reason == "Ordinary community event"
    mock_db.commit.assert_called_once()
    mock_db.close.assert_called_once()


def test_moderate_event_missing_event(mock_db):
    mock_db.get.return_value = None

    result = moderate_event.run("missing")

    assert result["status"] == "error"
    mock_db.commit.assert_not_called()


def test_moderate_event_db_failure_rolls_back_and_retries(mock_db):
    mock_db.get.side_effect = RuntimeError("connection reset")

    # Called directly (outside a worker) retry re-raises the original error
    with pytest.raises(RuntimeError):
        moderate_event.run("01JEVENT000000000000000000")

    mock_db.rollback.assert_called_once()
    mock_db.close.assert_called_once()


def test_enqueue_moderation_uses_delay(monkeypatch):
    task = MagicMock()
    task.delay.return_value = "async-result"
    monkeypatch.setattr(moderation_tasks, "moderate_event", task)

    assert enqueue_moderation("evt_1") == "async-result"
    task.delay.assert_called_once_with("evt_1")


def test_resubmit_resets_moderation_and_requeues(monkeypatch):
    task = MagicMock()
    task.delay.return_value = "async-result"
    monkeypatch.setattr(moderation_tasks, "moderate_event", task)
    db = MagicMock()
    event = _event()
    event.moderation_status = ModerationStatus.APPROVED
    event.moderation_reason = "Ordinary community event"
    event.title = "Community garden working bee (rescheduled)"

    assert resubmit_for_moderation(db, event) == "async-result"

    assert event.moderation_status == ModerationStatus.PENDING
    assert event.moderation_reason is None
    assert "rescheduled" in event.search_text
    db.commit.assert_called_once()
    task.delay.assert_called_once_with(event.id)


class TestModerationService:
    def test_missing_api_key_needs_review(self, monkeypatch):
        monkeypatch.setattr(ms.settings, "openai_api_key", None)

        decision = ModerationService().moderate(_event())

        assert decision == ModerationDecision(False, True, MODERATION_FAILED_REASON)

    def test_approved_verdict(self):
        verdict = LLMModerationResponse(approved=True, needs_review=False, reason="Fine")
        client = _openai_client(parsed=verdict)

        decision = ModerationService(client=client, model="gpt-4.1-mini").moderate(_event())

        assert decision.approved is True
        kwargs = client.beta.chat.completions.parse.call_args.kwargs
        assert kwargs["response_format"] is LLMModerationResponse
        assert "Community garden working bee" in kwargs["messages"][1]["content"]

    def test_review_flag_overrides_approval(self):
        verdict = LLMModerationResponse(approved=True, needs_review=True, reason="Borderline")

        decision = ModerationService(client=_openai_client(parsed=verdict)).moderate(_event())

        assert decision_to_status(decision) == ModerationStatus.NEEDS_REVIEW

    def test_rejection(self):
        verdict = LLMModerationResponse(approved=False, needs_review=False, reason="Spam")

        decision = ModerationService(client=_openai_client(parsed=verdict)).moderate(_event())

        assert decision_to_status(decision) == ModerationStatus.REJECTED

    @pytest.mark.parametrize(
        "client_kwargs",
        [
            {"refusal": "cannot comply"},
            {"side_effect": OpenAIError("rate limited")},
            {"side_effect": RuntimeError("socket closed")},
        ],
    )
    def test_failures_need_review(self, client_kwargs):
        decision = ModerationService(client=_openai_client(**client_kwargs)).moderate(_event())

        assert decision.needs_review is True
        assert decision.reason == MODERATION_FAILED_REASON
