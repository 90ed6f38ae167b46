"""
Scenario tests for the message pipeline: regex path first, then
reconciliation once the classification service answers.
"""

import pytest

from chatwatch.common.config import TrackingConfig
from chatwatch.common.llm_client import LLMResponse
from chatwatch.common.schemas import (
    ApprovalStatus,
    ClassifiedBy,
    QuestionStatus,
    QuestionType,
)
from chatwatch.monitor.classification_queue import ClassificationQueue
from chatwatch.monitor.intent_classifier import IntentClassifier, TrackedIdentity
from chatwatch.monitor.lifecycle import AI_DISMISS_ACTOR, QuestionLifecycle
from chatwatch.monitor.pipeline import MessageMonitor
from chatwatch.monitor.store import JsonQuestionStore

T0 = 1_700_000_000_000
MINUTE = 60_000


def _replying(*results):
    """Responder that answers every job in a batch with the same result"""
    def responder(n, call_index):
        return [dict(results[min(call_index, len(results) - 1)])] * n
    return responder


@pytest.fixture
def store():
    return JsonQuestionStore()


@pytest.fixture
def build_monitor(store, fake_client):
    def _build(responder=None, with_queue=True):
        queue = None
        if with_queue:
            queue = ClassificationQueue(
                fake_client(responder),
                batch_window_s=0.01,
                rate_limit_delay_s=0.0,
                retry_base_delay_s=0.01,
                max_retries=1,
            )
        classifier = IntentClassifier(TrackedIdentity(display_name="Alex Morgan", ids=("15550001111@c.us",)))
        return MessageMonitor(classifier, QuestionLifecycle(store), queue)
    return _build


class TestRegexPath:
    @pytest.mark.asyncio
    async def test_question_opened_before_classification(self, build_monitor, store, make_message):
        monitor = build_monitor(_replying({"intent": "question", "confidence": 0.9}))

        outcome = await monitor.process_message(make_message("Is the report done?", msg_id="m1"))

        assert outcome.question.id == "q_m1"
        assert store.get_question("q_m1").classified_by == ClassifiedBy.REGEX
        assert outcome.classification is not None
        await outcome.classification
        assert store.get_question("q_m1").classified_by == ClassifiedBy.AI

    @pytest.mark.asyncio
    async def test_without_queue(self, build_monitor, store, make_message):
        monitor = build_monitor(with_queue=False)
        outcome = await monitor.process_message(make_message("Is the report done?", msg_id="m1"))
        assert outcome.classification is None
        assert store.get_question("q_m1").status == QuestionStatus.OPEN

    @pytest.mark.asyncio
    async def test_invalid_message_ignored(self, build_monitor, store, make_message):
        monitor = build_monitor(with_queue=False)
        outcome = await monitor.process_message(make_message("", msg_id="m1"))
        assert outcome.question is None
        assert store.list_questions() == []

    @pytest.mark.asyncio
    async def test_answer_in_same_chat(self, build_monitor, store, make_message):
        monitor = build_monitor(with_queue=False)
        await monitor.process_message(make_message("Is the report done?", msg_id="m1"))

        outcome = await monitor.process_message(
            make_message("Yes, the report is done", sender="Sam", msg_id="m2", timestamp=T0 + MINUTE))

        assert [c.id for c in outcome.answered] == ["ac_q_m1_m2"]
        assert store.get_question("q_m1").answered_by == "Sam"

    @pytest.mark.asyncio
    async def test_manager_answer_from_me(self, build_monitor, store, make_message):
        monitor = build_monitor(_replying({"intent": "question", "confidence": 0.9}))
        asked = await monitor.process_message(make_message("Is the report done?", msg_id="m1"))
        await asked.classification

        outcome = await monitor.process_message(make_message(
            "Yes, the report is done", sender="Me", msg_id="m2", timestamp=T0 + MINUTE, from_me=True))

        assert outcome.classification is None
        assert outcome.answered
        question = store.get_question("q_m1")
        assert question.answered_by == "Alex Morgan"
        assert "manager_reply" in outcome.answered[0].signals

    @pytest.mark.asyncio
    async def test_own_question_not_tracked(self, build_monitor, store, make_message):
        monitor = build_monitor(with_queue=False)
        outcome = await monitor.process_message(
            make_message("Is the report done?", sender="Me", msg_id="m1", from_me=True))
        assert outcome.question is None
        assert store.list_questions() == []

    @pytest.mark.asyncio
    async def test_direct_message_statement_not_queued(self, build_monitor, make_message):
        monitor = build_monitor(_replying({"intent": "fyi", "confidence": 0.9}))
        outcome = await monitor.process_message(make_message(
            "The invoice was sent to the partner yesterday", msg_id="m3", chat_id="dana@c.us", is_group=False))
        assert outcome.classification is None
        assert outcome.candidates == []

    @pytest.mark.asyncio
    async def test_recent_message_count_resets_on_question(self, build_monitor, store, make_message):
        monitor = build_monitor(with_queue=False)
        for i in range(4):
            await monitor.process_message(make_message(f"chatter number {i} here", sender="Lee", msg_id=f"c{i}"))
        await monitor.process_message(make_message("Is the report done?", msg_id="m1"))

        outcome = await monitor.process_message(
            make_message("Yes, the report is done", sender="Sam", msg_id="m2", timestamp=T0 + MINUTE))

        assert outcome.candidates[0].signals["conversation_proximity"].detail == "0 messages between"


class TestMentions:
    @pytest.mark.asyncio
    async def test_group_mention_recorded(self, build_monitor, store, make_message):
        monitor = build_monitor(with_queue=False)
        outcome = await monitor.process_message(
            make_message("Alex the deck is in the drive", sender="Lee", msg_id="m4"))

        assert outcome.question is None
        assert outcome.mention.id == "mention_m4"
        assert outcome.mention.is_question is False
        assert [m.sender for m in store.list_mentions()] == ["Lee"]

    @pytest.mark.asyncio
    async def test_directed_question_is_also_a_mention(self, build_monitor, store, make_message):
        monitor = build_monitor(with_queue=False)
        outcome = await monitor.process_message(
            make_message("Alex can you check the numbers?", msg_id="m5"))

        assert outcome.question.directed_at_me
        assert outcome.mention.is_question is True
        assert store.list_mentions()[0].id == "mention_m5"

    @pytest.mark.asyncio
    async def test_unmentioned_message_not_recorded(self, build_monitor, store, make_message):
        monitor = build_monitor(with_queue=False)
        outcome = await monitor.process_message(
            make_message("The invoice was sent to the partner yesterday", msg_id="m6"))
        assert outcome.mention is None
        assert store.list_mentions() == []

    @pytest.mark.asyncio
    async def test_direct_message_not_recorded(self, build_monitor, store, make_message):
        monitor = build_monitor(with_queue=False)
        outcome = await monitor.process_message(make_message(
            "Alex the deck is in the drive", msg_id="m7", chat_id="dana@c.us", is_group=False))
        assert outcome.mention is None
        assert store.list_mentions() == []

    @pytest.mark.asyncio
    async def test_disabled_chat_not_recorded(self, store, make_message):
        classifier = IntentClassifier(TrackedIdentity(display_name="Alex Morgan"))
        lifecycle = QuestionLifecycle(store, tracking=TrackingConfig(disabled_chats=["ops@g.us"]))
        monitor = MessageMonitor(classifier, lifecycle)

        outcome = await monitor.process_message(make_message("Alex the deck is in the drive", msg_id="m8"))
        assert outcome.mention is None
        assert store.list_mentions() == []


class TestReconciliation:
    @pytest.mark.asyncio
    async def test_service_dismisses_false_positive(self, build_monitor, store, make_message):
        monitor = build_monitor(_replying({"intent": "status_update", "confidence": 0.85}))

        outcome = await monitor.process_message(make_message("Report is done?", msg_id="m1"))
        result = await outcome.classification

        assert result.intent.value == "status_update"
        question = store.get_question("q_m1")
        assert question.status == QuestionStatus.DISMISSED
        assert question.dismissed_by == AI_DISMISS_ACTOR

    @pytest.mark.asyncio
    async def test_service_retypes_question(self, build_monitor, store, make_message):
        monitor = build_monitor(_replying(
            {"intent": "question", "question_type": "status_check", "priority": "high", "confidence": 0.9}))

        outcome = await monitor.process_message(make_message("Is the report done?", msg_id="m1"))
        await outcome.classification

        question = store.get_question("q_m1")
        assert question.question_type == QuestionType.STATUS_CHECK
        assert question.priority.value == "high"

    @pytest.mark.asyncio
    async def test_service_promotes_missed_question(self, build_monitor, store, make_message):
        monitor = build_monitor(_replying(
            {"intent": "question", "question_type": "info_seeking", "confidence": 0.8}))

        outcome = await monitor.process_message(
            make_message("Alex need the numbers for the partner deck", msg_id="m4"))
        assert outcome.question is None
        await outcome.classification

        question = store.get_question("q_m4")
        assert question.classified_by == ClassifiedBy.AI
        assert question.question_type == QuestionType.INFO_SEEKING
        assert question.directed_at_me is True

    @pytest.mark.asyncio
    async def test_service_records_approval(self, build_monitor, store, make_message):
        monitor = build_monitor(_replying({"intent": "approval", "confidence": 0.9, "summary": "Rejects the offer"}))

        outcome = await monitor.process_message(make_message(
            "Not at that price, sorry", sender="Lee", msg_id="m6", quoted_body="Offer: 10% off annual plan"))
        await outcome.classification

        approvals = store.list_approvals()
        assert len(approvals) == 1
        assert approvals[0].status == ApprovalStatus.REJECTED
        assert approvals[0].offer_ref == "Offer: 10% off annual plan"

    @pytest.mark.asyncio
    async def test_service_failure_keeps_regex_result(self, build_monitor, store, make_message):
        monitor = build_monitor(lambda n, i: LLMResponse(status_code=500, text="boom"))

        outcome = await monitor.process_message(make_message("Is the report done?", msg_id="m1"))

        assert await outcome.classification is None
        question = store.get_question("q_m1")
        assert question.status == QuestionStatus.OPEN
        assert question.classified_by == ClassifiedBy.REGEX
