"""Tests for the JSON-file question store."""

import json
import logging
import threading

import pytest

from chatwatch.common.schemas import (
    AnswerCandidate,
    ApprovalRecord,
    ApprovalStatus,
    MentionRecord,
    Question,
    QuestionStatus,
    Signal,
)
from chatwatch.monitor.store import (
    CandidateNotFoundError,
    JsonQuestionStore,
    QuestionNotFoundError,
)

T0 = 1_700_000_000_000


def _question(qid="q_m1", chat_id="ops@g.us", timestamp=T0, **kwargs):
    return Question(id=qid, chat_id=chat_id, sender="Dana", body="Is the report done?", timestamp=timestamp, **kwargs)


def _candidate(cid, qid="q_m1", confidence=0.4):
    return AnswerCandidate(
        id=cid,
        question_id=qid,
        chat_id="ops@g.us",
        sender="Sam",
        body="maybe tomorrow",
        timestamp=T0 + 60_000,
        confidence=confidence,
        signals={"time_proximity": Signal(score=0.2, detail="within 2 minutes")},
    )


@pytest.fixture
def store():
    return JsonQuestionStore()


class TestQuestions:
    def test_create_and_get(self, store):
        store.create_question(_question())
        fetched = store.get_question("q_m1")
        assert fetched.body == "Is the report done?"
        assert fetched.status == QuestionStatus.OPEN

    def test_create_is_idempotent(self, store):
        store.create_question(_question())
        store.update_question("q_m1", priority="urgent")

        again = store.create_question(_question())

        assert again.priority.value == "urgent"
        assert len(store.list_questions()) == 1

    def test_get_returns_copy(self, store):
        store.create_question(_question())
        fetched = store.get_question("q_m1")
        fetched.body = "changed"
        assert store.get_question("q_m1").body == "Is the report done?"

    def test_update_unknown(self, store):
        with pytest.raises(QuestionNotFoundError):
            store.update_question("q_missing", status=QuestionStatus.DISMISSED)
        assert store.get_question("q_missing") is None

    def test_update_validates(self, store):
        store.create_question(_question())
        with pytest.raises(ValueError):
            store.update_question("q_m1", status="closed")

    def test_list_filters_and_order(self, store):
        store.create_question(_question("q_b", timestamp=T0 + 10))
        store.create_question(_question("q_a", timestamp=T0))
        store.create_question(_question("q_c", chat_id="other@g.us"))
        store.update_question("q_c", status=QuestionStatus.DISMISSED)

        assert [q.id for q in store.list_questions()] == ["q_a", "q_c", "q_b"]
        assert [q.id for q in store.list_open_questions("ops@g.us")] == ["q_a", "q_b"]
        assert [q.id for q in store.list_questions(status=QuestionStatus.DISMISSED)] == ["q_c"]

    def test_stats(self, store):
        store.create_question(_question("q_1"))
        store.create_question(_question("q_2"))
        store.update_question("q_2", status=QuestionStatus.ANSWERED)
        assert store.get_stats() == {"total": 2, "open": 1, "answered": 1, "dismissed": 0}


class TestCandidates:
    def test_create_requires_question(self, store):
        with pytest.raises(QuestionNotFoundError):
            store.create_candidate(_candidate("ac_1"))

    def test_create_is_idempotent(self, store):
        store.create_question(_question())
        store.create_candidate(_candidate("ac_1", confidence=0.3))
        store.create_candidate(_candidate("ac_1", confidence=0.9))
        candidates = store.list_candidates("q_m1")
        assert len(candidates) == 1
        assert candidates[0].confidence == 0.3

    def test_list_sorted_by_confidence(self, store):
        store.create_question(_question())
        store.create_candidate(_candidate("ac_low", confidence=0.25))
        store.create_candidate(_candidate("ac_high", confidence=0.45))
        assert [c.id for c in store.list_candidates("q_m1")] == ["ac_high", "ac_low"]

    def test_accept_leaves_exactly_one_accepted(self, store):
        store.create_question(_question())
        for cid in ("ac_1", "ac_2", "ac_3"):
            store.create_candidate(_candidate(cid))

        store.accept_candidate("ac_1", {"status": QuestionStatus.ANSWERED})
        question = store.accept_candidate("ac_3", {"status": QuestionStatus.ANSWERED})

        accepted = [c.id for c in store.list_candidates("q_m1") if c.is_accepted]
        assert accepted == ["ac_3"]
        assert question.answer_id == "ac_3"
        assert question.status == QuestionStatus.ANSWERED

    def test_accept_unknown_candidate(self, store):
        with pytest.raises(CandidateNotFoundError):
            store.accept_candidate("ac_missing", {})

    def test_accept_require_open(self, store):
        store.create_question(_question())
        store.create_candidate(_candidate("ac_1"))
        assert store.get_question("q_m1").is_open
        store.update_question("q_m1", status=QuestionStatus.DISMISSED)

        assert store.accept_candidate("ac_1", {"status": QuestionStatus.ANSWERED}, require_open=True) is None
        assert store.get_candidate("ac_1").is_accepted is False
        assert store.get_question("q_m1").status == QuestionStatus.DISMISSED
        assert not store.get_question("q_m1").is_open

    def test_concurrent_accepts(self, store):
        store.create_question(_question())
        ids = [f"ac_{i}" for i in range(20)]
        for cid in ids:
            store.create_candidate(_candidate(cid))

        threads = [
            threading.Thread(target=store.accept_candidate, args=(cid, {"status": QuestionStatus.ANSWERED}))
            for cid in ids
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        accepted = [c.id for c in store.list_candidates("q_m1") if c.is_accepted]
        assert len(accepted) == 1
        assert store.get_question("q_m1").answer_id == accepted[0]

    def test_clear_accepted(self, store):
        store.create_question(_question())
        store.create_candidate(_candidate("ac_1"))
        store.accept_candidate("ac_1", {})

        assert store.clear_accepted("q_m1") == 1
        assert store.clear_accepted("q_m1") == 0
        assert not store.get_candidate("ac_1").is_accepted


class TestApprovals:
    def test_create_and_list(self, store):
        approval = ApprovalRecord(id="ap_m9", chat_id="ops@g.us", timestamp=T0, status=ApprovalStatus.REJECTED)
        store.create_approval(approval)
        store.create_approval(approval)
        approvals = store.list_approvals()
        assert len(approvals) == 1
        assert approvals[0].status == ApprovalStatus.REJECTED


class TestMentions:
    def test_create_is_idempotent(self, store):
        mention = MentionRecord(id="mention_m5", chat_id="ops@g.us", sender="Dana", body="Alex can you check", timestamp=T0)
        store.create_mention(mention)
        store.create_mention(mention.model_copy(update={"body": "changed"}))

        mentions = store.list_mentions()
        assert len(mentions) == 1
        assert mentions[0].body == "Alex can you check"

    def test_list_filters_and_order(self, store):
        store.create_mention(MentionRecord(id="mention_b", chat_id="ops@g.us", timestamp=T0 + 10))
        store.create_mention(MentionRecord(id="mention_a", chat_id="ops@g.us", timestamp=T0))
        store.create_mention(MentionRecord(id="mention_c", chat_id="sales@g.us", timestamp=T0 + 5))

        assert [m.id for m in store.list_mentions()] == ["mention_a", "mention_c", "mention_b"]
        assert [m.id for m in store.list_mentions(chat_id="ops@g.us")] == ["mention_a", "mention_b"]


class TestPersistence:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "questions.json"
        store = JsonQuestionStore(path)
        store.create_question(_question())
        store.create_candidate(_candidate("ac_1"))
        store.accept_candidate("ac_1", {"status": QuestionStatus.ANSWERED, "answered_by": "Sam"})
        store.create_approval(ApprovalRecord(id="ap_1", chat_id="ops@g.us", timestamp=T0))
        store.create_mention(MentionRecord(id="mention_1", chat_id="ops@g.us", timestamp=T0, is_question=True))

        reloaded = JsonQuestionStore(path)
        question = reloaded.get_question("q_m1")
        assert question.status == QuestionStatus.ANSWERED
        assert question.answered_by == "Sam"
        candidate = reloaded.get_candidate("ac_1")
        assert candidate.is_accepted
        assert candidate.signals["time_proximity"].detail == "within 2 minutes"
        assert len(reloaded.list_approvals()) == 1
        assert reloaded.list_mentions()[0].is_question is True

    def test_file_is_json(self, tmp_path):
        path = tmp_path / "nested" / "questions.json"
        JsonQuestionStore(path).create_question(_question())
        data = json.loads(path.read_text())
        assert data["questions"][0]["id"] == "q_m1"
        assert data["questions"][0]["status"] == "open"

    def test_corrupt_file_starts_empty(self, tmp_path, caplog):
        path = tmp_path / "questions.json"
        path.write_text("{not json")
        with caplog.at_level(logging.WARNING, logger="chatwatch.monitor.store"):
            store = JsonQuestionStore(path)
        assert store.list_questions() == []
        assert "Failed to load store" in caplog.text

    def test_in_memory_writes_nothing(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        JsonQuestionStore().create_question(_question())
        assert list(tmp_path.iterdir()) == []
