"""
Question Store

Persistence contract for questions, answer candidates, approvals and
mentions, plus a JSON-file implementation.

The monitor never issues storage queries of its own; it only calls the
methods below, all keyed by opaque string ids. Every mutation that touches
more than one record (accepting a candidate) is a single operation of the
store so the at-most-one-accepted invariant holds under concurrent accepts.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..common.schemas import (
    AnswerCandidate,
    ApprovalRecord,
    MentionRecord,
    Question,
    QuestionStatus,
)

logger = logging.getLogger("chatwatch.monitor.store")


class QuestionNotFoundError(LookupError):
    """No question with the given id"""
    pass


class CandidateNotFoundError(LookupError):
    """No answer candidate with the given id"""
    pass


class QuestionStore(ABC):
    """
    Abstract persistence collaborator.

    Implementations must make create_* idempotent on id (re-creating an
    existing id returns the stored record unchanged) and must apply
    accept_candidate atomically.
    """

    @abstractmethod
    def create_question(self, question: Question) -> Question:
        pass

    @abstractmethod
    def get_question(self, question_id: str) -> Optional[Question]:
        pass

    @abstractmethod
    def update_question(self, question_id: str, **fields: Any) -> Question:
        """Apply field updates; raises QuestionNotFoundError"""
        pass

    @abstractmethod
    def list_questions(
        self,
        status: Optional[QuestionStatus] = None,
        chat_id: Optional[str] = None,
    ) -> List[Question]:
        pass

    def list_open_questions(self, chat_id: str) -> List[Question]:
        return self.list_questions(status=QuestionStatus.OPEN, chat_id=chat_id)

    @abstractmethod
    def create_candidate(self, candidate: AnswerCandidate) -> AnswerCandidate:
        pass

    @abstractmethod
    def get_candidate(self, candidate_id: str) -> Optional[AnswerCandidate]:
        pass

    @abstractmethod
    def list_candidates(self, question_id: str) -> List[AnswerCandidate]:
        """Candidates of a question, highest confidence first"""
        pass

    @abstractmethod
    def accept_candidate(
        self,
        candidate_id: str,
        question_updates: Dict[str, Any],
        require_open: bool = False,
    ) -> Optional[Question]:
        """
        Atomically accept one candidate, un-accept its siblings and update
        the owning question.

        Returns:
            The updated question, or None when require_open is set and the
            question is no longer open (nothing is changed in that case).

        Raises:
            CandidateNotFoundError, QuestionNotFoundError
        """
        pass

    @abstractmethod
    def clear_accepted(self, question_id: str) -> int:
        """Un-accept every candidate of a question; returns how many changed"""
        pass

    @abstractmethod
    def create_approval(self, approval: ApprovalRecord) -> ApprovalRecord:
        pass

    @abstractmethod
    def list_approvals(self) -> List[ApprovalRecord]:
        pass

    @abstractmethod
    def create_mention(self, mention: MentionRecord) -> MentionRecord:
        pass

    @abstractmethod
    def list_mentions(self, chat_id: Optional[str] = None) -> List[MentionRecord]:
        pass

    def get_stats(self) -> Dict[str, int]:
        """Question counts by status"""
        stats = {"total": 0, "open": 0, "answered": 0, "dismissed": 0}
        for question in self.list_questions():
            stats["total"] += 1
            stats[question.status.value] += 1
        return stats


class JsonQuestionStore(QuestionStore):
    """
    Question store persisted to a JSON file (default ~/.chatwatch/questions.json).

    Pass path=None for a purely in-memory store. All operations take one
    re-entrant lock, which is what makes accept_candidate atomic.
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path else None
        self._lock = threading.RLock()
        self._questions: Dict[str, Question] = {}
        self._candidates: Dict[str, AnswerCandidate] = {}
        self._approvals: Dict[str, ApprovalRecord] = {}
        self._mentions: Dict[str, MentionRecord] = {}
        self._load()

    # =========================================================================
    # Persistence
    # =========================================================================

    def _load(self) -> None:
        """Load records from disk"""
        if self._path is None or not self._path.exists():
            return

        try:
            with open(self._path) as f:
                data = json.load(f)

            for item in data.get("questions", []):
                question = Question.model_validate(item)
                self._questions[question.id] = question
            for item in data.get("candidates", []):
                candidate = AnswerCandidate.model_validate(item)
                self._candidates[candidate.id] = candidate
            for item in data.get("approvals", []):
                approval = ApprovalRecord.model_validate(item)
                self._approvals[approval.id] = approval
            for item in data.get("mentions", []):
                mention = MentionRecord.model_validate(item)
                self._mentions[mention.id] = mention
        except (json.JSONDecodeError, IOError, ValueError) as e:
            logger.warning("Failed to load store %s: %s", self._path, e)
            self._questions.clear()
            self._candidates.clear()
            self._approvals.clear()
            self._mentions.clear()

    def _save(self) -> None:
        """Save records to disk"""
        if self._path is None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "questions": [q.model_dump(mode="json") for q in self._questions.values()],
            "candidates": [c.model_dump(mode="json") for c in self._candidates.values()],
            "approvals": [a.model_dump(mode="json") for a in self._approvals.values()],
            "mentions": [m.model_dump(mode="json") for m in self._mentions.values()],
        }

        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        tmp_path.replace(self._path)

    # =========================================================================
    # Questions
    # =========================================================================

    def create_question(self, question: Question) -> Question:
        with self._lock:
            existing = self._questions.get(question.id)
            if existing is not None:
                return existing.model_copy(deep=True)
            self._questions[question.id] = question.model_copy(deep=True)
            self._save()
            return question

    def get_question(self, question_id: str) -> Optional[Question]:
        with self._lock:
            question = self._questions.get(question_id)
            return question.model_copy(deep=True) if question else None

    def update_question(self, question_id: str, **fields: Any) -> Question:
        with self._lock:
            question = self._questions.get(question_id)
            if question is None:
                raise QuestionNotFoundError(question_id)
            updated = Question.model_validate({**question.model_dump(), **fields})
            self._questions[question_id] = updated
            self._save()
            return updated.model_copy(deep=True)

    def list_questions(
        self,
        status: Optional[QuestionStatus] = None,
        chat_id: Optional[str] = None,
    ) -> List[Question]:
        with self._lock:
            questions = [
                q.model_copy(deep=True)
                for q in self._questions.values()
                if (status is None or q.status == status)
                and (chat_id is None or q.chat_id == chat_id)
            ]
        return sorted(questions, key=lambda q: q.timestamp)

    # =========================================================================
    # Answer candidates
    # =========================================================================

    def create_candidate(self, candidate: AnswerCandidate) -> AnswerCandidate:
        with self._lock:
            if candidate.question_id not in self._questions:
                raise QuestionNotFoundError(candidate.question_id)
            existing = self._candidates.get(candidate.id)
            if existing is not None:
                return existing.model_copy(deep=True)
            self._candidates[candidate.id] = candidate.model_copy(deep=True)
            self._save()
            return candidate

    def get_candidate(self, candidate_id: str) -> Optional[AnswerCandidate]:
        with self._lock:
            candidate = self._candidates.get(candidate_id)
            return candidate.model_copy(deep=True) if candidate else None

    def list_candidates(self, question_id: str) -> List[AnswerCandidate]:
        with self._lock:
            candidates = [
                c.model_copy(deep=True)
                for c in self._candidates.values()
                if c.question_id == question_id
            ]
        return sorted(candidates, key=lambda c: c.confidence, reverse=True)

    def accept_candidate(
        self,
        candidate_id: str,
        question_updates: Dict[str, Any],
        require_open: bool = False,
    ) -> Optional[Question]:
        with self._lock:
            candidate = self._candidates.get(candidate_id)
            if candidate is None:
                raise CandidateNotFoundError(candidate_id)
            question = self._questions.get(candidate.question_id)
            if question is None:
                raise QuestionNotFoundError(candidate.question_id)
            if require_open and not question.is_open:
                return None

            for other in self._candidates.values():
                if other.question_id == candidate.question_id:
                    other.is_accepted = other.id == candidate_id

            updated = Question.model_validate({
                **question.model_dump(),
                **question_updates,
                "answer_id": candidate_id,
            })
            self._questions[question.id] = updated
            self._save()
            return updated.model_copy(deep=True)

    def clear_accepted(self, question_id: str) -> int:
        with self._lock:
            changed = 0
            for candidate in self._candidates.values():
                if candidate.question_id == question_id and candidate.is_accepted:
                    candidate.is_accepted = False
                    changed += 1
            if changed:
                self._save()
            return changed

    # =========================================================================
    # Approvals
    # =========================================================================

    def create_approval(self, approval: ApprovalRecord) -> ApprovalRecord:
        with self._lock:
            existing = self._approvals.get(approval.id)
            if existing is not None:
                return existing.model_copy(deep=True)
            self._approvals[approval.id] = approval.model_copy(deep=True)
            self._save()
            return approval

    def list_approvals(self) -> List[ApprovalRecord]:
        with self._lock:
            approvals = [a.model_copy(deep=True) for a in self._approvals.values()]
        return sorted(approvals, key=lambda a: a.timestamp)

    # =========================================================================
    # Mentions
    # =========================================================================

    def create_mention(self, mention: MentionRecord) -> MentionRecord:
        with self._lock:
            existing = self._mentions.get(mention.id)
            if existing is not None:
                return existing.model_copy(deep=True)
            self._mentions[mention.id] = mention.model_copy(deep=True)
            self._save()
            return mention

    def list_mentions(self, chat_id: Optional[str] = None) -> List[MentionRecord]:
        with self._lock:
            mentions = [
                m.model_copy(deep=True)
                for m in self._mentions.values()
                if chat_id is None or m.chat_id == chat_id
            ]
        return sorted(mentions, key=lambda m: m.timestamp)
