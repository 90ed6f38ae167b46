"""
Question Lifecycle

State transitions of tracked questions and the reconciliation policy that
applies asynchronous classification results to records the regex path
already created.

States:
    open -> answered     auto-answer, manual accept, manual resolve
    open -> dismissed    manual dismiss, AI override
    answered/dismissed -> open    reopen (clears every answer/dismissal field)

Record ids derive from chat message ids, so replaying a message is an
upsert and every transition here is safe to retry.
"""

import logging
from typing import Callable, List, Optional

from ..common.config import TrackingConfig
from ..common.schemas import (
    AIClassification,
    AnswerCandidate,
    ApprovalRecord,
    ApprovalStatus,
    ClassifiedBy,
    Intent,
    MentionRecord,
    Question,
    QuestionStatus,
    QuestionType,
    generate_id,
    now_ms,
)
from .answer_scorer import AnswerScorer, ScoringContext
from .handlers.base import ChatMessage
from .intent_classifier import QuestionAnalysis
from .keywords import extract_keywords
from .store import CandidateNotFoundError, QuestionNotFoundError, QuestionStore

logger = logging.getLogger("chatwatch.monitor.lifecycle")

AI_DISMISS_ACTOR = "AI (not a question)"
DEFAULT_DISMISS_ACTOR = "Admin"
DEFAULT_RESOLVE_ACTOR = "Manual"

MAX_BODY_LENGTH = 500
PREVIEW_LENGTH = 200
OFFER_REF_LENGTH = 200

_CLEARED_FIELDS = {
    "answered_by": None,
    "answered_at": None,
    "answer_confidence": None,
    "answer_reason": None,
    "answer_preview": None,
    "answer_id": None,
    "dismissed": False,
    "dismissed_by": None,
    "dismissed_at": None,
    "manually_resolved": False,
}


def categorize_chat(chat_name: Optional[str]) -> str:
    """Coarse question category from the chat name"""
    lower = (chat_name or "").lower()
    if "team" in lower:
        return "team"
    if "onboarding" in lower:
        return "onboarding"
    if "support" in lower or "help" in lower:
        return "support"
    return "general"


def approval_status_from_summary(summary: str) -> ApprovalStatus:
    lower = (summary or "").lower()
    if "reject" in lower:
        return ApprovalStatus.REJECTED
    if "condition" in lower:
        return ApprovalStatus.CONDITIONAL
    return ApprovalStatus.APPROVED


class QuestionLifecycle:
    """
    Opens, answers, dismisses and reopens questions through a QuestionStore.

    Args:
        store: Persistence collaborator
        scorer: Answer scorer (default AnswerScorer())
        tracking: Thresholds and windows (default TrackingConfig())
        clock: Epoch-millisecond clock, injectable for tests
    """

    def __init__(
        self,
        store: QuestionStore,
        scorer: Optional[AnswerScorer] = None,
        tracking: Optional[TrackingConfig] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.scorer = scorer or AnswerScorer()
        self.tracking = tracking or TrackingConfig()
        self._clock = clock

    def is_tracked_chat(self, chat_id: str) -> bool:
        return chat_id not in self.tracking.disabled_chats

    # =========================================================================
    # Regex path
    # =========================================================================

    def open_question(self, message: ChatMessage, analysis: QuestionAnalysis) -> Optional[Question]:
        """
        Create an open question from a classified message.

        Returns:
            The stored question (the existing one on replay), or None if
            the chat has question tracking disabled
        """
        if not self.is_tracked_chat(message.chat_id):
            logger.debug("Question tracking disabled for %s", message.chat_id)
            return None

        question = Question(
            id=generate_id("q", message.msg_id),
            chat_id=message.chat_id,
            chat_name=message.chat_name,
            sender=message.sender or "Unknown",
            body=message.body[:MAX_BODY_LENGTH],
            timestamp=message.timestamp,
            msg_id=message.msg_id,
            priority=analysis.priority,
            question_type=analysis.question_type,
            keywords=analysis.keywords,
            directed_at_me=analysis.directed_at_me,
            category=categorize_chat(message.chat_name),
        )
        stored = self.store.create_question(question)
        logger.info(
            "[Question] %s (%s) from %s in %s",
            stored.question_type.value, stored.priority.value, stored.sender, stored.chat_name,
        )
        return stored

    def check_for_answers(
        self,
        message: ChatMessage,
        is_from_me: bool = False,
        recent_msg_count: int = 0,
        sender: Optional[str] = None,
    ) -> List[AnswerCandidate]:
        """
        Score a message against every open question of its chat.

        Candidates at or above candidate_threshold are persisted; the first
        at or above auto_accept_threshold answers its question, provided the
        question is between min_answer_delay_ms and max_question_age_hours old.

        Args:
            message: The candidate answer
            is_from_me: Sent by the tracked user
            recent_msg_count: Messages seen in the chat recently
            sender: Overrides message.sender (outgoing messages arrive as "Me")

        Returns:
            Persisted candidates, in open-question order
        """
        body = message.body or ""
        if not body:
            return []

        sender = sender or message.sender or "Unknown"
        now = message.timestamp or self._clock()
        max_age_ms = self.tracking.max_question_age_hours * 3600 * 1000
        candidates = []

        for question in self.store.list_open_questions(message.chat_id):
            if message.msg_id and question.msg_id == message.msg_id:
                continue

            age = now - question.timestamp
            if age < self.tracking.min_answer_delay_ms or age > max_age_ms:
                continue

            context = ScoringContext(
                is_quoted_reply=message.has_quoted_msg,
                quoted_body=message.quoted_body,
                quoted_sender=message.quoted_sender,
                is_from_me=is_from_me,
                time_delta_ms=age,
                recent_msg_count=recent_msg_count,
            )
            score = self.scorer.score(question, body, sender, context)
            if score.confidence < self.tracking.candidate_threshold:
                continue

            natural_key = f"{question.id}_{message.msg_id}" if message.msg_id else None
            candidate = self.store.create_candidate(AnswerCandidate(
                id=generate_id("ac", natural_key),
                question_id=question.id,
                chat_id=message.chat_id,
                msg_id=message.msg_id,
                sender=sender,
                body=body[:MAX_BODY_LENGTH],
                timestamp=now,
                confidence=score.confidence,
                signals=score.signals,
                is_quoted_reply=message.has_quoted_msg,
            ))

            if score.confidence >= self.tracking.auto_accept_threshold:
                answered = self.store.accept_candidate(
                    candidate.id,
                    {
                        "status": QuestionStatus.ANSWERED,
                        "answered_by": sender,
                        "answered_at": now,
                        "answer_confidence": score.confidence,
                        "answer_reason": score.reason,
                        "answer_preview": body[:PREVIEW_LENGTH],
                    },
                    require_open=True,
                )
                if answered is not None:
                    logger.info(
                        '[Answer] "%s" answered by %s (confidence: %.2f, reason: %s)',
                        question.body[:40], sender, score.confidence, score.reason,
                    )
                    candidate = self.store.get_candidate(candidate.id)

            candidates.append(candidate)

        return candidates

    # =========================================================================
    # Operator actions
    # =========================================================================

    def _require_question(self, question_id: str) -> Question:
        question = self.store.get_question(question_id)
        if question is None:
            raise QuestionNotFoundError(question_id)
        return question

    def accept_candidate(self, candidate_id: str) -> Question:
        """
        Accept one candidate as the answer, un-accepting every other candidate
        of the same question, in a single store operation.
        """
        candidate = self.store.get_candidate(candidate_id)
        if candidate is None:
            raise CandidateNotFoundError(candidate_id)

        question = self.store.accept_candidate(candidate_id, {
            **_CLEARED_FIELDS,
            "status": QuestionStatus.ANSWERED,
            "answered_by": candidate.sender,
            "answered_at": candidate.timestamp,
            "answer_confidence": candidate.confidence,
            "answer_reason": "manually accepted",
            "answer_preview": candidate.body[:PREVIEW_LENGTH],
            "manually_resolved": True,
        })
        logger.info("Accepted candidate %s for question %s", candidate_id, question.id)
        return question

    def resolve(self, question_id: str, answered_by: Optional[str] = None) -> Question:
        """Mark a question answered by hand"""
        question = self._require_question(question_id)
        if question.status == QuestionStatus.ANSWERED and question.manually_resolved:
            return question

        return self.store.update_question(
            question_id,
            status=QuestionStatus.ANSWERED,
            answered_by=answered_by or DEFAULT_RESOLVE_ACTOR,
            answered_at=self._clock(),
            answer_confidence=1.0,
            answer_reason="manually resolved",
            manually_resolved=True,
            dismissed=False,
            dismissed_by=None,
            dismissed_at=None,
        )

    def dismiss(self, question_id: str, dismissed_by: Optional[str] = None) -> Question:
        question = self._require_question(question_id)
        if question.status == QuestionStatus.DISMISSED:
            return question

        logger.info("Dismissed question %s (%s)", question_id, dismissed_by or DEFAULT_DISMISS_ACTOR)
        return self.store.update_question(
            question_id,
            status=QuestionStatus.DISMISSED,
            dismissed=True,
            dismissed_by=dismissed_by or DEFAULT_DISMISS_ACTOR,
            dismissed_at=self._clock(),
        )

    def reopen(self, question_id: str) -> Question:
        """Back to open; clears every answer and dismissal field"""
        self._require_question(question_id)
        self.store.clear_accepted(question_id)
        return self.store.update_question(question_id, status=QuestionStatus.OPEN, **_CLEARED_FIELDS)

    # =========================================================================
    # Reconciliation with the classification service
    # =========================================================================

    def apply_ai_classification(
        self,
        question_id: str,
        result: Optional[AIClassification],
    ) -> Optional[Question]:
        """
        Apply a service result to a question the regex path created.

        A None result changes nothing. A question intent with a type
        replaces type and priority. Any other intent at or above
        ai_dismiss_confidence dismisses the question, unless a human
        resolved it or it is already dismissed.
        """
        if result is None:
            return None

        question = self.store.get_question(question_id)
        if question is None:
            logger.warning("Classification result for unknown question %s", question_id)
            return None

        updates = {
            "classified_by": ClassifiedBy.AI,
            "ai_intent": result.intent,
            "ai_confidence": result.confidence,
            "ai_summary": result.summary,
            "ai_is_actionable": result.is_actionable,
        }

        if result.intent == Intent.QUESTION:
            if result.question_type is not None:
                updates["question_type"] = result.question_type
                updates["priority"] = result.priority
        elif (
            result.confidence >= self.tracking.ai_dismiss_confidence
            and not question.manually_resolved
            and question.status != QuestionStatus.DISMISSED
        ):
            updates.update(
                status=QuestionStatus.DISMISSED,
                dismissed=True,
                dismissed_by=AI_DISMISS_ACTOR,
                dismissed_at=self._clock(),
            )
            logger.info('[AI] Reclassified question %s as "%s", auto-dismissed', question_id, result.intent.value)

        return self.store.update_question(question_id, **updates)

    def promote(
        self,
        message: ChatMessage,
        result: Optional[AIClassification],
        directed_at_me: bool = False,
    ) -> Optional[Question]:
        """Open a question the regex path missed, when the service is confident"""
        if result is None or result.intent != Intent.QUESTION:
            return None
        if result.confidence < self.tracking.ai_promote_confidence:
            return None
        if not self.is_tracked_chat(message.chat_id):
            return None

        body = message.body[:MAX_BODY_LENGTH]
        question = self.store.create_question(Question(
            id=generate_id("q", message.msg_id),
            chat_id=message.chat_id,
            chat_name=message.chat_name,
            sender=message.sender or "Unknown",
            body=body,
            timestamp=message.timestamp,
            msg_id=message.msg_id,
            priority=result.priority,
            question_type=result.question_type or QuestionType.GENERAL,
            keywords=extract_keywords(body),
            directed_at_me=directed_at_me,
            category=categorize_chat(message.chat_name),
            classified_by=ClassifiedBy.AI,
            ai_intent=Intent.QUESTION,
            ai_confidence=result.confidence,
            ai_summary=result.summary,
            ai_is_actionable=result.is_actionable,
        ))
        logger.info('[AI] Promoted message to question: "%s" from %s', body[:40], question.sender)
        return question

    def record_approval(
        self,
        message: ChatMessage,
        result: Optional[AIClassification],
    ) -> Optional[ApprovalRecord]:
        """Record an approval, rejection or conditional approval"""
        if result is None or result.intent != Intent.APPROVAL:
            return None
        if result.confidence < self.tracking.ai_approval_confidence:
            return None

        status = approval_status_from_summary(result.summary)
        approval = self.store.create_approval(ApprovalRecord(
            id=generate_id("ap", message.msg_id),
            chat_id=message.chat_id,
            chat_name=message.chat_name,
            sender=message.sender or "Unknown",
            body=message.body[:MAX_BODY_LENGTH],
            timestamp=message.timestamp,
            msg_id=message.msg_id,
            status=status,
            confidence=result.confidence,
            summary=result.summary,
            offer_ref=(message.quoted_body or "")[:OFFER_REF_LENGTH],
        ))
        logger.info("[Approval] Detected %s from %s in %s", status.value, approval.sender, approval.chat_name)
        return approval

    # =========================================================================
    # Mentions
    # =========================================================================

    def record_mention(self, message: ChatMessage, is_question: bool = False) -> Optional[MentionRecord]:
        """Record a group message that addresses the tracked user"""
        if not message.is_group or not self.is_tracked_chat(message.chat_id):
            return None

        mention = self.store.create_mention(MentionRecord(
            id=generate_id("mention", message.msg_id),
            chat_id=message.chat_id,
            chat_name=message.chat_name,
            sender=message.sender or "Unknown",
            body=message.body[:MAX_BODY_LENGTH],
            timestamp=message.timestamp,
            msg_id=message.msg_id,
            is_question=is_question,
        ))
        logger.info("[Mention] from %s in %s", mention.sender, mention.chat_name)
        return mention
