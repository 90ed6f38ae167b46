"""
Message Pipeline

Per-message control flow of the monitor:

1. Outgoing messages from the tracked user are only checked as answers
2. Questions are opened at once from the regex result, then queued so the
   classification service can confirm, retype or dismiss them
3. Other group messages are queued so the service can promote a missed
   question or record an approval, and are checked as answers
4. Group messages that name or @-mention the tracked user are recorded in
   the mentions feed

The regex result is always persisted first; service results only ever
reconcile records that already exist.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..common.schemas import (
    AIClassification,
    AnswerCandidate,
    MentionRecord,
    Question,
    generate_id,
)
from .classification_queue import ClassificationJob, ClassificationQueue
from .handlers.base import ChatMessage
from .intent_classifier import IntentClassifier, MessageAnalysis
from .lifecycle import QuestionLifecycle

logger = logging.getLogger("chatwatch.monitor.pipeline")


@dataclass
class ProcessOutcome:
    """What the pipeline did with one message"""
    analysis: MessageAnalysis = field(default_factory=MessageAnalysis)
    question: Optional[Question] = None
    candidates: List[AnswerCandidate] = field(default_factory=list)
    mention: Optional[MentionRecord] = None
    classification: Optional[asyncio.Future] = None  # resolves to the service result

    @property
    def answered(self) -> List[AnswerCandidate]:
        return [c for c in self.candidates if c.is_accepted]


class MessageMonitor:
    """
    Runs inbound chat messages through classification, tracking and
    reconciliation.

    Args:
        classifier: Regex intent classifier for the tracked identity
        lifecycle: Question lifecycle bound to a store
        queue: Classification queue; None runs regex-only
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        lifecycle: QuestionLifecycle,
        queue: Optional[ClassificationQueue] = None,
    ):
        self.classifier = classifier
        self.lifecycle = lifecycle
        self.queue = queue
        # Messages seen per chat since its last opened question
        self._since_question: Dict[str, int] = {}

    async def process_message(
        self,
        message: ChatMessage,
        recent_msg_count: Optional[int] = None,
    ) -> ProcessOutcome:
        """
        Process one inbound or outgoing message.

        Args:
            message: Parsed chat message
            recent_msg_count: Intervening-message count for answer scoring;
                defaults to messages seen in the chat since its last question

        Returns:
            ProcessOutcome describing records created and the pending
            classification, if any
        """
        outcome = ProcessOutcome()
        if not message.is_valid:
            return outcome

        if recent_msg_count is None:
            recent_msg_count = self._since_question.get(message.chat_id, 0)

        if message.from_me:
            outcome.candidates = self.lifecycle.check_for_answers(
                message,
                is_from_me=True,
                recent_msg_count=recent_msg_count,
                sender=self.classifier.identity.display_name or message.sender,
            )
            self._count(message.chat_id)
            return outcome

        analysis = self.classifier.analyze(message)
        outcome.analysis = analysis

        if analysis.is_mention and message.is_group:
            outcome.mention = self.lifecycle.record_mention(message, is_question=analysis.is_question)

        if analysis.question is not None:
            outcome.question = self.lifecycle.open_question(message, analysis.question)
            if outcome.question is not None:
                self._since_question[message.chat_id] = 0
                outcome.classification = self._enqueue(ClassificationJob(
                    id=outcome.question.id,
                    text=message.body,
                    sender=message.sender,
                    chat_name=message.chat_name,
                    is_group_chat=message.is_group,
                    prior=analysis.question,
                    context={"chat_id": message.chat_id, "msg_id": message.msg_id},
                    callback=self._on_question_classified,
                ))
            return outcome

        self._count(message.chat_id)
        if not message.is_group:
            return outcome

        outcome.classification = self._enqueue(ClassificationJob(
            id=generate_id("msg_check", message.msg_id),
            text=message.body,
            sender=message.sender,
            chat_name=message.chat_name,
            is_group_chat=True,
            context={"message": message, "directed_at_me": analysis.is_mention},
            callback=self._on_message_classified,
        ))
        outcome.candidates = self.lifecycle.check_for_answers(message, recent_msg_count=recent_msg_count)
        return outcome

    def _count(self, chat_id: str) -> None:
        self._since_question[chat_id] = self._since_question.get(chat_id, 0) + 1

    def _enqueue(self, job: ClassificationJob) -> Optional[asyncio.Future]:
        if self.queue is None:
            return None
        return self.queue.enqueue(job)

    # =========================================================================
    # Reconciliation callbacks
    # =========================================================================

    def _on_question_classified(self, job: ClassificationJob, result: Optional[AIClassification]) -> None:
        if result is None:
            logger.debug("No classification for %s, regex result stands", job.id)
            return
        self.lifecycle.apply_ai_classification(job.id, result)

    def _on_message_classified(self, job: ClassificationJob, result: Optional[AIClassification]) -> None:
        if result is None:
            return
        message = job.context["message"]
        self.lifecycle.promote(message, result, directed_at_me=job.context.get("directed_at_me", False))
        self.lifecycle.record_approval(message, result)
