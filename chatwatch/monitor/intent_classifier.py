"""
Intent Classifier

Deterministic, rule-based question detection. This is the fast path of the
monitor: it runs inline for every inbound message and its result stands
until (and unless) the asynchronous AI classifier overrides it.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple

from ..common.schemas import Priority, QuestionType
from .handlers.base import ChatMessage
from .keywords import extract_keywords
from .patterns import (
    IMPORTANT_WORDS,
    LOW_URGENCY_WORDS,
    NON_QUESTION_PATTERNS,
    QUESTION_RULES,
    URGENT_WORDS,
    RuleGroup,
    matches_any,
)

MIN_TEXT_LENGTH = 3
MIN_QUESTION_LENGTH = 5
MIN_NAME_PART_LENGTH = 3


@dataclass(frozen=True)
class TrackedIdentity:
    """
    Who "me" is. Immutable: a name change means a new classifier.

    ids holds chat-network identities such as "15551234567@c.us" or a
    linked-device id; matching also accepts the part before "@".
    """
    display_name: str = ""
    ids: Tuple[str, ...] = ()

    @classmethod
    def from_config(cls, identity_config) -> "TrackedIdentity":
        ids = tuple(i for i in (identity_config.my_id, identity_config.my_lid) if i)
        return cls(display_name=identity_config.display_name, ids=ids)


@dataclass
class ChatContext:
    """Situational context for classifying a bare text"""
    is_group: bool = True
    mentioned_ids: List[str] = field(default_factory=list)
    quoted_body: Optional[str] = None


@dataclass
class QuestionAnalysis:
    """Result of classifying a text that is a question"""
    question_type: QuestionType
    priority: Priority
    keywords: List[str]
    directed_at_me: bool
    priority_score: float = 0.0  # For debugging


@dataclass
class MessageAnalysis:
    """Full analysis of one inbound message"""
    is_mention: bool = False
    is_question: bool = False
    is_directed_question: bool = False
    is_direct_message: bool = False
    question: Optional[QuestionAnalysis] = None


def _build_name_patterns(full_name: str) -> Tuple[Pattern, ...]:
    """Full name plus every name part of at least three characters"""
    if not full_name or not full_name.strip():
        return ()
    name = full_name.strip()
    patterns = [re.compile(r"\b" + re.escape(name) + r"\b", re.IGNORECASE)]
    for part in name.split():
        if len(part) >= MIN_NAME_PART_LENGTH:
            patterns.append(re.compile(r"\b" + re.escape(part) + r"\b", re.IGNORECASE))
    return tuple(patterns)


def _id_variants(ids: Iterable[str]) -> frozenset:
    variants = set()
    for identity in ids:
        if identity:
            variants.add(identity)
            variants.add(identity.split("@")[0])
    return frozenset(variants)


class IntentClassifier:
    """
    Classifies texts into "not a question" or a typed, prioritized question.

    Algorithm:
    1. Reject short texts and the explicit non-question exclusion set
    2. Walk the ordered rule groups; the first match gives the question type
    3. Score priority from urgency/importance/hedging vocabulary and context
    4. Decide whether the question is directed at the tracked user
    5. Extract keywords for later answer matching
    """

    def __init__(
        self,
        identity: Optional[TrackedIdentity] = None,
        rules: Sequence[RuleGroup] = QUESTION_RULES,
    ):
        self._identity = identity or TrackedIdentity()
        self._rules = tuple(rules)
        self._name_patterns = _build_name_patterns(self._identity.display_name)
        self._my_ids = _id_variants(self._identity.ids)

    @property
    def identity(self) -> TrackedIdentity:
        return self._identity

    def with_display_name(self, display_name: str) -> "IntentClassifier":
        """Return a classifier for a renamed identity; this one is unchanged."""
        identity = TrackedIdentity(display_name=display_name, ids=self._identity.ids)
        return IntentClassifier(identity, rules=self._rules)

    # =========================================================================
    # Mention detection
    # =========================================================================

    def _matches_name(self, text: Optional[str]) -> bool:
        if not text:
            return False
        return any(p.search(text) for p in self._name_patterns)

    def mentions_me(
        self,
        body: str,
        mentioned_ids: Sequence[str] = (),
        quoted_body: Optional[str] = None,
    ) -> bool:
        """
        Check whether a text addresses the tracked user.

        Explicit mention ids are checked first, then the name patterns
        against the body, then against the quoted message body.
        """
        if mentioned_ids and self._my_ids:
            for mention_id in mentioned_ids:
                mention = str(mention_id)
                if mention in self._my_ids or mention.split("@")[0] in self._my_ids:
                    return True

        if self._matches_name(body):
            return True

        return self._matches_name(quoted_body)

    def is_mention(self, message: ChatMessage) -> bool:
        return self.mentions_me(message.body, message.mentioned_ids, message.quoted_body)

    def _is_directed_at_me(self, text: str, context: ChatContext) -> bool:
        if not context.is_group:
            return True
        return self.mentions_me(text, context.mentioned_ids, context.quoted_body)

    # =========================================================================
    # Question detection
    # =========================================================================

    def is_non_question(self, text: str) -> bool:
        """Filter out false-positive questions: greetings, reactions, acks"""
        lower = text.lower().strip()
        if len(lower) < MIN_QUESTION_LENGTH:
            return True
        return matches_any(NON_QUESTION_PATTERNS, lower)

    def classify_type(self, text: str) -> Optional[QuestionType]:
        """First matching rule group wins; None if no group matches"""
        lower = text.lower().strip()
        for rule in self._rules:
            if rule.predicate(lower):
                return rule.label
        return None

    def score_priority(
        self,
        text: str,
        question_type: QuestionType,
        directed_at_me: bool,
    ) -> Tuple[Priority, float]:
        """Additive point score mapped to a priority label"""
        lower = text.lower()
        score = 0.0

        if URGENT_WORDS.search(lower):
            score += 3
        if IMPORTANT_WORDS.search(lower):
            score += 2
        if directed_at_me:
            score += 1
        if question_type == QuestionType.APPROVAL:
            score += 1
        if question_type in (QuestionType.ACTION_REQUEST, QuestionType.STATUS_CHECK):
            score += 0.5
        if LOW_URGENCY_WORDS.search(lower):
            score -= 2

        if score >= 3:
            return Priority.URGENT, score
        if score >= 2:
            return Priority.HIGH, score
        if score <= -1:
            return Priority.LOW, score
        return Priority.NORMAL, score

    def classify(self, text: str, context: Optional[ChatContext] = None) -> Optional[QuestionAnalysis]:
        """
        Classify a text.

        Args:
            text: Raw message text
            context: Chat context (group flag, mention ids, quoted body)

        Returns:
            QuestionAnalysis, or None if the text is not a question
        """
        body = (text or "").strip()
        if len(body) < MIN_TEXT_LENGTH:
            return None

        if self.is_non_question(body):
            return None

        question_type = self.classify_type(body)
        if question_type is None:
            return None

        context = context or ChatContext()
        directed = self._is_directed_at_me(body, context)
        priority, score = self.score_priority(body, question_type, directed)

        return QuestionAnalysis(
            question_type=question_type,
            priority=priority,
            keywords=extract_keywords(body),
            directed_at_me=directed,
            priority_score=score,
        )

    def classify_message(self, message: ChatMessage) -> Optional[QuestionAnalysis]:
        context = ChatContext(
            is_group=message.is_group,
            mentioned_ids=list(message.mentioned_ids),
            quoted_body=message.quoted_body,
        )
        return self.classify(message.body, context)

    def analyze(self, message: ChatMessage) -> MessageAnalysis:
        """
        Analyze an inbound message: mention, direct message, question.

        Messages sent by the tracked user are never questions to track.
        """
        result = MessageAnalysis()
        if message.from_me:
            return result

        result.is_mention = self.is_mention(message)
        result.is_direct_message = not message.is_group

        question = self.classify_message(message)
        if question:
            result.is_question = True
            result.is_directed_question = question.directed_at_me
            result.question = question

        return result

    def explain(self, analysis: Optional[QuestionAnalysis]) -> str:
        """
        Generate human-readable explanation of a classification.
        """
        if analysis is None:
            return "Not a question"

        lines = [
            f"Question detected: {analysis.question_type.value}",
            f"  Priority: {analysis.priority.value} (score: {analysis.priority_score:g})",
            f"  Directed at me: {'yes' if analysis.directed_at_me else 'no'}",
            f"  Keywords: {', '.join(analysis.keywords) or '(none)'}",
        ]
        return "\n".join(lines)
