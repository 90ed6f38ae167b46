"""
Monitor - Question Tracking for Group Chats

Decides which inbound messages are questions that need an answer, which
later messages answer them, and reconciles the fast regex classification
with the slower, rate-limited classification service.

Key Components:
- IntentClassifier: Rule-based question detection and priority
- AnswerScorer: Multi-signal answer confidence with evidence
- ClassificationQueue: Batched, rate-limited service classification
- QuestionLifecycle: Question state transitions and AI reconciliation
- JsonQuestionStore: File-backed question/candidate persistence
- MessageMonitor: Per-message pipeline tying the above together

Rules:
1. The regex result is persisted first and stands until the service overrides it
2. The service never blocks ingestion; every failure degrades to "no result"
3. Every answer candidate keeps the signals that scored it
4. Automation never undoes a human decision
"""

from .answer_scorer import AnswerScore, AnswerScorer, ScoringContext
from .classification_queue import ClassificationJob, ClassificationQueue
from .intent_classifier import (
    ChatContext,
    IntentClassifier,
    MessageAnalysis,
    QuestionAnalysis,
    TrackedIdentity,
)
from .lifecycle import QuestionLifecycle
from .pipeline import MessageMonitor, ProcessOutcome
from .store import (
    CandidateNotFoundError,
    JsonQuestionStore,
    QuestionNotFoundError,
    QuestionStore,
)

__all__ = [
    "AnswerScore",
    "AnswerScorer",
    "ScoringContext",
    "ClassificationJob",
    "ClassificationQueue",
    "ChatContext",
    "IntentClassifier",
    "MessageAnalysis",
    "QuestionAnalysis",
    "TrackedIdentity",
    "QuestionLifecycle",
    "MessageMonitor",
    "ProcessOutcome",
    "CandidateNotFoundError",
    "JsonQuestionStore",
    "QuestionNotFoundError",
    "QuestionStore",
]
