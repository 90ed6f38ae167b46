"""
chatwatch

Question tracking for operations team group chats.

Philosophy:
- The deterministic classifier is always authoritative until the AI says otherwise
- The AI double-checks, it never blocks ingestion
- Every automated answer decision keeps its evidence (the signal map)
- A human decision is never undone by an automated one

Usage:
    from chatwatch.common import load_config
    from chatwatch.monitor import IntentClassifier, AnswerScorer, ClassificationQueue
    from chatwatch.monitor import QuestionLifecycle, JsonQuestionStore, MessageMonitor
"""

__version__ = "0.1.0"
