"""
chatwatch Schemas

Question, answer candidate and classification records.
"""

from .question import (
    Question,
    AnswerCandidate,
    ApprovalRecord,
    MentionRecord,
    AIClassification,
    Signal,
    QuestionStatus,
    QuestionType,
    Priority,
    ClassifiedBy,
    Intent,
    ApprovalStatus,
    generate_id,
    now_ms,
)

__all__ = [
    "Question",
    "AnswerCandidate",
    "ApprovalRecord",
    "MentionRecord",
    "AIClassification",
    "Signal",
    "QuestionStatus",
    "QuestionType",
    "Priority",
    "ClassifiedBy",
    "Intent",
    "ApprovalStatus",
    "generate_id",
    "now_ms",
]
