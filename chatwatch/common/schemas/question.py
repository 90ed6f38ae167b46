"""
Question / Answer Schemas

Core principle: every automated answer decision keeps its evidence.
An AnswerCandidate always carries the signal map that produced its
confidence, so a human can later see why a message was (or was not)
accepted as the answer.
"""

import time
import uuid
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from enum import Enum


# ============================================================================
# Enums
# ============================================================================

class QuestionStatus(str, Enum):
    """Lifecycle state of a tracked question"""
    OPEN = "open"
    ANSWERED = "answered"
    DISMISSED = "dismissed"


class Priority(str, Enum):
    """Question priority"""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class QuestionType(str, Enum):
    """Closed set of question types"""
    YES_NO = "yes_no"
    APPROVAL = "approval"
    SCHEDULING = "scheduling"
    STATUS_CHECK = "status_check"
    ACTION_REQUEST = "action_request"
    OPINION = "opinion"
    INFO_SEEKING = "info_seeking"
    GENERAL = "general"


class ClassifiedBy(str, Enum):
    """Which classifier produced the current classification"""
    REGEX = "regex"
    AI = "ai"


class Intent(str, Enum):
    """Message intents reported by the classification service"""
    QUESTION = "question"
    ANSWER = "answer"
    REQUEST = "request"
    STATUS_UPDATE = "status_update"
    APPROVAL = "approval"
    FYI = "fyi"
    GREETING = "greeting"
    REACTION = "reaction"
    OTHER = "other"


class ApprovalStatus(str, Enum):
    """Outcome of a detected approval message"""
    APPROVED = "approved"
    REJECTED = "rejected"
    CONDITIONAL = "conditional"


# ============================================================================
# Sub-models
# ============================================================================

class Signal(BaseModel):
    """One named contribution to an answer confidence score"""
    score: float
    detail: str


class AIClassification(BaseModel):
    """Normalized result from the classification service"""
    intent: Intent = Intent.OTHER
    question_type: Optional[QuestionType] = None
    priority: Priority = Priority.NORMAL
    confidence: float = Field(ge=0.0, le=1.0, default=0.5)
    is_actionable: bool = False
    summary: str = ""


# ============================================================================
# Records
# ============================================================================

class Question(BaseModel):
    """
    A tracked question.

    Exactly one of open/answered/dismissed holds (status). When answer_id is
    set it points at the accepted AnswerCandidate of this question.
    """
    id: str
    chat_id: str
    chat_name: str = ""
    sender: str = "Unknown"
    body: str = ""
    timestamp: int = Field(..., description="Epoch milliseconds")
    msg_id: Optional[str] = None

    status: QuestionStatus = QuestionStatus.OPEN
    priority: Priority = Priority.NORMAL
    question_type: QuestionType = QuestionType.GENERAL
    keywords: List[str] = Field(default_factory=list)
    directed_at_me: bool = False
    classified_by: ClassifiedBy = ClassifiedBy.REGEX
    category: str = "general"

    answered_by: Optional[str] = None
    answered_at: Optional[int] = None
    answer_confidence: Optional[float] = None
    answer_reason: Optional[str] = None
    answer_preview: Optional[str] = None
    answer_id: Optional[str] = None

    dismissed: bool = False
    dismissed_by: Optional[str] = None
    dismissed_at: Optional[int] = None
    manually_resolved: bool = False

    ai_intent: Optional[Intent] = None
    ai_confidence: Optional[float] = None
    ai_summary: Optional[str] = None
    ai_is_actionable: Optional[bool] = None

    @property
    def is_open(self) -> bool:
        return self.status == QuestionStatus.OPEN


class AnswerCandidate(BaseModel):
    """A message scored against a specific open question"""
    id: str
    question_id: str
    chat_id: str = ""
    msg_id: Optional[str] = None
    sender: str = "Unknown"
    body: str = ""
    timestamp: int
    confidence: float = Field(ge=0.0, le=1.0)
    signals: Dict[str, Signal] = Field(default_factory=dict)
    is_quoted_reply: bool = False
    is_accepted: bool = False


class ApprovalRecord(BaseModel):
    """An approval/rejection detected by the classification service"""
    id: str
    chat_id: str
    chat_name: str = ""
    sender: str = "Unknown"
    body: str = ""
    timestamp: int
    msg_id: Optional[str] = None
    status: ApprovalStatus = ApprovalStatus.APPROVED
    confidence: float = Field(ge=0.0, le=1.0, default=0.5)
    summary: str = ""
    offer_ref: str = ""


class MentionRecord(BaseModel):
    """A group message that addresses the tracked user"""
    id: str
    chat_id: str
    chat_name: str = ""
    sender: str = "Unknown"
    body: str = ""
    timestamp: int
    msg_id: Optional[str] = None
    is_question: bool = False


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds"""
    return int(time.time() * 1000)


def generate_id(prefix: str, natural_key: Optional[str] = None) -> str:
    """
    Generate a record ID.

    When the source message has a stable id, the record id is derived from
    it so that re-processing the same message is an upsert, not a duplicate.
    """
    if natural_key:
        return f"{prefix}_{natural_key}"
    return f"{prefix}_{now_ms()}_{uuid.uuid4().hex[:6]}"
