"""
Answer Scorer

Multi-signal confidence that a message answers a specific open question.
Each signal contributes independently and keeps a human-readable detail;
the full signal map is stored on the AnswerCandidate for later review.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..common.schemas import Question, QuestionType, Signal
from .keywords import extract_keywords
from .patterns import (
    ANSWER_ANTI_PATTERNS,
    ANSWER_MEDIUM_PATTERNS,
    ANSWER_PATTERN_DETAILS,
    ANSWER_STRONG_PATTERNS,
    ANSWER_WEAK_PATTERNS,
    INFO_SEEKING_MIN_LENGTH,
    INFO_SEEKING_SCORE,
    TYPE_ANSWER_TEMPLATES,
    matches_any,
)

# Signal weights
QUOTED_EXACT_SCORE = 1.0
QUOTED_PARTIAL_SCORE = 0.8
ANSWER_PATTERN_WEIGHT = 0.4
KEYWORD_OVERLAP_WEIGHT = 0.25
ADDRESSES_ASKER_SCORE = 0.3
MANAGER_REPLY_SCORE = 0.25
TYPE_MATCH_WEIGHT = 0.2
SELF_REPLY_FACTOR = 0.3

# Similarity thresholds for quoted replies
QUOTED_EXACT_SIMILARITY = 0.7
QUOTED_PARTIAL_SIMILARITY = 0.3

NGRAM_SIZE = 3


@dataclass
class ScoringContext:
    """Situational context for one (question, candidate) pair"""
    is_quoted_reply: bool = False
    quoted_body: Optional[str] = None
    quoted_sender: Optional[str] = None
    is_from_me: bool = False
    time_delta_ms: int = 0
    recent_msg_count: int = 0


@dataclass
class AnswerScore:
    """Result of scoring a candidate"""
    confidence: float
    signals: Dict[str, Signal] = field(default_factory=dict)

    @property
    def reason(self) -> str:
        return top_signal_detail(self.signals)


def top_signal_detail(signals: Dict[str, Signal]) -> str:
    """Detail of the highest positive-scoring signal"""
    positive = [s for s in signals.values() if s.score > 0]
    if not positive:
        return "multi-signal match"
    return max(positive, key=lambda s: s.score).detail


def text_similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Character 3-gram Jaccard similarity (no ML needed).

    Short texts (under 20 chars) that contain one another score 0.9.
    """
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    a = " ".join(a.lower().split())
    b = " ".join(b.lower().split())
    if a == b:
        return 1.0

    if len(a) < 20 or len(b) < 20:
        if a in b or b in a:
            return 0.9

    a_grams = {a[i:i + NGRAM_SIZE] for i in range(len(a) - NGRAM_SIZE + 1)}
    b_grams = {b[i:i + NGRAM_SIZE] for i in range(len(b) - NGRAM_SIZE + 1)}
    if not a_grams or not b_grams:
        return 0.0

    intersection = len(a_grams & b_grams)
    union = len(a_grams) + len(b_grams) - intersection
    return intersection / union if union > 0 else 0.0


def answer_pattern_score(text: str) -> float:
    """Lexical answer-likeness of a lower-cased text, 0 to 1"""
    if matches_any(ANSWER_ANTI_PATTERNS, text):
        return 0.0

    score = 0.0
    if matches_any(ANSWER_STRONG_PATTERNS, text):
        score = 0.85
    elif matches_any(ANSWER_MEDIUM_PATTERNS, text):
        score = 0.5
    elif matches_any(ANSWER_WEAK_PATTERNS, text):
        score = 0.3

    if len(text) > 100:
        score = max(score, 0.4)
    elif len(text) > 50:
        score = max(score, 0.25)

    return min(score, 1.0)


def answer_pattern_detail(text: str) -> str:
    for pattern, label in ANSWER_PATTERN_DETAILS:
        if pattern.search(text):
            return label
    return "answer-like pattern"


def type_match_score(question_type: QuestionType, text: str) -> float:
    """How well text fits the answer template for a question type"""
    if question_type == QuestionType.INFO_SEEKING:
        return INFO_SEEKING_SCORE if len(text) > INFO_SEEKING_MIN_LENGTH else 0.0

    for pattern, score in TYPE_ANSWER_TEMPLATES.get(question_type, []):
        if pattern.search(text):
            return score
    return 0.0


def keyword_overlap(question_keywords: List[str], answer_keywords: List[str]) -> float:
    """Fraction of the question's keywords re-used in the answer"""
    if not question_keywords or not answer_keywords:
        return 0.0
    q_set = set(question_keywords)
    matches = sum(1 for w in answer_keywords if w in q_set)
    return matches / len(q_set)


class AnswerScorer:
    """
    Scores candidate answers against an open question.

    Signals (summed, clamped to [0, 1], rounded to 2 decimals):
        quoted_reply, answer_pattern, keyword_overlap, addresses_asker,
        time_proximity, conversation_proximity, manager_reply,
        substantive_reply, type_match; then self_reply scales the
        result by 0.3 when the asker answers their own question.
    """

    def score(
        self,
        question: Question,
        body: str,
        sender: str,
        context: Optional[ScoringContext] = None,
    ) -> AnswerScore:
        """
        Score how likely a message is an answer to a specific question.

        Args:
            question: The open question
            body: Candidate message text
            sender: Candidate message sender display name
            context: Quoting, timing and conversational context

        Returns:
            AnswerScore with confidence and named signals
        """
        context = context or ScoringContext()
        signals: Dict[str, Signal] = {}
        total = 0.0

        q_body = (question.body or "").lower().strip()
        a_body = (body or "").lower().strip()
        if not a_body:
            return AnswerScore(confidence=0.0, signals=signals)

        # Direct quoted reply (strongest signal)
        if context.is_quoted_reply and context.quoted_body:
            similarity = text_similarity(context.quoted_body.lower().strip(), q_body)
            if similarity > QUOTED_EXACT_SIMILARITY:
                signals["quoted_reply"] = Signal(
                    score=QUOTED_EXACT_SCORE,
                    detail=f"quoted reply (similarity: {similarity:.2f})",
                )
                total += QUOTED_EXACT_SCORE
            elif context.quoted_sender == question.sender and similarity > QUOTED_PARTIAL_SIMILARITY:
                signals["quoted_reply"] = Signal(
                    score=QUOTED_PARTIAL_SCORE,
                    detail="quoted same sender, partial match",
                )
                total += QUOTED_PARTIAL_SCORE

        pattern_score = answer_pattern_score(a_body)
        if pattern_score > 0:
            signals["answer_pattern"] = Signal(score=pattern_score, detail=answer_pattern_detail(a_body))
            total += pattern_score * ANSWER_PATTERN_WEIGHT

        question_keywords = question.keywords or extract_keywords(q_body)
        overlap = keyword_overlap(question_keywords, extract_keywords(a_body))
        if overlap > 0:
            signals["keyword_overlap"] = Signal(score=overlap, detail=f"{round(overlap * 100)}% keyword overlap")
            total += overlap * KEYWORD_OVERLAP_WEIGHT

        if question.sender:
            asker_parts = question.sender.lower().split()
            if any(len(part) >= 3 and part in a_body for part in asker_parts):
                signals["addresses_asker"] = Signal(score=ADDRESSES_ASKER_SCORE, detail=f"mentions {question.sender}")
                total += ADDRESSES_ASKER_SCORE

        minutes_apart = abs(context.time_delta_ms) / 60000
        if minutes_apart <= 2:
            signals["time_proximity"] = Signal(score=0.2, detail="within 2 minutes")
        elif minutes_apart <= 10:
            signals["time_proximity"] = Signal(score=0.15, detail="within 10 minutes")
        elif minutes_apart <= 60:
            signals["time_proximity"] = Signal(score=0.08, detail="within 1 hour")
        elif minutes_apart > 240:
            signals["time_proximity"] = Signal(score=-0.1, detail="over 4 hours old")
        if "time_proximity" in signals:
            total += signals["time_proximity"].score

        if context.recent_msg_count <= 2:
            signals["conversation_proximity"] = Signal(score=0.15, detail=f"{context.recent_msg_count} messages between")
            total += 0.15
        elif context.recent_msg_count <= 5:
            signals["conversation_proximity"] = Signal(score=0.08, detail=f"{context.recent_msg_count} messages between")
            total += 0.08

        is_self_reply = sender == question.sender

        if context.is_from_me and not is_self_reply:
            signals["manager_reply"] = Signal(score=MANAGER_REPLY_SCORE, detail="your reply to someone else's question")
            total += MANAGER_REPLY_SCORE

        if len(a_body) > 100:
            signals["substantive_reply"] = Signal(score=0.15, detail="detailed response")
            total += 0.15
        elif len(a_body) > 30:
            signals["substantive_reply"] = Signal(score=0.05, detail="moderate response")
            total += 0.05

        type_score = type_match_score(question.question_type, a_body)
        if type_score > 0:
            signals["type_match"] = Signal(
                score=type_score,
                detail=f"matches {question.question_type.value} answer pattern",
            )
            total += type_score * TYPE_MATCH_WEIGHT

        confidence = round(max(0.0, min(1.0, total)), 2)

        if is_self_reply:
            signals["self_reply"] = Signal(
                score=SELF_REPLY_FACTOR - 1.0,
                detail=f"same person as asker, confidence x{SELF_REPLY_FACTOR:g}",
            )
            # Round down so the penalized value never exceeds factor x unpenalized
            confidence = math.floor(confidence * SELF_REPLY_FACTOR * 100 + 1e-9) / 100

        return AnswerScore(confidence=confidence, signals=signals)
