"""
Keyword Extraction

Strips stop-words and returns ordered, unique tokens. Question keywords are
stored with the question and re-used when scoring answer candidates.
"""

import re
from typing import List

MAX_KEYWORDS = 15

STOP_WORDS = frozenset([
    "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "shall", "can", "need", "must",
    "i", "you", "he", "she", "it", "we", "they", "me", "him", "her", "us", "them",
    "my", "your", "his", "its", "our", "their",
    "this", "that", "these", "those", "what", "which", "who", "whom",
    "when", "where", "why", "how",
    "and", "but", "or", "nor", "not", "so", "yet", "both", "either", "neither",
    "in", "on", "at", "to", "for", "of", "with", "by", "from", "about", "into",
    "if", "then", "than", "too", "very", "just", "also", "any", "all", "no", "yes",
    "up", "out", "there", "here", "now", "get", "got", "still", "some",
    "please", "thanks", "thank", "know", "think", "anyone", "someone", "anybody",
    "everybody", "everyone", "something", "anything", "nothing",
])

_PUNCTUATION_RE = re.compile(r"[^\w\s]")


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> List[str]:
    """
    Extract meaningful keywords from text.

    Lower-cases, replaces punctuation with spaces, drops tokens of two
    characters or fewer and stop-words, deduplicates preserving first
    occurrence, and caps the result.

    Example:
        >>> extract_keywords("Is the Q3 report done? The report is late!")
        ['report', 'done', 'late']
    """
    cleaned = _PUNCTUATION_RE.sub(" ", (text or "").lower())

    keywords: List[str] = []
    seen = set()
    for word in cleaned.split():
        if len(word) <= 2 or word in STOP_WORDS or word in seen:
            continue
        seen.add(word)
        keywords.append(word)
        if len(keywords) >= limit:
            break

    return keywords
