"""
Pattern Tables

Built-in regex vocabularies for question and answer detection.

Question-type rules are an ordered list of (label, predicate) pairs: the
first group that matches wins, so the order of QUESTION_RULES is part of the
classification semantics. Everything is compiled once at import time and
applied to lower-cased text.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Pattern, Sequence, Tuple

from ..common.schemas import QuestionType


def _compile(*patterns: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


def matches_any(patterns: Sequence[Pattern], text: str) -> bool:
    """True if any compiled pattern matches somewhere in text"""
    return any(p.search(text) for p in patterns)


# =============================================================================
# Non-question exclusion set
# =============================================================================

NON_QUESTION_PATTERNS = _compile(
    r"^(lol|haha|😂|🤣|😅|💀|omg|wow|nice|great|awesome|cool|ok|okay)\s*\??$",
    r"^(good morning|good afternoon|good evening|gm|ga)\s*\??$",
    r"^(hi|hello|hey|sup|yo)\s*\??$",
    r"^(right|ikr|i know right|same|true|facts)\s*\??$",
    r"^(done|sorted|fixed|handled|resolved|completed|finished|sent|updated|approved|confirmed|noted|acknowledged|received|accepted|rejected|denied)\s*[.!]?$",
    r"^(thanks|thank you|thanks a lot|thx|ty|cheers|got it|will do)\s*[.!]*$",
    r"^(what|wut|wat)\s*\?*$",
    r"^(huh|hmm|eh|ah|oh)\s*\??$",
    r"^(really|seriously|for real)\s*\??$",
    r"^\?+$",
    r"^[^\w]*$",
)

# Shared by the action-request group and the yes/no carve-out below
_ACTION_VERB_LIST = r"send|do|make|create|check|look|handle|fix|update|share|forward|upload|post|add|remove|set up"
_ACTION_VERBS = r"(" + _ACTION_VERB_LIST + r")"


# =============================================================================
# Ordered question-type rule groups
# =============================================================================

@dataclass(frozen=True)
class RuleGroup:
    """One labelled rule group; predicate receives lower-cased, stripped text"""
    label: QuestionType
    predicate: Callable[[str], bool]


def _any_of(*patterns: str) -> Callable[[str], bool]:
    compiled = _compile(*patterns)
    return lambda text: matches_any(compiled, text)


_YES_NO_STARTERS = re.compile(
    r"^(is|are|was|were|do|does|did|can|could|would|should|will|shall|have|has|had|may|might|"
    r"isn't|aren't|wasn't|weren't|don't|doesn't|didn't|can't|couldn't|wouldn't|shouldn't|won't)\b",
    re.IGNORECASE,
)

# "Can you send me X?" opens like a yes/no question but is a request
_POLITE_REQUEST = re.compile(
    r"^(can|could|would|will) (you|u|someone|anyone|anybody)\b.*\b(" + _ACTION_VERB_LIST + r"|mind|please)\b",
    re.IGNORECASE,
)


def _is_yes_no(text: str) -> bool:
    if not _YES_NO_STARTERS.search(text):
        return False
    if not ("?" in text or len(text) < 80):
        return False
    return not _POLITE_REQUEST.search(text)


QUESTION_RULES: List[RuleGroup] = [
    RuleGroup(QuestionType.YES_NO, _is_yes_no),
    # Bare "approved" / "sign off" are answers; require interrogative framing
    RuleGroup(QuestionType.APPROVAL, _any_of(
        r"\b(approve|approved|approval|sign off|sign-off|greenlight|green light)\b.*\?",
        r"\bcan (i|we) (go ahead|proceed|move forward|start|begin)\b",
        r"\b(is this|does this|are we) (ok|okay|good|ready|approved)\b",
        r"\bpermission to\b",
        r"\b(ready to|good to) (go|send|ship|launch|submit|publish)\b.*\?",
    )),
    RuleGroup(QuestionType.SCHEDULING, _any_of(
        r"\b(when|what time|what day|which day)\b.*\b(meeting|call|session|standup|sync|available|free)\b",
        r"\b(meeting|call|session|standup|sync)\b.*\b(when|what time|schedule)\b",
        r"\bschedule\b",
        r"\bwhat('s| is) (the|a good) time\b",
        r"\bwhen (can|should|will|do) (we|you|i|they)\b",
        r"\b(availability|availabilities|available)\s*\?",
    )),
    RuleGroup(QuestionType.STATUS_CHECK, _any_of(
        r"\b(status|update|progress|eta|timeline|deadline)\b.*\?",
        r"\bwhat('s| is) the (status|update|progress|eta|plan|timeline)\b",
        r"\b(any|got) (update|news|progress)\b",
        r"\bhow('s| is) (it|that|the|this) (going|coming|progressing)\b",
        r"\bwhere (are|do) (we|you|they) stand\b",
        r"\bhow far along\b",
    )),
    RuleGroup(QuestionType.ACTION_REQUEST, _any_of(
        r"\bcan (you|someone|anyone|anybody|we)\b.*\b" + _ACTION_VERBS + r"\b",
        r"\bcould (you|someone|anyone)\b",
        r"\bwould (you|someone) (mind|be able to|please)\b",
        r"\bplease\b.*\b(send|do|make|create|check|look|handle|fix|update|share)\b",
        r"\bneed (you|someone|help) to\b",
        r"\b(who|which one of you) (can|will|is going to)\b",
    )),
    RuleGroup(QuestionType.OPINION, _any_of(
        r"\bwhat do (you|you all|y'all|everyone|we) think\b",
        r"\bthoughts\s*\?",
        r"\bwdyt\b",
        r"\bopinion(s)?\s*\?",
        r"\bfeedback\s*\?",
        r"\bwhat('s| is) your (take|view|opinion|thought)\b",
        r"\b(good|bad|better|best|right|wrong) (idea|approach|way|option|choice)\s*\?",
        r"\b(should|shall) (we|i)\b",
        r"\b(prefer|preference)\b.*\?",
    )),
    RuleGroup(QuestionType.INFO_SEEKING, _any_of(
        r"^(who|what|where|when|why|how|which|whose|whom)\b",
        r"\b(who|what|where|when|why|how|which)\b.*\?$",
    )),
    RuleGroup(QuestionType.GENERAL, lambda text: text.endswith("?")),
    # Implicit questions without a question mark
    RuleGroup(QuestionType.GENERAL, _any_of(
        r"\bany\s*(one|body)\s*(know|here|available|free)\b",
        r"\bany idea(s)?\b",
        r"\bdo you have\b",
        r"\bhave you\b",
        r"\bis there\b",
        r"\bwondering (if|about|whether)\b",
        r"\bcurious (if|about|whether)\b",
    )),
]


# =============================================================================
# Priority vocabulary
# =============================================================================

URGENT_WORDS = re.compile(
    r"\b(urgent|asap|emergency|critical|immediately|right now|time sensitive|deadline today|"
    r"eod|end of day|blocker|blocking|stuck)\b",
    re.IGNORECASE,
)
IMPORTANT_WORDS = re.compile(
    r"\b(important|priority|needed|required|must|deadline|"
    r"by (today|tomorrow|monday|tuesday|wednesday|thursday|friday)|client|customer|partner)\b|\bescalat",
    re.IGNORECASE,
)
LOW_URGENCY_WORDS = re.compile(
    r"\b(just wondering|just curious|no rush|whenever|no hurry|low priority|not urgent|fyi|btw)\b",
    re.IGNORECASE,
)


# =============================================================================
# Answer patterns
# =============================================================================

# Pure reactions and greetings never count as answer-like
ANSWER_ANTI_PATTERNS = _compile(
    r"^(lol|haha|😂|🤣|😅|💀)",
    r"^(good morning|good afternoon|good evening|hi|hello|hey)\b",
    r"^\?+$",
    r"^(same|me too|i agree)\s*$",
)

ANSWER_STRONG_PATTERNS = _compile(
    r"^(yes|yeah|yep|yup|ya|yea|sure|correct|exactly|absolutely|definitely|of course|right)\b",
    r"^(no|nope|nah|not really|unfortunately|sadly|afraid not|negative)\b",
    r"^(done|sorted|fixed|handled|resolved|completed|finished|sent|updated|approved)\b",
    r"\b(i('ll|’ll| will| can)|we('ll|’ll| will| can)|let me|i('m|’m| am) on it)\b",
    r"\b(here you go|here it is|see attached|check this|take a look|see below)\b",
    r"\b(the answer is|it('s|’s| is)|they('re|’re| are)|that('s|’s| is))\b",
    r"^@?\w+\s+(yes|no|it|the|that|here|done|i)\b",
)

ANSWER_MEDIUM_PATTERNS = _compile(
    r"\bhttps?://\S+",
    r"\b\d{1,2}[:.]\d{2}\b",
    r"\b\d+\s*(pm|am|hrs?|hours?|mins?|minutes?|days?|weeks?)\b",
    r"\b(tomorrow|today|tonight|monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
    r"\b(because|since|the reason|due to)\b",
    r"\b(try|use|go to|click|open|check|look at)\b",
    r"\b(attached|uploading|sending|forwarding)\b",
)

ANSWER_WEAK_PATTERNS = _compile(
    r"\b(ok|okay|sure thing|will do|got it|noted|thanks|thank you|understood|acknowledged)\b",
    r"\b(i think|maybe|probably|possibly|perhaps|likely)\b",
)

# Ordered (pattern, label) fallbacks used to explain an answer_pattern hit
ANSWER_PATTERN_DETAILS: List[Tuple[Pattern, str]] = [
    (re.compile(r"^(yes|yeah|yep|sure|correct|absolutely|definitely)\b", re.IGNORECASE), "affirmative response"),
    (re.compile(r"^(no|nope|nah|not really|unfortunately)\b", re.IGNORECASE), "negative response"),
    (re.compile(r"^(done|sorted|fixed|handled|resolved|completed)\b", re.IGNORECASE), "task completion"),
    (re.compile(r"\bhttps?://", re.IGNORECASE), "contains link"),
    (re.compile(r"\b(attached|uploading|sending)\b", re.IGNORECASE), "sharing resource"),
]


# =============================================================================
# Question-type answer templates
# =============================================================================

# Per type: ordered (pattern, score); the first match gives the score
TYPE_ANSWER_TEMPLATES: Dict[QuestionType, List[Tuple[Pattern, float]]] = {
    QuestionType.YES_NO: [
        (re.compile(r"^(yes|yeah|yep|yup|sure|correct|no|nope|nah|not really)\b", re.IGNORECASE), 0.9),
        (re.compile(r"\b(yes|no|correct|incorrect|right|wrong)\b", re.IGNORECASE), 0.5),
    ],
    QuestionType.APPROVAL: [
        (re.compile(r"\b(approved|approve|go ahead|lgtm|looks good|green light|sign off|rejected|denied)\b", re.IGNORECASE), 0.95),
        (re.compile(r"\b(yes|sure|ok|no|hold off|wait|not yet)\b", re.IGNORECASE), 0.6),
    ],
    QuestionType.SCHEDULING: [
        (re.compile(r"\b\d{1,2}[:.]\d{2}\b"), 0.8),
        (re.compile(r"\b(tomorrow|today|monday|tuesday|wednesday|thursday|friday|pm|am)\b", re.IGNORECASE), 0.7),
        (re.compile(r"\b(works for me|i'm free|available|busy|can't make it)\b", re.IGNORECASE), 0.6),
    ],
    QuestionType.STATUS_CHECK: [
        (re.compile(r"\b(done|complete|in progress|working on|almost|nearly|started|not started|blocked)\b", re.IGNORECASE), 0.8),
        (re.compile(r"\b(eta|expected|should be|will be|by)\b", re.IGNORECASE), 0.5),
    ],
    QuestionType.ACTION_REQUEST: [
        (re.compile(r"\b(done|on it|will do|i'll|i can|sending|sent|shared|handling)\b", re.IGNORECASE), 0.8),
        (re.compile(r"\b(i can't|unable|not possible|someone else)\b", re.IGNORECASE), 0.6),
    ],
    QuestionType.OPINION: [
        (re.compile(r"\b(i think|in my opinion|imo|i'd say|i prefer|i suggest|i recommend)\b", re.IGNORECASE), 0.8),
        (re.compile(r"\b(agree|disagree|option|better|worse|prefer)\b", re.IGNORECASE), 0.5),
    ],
}

# Substantive replies to info-seeking questions are likely informational
INFO_SEEKING_MIN_LENGTH = 30
INFO_SEEKING_SCORE = 0.3
