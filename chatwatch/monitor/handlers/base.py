"""
Base Handler

Abstract base class for chat-transport event handlers.
Provides a common interface for converting bridge events to ChatMessages.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def first_present(*candidates: Any) -> Any:
    """
    Return the first candidate that is present (not None, not empty).

    Candidates may be plain values or zero-argument callables; callables are
    only evaluated when every earlier candidate was absent.

    Example:
        sender = first_present(contact.get("pushname"), contact.get("name"), "Unknown")
    """
    for candidate in candidates:
        value = candidate() if callable(candidate) else candidate
        if value is not None and value != "":
            return value
    return None


@dataclass
class ChatMessage:
    """
    Common inbound message format.

    This is what the monitor works with, regardless of how the chat bridge
    obtained it. Timestamps are epoch milliseconds.
    """
    body: str
    sender: str
    chat_id: str
    timestamp: int
    chat_name: str = ""
    is_group: bool = True
    msg_id: Optional[str] = None
    from_me: bool = False
    mentioned_ids: List[str] = field(default_factory=list)
    quoted_body: Optional[str] = None
    quoted_sender: Optional[str] = None
    raw_data: Optional[Dict[str, Any]] = None

    @property
    def has_quoted_msg(self) -> bool:
        return self.quoted_body is not None

    @property
    def is_valid(self) -> bool:
        """Check if message has minimum required fields"""
        return bool(self.body and self.body.strip() and self.chat_id)


class BaseHandler(ABC):
    """
    Abstract base class for transport handlers.

    Each handler must implement:
    - parse_event: Convert raw event to ChatMessage
    - verify_signature: Verify webhook signature (if applicable)
    """

    def __init__(self, source_name: str):
        self.source_name = source_name

    @abstractmethod
    def parse_event(self, raw_data: Dict[str, Any]) -> Optional[ChatMessage]:
        """
        Parse raw event data into a ChatMessage.

        Returns:
            ChatMessage or None if the event should be ignored
        """
        pass

    @abstractmethod
    def verify_signature(self, body: bytes, signature: str, timestamp: str) -> bool:
        """Verify the webhook signature."""
        pass

    def should_process(self, message: ChatMessage) -> bool:
        """
        Check if message should be processed.

        Default implementation only drops empty messages; length filtering
        belongs to the classifier, which must still see short replies as
        answer candidates.
        """
        return message.is_valid
