"""
Transport Handlers

Each handler converts transport-specific events to the common ChatMessage
format. The chat network session itself lives outside this package.

Available Handlers:
- BridgeHandler: signed JSON webhooks from the chat bridge sidecar
"""

from .base import BaseHandler, ChatMessage, first_present
from .bridge import BridgeHandler

__all__ = [
    "BaseHandler",
    "ChatMessage",
    "BridgeHandler",
    "first_present",
]
