"""
Chat Bridge Handler

Handles signed webhook events from the chat bridge sidecar (the process
that holds the chat network session) and converts them to ChatMessages.
"""

import hmac
import hashlib
import time
from typing import Optional, Dict, Any

from ...common.schemas import now_ms
from .base import BaseHandler, ChatMessage, first_present

# Status updates are broadcast on this pseudo-chat; never conversation
_STATUS_BROADCAST = "status@broadcast"

MAX_BODY_LENGTH = 500


def _to_epoch_ms(value: Any) -> Optional[int]:
    """Bridge timestamps arrive in seconds; tolerate milliseconds too"""
    try:
        ts = float(value)
    except (TypeError, ValueError):
        return None
    if ts <= 0:
        return None
    # Anything past year 2286 in seconds is already milliseconds
    return int(ts) if ts > 1e10 else int(ts * 1000)


def _contact_name(contact: Any) -> Optional[str]:
    if isinstance(contact, str):
        return contact or None
    if not isinstance(contact, dict):
        return None
    return first_present(
        contact.get("pushname"),
        contact.get("name"),
        contact.get("number"),
        lambda: (contact.get("id") or "").split("@")[0],
    )


class BridgeHandler(BaseHandler):
    """
    Handler for chat bridge webhooks.

    Expected payload:
        {
            "type": "message",
            "chat": {"id": "...@g.us", "name": "Ops Team", "is_group": true},
            "message": {
                "id": "...", "body": "...", "timestamp": 1718000000,
                "from_me": false, "mentioned_ids": ["...@c.us"],
                "author": {"pushname": "Dana", "number": "1555..."},
                "quoted": {"body": "...", "author": {...}}
            }
        }

    Ignores non-message events, status broadcasts and empty bodies.
    """

    def __init__(self, signing_secret: str = ""):
        super().__init__("bridge")
        self._signing_secret = signing_secret

    def parse_event(self, raw_data: Dict[str, Any]) -> Optional[ChatMessage]:
        if raw_data.get("type") != "message":
            return None

        chat = raw_data.get("chat") or {}
        msg = raw_data.get("message") or {}

        chat_id = chat.get("id", "")
        if not chat_id or chat_id == _STATUS_BROADCAST:
            return None

        body = (msg.get("body") or "").strip()
        if not body:
            return None

        from_me = bool(msg.get("from_me", False))
        sender = "Me" if from_me else first_present(
            lambda: _contact_name(msg.get("author")),
            msg.get("from"),
            "Unknown",
        )

        quoted = msg.get("quoted") or None
        quoted_body = None
        quoted_sender = None
        if isinstance(quoted, dict):
            quoted_body = (quoted.get("body") or "")[:MAX_BODY_LENGTH]
            quoted_sender = first_present(
                lambda: _contact_name(quoted.get("author")),
                quoted.get("from"),
                "Unknown",
            )

        is_group = chat.get("is_group")
        if is_group is None:
            is_group = chat_id.endswith("@g.us")

        return ChatMessage(
            body=body,
            sender=sender,
            chat_id=chat_id,
            chat_name=chat.get("name") or chat_id.split("@")[0],
            is_group=bool(is_group),
            timestamp=_to_epoch_ms(msg.get("timestamp")) or now_ms(),
            msg_id=msg.get("id"),
            from_me=from_me,
            mentioned_ids=[str(m) for m in msg.get("mentioned_ids") or []],
            quoted_body=quoted_body,
            quoted_sender=quoted_sender,
            raw_data=raw_data,
        )

    def verify_signature(self, body: bytes, signature: str, timestamp: str) -> bool:
        """
        Verify bridge request signature.

        Signature header format: "sha256=<hex hmac of '{timestamp}:{body}'>".
        """
        if not self._signing_secret:
            # Skip verification if no secret configured
            return True

        if not signature or not timestamp:
            return False

        # Check timestamp is recent (within 5 minutes)
        try:
            ts = int(timestamp)
            if abs(time.time() - ts) > 300:
                return False
        except ValueError:
            return False

        basestring = f"{timestamp}:".encode("utf-8") + body
        expected_sig = "sha256=" + hmac.new(
            self._signing_secret.encode("utf-8"),
            basestring,
            hashlib.sha256,
        ).hexdigest()

        return hmac.compare_digest(expected_sig, signature)
