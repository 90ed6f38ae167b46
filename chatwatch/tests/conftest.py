"""Shared fixtures for chatwatch tests."""

import json
import re
import time

import pytest

from chatwatch.common.llm_client import LLMResponse
from chatwatch.monitor.handlers.base import ChatMessage

T0 = 1_700_000_000_000  # epoch ms

_COUNT_RE = re.compile(r"Classify these (\d+) message")


class FakeLLMClient:
    """
    Stands in for LLMClient.

    responder(n, call_index) returns an LLMResponse, a list of result dicts
    (sent back as a JSON array), or raises. Every call is recorded with its
    monotonic start time.
    """

    def __init__(self, responder=None, model="fake-model"):
        self.model = model
        self.is_available = True
        self.calls = []
        self.call_times = []
        self._responder = responder or (lambda n, i: [{"intent": "question", "confidence": 0.9}] * n)

    async def generate(self, prompt, *, system=None, max_tokens=1024, timeout=30.0):
        self.call_times.append(time.monotonic())
        self.calls.append(prompt)
        n = int(_COUNT_RE.search(prompt).group(1))
        result = self._responder(n, len(self.calls) - 1)
        if isinstance(result, LLMResponse):
            return result
        return LLMResponse(status_code=200, text=json.dumps(result))


@pytest.fixture
def fake_client():
    """Factory: fake_client(responder) -> FakeLLMClient"""
    return FakeLLMClient


@pytest.fixture
def make_message():
    """Factory for ChatMessages in a default group chat"""
    def _make(body, sender="Dana", msg_id=None, timestamp=T0, **kwargs):
        defaults = dict(chat_id="ops@g.us", chat_name="Ops Team", is_group=True)
        defaults.update(kwargs)
        return ChatMessage(
            body=body,
            sender=sender,
            timestamp=timestamp,
            msg_id=msg_id,
            **defaults,
        )
    return _make
