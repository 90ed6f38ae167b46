"""
chatwatch Common Module

Shared infrastructure for the monitor: configuration, LLM access, schemas.
"""

from .config import ChatwatchConfig, load_config
from .llm_client import LLMClient, LLMResponse, LLMTransportError

__all__ = [
    "ChatwatchConfig",
    "load_config",
    "LLMClient",
    "LLMResponse",
    "LLMTransportError",
]
