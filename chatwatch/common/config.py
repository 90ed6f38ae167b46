"""
Configuration Management for chatwatch

Loads configuration from ~/.chatwatch/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger("chatwatch.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".chatwatch"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"
STORE_PATH = CONFIG_DIR / "questions.json"

DEFAULT_CLASSIFIER_MODEL = "claude-haiku-4-5-20251001"


@dataclass
class IdentityConfig:
    """The tracked user (the person whose questions we watch for)"""
    display_name: str = ""
    my_id: str = ""   # e.g. "15551234567@c.us"
    my_lid: str = ""  # linked-device id, e.g. "1234567890@lid"


@dataclass
class LLMConfig:
    """Classification service provider configuration"""
    provider: str = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = DEFAULT_CLASSIFIER_MODEL
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"


@dataclass
class QueueConfig:
    """Asynchronous classification queue configuration"""
    enabled: bool = True
    batch_size: int = 10
    batch_window_ms: int = 3000
    rate_limit_delay_ms: int = 13000  # ~4.6 calls/min, under a 5/min ceiling
    max_retries: int = 3
    retry_base_delay_ms: int = 15000
    request_timeout_s: float = 30.0


@dataclass
class TrackingConfig:
    """Question/answer tracking thresholds"""
    candidate_threshold: float = 0.2
    auto_accept_threshold: float = 0.5
    max_question_age_hours: float = 24.0
    min_answer_delay_ms: int = 2000
    ai_dismiss_confidence: float = 0.8
    ai_promote_confidence: float = 0.7
    ai_approval_confidence: float = 0.5
    disabled_chats: List[str] = field(default_factory=list)


@dataclass
class ServerConfig:
    """Ingest/operator server configuration"""
    port: int = 8090
    webhook_secret: str = ""
    store_path: str = str(STORE_PATH)


@dataclass
class ChatwatchConfig:
    """Main chatwatch configuration"""
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_identity_config(data: dict) -> IdentityConfig:
    """Parse identity section from config dict"""
    identity_data = data.get("identity", {})
    return IdentityConfig(
        display_name=identity_data.get("display_name") or identity_data.get("track_name", ""),
        my_id=identity_data.get("my_id", ""),
        my_lid=identity_data.get("my_lid", ""),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    return LLMConfig(
        provider=llm_data.get("provider", "anthropic"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", DEFAULT_CLASSIFIER_MODEL),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4o-mini"),
    )


def _parse_queue_config(data: dict) -> QueueConfig:
    """Parse queue section from config dict"""
    queue_data = data.get("queue", {})
    return QueueConfig(
        enabled=queue_data.get("enabled", True),
        batch_size=queue_data.get("batch_size", 10),
        batch_window_ms=queue_data.get("batch_window_ms", 3000),
        rate_limit_delay_ms=queue_data.get("rate_limit_delay_ms", 13000),
        max_retries=queue_data.get("max_retries", 3),
        retry_base_delay_ms=queue_data.get("retry_base_delay_ms", 15000),
        request_timeout_s=queue_data.get("request_timeout_s", 30.0),
    )


def _parse_tracking_config(data: dict) -> TrackingConfig:
    """Parse tracking section from config dict"""
    tracking_data = data.get("tracking", {})
    return TrackingConfig(
        candidate_threshold=tracking_data.get("candidate_threshold", 0.2),
        auto_accept_threshold=tracking_data.get("auto_accept_threshold", 0.5),
        max_question_age_hours=tracking_data.get("max_question_age_hours", 24.0),
        min_answer_delay_ms=tracking_data.get("min_answer_delay_ms", 2000),
        ai_dismiss_confidence=tracking_data.get("ai_dismiss_confidence", 0.8),
        ai_promote_confidence=tracking_data.get("ai_promote_confidence", 0.7),
        ai_approval_confidence=tracking_data.get("ai_approval_confidence", 0.5),
        disabled_chats=list(tracking_data.get("disabled_chats", [])),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    return ServerConfig(
        port=server_data.get("port", 8090),
        webhook_secret=server_data.get("webhook_secret", ""),
        store_path=server_data.get("store_path", str(STORE_PATH)),
    )


def load_config() -> ChatwatchConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.chatwatch/config.json)
    3. Default values
    """
    config = ChatwatchConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.identity = _parse_identity_config(data)
            config.llm = _parse_llm_config(data)
            config.queue = _parse_queue_config(data)
            config.tracking = _parse_tracking_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file: %s", e)

    # Environment variable overrides
    if os.getenv("CHATWATCH_TRACK_NAME"):
        config.identity.display_name = os.getenv("CHATWATCH_TRACK_NAME")
    if os.getenv("CHATWATCH_MY_ID"):
        config.identity.my_id = os.getenv("CHATWATCH_MY_ID")
    if os.getenv("CHATWATCH_MY_LID"):
        config.identity.my_lid = os.getenv("CHATWATCH_MY_LID")

    if os.getenv("CHATWATCH_PORT"):
        config.server.port = int(os.getenv("CHATWATCH_PORT"))
    if os.getenv("CHATWATCH_WEBHOOK_SECRET"):
        config.server.webhook_secret = os.getenv("CHATWATCH_WEBHOOK_SECRET")
    if os.getenv("CHATWATCH_STORE_PATH"):
        config.server.store_path = os.getenv("CHATWATCH_STORE_PATH")

    if os.getenv("CHATWATCH_BATCH_SIZE"):
        config.queue.batch_size = int(os.getenv("CHATWATCH_BATCH_SIZE"))
    if os.getenv("CHATWATCH_RATE_LIMIT_MS"):
        config.queue.rate_limit_delay_ms = int(os.getenv("CHATWATCH_RATE_LIMIT_MS"))
    if os.getenv("CHATWATCH_AI_ENABLED"):
        config.queue.enabled = os.getenv("CHATWATCH_AI_ENABLED").lower() in ("1", "true", "yes")

    # LLM env var overrides (track env-sourced keys so they are never saved)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "CHATWATCH_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: ChatwatchConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
    }
    for key in ("anthropic_api_key", "openai_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "identity": {
            "display_name": config.identity.display_name,
            "my_id": config.identity.my_id,
            "my_lid": config.identity.my_lid,
        },
        "llm": llm_section,
        "queue": {
            "enabled": config.queue.enabled,
            "batch_size": config.queue.batch_size,
            "batch_window_ms": config.queue.batch_window_ms,
            "rate_limit_delay_ms": config.queue.rate_limit_delay_ms,
            "max_retries": config.queue.max_retries,
            "retry_base_delay_ms": config.queue.retry_base_delay_ms,
            "request_timeout_s": config.queue.request_timeout_s,
        },
        "tracking": {
            "candidate_threshold": config.tracking.candidate_threshold,
            "auto_accept_threshold": config.tracking.auto_accept_threshold,
            "max_question_age_hours": config.tracking.max_question_age_hours,
            "min_answer_delay_ms": config.tracking.min_answer_delay_ms,
            "ai_dismiss_confidence": config.tracking.ai_dismiss_confidence,
            "ai_promote_confidence": config.tracking.ai_promote_confidence,
            "ai_approval_confidence": config.tracking.ai_approval_confidence,
            "disabled_chats": config.tracking.disabled_chats,
        },
        "server": {
            "port": config.server.port,
            "webhook_secret": config.server.webhook_secret,
            "store_path": config.server.store_path,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
