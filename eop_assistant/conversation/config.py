"""
Conversation configuration.

Single source of truth for chat-level defaults and tunables (timeouts, retry
bounds, cache and stream sizing, logging). Loaded once at startup and kept on
``app.state``.
"""
from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ConversationConfig:
    """Immutable conversation configuration loaded once at startup."""

    # --- Outbound call budgets ---
    llm_timeout_seconds: float | None = 15.0  # None = no timeout
    proxy_timeout_seconds: float = 15.0
    connect_timeout_seconds: float = 5.0  # per backend status check

    # --- Per-session write discipline ---
    max_conflict_retries: int = 3

    # --- Proposal cache / live stream ---
    proposal_cache_ttl_seconds: float = 300.0
    stream_keepalive_seconds: float = 15.0
    stream_queue_size: int = 100

    # --- Prompt templates ---
    prompt_version: str = "v1"

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def load_conversation_config() -> ConversationConfig:
    """Build ConversationConfig from environment variables (with defaults)."""
    def _float(key: str, default: float) -> float:
        raw = os.getenv(key)
        if raw is None:
            return default
        try:
            return float(raw)
        except (TypeError, ValueError):
            return default

    def _int(key: str, default: int) -> int:
        raw = os.getenv(key)
        if raw is None:
            return default
        try:
            return int(raw)
        except (TypeError, ValueError):
            return default

    def _opt_float(key: str, default: float | None) -> float | None:
        raw = os.getenv(key)
        if raw is None:
            return default
        if not raw.strip() or raw.strip().lower() == "none":
            return None
        try:
            return float(raw)
        except (TypeError, ValueError):
            return default

    return ConversationConfig(
        llm_timeout_seconds=_opt_float("CHAT_LLM_TIMEOUT", 15.0),
        proxy_timeout_seconds=_float("CHAT_PROXY_TIMEOUT", 15.0),
        connect_timeout_seconds=_float("CHAT_CONNECT_TIMEOUT", 5.0),
        max_conflict_retries=_int("CHAT_MAX_CONFLICT_RETRIES", 3),
        proposal_cache_ttl_seconds=_float("CHAT_PROPOSAL_CACHE_TTL", 300.0),
        stream_keepalive_seconds=_float("CHAT_STREAM_KEEPALIVE", 15.0),
        stream_queue_size=_int("CHAT_STREAM_QUEUE_SIZE", 100),
        prompt_version=os.getenv("CHAT_PROMPT_VERSION", "v1"),
        log_level=os.getenv("CHAT_LOG_LEVEL", "INFO"),
        log_format=os.getenv(
            "CHAT_LOG_FORMAT",
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        ),
    )
