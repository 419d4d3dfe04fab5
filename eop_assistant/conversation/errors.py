"""
Conversation error types and the turn-failure helper.

Centralises the "rollback -> classify -> log_error" pattern so the chat and
generation routes report internal failures the same way.
"""
from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from eop_assistant.services.error_tracker import classify_error, log_error

logger = logging.getLogger(__name__)


class ConversationError(Exception):
    """Base class for failures the conversation layer raises on purpose."""


class CatalogStateMismatchError(ConversationError):
    """The stored rule index has no matching catalog entry."""

    def __init__(self, session_id: str, section: str, index: int, rule_count: int):
        self.session_id = session_id
        self.section = section
        self.index = index
        self.rule_count = rule_count
        super().__init__(
            f"Session {session_id}: section {section!r} points at rule {index} "
            f"but the catalog has {rule_count} rules"
        )


class ProposalConflictError(ConversationError):
    """The proposal changed between read and write (version mismatch)."""

    def __init__(self, session_id: str, expected_version: int):
        self.session_id = session_id
        self.expected_version = expected_version
        super().__init__(
            f"Proposal {session_id} was modified concurrently (expected version {expected_version})"
        )


def error_type_for(error: Exception) -> str:
    if isinstance(error, CatalogStateMismatchError):
        return "catalog_mismatch"
    if isinstance(error, ProposalConflictError):
        return "conflict"
    if isinstance(error, SQLAlchemyError):
        return "database_error"
    return "other"


async def record_turn_error(
    db: AsyncSession,
    session_id: str | None,
    error: Exception,
    *,
    error_details: dict | None = None,
) -> str:
    """Roll back, classify, and persist a failure for operator attention.

    Returns the severity. Never raises.
    """
    try:
        await db.rollback()
    except Exception as rb_exc:
        logger.error("[errors] rollback before logging failed: %s", rb_exc)

    error_type = error_type_for(error)
    severity, stage = classify_error(error_type)

    details = dict(error_details or {})
    if isinstance(error, CatalogStateMismatchError):
        details.update({"section": error.section, "index": error.index, "rule_count": error.rule_count})

    log = logger.error if severity == "critical" else logger.warning
    log("[errors] session=%s %s: %s", session_id, error_type, error)

    try:
        await log_error(
            db=db,
            session_id=session_id,
            error_type=error_type,
            severity=severity,
            error_message=str(error)[:2000],
            error_details=details,
            stage=stage,
        )
    except Exception as log_exc:
        logger.error("[errors] log_error failed: %s", log_exc, exc_info=True)
    return severity
