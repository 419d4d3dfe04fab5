"""Error tracking service for logging and classifying conversation errors."""
from sqlalchemy.ext.asyncio import AsyncSession
from eop_assistant.models import ConversationErrorRecord
from datetime import datetime, timezone
import uuid
import logging

logger = logging.getLogger(__name__)


async def log_error(
    db: AsyncSession,
    session_id: str | None,
    error_type: str,
    error_message: str,
    severity: str = "warning",
    stage: str = "other",
    error_details: dict | None = None
) -> ConversationErrorRecord | None:
    """
    Log an error to the conversation_errors table.

    Args:
        db: Database session
        session_id: Conversation session the error belongs to (None for global failures)
        error_type: Type of error (catalog_mismatch, conflict, llm_failure, database_error, other)
        error_message: Human-readable error message
        severity: Error severity (critical, warning, info)
        stage: Processing stage (conversation, persistence, generation, other)
        error_details: Optional JSON dict with additional context (rule index, section, etc.)

    Returns:
        The created ConversationErrorRecord, or None if logging failed (commit error).
        Never raises; callers can assume control flow continues.
    """
    error = ConversationErrorRecord(
        id=uuid.uuid4(),
        session_id=session_id,
        error_type=error_type,
        severity=severity,
        error_message=error_message,
        error_details=error_details or {},
        stage=stage,
        resolved="false",
        created_at=datetime.now(timezone.utc).replace(tzinfo=None)
    )

    db.add(error)

    try:
        await db.commit()
        logger.info(
            "Logged to conversation_errors: id=%s session_id=%s error_type=%s severity=%s stage=%s",
            error.id, session_id or "(none)", error_type, severity, stage,
        )
        return error
    except Exception as e:
        await db.rollback()
        logger.error("Failed to commit error log (rollback done): %s", e, exc_info=True)
        return None


def classify_error(error_type: str) -> tuple[str, str]:
    """
    Classify an error by type and determine severity.

    Returns:
        Tuple of (severity, stage)
    """
    severity_map = {
        "catalog_mismatch": "critical",
        "database_error": "critical",
        "conflict": "warning",
        "llm_failure": "warning",
        "other": "warning"
    }

    stage_map = {
        "catalog_mismatch": "conversation",
        "database_error": "persistence",
        "conflict": "persistence",
        "llm_failure": "generation",
        "other": "other"
    }

    severity = severity_map.get(error_type, "warning")
    stage = stage_map.get(error_type, "other")

    return severity, stage
