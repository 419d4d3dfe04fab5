"""
Proposal persistence.

All conversation persistence goes through this module: reads, lazy creation,
and version-checked writes of the ``Proposal`` row. The driver and the section
generator never call ``db.add()`` or raw SQL directly.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eop_assistant.conversation.errors import ProposalConflictError
from eop_assistant.conversation.state import ProposalState, ReviewState, SectionProgress
from eop_assistant.models import Proposal

logger = logging.getLogger(__name__)


def _utc_now_naive() -> datetime:
    """Naive UTC datetime for DB (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Rollback helper
# ---------------------------------------------------------------------------

async def safe_rollback(db: AsyncSession) -> None:
    """Rollback that never raises."""
    try:
        await db.rollback()
    except Exception as e:
        logger.error("[store] rollback failed: %s", e)


# ---------------------------------------------------------------------------
# Row <-> state
# ---------------------------------------------------------------------------

def row_to_state(row: Proposal) -> ProposalState:
    return ProposalState(
        session_id=row.session_id,
        sections={name: SectionProgress.from_dict(data) for name, data in (row.sections or {}).items()},
        review_state=ReviewState.from_dict(row.review_state),
        email=row.email,
        created_at=row.created_at,
        last_updated=row.last_updated,
        version=row.version,
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_proposal(db: AsyncSession, session_id: str) -> ProposalState | None:
    """Fresh read of one proposal (bypasses stale identity-map copies)."""
    result = await db.execute(
        select(Proposal)
        .where(Proposal.session_id == session_id)
        .execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()
    return row_to_state(row) if row is not None else None


async def get_or_create_proposal(
    db: AsyncSession,
    session_id: str,
    section_names: Iterable[str],
    *,
    email: str | None = None,
) -> tuple[ProposalState, bool]:
    """Return ``(state, created)``; creates an all-pending record for an unseen session.

    A concurrent create for the same session loses on the primary key and
    falls back to reading the winner's row.
    """
    state = await get_proposal(db, session_id)
    if state is not None:
        return state, False

    fresh = ProposalState.new(session_id, section_names, email=email)
    now = _utc_now_naive()
    db.add(Proposal(
        session_id=session_id,
        email=email,
        sections=fresh.sections_to_dict(),
        review_state=fresh.review_state.to_dict(),
        version=1,
        created_at=now,
        last_updated=now,
    ))
    try:
        await db.commit()
    except IntegrityError:
        await safe_rollback(db)
        logger.info("[store] proposal %s created concurrently; reloading", session_id)
        state = await get_proposal(db, session_id)
        if state is None:
            raise
        return state, False

    fresh.created_at = now
    fresh.last_updated = now
    logger.info("[store] created proposal for session %s", session_id)
    return fresh, True


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def save_proposal(db: AsyncSession, state: ProposalState) -> ProposalState:
    """Write *state* if the stored version still equals ``state.version``.

    On success bumps ``state.version`` and ``state.last_updated`` in place and
    returns it. Raises ProposalConflictError when another writer got there first.
    """
    now = _utc_now_naive()
    stmt = (
        update(Proposal)
        .where(
            Proposal.session_id == state.session_id,
            Proposal.version == state.version,
        )
        .values(
            sections=state.sections_to_dict(),
            review_state=state.review_state.to_dict(),
            last_updated=now,
            version=Proposal.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        await safe_rollback(db)
        logger.warning(
            "[store] version conflict on session %s (expected version %s)",
            state.session_id, state.version,
        )
        raise ProposalConflictError(state.session_id, state.version)
    await db.commit()

    state.version += 1
    state.last_updated = now
    return state
