"""Tests for eop_assistant.conversation.store and the ProposalState JSON shape."""
from __future__ import annotations

import pytest

from eop_assistant.conversation.errors import ProposalConflictError
from eop_assistant.conversation.state import ProposalState, SectionProgress
from eop_assistant.conversation.store import get_or_create_proposal, get_proposal, save_proposal
from eop_assistant.services.rules_bank import SECTION_ORDER


# ---------------------------------------------------------------------------
# State shape
# ---------------------------------------------------------------------------

def test_new_state_has_all_sections_pending():
    state = ProposalState.new("s", SECTION_ORDER)
    assert list(state.sections) == list(SECTION_ORDER)
    assert all(not p.completed and p.last_rule_index_asked == -1 for p in state.sections.values())
    assert state.active_section(SECTION_ORDER) == "information"


def test_active_section_skips_completed():
    state = ProposalState.new("s", SECTION_ORDER)
    state.section("information").completed = True
    assert state.active_section(SECTION_ORDER) == "assessment"
    for name in SECTION_ORDER:
        state.section(name).completed = True
    assert state.active_section(SECTION_ORDER) is None


def test_section_progress_uses_camel_case_keys():
    progress = SectionProgress(completed=True, last_rule_index_asked=2, generated_text="x", responses=["a"])
    data = progress.to_dict()
    assert data == {"completed": True, "lastRuleIndexAsked": 2, "generatedText": "x", "responses": ["a"]}
    assert SectionProgress.from_dict(data) == progress


def test_section_progress_from_legacy_document():
    """Records written before responses were tracked still load."""
    progress = SectionProgress.from_dict({"completed": False, "lastRuleIndexAsked": 1})
    assert progress.responses == []
    assert progress.generated_text is None
    assert SectionProgress.from_dict(None).last_rule_index_asked == -1


def test_snapshot_keys():
    snap = ProposalState.new("s9", SECTION_ORDER, email="a@b.com").snapshot()
    assert snap["sessionId"] == "s9"
    assert snap["email"] == "a@b.com"
    assert snap["reviewState"] == {"completed": False, "finalDocument": None}
    assert snap["version"] == 1


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_or_create_creates_once(db_session):
    state, created = await get_or_create_proposal(db_session, "s-create", SECTION_ORDER, email="a@b.com")
    assert created is True
    assert state.version == 1
    assert state.created_at is not None

    again, created_again = await get_or_create_proposal(db_session, "s-create", SECTION_ORDER)
    assert created_again is False
    assert again.email == "a@b.com"
    assert again.sections_to_dict() == state.sections_to_dict()


@pytest.mark.asyncio
async def test_get_proposal_missing_returns_none(db_session):
    assert await get_proposal(db_session, "nobody") is None


@pytest.mark.asyncio
async def test_save_bumps_version_and_persists(db_session):
    state, _ = await get_or_create_proposal(db_session, "s-save", SECTION_ORDER)
    state.section("information").last_rule_index_asked = 0
    await save_proposal(db_session, state)
    assert state.version == 2

    loaded = await get_proposal(db_session, "s-save")
    assert loaded.version == 2
    assert loaded.sections["information"].last_rule_index_asked == 0


@pytest.mark.asyncio
async def test_stale_write_raises_conflict(session_factory):
    async with session_factory() as a, session_factory() as b:
        mine, _ = await get_or_create_proposal(a, "s-stale", SECTION_ORDER)
        theirs = await get_proposal(b, "s-stale")

        theirs.section("information").last_rule_index_asked = 0
        await save_proposal(b, theirs)

        mine.section("information").last_rule_index_asked = 5
        with pytest.raises(ProposalConflictError) as exc:
            await save_proposal(a, mine)
        assert exc.value.expected_version == 1

        fresh = await get_proposal(a, "s-stale")
        assert fresh.version == 2
        assert fresh.sections["information"].last_rule_index_asked == 0
