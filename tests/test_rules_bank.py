"""Tests for eop_assistant.services.rules_bank."""
import asyncio

import pytest
from sqlalchemy import func, select

from eop_assistant.models import RulesBank
from eop_assistant.services.rules_bank import (
    DEFAULT_RULES,
    SECTION_ORDER,
    RuleCatalog,
    RuleCatalogCache,
    load_rules_bank,
    seed_rules_bank,
)


def test_catalog_from_document_keeps_section_order():
    doc = {"review": [{"text": "r"}], "information": [{"text": "i"}]}
    catalog = RuleCatalog.from_document(doc)
    assert catalog.section_names == list(SECTION_ORDER)
    assert [r.text for r in catalog.rules("information")] == ["i"]
    assert catalog.rules("assessment") == ()


def test_catalog_accepts_legacy_rule_key_and_skips_blanks():
    doc = {"information": [{"rule": "Legacy"}, {"text": "  "}, "plain string"]}
    catalog = RuleCatalog.from_document(doc)
    assert [r.text for r in catalog.rules("information")] == ["Legacy", "plain string"]


def test_catalog_unknown_section_raises():
    catalog = RuleCatalog.from_document(DEFAULT_RULES)
    with pytest.raises(KeyError):
        catalog.rules("budget")


def test_default_catalog_contents():
    catalog = RuleCatalog.from_document(DEFAULT_RULES)
    assert [catalog.rule_count(s) for s in SECTION_ORDER] == [3, 3, 3, 2]
    assert [r.text for r in catalog.rules("review")] == [r["text"] for r in DEFAULT_RULES["review"]]


@pytest.mark.asyncio
async def test_seed_is_idempotent(db_session):
    assert await load_rules_bank(db_session) is None
    assert await seed_rules_bank(db_session) is True
    assert await seed_rules_bank(db_session) is False

    count = (await db_session.execute(select(func.count()).select_from(RulesBank))).scalar_one()
    assert count == 1
    catalog = await load_rules_bank(db_session)
    assert catalog.rule_count("information") == 3


@pytest.mark.asyncio
async def test_concurrent_seeding_creates_one_catalog(session_factory):
    async def seed_once():
        async with session_factory() as db:
            return await seed_rules_bank(db)

    results = await asyncio.gather(*(seed_once() for _ in range(3)))
    assert results.count(True) == 1

    async with session_factory() as db:
        count = (await db.execute(select(func.count()).select_from(RulesBank))).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_catalog_cache_seeds_and_memoizes(db_session):
    cache = RuleCatalogCache()
    first = await cache.get(db_session)
    assert first.rule_count("review") == 2
    assert await cache.get(db_session) is first

    cache.clear()
    assert await cache.get(db_session) == first
