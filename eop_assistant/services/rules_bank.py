"""Rules bank: the built-in EOP questionnaire, its idempotent seeder, and a per-process cache."""
from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eop_assistant.models import RulesBank

logger = logging.getLogger(__name__)

# Sections are always traversed in this order.
SECTION_ORDER: tuple[str, ...] = ("information", "assessment", "responsePlan", "review")

SECTION_TITLES = {
    "information": "Information",
    "assessment": "Hazard Assessment",
    "responsePlan": "Emergency Response Plan",
    "review": "Review",
}

DEFAULT_RULES: dict[str, list[dict[str, str]]] = {
    "information": [
        {"text": "Organization name must be provided."},
        {"text": "Primary contact must have a valid email address."},
        {"text": "Facility address should be complete and up to date."},
    ],
    "assessment": [
        {"text": "Risk assessment must be conducted annually."},
        {"text": "All identified risks should be documented."},
        {"text": "Assessment results must be reviewed by management."},
    ],
    "responsePlan": [
        {"text": "A written emergency response plan is required."},
        {"text": "Plan must be updated after every major incident."},
        {"text": "All staff must be trained on the response plan."},
    ],
    "review": [
        {"text": "Plans and assessments must be reviewed every 6 months."},
        {"text": "Review findings should be documented and shared."},
    ],
}


@dataclass(frozen=True)
class Rule:
    text: str


@dataclass(frozen=True)
class RuleCatalog:
    """Ordered, immutable questionnaire."""

    sections: tuple[tuple[str, tuple[Rule, ...]], ...]

    @property
    def section_names(self) -> list[str]:
        return [name for name, _ in self.sections]

    def rules(self, section: str) -> tuple[Rule, ...]:
        for name, rules in self.sections:
            if name == section:
                return rules
        raise KeyError(section)

    def rule_count(self, section: str) -> int:
        return len(self.rules(section))

    @classmethod
    def from_document(cls, doc: dict) -> "RuleCatalog":
        """Build from the stored JSON. Entries may use "text" or the legacy "rule" key."""
        sections = []
        for name in SECTION_ORDER:
            entries = doc.get(name) or []
            rules = []
            for entry in entries:
                if isinstance(entry, dict):
                    text = entry.get("text") or entry.get("rule") or ""
                else:
                    text = str(entry)
                if text.strip():
                    rules.append(Rule(text=text.strip()))
            sections.append((name, tuple(rules)))
        return cls(sections=tuple(sections))


async def load_rules_bank(db: AsyncSession) -> RuleCatalog | None:
    """Return the stored catalog, or None when it has not been seeded."""
    result = await db.execute(select(RulesBank).where(RulesBank.singleton_key == "default"))
    row = result.scalar_one_or_none()
    if row is None:
        return None
    return RuleCatalog.from_document(row.catalog or {})


async def seed_rules_bank(db: AsyncSession) -> bool:
    """Insert the default catalog if absent.

    Returns True when this call created it, False when one already existed. The
    unique singleton_key turns a concurrent double insert into an IntegrityError
    for the loser, which is reported as "already exists".
    """
    existing = await db.execute(select(RulesBank.id).where(RulesBank.singleton_key == "default"))
    if existing.scalar_one_or_none() is not None:
        return False

    db.add(RulesBank(singleton_key="default", catalog=copy.deepcopy(DEFAULT_RULES)))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("Rules bank was created concurrently; keeping the existing one")
        return False
    logger.info("Rules bank created with %d sections", len(DEFAULT_RULES))
    return True


class RuleCatalogCache:
    """
    Process-local copy of the catalog.

    The catalog is immutable after seeding, so it is loaded once and never
    invalidated.
    """

    def __init__(self) -> None:
        self._catalog: RuleCatalog | None = None
        self._lock = asyncio.Lock()

    async def get(self, db: AsyncSession) -> RuleCatalog:
        if self._catalog is not None:
            return self._catalog
        async with self._lock:
            if self._catalog is None:
                catalog = await load_rules_bank(db)
                if catalog is None:
                    await seed_rules_bank(db)
                    catalog = await load_rules_bank(db)
                if catalog is None:
                    raise RuntimeError("Rules bank could not be loaded after seeding")
                self._catalog = catalog
        return self._catalog

    def clear(self) -> None:
        self._catalog = None
