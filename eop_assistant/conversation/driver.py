"""
Conversation driver.

Maps one inbound ``(session_id, message)`` pair to one reply and at most one
version-checked write of the session's proposal:

* nothing left to ask -> ``done``, no write
* first turn of a section -> ask rule 0
* small talk -> friendly redirect to the current rule (``retry``)
* invalid answer -> coaching message (``retry``)
* valid answer -> record it and ask the next rule, or close the section

A write that loses a version race recomputes the whole turn from a fresh read,
up to ``max_conflict_retries`` times.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from eop_assistant.conversation.config import ConversationConfig
from eop_assistant.conversation.errors import CatalogStateMismatchError, ProposalConflictError
from eop_assistant.conversation.state import ProposalState
from eop_assistant.conversation.store import get_or_create_proposal, save_proposal
from eop_assistant.services.broadcast import ProposalBroadcaster
from eop_assistant.services.intent import CONVERSATION, casual_reply, classify_intent
from eop_assistant.services.llm_provider import LLMProvider
from eop_assistant.services.proposal_cache import ProposalCache
from eop_assistant.services.rules_bank import SECTION_TITLES, RuleCatalog, RuleCatalogCache
from eop_assistant.services.validator import validate_answer

logger = logging.getLogger(__name__)

SUCCESS = "success"
RETRY = "retry"
SECTION_COMPLETED = "section_completed"
DONE = "done"

ALL_DONE_MESSAGE = (
    "🎉 Every section of your Emergency Operations Plan is complete. "
    "You can now generate your proposal."
)


@dataclass(frozen=True)
class ChatReply:
    text: str
    status: str
    section: str | None = None


def section_completed_message(catalog: RuleCatalog, section: str) -> str:
    title = SECTION_TITLES.get(section, section)
    names = catalog.section_names
    pos = names.index(section)
    if pos + 1 < len(names):
        nxt = SECTION_TITLES.get(names[pos + 1], names[pos + 1])
        return (
            f"✅ Great work! The {title} section is complete. "
            f"Send any message when you're ready to start the {nxt} section."
        )
    return (
        f"✅ Great work! The {title} section is complete. "
        "That was the last section, so you can now generate your Emergency Operations Plan."
    )


def publish_snapshot(
    state: ProposalState,
    cache: ProposalCache | None,
    broadcaster: ProposalBroadcaster | None,
    event: str = "proposal_updated",
) -> dict:
    """Write the committed state through to the cache and notify live streams."""
    snapshot = state.snapshot()
    if cache is not None:
        cache.put(state.session_id, snapshot)
    if broadcaster is not None:
        broadcaster.publish({"event": event, "sessionId": state.session_id, "data": snapshot})
    return snapshot


class ConversationDriver:
    def __init__(
        self,
        db: AsyncSession,
        llm: LLMProvider,
        catalog_cache: RuleCatalogCache,
        config: ConversationConfig,
        *,
        proposal_cache: ProposalCache | None = None,
        broadcaster: ProposalBroadcaster | None = None,
    ):
        self.db = db
        self.llm = llm
        self.catalog_cache = catalog_cache
        self.config = config
        self.proposal_cache = proposal_cache
        self.broadcaster = broadcaster

    async def handle_message(self, session_id: str, message: str) -> ChatReply:
        catalog = await self.catalog_cache.get(self.db)
        attempts = max(0, self.config.max_conflict_retries) + 1

        for attempt in range(1, attempts + 1):
            state, created = await get_or_create_proposal(self.db, session_id, catalog.section_names)
            if created:
                publish_snapshot(state, self.proposal_cache, self.broadcaster, event="proposal_created")

            reply, changed = await self._take_turn(state, catalog, message)
            if not changed:
                return reply

            try:
                await save_proposal(self.db, state)
            except ProposalConflictError:
                if attempt >= attempts:
                    raise
                logger.info(
                    "[driver] session %s: conflict on attempt %d/%d, recomputing turn",
                    session_id, attempt, attempts,
                )
                continue

            publish_snapshot(state, self.proposal_cache, self.broadcaster)
            logger.debug("[driver] session %s -> %s (%s)", session_id, reply.status, reply.section)
            return reply

        # Unreachable: the final attempt either returns or re-raises.
        raise ProposalConflictError(session_id, -1)

    async def _take_turn(self, state: ProposalState, catalog: RuleCatalog, message: str) -> tuple[ChatReply, bool]:
        """Compute the reply and mutate *state* in memory. Returns (reply, needs_write)."""
        section = state.active_section(catalog.section_names)
        if section is None:
            return ChatReply(ALL_DONE_MESSAGE, DONE), False

        progress = state.section(section)
        rules = catalog.rules(section)
        idx = progress.last_rule_index_asked

        if idx == -1:
            progress.last_rule_index_asked = 0
            if not rules:
                progress.completed = True
                return ChatReply(section_completed_message(catalog, section), SECTION_COMPLETED, section), True
            return ChatReply(rules[0].text, SUCCESS, section), True

        if idx < 0 or idx >= len(rules):
            raise CatalogStateMismatchError(state.session_id, section, idx, len(rules))

        rule = rules[idx]
        answer = (message or "").strip()
        if not answer:
            return ChatReply(f"Please answer the current question: {rule.text}", RETRY, section), True

        timeout = self.config.llm_timeout_seconds
        version = self.config.prompt_version

        intent = await classify_intent(self.llm, answer, timeout=timeout, prompt_version=version)
        if intent == CONVERSATION:
            text = await casual_reply(self.llm, rule.text, answer, timeout=timeout, prompt_version=version)
            return ChatReply(text, RETRY, section), True

        result = await validate_answer(self.llm, rule.text, answer, timeout=timeout, prompt_version=version)
        if not result.valid:
            return ChatReply(result.guidance, RETRY, section), True

        progress.responses.append(answer)
        nxt = idx + 1
        progress.last_rule_index_asked = nxt
        if nxt >= len(rules):
            progress.completed = True
            logger.info("[driver] session %s completed section %s", state.session_id, section)
            return ChatReply(section_completed_message(catalog, section), SECTION_COMPLETED, section), True
        return ChatReply(rules[nxt].text, SUCCESS, section), True
