"""Section narrative generation for a completed questionnaire section, and the final EOP document."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from eop_assistant.conversation.config import ConversationConfig
from eop_assistant.conversation.driver import publish_snapshot
from eop_assistant.conversation.errors import ProposalConflictError
from eop_assistant.conversation.state import ProposalState
from eop_assistant.conversation.store import get_proposal, save_proposal
from eop_assistant.services.broadcast import ProposalBroadcaster
from eop_assistant.services.llm_provider import LLMProvider, generate_with_timeout
from eop_assistant.services.prompt_registry import render_prompt
from eop_assistant.services.proposal_cache import ProposalCache
from eop_assistant.services.rules_bank import SECTION_TITLES, Rule, RuleCatalog

logger = logging.getLogger(__name__)

# Public step name -> catalog section
STEP_SECTIONS = {
    "information": "information",
    "hazard": "assessment",
    "response": "responsePlan",
}
FINAL_STEP = "final"


class ProposalNotFoundError(LookupError):
    pass


class SectionNotReadyError(ValueError):
    pass


class UnknownStepError(ValueError):
    pass


@dataclass(frozen=True)
class GeneratedSection:
    step: str
    text: str
    fallback: bool = False  # True when the LLM failed and the bullet template was used


def _format_answers(rules: tuple[Rule, ...], responses: list[str]) -> str:
    lines = []
    for rule, response in zip(rules, responses):
        lines.append(f"- {rule.text}\n  Answer: {response}")
    return "\n".join(lines)


def fallback_section_text(section: str, responses: list[str]) -> str:
    title = SECTION_TITLES.get(section, section)
    return f"{title}:\n" + "\n".join(f"• {r}" for r in responses)


async def narrate_section(
    llm: LLMProvider,
    section: str,
    rules: tuple[Rule, ...],
    responses: list[str],
    *,
    timeout: float | None = None,
    prompt_version: str = "v1",
) -> tuple[str, bool]:
    """Return (text, used_fallback)."""
    prompt = render_prompt(
        "section_narrative",
        prompt_version,
        section_title=SECTION_TITLES.get(section, section),
        answers=_format_answers(rules, responses),
    )
    try:
        text = (await generate_with_timeout(llm, prompt, timeout)).strip()
    except Exception as e:
        logger.warning("Narrative generation for %s failed, using bullet template: %s", section, e)
        return fallback_section_text(section, responses), True
    if not text:
        return fallback_section_text(section, responses), True
    return text, False


def _final_document(state: ProposalState) -> str:
    parts = []
    for section in STEP_SECTIONS.values():
        text = state.section(section).generated_text
        if not text:
            raise SectionNotReadyError(
                f"Generate the {SECTION_TITLES.get(section, section)} section before the final document."
            )
        parts.append(text.strip())
    return "\n\n".join(parts)


async def generate_section_text(
    db: AsyncSession,
    llm: LLMProvider,
    catalog: RuleCatalog,
    session_id: str,
    step: str,
    *,
    config: ConversationConfig,
    proposal_cache: ProposalCache | None = None,
    broadcaster: ProposalBroadcaster | None = None,
) -> GeneratedSection:
    """Generate and store narrative text for *step* (or assemble the final document)."""
    if step != FINAL_STEP and step not in STEP_SECTIONS:
        raise UnknownStepError(f"Step not supported: {step}")

    state = await get_proposal(db, session_id)
    if state is None:
        raise ProposalNotFoundError(f"Proposal not found for session {session_id}")

    text = ""
    fallback = False
    if step != FINAL_STEP:
        section = STEP_SECTIONS[step]
        rules = catalog.rules(section)
        needed = catalog.rule_count(section)
        responses = state.section(section).responses
        if not needed or len(responses) < needed:
            raise SectionNotReadyError(
                f"Not enough {SECTION_TITLES.get(section, section)} responses to generate this section "
                f"({len(responses)} of {needed})."
            )
        text, fallback = await narrate_section(
            llm, section, rules, responses[:needed],
            timeout=config.llm_timeout_seconds,
            prompt_version=config.prompt_version,
        )

    attempts = max(0, config.max_conflict_retries) + 1
    for attempt in range(1, attempts + 1):
        if attempt > 1:
            state = await get_proposal(db, session_id)
            if state is None:
                raise ProposalNotFoundError(f"Proposal not found for session {session_id}")

        if step == FINAL_STEP:
            text = _final_document(state)
            state.review_state.final_document = text
            state.review_state.completed = True
        else:
            state.section(STEP_SECTIONS[step]).generated_text = text

        try:
            await save_proposal(db, state)
        except ProposalConflictError:
            if attempt >= attempts:
                raise
            continue
        publish_snapshot(state, proposal_cache, broadcaster)
        logger.info("[generate] session %s step %s stored (fallback=%s)", session_id, step, fallback)
        return GeneratedSection(step=step, text=text, fallback=fallback)

    raise ProposalConflictError(session_id, -1)
