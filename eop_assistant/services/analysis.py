"""Stateless answer check: classify the message, then reply casually or validate it against one rule."""
import logging
from dataclasses import dataclass
from typing import Optional

from eop_assistant.services.intent import CONVERSATION, VALIDATION, casual_reply, classify_intent
from eop_assistant.services.llm_provider import LLMProvider
from eop_assistant.services.validator import validate_answer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisResult:
    type: str  # "conversation" or "validation"
    message: str
    valid: Optional[bool] = None  # None for conversation


async def analyze_answer(
    llm: LLMProvider,
    rule_text: str,
    answer_text: str,
    *,
    timeout: float | None = None,
    prompt_version: str = "v1",
) -> AnalysisResult:
    """Same gating as a chat turn, without reading or writing any session."""
    intent = await classify_intent(llm, answer_text, timeout=timeout, prompt_version=prompt_version)
    if intent == CONVERSATION:
        text = await casual_reply(llm, rule_text, answer_text, timeout=timeout, prompt_version=prompt_version)
        return AnalysisResult(type=CONVERSATION, message=text)

    result = await validate_answer(llm, rule_text, answer_text, timeout=timeout, prompt_version=prompt_version)
    logger.debug("Analysis for rule %r: valid=%s", rule_text, result.valid)
    return AnalysisResult(type=VALIDATION, message=result.guidance, valid=result.valid)
