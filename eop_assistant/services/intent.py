"""Intent classification (small talk vs. form answer) and the small-talk reply."""
import logging
from typing import Literal

from eop_assistant.services.llm_provider import LLMProvider, generate_with_timeout
from eop_assistant.services.prompt_registry import render_prompt

logger = logging.getLogger(__name__)

Intent = Literal["conversation", "validation"]

CONVERSATION: Intent = "conversation"
VALIDATION: Intent = "validation"


async def classify_intent(
    llm: LLMProvider,
    message: str,
    *,
    timeout: float | None = None,
    prompt_version: str = "v1",
) -> Intent:
    """Label *message*. Anything other than an exact "conversation" reply, or a failed call, is "validation"."""
    prompt = render_prompt("intent_classification", prompt_version, message=message)
    try:
        reply = await generate_with_timeout(llm, prompt, timeout)
    except Exception as e:
        logger.warning("Intent classification failed, defaulting to validation: %s", e)
        return VALIDATION
    normalized = reply.strip().lower()
    return CONVERSATION if normalized == CONVERSATION else VALIDATION


def fallback_casual_reply(rule_text: str) -> str:
    return (
        "Hi there! 👋 I'm here to help you complete your Emergency Operations Plan. "
        f"For this part of the form, \"{rule_text}\", please share the details you have."
    )


async def casual_reply(
    llm: LLMProvider,
    rule_text: str,
    message: str,
    *,
    timeout: float | None = None,
    prompt_version: str = "v1",
) -> str:
    """Friendly reply to small talk that points the user back at *rule_text*."""
    prompt = render_prompt("casual_reply", prompt_version, rule=rule_text, message=message)
    try:
        reply = (await generate_with_timeout(llm, prompt, timeout)).strip()
    except Exception as e:
        logger.warning("Casual reply generation failed, using template: %s", e)
        return fallback_casual_reply(rule_text)
    return reply or fallback_casual_reply(rule_text)
