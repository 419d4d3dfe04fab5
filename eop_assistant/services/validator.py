"""Answer validation: ask the LLM whether an answer satisfies one form rule."""
import logging
from dataclasses import dataclass

from eop_assistant.services.llm_provider import LLMProvider, generate_with_timeout
from eop_assistant.services.prompt_registry import render_prompt

logger = logging.getLogger(__name__)

GENERIC_RETRY_MESSAGE = (
    "⚠️ Sorry, I couldn't check your answer just now. "
    "Could you please send it again?"
)

_GUIDANCE_TEMPLATE = """🧐 Hmm, it looks like your response might be missing some details.

Here's an example of what we're looking for:
{feedback}

Could you try rephrasing or adding more info? Let me know if you need help! 🙂"""


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    guidance: str = ""  # empty when valid


def is_valid_token(reply: str) -> bool:
    """True only for an exact "valid" reply (trimmed, case-insensitive)."""
    return reply.strip().lower() == "valid"


def wrap_guidance(feedback: str) -> str:
    return _GUIDANCE_TEMPLATE.format(feedback=feedback.strip())


async def validate_answer(
    llm: LLMProvider,
    rule_text: str,
    answer_text: str,
    *,
    timeout: float | None = None,
    prompt_version: str = "v1",
) -> ValidationResult:
    """Judge *answer_text* against *rule_text*.

    Any provider failure (timeouts included) is treated as invalid with a
    generic retry prompt, so the user is asked again rather than blocked.
    """
    prompt = render_prompt("answer_validation", prompt_version, rule=rule_text, answer=answer_text)
    try:
        reply = await generate_with_timeout(llm, prompt, timeout)
    except Exception as e:
        logger.warning("Answer validation failed, asking user to retry: %s", e)
        return ValidationResult(valid=False, guidance=GENERIC_RETRY_MESSAGE)

    if is_valid_token(reply):
        return ValidationResult(valid=True)
    return ValidationResult(valid=False, guidance=wrap_guidance(reply))
