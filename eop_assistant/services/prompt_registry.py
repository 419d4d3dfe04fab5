"""Prompt templates stored as prompts/<name>/<version>.yaml, rendered with str.format placeholders."""
import logging
from pathlib import Path
from typing import Iterable, List, Optional

import yaml

logger = logging.getLogger(__name__)

_PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

# Every template the conversation and generation code renders
REQUIRED_PROMPTS = ("answer_validation", "intent_classification", "casual_reply", "section_narrative")


class PromptNotFoundError(LookupError):
    """No template exists for the requested name/version."""


def _load_prompt_file(name: str, version: str) -> Optional[dict]:
    path = _PROMPTS_DIR / name / f"{version}.yaml"
    if not path.is_file():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Unreadable prompt file %s: %s", path, e)
        return None
    return data if isinstance(data, dict) else None


def get_prompt(name: str, version: str) -> Optional[str]:
    """Template body for *name*/*version*, or None when missing or malformed."""
    data = _load_prompt_file(name, version)
    body = (data or {}).get("body")
    return body.strip() if isinstance(body, str) else None


def missing_prompts(version: str, names: Iterable[str] = REQUIRED_PROMPTS) -> List[str]:
    """Names from *names* with no usable template at *version*."""
    return [name for name in names if get_prompt(name, version) is None]


def render_prompt(name: str, version: str, **variables: str) -> str:
    """Load *name*/*version* and fill its {var} placeholders.

    Raises PromptNotFoundError when the template is missing and KeyError when a
    placeholder has no value.
    """
    body = get_prompt(name, version)
    if body is None:
        raise PromptNotFoundError(f"Prompt {name}/{version} not found in {_PROMPTS_DIR}")
    return body.format(**variables)
