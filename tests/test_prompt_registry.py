"""Unit tests for eop_assistant.services.prompt_registry."""
import pytest

from eop_assistant.services.prompt_registry import (
    REQUIRED_PROMPTS,
    PromptNotFoundError,
    get_prompt,
    missing_prompts,
    render_prompt,
)


def test_bundled_prompts_complete_for_v1():
    assert missing_prompts("v1") == []
    for name in REQUIRED_PROMPTS:
        assert get_prompt(name, "v1")


def test_missing_prompts_reports_absent_versions():
    assert missing_prompts("v99") == list(REQUIRED_PROMPTS)
    assert missing_prompts("v1", ["casual_reply", "no_such_prompt"]) == ["no_such_prompt"]


def test_render_fills_placeholders():
    text = render_prompt("intent_classification", "v1", message="good morning")
    assert '"good morning"' in text
    assert "{message}" not in text


def test_render_missing_variable_raises():
    with pytest.raises(KeyError):
        render_prompt("answer_validation", "v1", rule="only the rule")


def test_missing_prompt():
    assert get_prompt("no_such_prompt", "v1") is None
    with pytest.raises(PromptNotFoundError):
        render_prompt("answer_validation", "v99", rule="r", answer="a")
