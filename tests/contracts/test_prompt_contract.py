import pytest
from pydantic import ValidationError

from shop_agent.agent.decision import _SYSTEM_PROMPT
from shop_agent.agent.tools import ItemLookupInput


def test_prompt_mandates_tool_use_and_graceful_failures() -> None:
    assert "ALWAYS use this tool" in _SYSTEM_PROMPT
    assert "item_lookup" in _SYSTEM_PROMPT
    assert "returns an error or no results" in _SYSTEM_PROMPT
    assert "database appears to be empty" in _SYSTEM_PROMPT
    assert "{time}" in _SYSTEM_PROMPT


def test_item_lookup_input_requires_query_and_defaults_n() -> None:
    assert ItemLookupInput(query="sofa").n == 10

    with pytest.raises(ValidationError):
        ItemLookupInput.model_validate({"n": 3})
    with pytest.raises(ValidationError):
        ItemLookupInput(query="")
    with pytest.raises(ValidationError):
        ItemLookupInput(query="sofa", n=0)
