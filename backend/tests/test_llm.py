import json
from unittest.mock import MagicMock, patch

import pytest

from backend.llm.config import LLMConfig
from backend.llm.groq_client import complete_json, is_available, make_completion

ENABLED_CONFIG = LLMConfig(api_key="test-key", enabled=True, timeout=10.0)
DISABLED_CONFIG = LLMConfig(api_key="test-key", enabled=False)


def _mock_groq_response(content: str | None) -> MagicMock:
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    return response


@patch("backend.llm.groq_client.Groq")
def test_complete_json_sends_prompt_and_payload(mock_groq_cls):
    create = mock_groq_cls.return_value.chat.completions.create
    create.return_value = _mock_groq_response('{"kept": [0]}')

    result = complete_json("system", {"cuisine_intent": "thai"}, 0.2, config=ENABLED_CONFIG, timeout=4.0)

    assert result == '{"kept": [0]}'
    mock_groq_cls.assert_called_once_with(api_key="test-key", timeout=4.0)
    kwargs = create.call_args.kwargs
    assert kwargs["messages"][0] == {"role": "system", "content": "system"}
    assert json.loads(kwargs["messages"][1]["content"]) == {"cuisine_intent": "thai"}
    assert kwargs["temperature"] == 0.2
    assert kwargs["response_format"] == {"type": "json_object"}


@patch("backend.llm.groq_client.Groq")
def test_complete_json_uses_default_timeout(mock_groq_cls):
    mock_groq_cls.return_value.chat.completions.create.return_value = _mock_groq_response(None)

    assert complete_json("system", {}, config=ENABLED_CONFIG) == ""
    mock_groq_cls.assert_called_once_with(api_key="test-key", timeout=10.0)


@patch("backend.llm.groq_client.Groq")
def test_complete_json_propagates_api_errors(mock_groq_cls):
    mock_groq_cls.return_value.chat.completions.create.side_effect = Exception("API timeout")

    with pytest.raises(Exception, match="API timeout"):
        complete_json("system", {}, config=ENABLED_CONFIG)


@patch("backend.llm.groq_client.Groq")
def test_make_completion_binds_config(mock_groq_cls):
    mock_groq_cls.return_value.chat.completions.create.return_value = _mock_groq_response("{}")

    complete = make_completion(ENABLED_CONFIG, timeout=4.0)

    assert complete("system", {"a": 1}, 0.0) == "{}"
    mock_groq_cls.assert_called_once_with(api_key="test-key", timeout=4.0)


def test_availability():
    assert is_available(ENABLED_CONFIG)
    assert not is_available(DISABLED_CONFIG)
    assert not is_available(LLMConfig(api_key="", enabled=True))
