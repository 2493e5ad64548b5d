"""
Unit tests for DeepSeekDecisionProvider.

The OpenAI client is replaced with a mock; no network access is made.
"""

import json
import threading
from types import SimpleNamespace
from unittest.mock import Mock

import httpx
import openai
import pytest

from conftest import decision_payload
from tradeloop.decision_provider import DeepSeekDecisionProvider
from tradeloop.exceptions import OracleError, OracleResponseError, OracleTimeoutError
from tradeloop.models import Instrument


def _message(content: str, reasoning_content=None):
    return SimpleNamespace(content=content, reasoning_content=reasoning_content)


def _completion(message):
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.fixture()
def provider() -> DeepSeekDecisionProvider:
    provider = DeepSeekDecisionProvider(api_key="deepseek-key", model="deepseek-chat")
    provider.client = Mock()
    return provider


def _batch_json(**extra) -> str:
    payload = {"decisions": [decision_payload("Hold", "BTC", chat="Range bound"),
                             decision_payload("Hold", "ETH", chat="No setup")]}
    payload.update(extra)
    return json.dumps(payload)


class TestPropose:
    def test_returns_validated_decisions(self, provider):
        provider.client.chat.completions.create.return_value = _completion(_message(_batch_json()))

        response = provider.propose("system", "user", timeout=5)

        assert [d.symbol for d in response.decisions] == [Instrument.BTC, Instrument.ETH]
        kwargs = provider.client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "deepseek-chat"
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}
        assert kwargs["messages"][1] == {"role": "user", "content": "user"}
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["timeout"] == 5

    def test_single_attempt_client(self):
        provider = DeepSeekDecisionProvider(api_key="deepseek-key")

        assert provider.client.max_retries == 0

    def test_invalid_output_raises_response_error(self, provider):
        provider.client.chat.completions.create.return_value = _completion(_message("I think BTC goes up"))

        with pytest.raises(OracleResponseError):
            provider.propose("system", "user", timeout=5)

        assert provider.client.chat.completions.create.call_count == 1

    def test_empty_content_raises_response_error(self, provider):
        provider.client.chat.completions.create.return_value = _completion(_message(None))

        with pytest.raises(OracleResponseError):
            provider.propose("system", "user", timeout=5)


class TestTimeouts:
    def test_wall_clock_timeout(self, provider):
        release = threading.Event()

        def hang(**kwargs):
            release.wait(5)
            return _completion(_message(_batch_json()))

        provider.client.chat.completions.create.side_effect = hang
        try:
            with pytest.raises(OracleTimeoutError, match="AI call timeout after 0.05s"):
                provider.propose("system", "user", timeout=0.05)
        finally:
            release.set()

    def test_client_timeout_mapped(self, provider):
        request = httpx.Request("POST", "https://api.deepseek.com/chat/completions")
        provider.client.chat.completions.create.side_effect = openai.APITimeoutError(request=request)

        with pytest.raises(OracleTimeoutError):
            provider.propose("system", "user", timeout=5)

    def test_other_provider_errors(self, provider):
        provider.client.chat.completions.create.side_effect = openai.OpenAIError("invalid api key")

        with pytest.raises(OracleError, match="invalid api key") as exc_info:
            provider.propose("system", "user", timeout=5)

        assert not isinstance(exc_info.value, OracleTimeoutError)


class TestReasoning:
    def test_prefers_provider_reasoning_trace(self, provider):
        message = _message(_batch_json(reasoning="payload reasoning"), reasoning_content="model trace")
        provider.client.chat.completions.create.return_value = _completion(message)

        assert provider.propose("system", "user", timeout=5).reasoning == "model trace"

    def test_falls_back_to_payload_reasoning(self, provider):
        message = _message(_batch_json(reasoning="payload reasoning"), reasoning_content="  ")
        provider.client.chat.completions.create.return_value = _completion(message)

        assert provider.propose("system", "user", timeout=5).reasoning == "payload reasoning"

    def test_falls_back_to_decision_chat(self, provider):
        provider.client.chat.completions.create.return_value = _completion(_message(_batch_json()))

        response = provider.propose("system", "user", timeout=5)

        assert response.reasoning == "[BTC] Range bound\n[ETH] No setup"
