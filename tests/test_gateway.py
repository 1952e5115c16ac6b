"""Tests for the completion gateway and its primary/fallback behaviour."""
import asyncio
import json

import pytest

from accommodation_engine.core.gateway import CompletionGateway
from accommodation_engine.core.tool_schemas import forced_tool_choice
from accommodation_engine.models.schemas import ModelConfig, ModuleType, Pathway
from accommodation_engine.utils.api_client import CompletionError
from fakes import FakeChatClient, completion

MODEL = ModelConfig(model_name="gpt-primary", max_tokens=1200, temperature=0.2)
MESSAGES = [{"role": "system", "content": "s"}, {"role": "user", "content": "u"}]


def _tool_names(payload):
    return [tool["function"]["name"] for tool in payload["tools"]]


class TestBuildRequest:
    def test_complex_attaches_module_tools(self):
        gateway = CompletionGateway(FakeChatClient())
        payload = gateway.build_request(MODEL, MESSAGES, ModuleType.K12, Pathway.COMPLEX)
        assert _tool_names(payload) == ["identifyStrengthsAndWeaknesses", "populateK12ItemMaster"]
        assert payload["tool_choice"] == "auto"
        assert payload["max_tokens"] == 1200
        assert payload["temperature"] == 0.2

    def test_complex_generic_tools(self):
        gateway = CompletionGateway(FakeChatClient())
        payload = gateway.build_request(MODEL, MESSAGES, ModuleType.POST_SECONDARY, Pathway.COMPLEX)
        assert _tool_names(payload) == ["populateItemMaster", "lookupBarrierAccommodations"]

    def test_simple_has_no_tools(self):
        gateway = CompletionGateway(FakeChatClient())
        payload = gateway.build_request(MODEL, MESSAGES, ModuleType.K12, Pathway.SIMPLE)
        assert "tools" not in payload
        assert "tool_choice" not in payload

    def test_simple_keeps_forced_tool_choice(self):
        gateway = CompletionGateway(FakeChatClient())
        choice = forced_tool_choice("populateK12ItemMaster")
        payload = gateway.build_request(MODEL, MESSAGES, ModuleType.K12, Pathway.SIMPLE, tool_choice=choice)
        assert "tools" not in payload
        assert payload["tool_choice"] == choice


class TestFallback:
    def test_primary_success_single_call(self):
        client = FakeChatClient(completion("ok"))
        gateway = CompletionGateway(client)

        result = asyncio.run(gateway.complete(MODEL, MESSAGES, ModuleType.K12, Pathway.COMPLEX))

        assert result["choices"][0]["message"]["content"] == "ok"
        assert client.models == ["gpt-primary"]

    def test_fallback_payload_differs_only_in_model(self):
        client = FakeChatClient(CompletionError("primary down"), completion("from fallback"))
        gateway = CompletionGateway(client, fallback_model="gpt-4.1")

        result = asyncio.run(gateway.complete(MODEL, MESSAGES, ModuleType.K12, Pathway.COMPLEX))

        assert result["choices"][0]["message"]["content"] == "from fallback"
        assert client.models == ["gpt-primary", "gpt-4.1"]
        primary, fallback = client.payloads
        assert {k: v for k, v in primary.items() if k != "model"} == {k: v for k, v in fallback.items() if k != "model"}

    def test_fallback_error_propagates(self):
        client = FakeChatClient(CompletionError("primary down"), CompletionError("fallback down"))
        gateway = CompletionGateway(client)

        with pytest.raises(CompletionError, match="fallback down"):
            asyncio.run(gateway.complete(MODEL, MESSAGES, ModuleType.TUTORING, Pathway.SIMPLE))
        assert len(client.payloads) == 2

    def test_parse_failure_counts_as_attempt(self):
        client = FakeChatClient(completion("not json"), completion('{"ok": true}'))
        gateway = CompletionGateway(client)

        def parse(response):
            return json.loads(response["choices"][0]["message"]["content"])

        payload = {"model": "gpt-primary", "messages": MESSAGES, "max_tokens": 10, "temperature": 0.1}
        assert asyncio.run(gateway.call_with_fallback(payload, parse)) == {"ok": True}
        assert client.models == ["gpt-primary", "gpt-4.1"]
