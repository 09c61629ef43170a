"""
Tests for the AI augmentation bridge.

No real provider is called: adapters are replaced with in-process fakes.
"""
import asyncio
import json

import httpx
import pytest

from conftest import TENANT, enable
from crossmap.config import Settings
from crossmap.errors import InvalidInput
from crossmap.services.ai_adapters import AIAdapter, AnthropicAdapter, LLMResponse, get_ai_adapter
from crossmap.services.ai_bridge import AIParsingError, parse_json
from crossmap.services.engine import MappingEngine


class FakeAdapter(AIAdapter):
    def __init__(self, reply=None, error=None, delay=0.0):
        super().__init__("http://fake", "", "fake-model")
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls = []

    async def chat_completion(self, system, user_message, max_tokens, temperature, timeout=30):
        self.calls.append(user_message)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return LLMResponse(text=self.reply, model=self.model)


def _engine(db, cache, adapter, **overrides):
    return MappingEngine(db, cache=cache, config=Settings(**overrides), ai_adapter=adapter)


def test_parse_json_variants():
    assert parse_json('{"answer": "x"}') == {"answer": "x"}
    assert parse_json('Here you go:\n```json\n{"answer": "y"}\n```') == {"answer": "y"}
    assert parse_json('prefix {"answer": "z"} suffix') == {"answer": "z"}
    with pytest.raises(AIParsingError):
        parse_json("no json here")


def test_adapter_factory():
    assert get_ai_adapter(Settings(AI_PROVIDER="none")) is None
    adapter = get_ai_adapter(Settings(AI_PROVIDER="anthropic", AI_API_KEY="k", AI_MODEL="m"))
    assert isinstance(adapter, AnthropicAdapter)
    assert adapter.model == "m"


@pytest.mark.asyncio
async def test_rule_based_when_not_configured(engine, seed_catalog):
    await engine.create_cross_reference("ISO27001-A.5.15", "SOC2-CC6.1", "equivalent", 0.9)
    await enable(engine, "ISO27001", "SOC2")

    result = await engine.analyze(TENANT, "Which controls cover logical access?")
    assert result.ai_used is False
    assert result.degraded_reason == "AI provider not configured"
    assert result.confidence == 0.5
    assert result.answer.startswith("1 equivalent control pairs across 2 enabled frameworks")
    assert set(result.related_controls) == {"ISO27001-A.5.15", "SOC2-CC6.1"}
    assert any("ISO27001 / SOC2" in i for i in result.cross_framework_insights)
    assert any("has no mapped control" in f for f in result.findings)


@pytest.mark.asyncio
async def test_ai_answer_used_and_controls_filtered(db, cache, seed_catalog):
    reply = json.dumps({
        "answer": "Access is well covered",
        "findings": ["ISO and SOC 2 agree on access"],
        "recommendations": ["Map GDPR Art. 32"],
        "related_controls": ["ISO27001-A.5.15", "MADE-UP-1"],
        "cross_framework_insights": [],
        "confidence": 0.8,
    })
    adapter = FakeAdapter(reply=reply)
    engine = _engine(db, cache, adapter)
    await enable(engine, "ISO27001", "SOC2")

    result = await engine.analyze(TENANT, "How is access covered?")
    assert result.ai_used is True
    assert result.degraded_reason is None
    assert result.answer == "Access is well covered"
    assert result.related_controls == ["ISO27001-A.5.15"]
    assert result.confidence == 0.8
    assert '"frameworks"' in adapter.calls[0]


@pytest.mark.asyncio
@pytest.mark.parametrize("adapter,reason", [
    (FakeAdapter(error=httpx.ConnectError("refused")), "AI provider error"),
    (FakeAdapter(reply="I cannot answer that"), "AI provider error"),
    (FakeAdapter(reply="{}", delay=1.0), "AI provider timed out"),
])
async def test_provider_failures_degrade(db, cache, seed_catalog, adapter, reason):
    engine = _engine(db, cache, adapter, AI_TIMEOUT_SECONDS=0.05)
    await enable(engine, "ISO27001")

    result = await engine.analyze(TENANT, "What are my gaps?")
    assert result.ai_used is False
    assert result.degraded_reason.startswith(reason)
    assert result.confidence == 0.5


@pytest.mark.asyncio
async def test_requirement_focus_validated(engine, seed_catalog):
    with pytest.raises(InvalidInput):
        await engine.analyze(TENANT, "Anything?", requirement_focus=["happiness"])
    result = await engine.analyze(TENANT, "Anything?", requirement_focus=["privacy"])
    assert result.ai_used is False
