"""Tests for intent classification and the AI -> rules fallback."""

import json

import pytest

from voicedesk.services.ai_provider import AIProvider, ChatResponse
from voicedesk.services.intent_classifier import (
    AIClassifier,
    ClassificationError,
    FallbackClassifier,
    RuleBasedClassifier,
    build_intent_classifier,
)


class StubProvider(AIProvider):
    def __init__(self, content: str | None = None, error: Exception | None = None):
        self.content = content
        self.error = error
        self.requests = []

    async def chat(self, messages, **kwargs):
        self.requests.append((messages, kwargs))
        if self.error is not None:
            raise self.error
        return ChatResponse(
            content=self.content, prompt_tokens=0, completion_tokens=0, total_tokens=0, model="stub"
        )


def test_first_matching_rule_wins():
    result = RuleBasedClassifier().classify_sync(
        "I want to book an appointment but I'm upset about the price"
    )
    assert result.intent == "booking_request"
    assert result.urgency == "medium"
    assert result.source == "rules"


def test_confidence_scales_with_keyword_hits():
    one = RuleBasedClassifier().classify_sync("Can I get a quote?")
    two = RuleBasedClassifier().classify_sync("What is the price and cost?")
    many = RuleBasedClassifier().classify_sync("price cost how much rate fee quote")
    assert one.confidence == pytest.approx(0.65)
    assert two.confidence == pytest.approx(0.8)
    assert many.confidence == pytest.approx(0.9)


def test_default_intent_when_nothing_matches():
    result = RuleBasedClassifier().classify_sync("Hello there")
    assert result.intent == "general_inquiry"
    assert result.confidence == pytest.approx(0.4)


def test_action_required_intents():
    result = RuleBasedClassifier().classify_sync("Let me speak to a manager please")
    assert result.intent == "transfer_request"
    assert result.action_required is True


def test_entities_extracted():
    result = RuleBasedClassifier().classify_sync(
        "Hi, my name is Maria Lopez, email maria@example.com, call me at 555-123-4567"
    )
    assert result.entities == {
        "name": "Maria Lopez",
        "email": "maria@example.com",
        "phone": "555-123-4567",
    }


@pytest.mark.asyncio
async def test_ai_classifier_parses_json():
    provider = StubProvider(
        json.dumps(
            {
                "intent": "complaint",
                "confidence": 0.92,
                "urgency": "high",
                "sentiment": "negative",
                "summary": "Caller unhappy with billing",
                "entities": {"name": "Bob"},
            }
        )
    )
    result = await AIClassifier(provider).classify("...")
    assert result.intent == "complaint"
    assert result.action_required is True
    assert result.source == "ai"
    assert provider.requests[0][1]["json_mode"] is True


@pytest.mark.asyncio
async def test_ai_classifier_rejects_non_json():
    with pytest.raises(ClassificationError):
        await AIClassifier(StubProvider("not json")).classify("...")


@pytest.mark.asyncio
async def test_unknown_ai_intent_normalized_to_other():
    result = await AIClassifier(StubProvider('{"intent": "weather", "urgency": "extreme"}')).classify("...")
    assert result.intent == "other"
    assert result.urgency == "low"


@pytest.mark.asyncio
async def test_fallback_on_ai_error_has_same_shape():
    classifier = FallbackClassifier(
        AIClassifier(StubProvider(error=TimeoutError())), RuleBasedClassifier()
    )
    result = await classifier.classify("How much does a cleaning cost?")
    assert result.intent == "pricing_question"
    assert result.source == "rules"


@pytest.mark.asyncio
async def test_unconfigured_ai_uses_rules():
    result = await build_intent_classifier(None).classify("Please call me back tomorrow")
    assert result.intent == "callback_request"
