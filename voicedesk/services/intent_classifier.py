"""
Caller intent classification.

Two implementations of the same `classify(transcript)` capability:
- RuleBasedClassifier: keyword rules + regex entity extraction, always available
- AIClassifier: LLM classification returning JSON

FallbackClassifier composes them: try the primary, and on any error (or when
it is not configured) return the fallback's result. Both paths return the
same Classification type.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Protocol

from voicedesk.services.ai_provider import AIProvider, ChatMessage

logger = logging.getLogger(__name__)

VALID_INTENTS = frozenset(
    {
        "booking_request",
        "information_inquiry",
        "pricing_question",
        "callback_request",
        "complaint",
        "compliment",
        "transfer_request",
        "cancellation",
        "general_inquiry",
        "sales_opportunity",
        "support_request",
        "other",
    }
)
VALID_URGENCIES = ("low", "medium", "high", "critical")
VALID_SENTIMENTS = ("positive", "negative", "neutral", "mixed")
ACTION_REQUIRED_INTENTS = frozenset({"complaint", "transfer_request", "cancellation"})


class ClassificationError(Exception):
    """Classifier could not produce a usable result."""


@dataclass(frozen=True)
class Classification:
    intent: str
    confidence: float
    urgency: str = "low"
    action_required: bool = False
    sentiment: str | None = None
    summary: str | None = None
    entities: dict[str, str] = field(default_factory=dict)
    source: str = "rules"


class IntentClassifier(Protocol):
    def is_configured(self) -> bool:
        """Whether the classifier can run (credentials present)."""

    async def classify(self, transcript: str) -> Classification:
        """Classify a call transcript."""


# =============================================================================
# Keyword rules
# =============================================================================

# First matching rule wins, so order matters
INTENT_RULES: list[tuple[str, tuple[str, ...], str]] = [
    ("booking_request", ("appointment", "schedule", "book", "reserve", "available"), "medium"),
    ("pricing_question", ("price", "cost", "how much", "rate", "fee", "quote"), "low"),
    ("complaint", ("upset", "angry", "frustrated", "problem", "issue", "wrong", "terrible"), "high"),
    ("callback_request", ("call me back", "call back", "return my call", "reach me"), "medium"),
    ("transfer_request", ("speak to someone", "talk to a person", "human", "manager", "supervisor"), "high"),
    ("cancellation", ("cancel", "cancellation", "stop", "end my"), "high"),
    ("information_inquiry", ("information", "tell me about", "what is", "how does", "explain"), "low"),
    ("sales_opportunity", ("interested", "want to buy", "looking for", "need", "purchase"), "medium"),
    ("support_request", ("help", "support", "assist", "fix", "repair"), "medium"),
    ("compliment", ("thank you", "great service", "excellent", "wonderful", "appreciate"), "low"),
]

EMAIL_PATTERN = re.compile(r"[\w.-]+@[\w.-]+\.\w+")
PHONE_PATTERN = re.compile(r"\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
NAME_PATTERN = re.compile(
    r"(?:my name is|i'm|this is)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)", re.IGNORECASE
)


def extract_entities(transcript: str) -> dict[str, str]:
    entities: dict[str, str] = {}
    if match := EMAIL_PATTERN.search(transcript):
        entities["email"] = match.group(0)
    if match := PHONE_PATTERN.search(transcript):
        entities["phone"] = match.group(0)
    if match := NAME_PATTERN.search(transcript):
        entities["name"] = match.group(1)
    return entities


class RuleBasedClassifier:
    def is_configured(self) -> bool:
        return True

    async def classify(self, transcript: str) -> Classification:
        return self.classify_sync(transcript)

    def classify_sync(self, transcript: str) -> Classification:
        lower = transcript.lower()
        entities = extract_entities(transcript)

        for intent, keywords, urgency in INTENT_RULES:
            matches = [keyword for keyword in keywords if keyword in lower]
            if matches:
                return Classification(
                    intent=intent,
                    confidence=min(0.9, 0.5 + 0.15 * len(matches)),
                    urgency=urgency,
                    action_required=intent in ACTION_REQUIRED_INTENTS,
                    entities=entities,
                    source="rules",
                )

        return Classification(
            intent="general_inquiry",
            confidence=0.4,
            urgency="low",
            entities=entities,
            source="rules",
        )


# =============================================================================
# LLM classifier
# =============================================================================

CLASSIFICATION_PROMPT = """You classify caller intent for a business phone line.

Return ONLY a JSON object with these keys:
  "intent": one of booking_request, information_inquiry, pricing_question,
            callback_request, complaint, compliment, transfer_request,
            cancellation, general_inquiry, sales_opportunity, support_request, other
  "confidence": number between 0.0 and 1.0
  "urgency": one of low, medium, high, critical
  "sentiment": one of positive, negative, neutral, mixed
  "summary": one or two sentence summary of the call
  "entities": object of extracted values (name, email, phone, date, service)
"""


def _parse_classification(content: str) -> Classification:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ClassificationError("AI response was not valid JSON") from exc
    if not isinstance(data, dict):
        raise ClassificationError("AI response was not a JSON object")

    intent = str(data.get("intent", "")).strip().lower()
    if intent not in VALID_INTENTS:
        intent = "other"
    urgency = str(data.get("urgency", "low")).strip().lower()
    if urgency not in VALID_URGENCIES:
        urgency = "low"
    sentiment = data.get("sentiment")
    if sentiment not in VALID_SENTIMENTS:
        sentiment = None

    try:
        confidence = float(data.get("confidence", 0.5))
    except (TypeError, ValueError):
        confidence = 0.5
    confidence = max(0.0, min(1.0, confidence))

    raw_entities = data.get("entities") or {}
    entities = (
        {str(k): str(v) for k, v in raw_entities.items() if v is not None}
        if isinstance(raw_entities, dict)
        else {}
    )
    return Classification(
        intent=intent,
        confidence=confidence,
        urgency=urgency,
        action_required=intent in ACTION_REQUIRED_INTENTS,
        sentiment=sentiment,
        summary=data.get("summary") or None,
        entities=entities,
        source="ai",
    )


class AIClassifier:
    def __init__(self, provider: AIProvider | None, model: str | None = None):
        self.provider = provider
        self.model = model

    def is_configured(self) -> bool:
        return self.provider is not None

    async def classify(self, transcript: str) -> Classification:
        if self.provider is None:
            raise ClassificationError("No AI provider configured")
        response = await self.provider.chat(
            [
                ChatMessage(role="system", content=CLASSIFICATION_PROMPT),
                ChatMessage(role="user", content=f"TRANSCRIPT:\n{transcript}"),
            ],
            model=self.model,
            json_mode=True,
        )
        return _parse_classification(response.content)


class FallbackClassifier:
    def __init__(self, primary: IntentClassifier, fallback: IntentClassifier):
        self.primary = primary
        self.fallback = fallback

    def is_configured(self) -> bool:
        return True

    async def classify(self, transcript: str) -> Classification:
        if self.primary.is_configured():
            try:
                return await self.primary.classify(transcript)
            except Exception as exc:
                logger.warning(
                    "Primary intent classifier failed (%s), using fallback",
                    type(exc).__name__,
                )
        return await self.fallback.classify(transcript)


def build_intent_classifier(provider: AIProvider | None) -> FallbackClassifier:
    return FallbackClassifier(AIClassifier(provider), RuleBasedClassifier())
