"""Content-category badges from an LLM classification of a prophecy's text.

The whole path is advisory. Any failure, from the classifier call to the
badge insert, ends in an empty result with no analysis.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from anthropic import AsyncAnthropic
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from seer.config import Settings, get_settings
from seer.gamification.badge_service import award_badges
from seer.gamification.schemas import AwardedBadge

logger = logging.getLogger(__name__)


class ContentCategory(str, Enum):
    SEXY = "sexy"
    MORBID = "morbid"
    SPORT = "sport"
    ENVIRONMENT = "environment"
    SCIENCE = "science"
    FINANCE = "finance"


CATEGORY_TO_BADGE: dict[ContentCategory, str] = {category: f"content_{category.value}" for category in ContentCategory}

SYSTEM_PROMPT = """You classify short prophecies (predictions about the future).
Decide whether the text clearly belongs to one or more of these categories:

- sexy: suggestive, erotic or romantic-physical content
- morbid: death, illness, accidents, dark or macabre topics
- sport: sporting events, competitions, athletes, teams, leagues
- environment: environmental protection, climate change, sustainability, nature
- science: science, research, technology, discoveries, medicine
- finance: stock markets, shares, economy, money, crypto, investments

Most prophecies belong to NO category; return an empty list then.
Be conservative and only assign clear matches. Several categories are allowed.

Answer with the JSON object only, no other text:
{"categories": ["sport"], "confidence": 0.9, "reasoning": "One or two sentences."}
"confidence" is how sure you are about the classification, between 0 and 1."""


class ContentAnalysis(BaseModel):
    categories: list[ContentCategory] = []
    confidence: float = 0.0
    reasoning: str = ""


def parse_analysis(data: dict) -> ContentAnalysis:
    """Build an analysis from raw model output, dropping unknown categories."""
    known = {c.value for c in ContentCategory}
    categories: list[ContentCategory] = []
    for raw in data.get("categories") or []:
        value = str(raw).strip().lower()
        if value in known and ContentCategory(value) not in categories:
            categories.append(ContentCategory(value))

    try:
        confidence = float(data.get("confidence", 0.0))
    except (TypeError, ValueError):
        confidence = 0.0

    return ContentAnalysis(
        categories=categories,
        confidence=min(max(confidence, 0.0), 1.0),
        reasoning=str(data.get("reasoning") or ""),
    )


_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(text: str) -> dict:
    """The JSON object in a model reply, ignoring any prose around it."""
    match = _JSON_OBJECT.search(text)
    if match is None:
        return {}
    data = json.loads(match.group(0))
    return data if isinstance(data, dict) else {}


class ContentClassifier(Protocol):
    async def analyze(self, title: str, description: str | None) -> ContentAnalysis: ...


class AnthropicContentClassifier:
    """Classifier backed by a Claude model that answers with a JSON object."""

    def __init__(self, client: AsyncAnthropic, model: str = "claude-sonnet-4-20250514") -> None:
        self.client = client
        self.model = model

    async def analyze(self, title: str, description: str | None) -> ContentAnalysis:
        text = f"Title: {title}\nDescription: {description}" if description else f"Prophecy: {title}"
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=300,
            temperature=0.1,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": text}],
        )
        analysis = parse_analysis(extract_json(response.content[0].text if response.content else ""))
        logger.info(
            "Classified %r as %s (confidence %.2f)",
            title,
            [c.value for c in analysis.categories] or "none",
            analysis.confidence,
        )
        return analysis


def get_content_classifier(settings: Settings | None = None) -> AnthropicContentClassifier | None:
    """Production classifier, or None when no API key is configured."""
    settings = settings or get_settings()
    if not settings.anthropic_api_key:
        return None
    client = AsyncAnthropic(api_key=settings.anthropic_api_key)
    return AnthropicContentClassifier(client, model=settings.content_model)


@dataclass
class ContentBadgeResult:
    badges: list[AwardedBadge] = field(default_factory=list)
    analysis: ContentAnalysis | None = None


async def award_content_category_badges(
    db: AsyncSession,
    user_id: int,
    title: str,
    description: str | None,
    classifier: ContentClassifier,
    min_confidence: float | None = None,
) -> ContentBadgeResult:
    """Classify a prophecy and award one content badge per detected category."""
    try:
        analysis = await classifier.analyze(title, description)
        threshold = get_settings().content_min_confidence if min_confidence is None else min_confidence
        if analysis.confidence < threshold:
            logger.info("Content confidence %.2f below %.2f, no badges", analysis.confidence, threshold)
            return ContentBadgeResult(badges=[], analysis=analysis)

        badges = await award_badges(db, user_id, [CATEGORY_TO_BADGE[c] for c in analysis.categories])
        return ContentBadgeResult(badges=badges, analysis=analysis)
    except Exception:
        logger.exception("Content badge evaluation failed for user %s", user_id)
        try:
            await db.rollback()
        except Exception:
            logger.warning("Rollback after content badge failure also failed", exc_info=True)
        return ContentBadgeResult(badges=[], analysis=None)
