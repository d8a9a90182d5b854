"""Output guardrail wrapping a moderation classifier."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from parley.session.transcript import PASS_CATEGORY

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuardrailClassification:
    """Classifier answer. ``NONE`` means the text is acceptable."""

    category: str
    rationale: str = ""


@dataclass(frozen=True)
class GuardrailOutcome:
    tripwire_triggered: bool
    category: str = PASS_CATEGORY
    rationale: str = ""
    error: str | None = None


Classifier = Callable[[str], Awaitable[GuardrailClassification]]


class OutputGuardrail:
    """
    Runs assistant output through a moderation classifier.

    Fails open: if the classifier raises, the output passes and the
    failure is reported in ``GuardrailOutcome.error``.
    """

    def __init__(self, classifier: Classifier, name: str = "moderation_guardrail"):
        self.classifier = classifier
        self.name = name

    async def evaluate(self, text: str) -> GuardrailOutcome:
        try:
            result = await self.classifier(text)
        except Exception as e:
            logger.warning(f"{self.name} classifier failed, letting output pass: {e}")
            return GuardrailOutcome(tripwire_triggered=False, error="guardrail_failed")

        triggered = result.category != PASS_CATEGORY
        if triggered:
            logger.info(f"{self.name} tripped: {result.category}")
        return GuardrailOutcome(
            tripwire_triggered=triggered,
            category=result.category,
            rationale=result.rationale,
        )
