from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

import google.generativeai as genai
from google.api_core.exceptions import GoogleAPIError

from jewelbill.schemas.item_description import (
    ItemDescriptionRequest,
    ItemDescriptionResponse,
)

logger = logging.getLogger(__name__)

FALLBACK_GENERATOR = "fallback"


class ItemDescriptionGenerator(Protocol):
    async def describe(self, keywords: str) -> Optional[str]:
        """Return a generated description, or ``None`` when generation failed."""


class GeminiItemDescriptionGenerator:
    """Google Gemini backed generator for invoice line descriptions."""

    def __init__(self, *, api_key: Optional[str], model: str = "gemini-1.5-flash") -> None:
        self._api_key = api_key
        self.model = model
        self._configured = False

    def _ensure_configured(self) -> None:
        if self._configured or not self._api_key:
            return
        genai.configure(api_key=self._api_key)
        self._configured = True

    async def describe(self, keywords: str) -> Optional[str]:
        if not self._api_key:
            logger.debug("Gemini API key missing - using fallback description")
            return None
        self._ensure_configured()
        model = genai.GenerativeModel(self.model)
        try:
            response = await asyncio.to_thread(model.generate_content, self._build_prompt(keywords))
            text = getattr(response, "text", None)
        except (GoogleAPIError, ValueError) as exc:
            logger.exception("Gemini item description failed: %s", exc)
            return None
        if not text:
            logger.warning("Gemini response did not contain text output; falling back")
            return None
        return text.strip()

    @staticmethod
    def _build_prompt(keywords: str) -> str:
        return (
            "You are an expert at writing invoice item descriptions for a jewellery shop.\n"
            "Write one concise line (at most 20 words) describing the item. "
            "Mention metal, purity and style when the keywords give them. "
            "Do not invent weights or prices.\n\n"
            f"Keywords: {keywords}"
        )


def fallback_description(keywords: str) -> str:
    words = [word for word in keywords.replace(",", " ").split() if word]
    if not words:
        return "Jewellery item"
    phrase = " ".join(words)
    return phrase[0].upper() + phrase[1:]


class ItemDescriptionService:
    def __init__(self, generator: Optional[ItemDescriptionGenerator] = None) -> None:
        self._generator = generator or GeminiItemDescriptionGenerator(api_key=None)

    async def generate(self, request: ItemDescriptionRequest) -> ItemDescriptionResponse:
        keywords = request.keywords.strip()
        description = await self._generator.describe(keywords)
        if description:
            model = getattr(self._generator, "model", type(self._generator).__name__)
            return ItemDescriptionResponse(description=description, generated_by=str(model))
        return ItemDescriptionResponse(
            description=fallback_description(keywords), generated_by=FALLBACK_GENERATOR
        )
