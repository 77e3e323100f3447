"""
Gemini provider for text and image generation (google-genai).
"""

from __future__ import annotations

import base64
import logging
import os
from typing import List, Optional

from google import genai
from google.genai import types

from imagine_stories.backend.adapters.capabilities import ImageGenerator, TextGenerator
from imagine_stories.common.models import ImagePayload

logger = logging.getLogger("imagine-stories.gemini")


def _client(api_key: Optional[str]) -> genai.Client:
    api_key = api_key or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
    if not api_key:
        raise RuntimeError("GEMINI_API_KEY missing. Put it in .env")
    return genai.Client(api_key=api_key)


def _inline_payloads(response) -> List[ImagePayload]:
    payloads = []
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if not inline or not inline.data:
                continue
            data = inline.data
            if isinstance(data, str):
                data = base64.b64decode(data)
            payloads.append(ImagePayload(data=data, mime_type=inline.mime_type or ""))
    return payloads


class GeminiTextGenerator(TextGenerator):
    provider = "gemini"

    def __init__(self, model: str, api_key: Optional[str] = None):
        self.model = model
        self._client = _client(api_key)

    async def generate(self, prompt: str) -> str:
        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
        )
        text = response.text
        if not text:
            finish = None
            if response.candidates:
                finish = getattr(response.candidates[0], "finish_reason", None)
            raise RuntimeError(f"Gemini returned no text (finish_reason={finish}).")
        logger.info("Text generated: model=%s chars=%d", self.model, len(text))
        return text


class GeminiImageGenerator(ImageGenerator):
    provider = "gemini"

    def __init__(self, model: str, api_key: Optional[str] = None):
        self.model = model
        self._client = _client(api_key)

    async def generate(self, prompt: str) -> List[ImagePayload]:
        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
        )
        payloads = _inline_payloads(response)
        logger.info("Image response: model=%s parts_with_data=%d", self.model, len(payloads))
        return payloads
