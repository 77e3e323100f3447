# OpenAI-backed text and image generation
from __future__ import annotations

import base64
import logging
import os
from typing import List, Optional

import httpx
from openai import APIStatusError, AsyncOpenAI

from imagine_stories.backend.adapters.capabilities import ImageGenerator, TextGenerator
from imagine_stories.common.models import ImagePayload

logger = logging.getLogger("imagine-stories.openai")

ALLOWED_SIZES_GPT_IMAGE = {"1024x1024", "1024x1536", "1536x1024", "auto"}
ALLOWED_SIZES_DALLE2 = {"256x256", "512x512", "1024x1024"}
ALLOWED_SIZES_DALLE3 = {"1024x1024", "1792x1024", "1024x1792"}


def _client(api_key: Optional[str]) -> AsyncOpenAI:
    api_key = api_key or os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise RuntimeError("OPENAI_API_KEY missing. Put it in .env")
    return AsyncOpenAI(api_key=api_key)


def _normalize_image_size(model: str, size: str) -> str:
    size_norm = (size or "").strip().lower()
    model_norm = (model or "").strip().lower()
    if model_norm.startswith("gpt-image-"):
        return size_norm if size_norm in ALLOWED_SIZES_GPT_IMAGE else "1024x1024"
    if model_norm == "dall-e-2":
        return size_norm if size_norm in ALLOWED_SIZES_DALLE2 else "1024x1024"
    if model_norm == "dall-e-3":
        return size_norm if size_norm in ALLOWED_SIZES_DALLE3 else "1024x1024"
    return size_norm or "1024x1024"


async def _download_image(url: str) -> bytes:
    async with httpx.AsyncClient(timeout=60) as client:
        resp = await client.get(url)
        resp.raise_for_status()
    return resp.content


class OpenAITextGenerator(TextGenerator):
    provider = "openai"

    def __init__(self, model: str, api_key: Optional[str] = None, temperature: float = 0.8):
        self.model = model
        self.temperature = temperature
        self._client = _client(api_key)

    async def generate(self, prompt: str) -> str:
        try:
            resp = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
            )
        except APIStatusError as e:
            raise RuntimeError(f"OpenAI API error ({e.status_code}): {e.message}") from e
        text = resp.choices[0].message.content if resp.choices else None
        if not text:
            raise RuntimeError("OpenAI returned an empty completion.")
        logger.info("Text generated: model=%s chars=%d", self.model, len(text))
        return text


class OpenAIImageGenerator(ImageGenerator):
    provider = "openai"

    def __init__(self, model: str, size: str = "1024x1024", api_key: Optional[str] = None):
        self.model = model
        self.size = _normalize_image_size(model, size)
        self._client = _client(api_key)

    async def generate(self, prompt: str) -> List[ImagePayload]:
        kwargs = {"model": self.model, "prompt": prompt, "size": self.size, "n": 1}
        if self.model.lower().startswith("dall-e"):
            kwargs["response_format"] = "b64_json"
        try:
            img = await self._client.images.generate(**kwargs)
        except APIStatusError as e:
            raise RuntimeError(f"OpenAI Images API error ({e.status_code}): {e.message}") from e

        payloads = []
        for item in img.data or []:
            if getattr(item, "b64_json", None):
                payloads.append(ImagePayload(base64.b64decode(item.b64_json), "image/png"))
            elif getattr(item, "url", None):
                payloads.append(ImagePayload(await _download_image(item.url), "image/png"))
        return payloads
