from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from imagine_stories.common import config
from imagine_stories.common.models import ImagePayload


class TextGenerator(ABC):
    """Prompt in, prose out. Failures are opaque to callers."""

    provider = "abstract"

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        ...


class ImageGenerator(ABC):
    """Prompt in, zero or more inline payloads out; an empty list is not an error."""

    provider = "abstract"

    @abstractmethod
    async def generate(self, prompt: str) -> List[ImagePayload]:
        ...


def first_image(payloads: List[ImagePayload]) -> Optional[ImagePayload]:
    for payload in payloads or []:
        if payload.data and (payload.mime_type or "").lower().startswith("image/"):
            return payload
    return None


def build_text_generator(provider: str | None = None) -> TextGenerator:
    provider = (provider or config.TEXT_PROVIDER).strip().lower()
    if provider == "openai":
        from imagine_stories.backend.adapters.core_adapter import OpenAITextGenerator

        return OpenAITextGenerator(model=config.STORY_MODEL)
    if provider == "gemini":
        from imagine_stories.backend.adapters.gemini_adapter import GeminiTextGenerator

        return GeminiTextGenerator(model=config.GEMINI_TEXT_MODEL)
    raise ValueError(f"Unknown text provider: {provider}")


def build_image_generator(provider: str | None = None) -> ImageGenerator:
    provider = (provider or config.IMAGE_PROVIDER).strip().lower()
    if provider == "openai":
        from imagine_stories.backend.adapters.core_adapter import OpenAIImageGenerator

        return OpenAIImageGenerator(model=config.IMAGE_MODEL, size=config.IMAGE_SIZE)
    if provider == "gemini":
        from imagine_stories.backend.adapters.gemini_adapter import GeminiImageGenerator

        return GeminiImageGenerator(model=config.GEMINI_IMAGE_MODEL)
    raise ValueError(f"Unknown image provider: {provider}")
