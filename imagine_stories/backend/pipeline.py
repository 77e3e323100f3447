"""
Story generation pipeline.

Stages run strictly in order for one request:

    inputs -> text generation -> validation -> illustration -> persistence

Inputs, text generation and validation are fatal: any failure there ends the
request before anything is written. Illustration is best-effort: a missing
payload, a timeout, a provider error or a failed upload is logged and the
story is saved without an image. Persistence is the single commit point.
The caller always gets an Outcome back, never an exception.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import time
import uuid
from datetime import datetime
from typing import Optional, Tuple

from imagine_stories.backend.adapters.capabilities import (
    ImageGenerator,
    TextGenerator,
    first_image,
)
from imagine_stories.backend.storage.artifacts import ArtifactStore
from imagine_stories.common import config
from imagine_stories.common import db as store
from imagine_stories.common.errors import (
    GenerationError,
    InputError,
    StageTimeoutError,
    StoryError,
    ValidationError,
)
from imagine_stories.common.models import (
    Failure,
    ImagePayload,
    Lesson,
    Outcome,
    ParsedStory,
    Success,
    User,
)
from imagine_stories.common.prompts import (
    PromptTemplates,
    compose_image_prompt,
    compose_story_prompt,
)
from imagine_stories.common.timeouts import with_timeout
from imagine_stories.common.validation import parse_story_response

logger = logging.getLogger("imagine-stories.pipeline")

MIN_PROMPT_CHARS = 10
DEFAULT_GRADE = "1"
GENERIC_FAILURE = "Failed to generate the story. Please try again."


def _parse_id(value, label: str) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InputError(f"Invalid {label} id: {value!r}")


def image_object_name(prefix: str, mime_type: str) -> str:
    ext = mimetypes.guess_extension(mime_type or "") or ".png"
    if ext in (".jpe", ".jpeg"):
        ext = ".jpg"
    return f"{prefix}{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}{ext}"


class StoryPipeline:
    def __init__(
        self,
        db: store.Database,
        text_generator: TextGenerator,
        image_generator: ImageGenerator,
        artifacts: ArtifactStore,
        *,
        templates: Optional[PromptTemplates] = None,
        text_timeout: float = config.TEXT_TIMEOUT_S,
        image_timeout: float = config.IMAGE_TIMEOUT_S,
        upload_timeout: float = config.UPLOAD_TIMEOUT_S,
        image_prefix: str = config.IMAGE_PREFIX,
        url_expires_at: datetime = config.SIGNED_URL_EXPIRES_AT,
    ):
        self.db = db
        self.text_generator = text_generator
        self.image_generator = image_generator
        self.artifacts = artifacts
        self.templates = templates
        self.text_timeout = text_timeout
        self.image_timeout = image_timeout
        self.upload_timeout = upload_timeout
        self.image_prefix = image_prefix
        self.url_expires_at = url_expires_at

    async def run(self, prompt, user_id=None, lesson_id=None) -> Outcome:
        try:
            story_id = await self._run(prompt, user_id, lesson_id)
        except InputError as exc:
            logger.info("Rejected story request: %s", exc.message)
            return Failure(exc.kind, exc.message, exc.status_code)
        except StoryError as exc:
            logger.warning("Story generation failed (%s): %s", exc.kind, exc.message)
            return Failure(exc.kind, exc.message, exc.status_code)
        except Exception:
            logger.exception("Unexpected error while generating a story")
            return Failure("internal", GENERIC_FAILURE, 500)
        return Success(story_id)

    async def _run(self, prompt, user_id, lesson_id) -> int:
        prompt, persona, lesson = await self._resolve_inputs(prompt, user_id, lesson_id)

        raw = await self._generate_text(compose_story_prompt(prompt, persona, lesson, self.templates))
        parsed = self._validate(raw)

        image_url = await self._illustrate(parsed.image_prompt, persona)

        story_id = await asyncio.to_thread(
            store.insert_story,
            self.db,
            prompt=prompt,
            content=parsed.story,
            image_url=image_url,
            grade_level=persona.grade if persona else DEFAULT_GRADE,
            lesson_id=lesson.id if lesson else None,
            user_id=persona.id if persona else None,
        )
        logger.info("Story %s saved (image=%s)", story_id, "yes" if image_url else "no")
        return story_id

    async def _resolve_inputs(
        self, prompt, user_id, lesson_id
    ) -> Tuple[str, Optional[User], Optional[Lesson]]:
        if not isinstance(prompt, str) or not prompt.strip():
            raise InputError("A story prompt is required.")
        if len(prompt.strip()) < MIN_PROMPT_CHARS:
            raise InputError(f"The story prompt must be at least {MIN_PROMPT_CHARS} characters.")

        persona = None
        uid = _parse_id(user_id, "user")
        if uid is not None:
            persona = await asyncio.to_thread(store.get_user, self.db, uid)
            if persona is None:
                raise InputError(f"User {uid} does not exist.")

        lesson = None
        lid = _parse_id(lesson_id, "lesson")
        if lid is not None:
            lesson = await asyncio.to_thread(store.get_lesson, self.db, lid)
            if lesson is None:
                raise InputError(f"Lesson {lid} does not exist.")
        # The prompt is stored verbatim; only the length check uses the trimmed form.
        return prompt, persona, lesson

    async def _generate_text(self, story_prompt: str) -> str:
        try:
            return await with_timeout(
                self.text_generator.generate(story_prompt),
                self.text_timeout,
                "The story took too long to write. Please try again.",
            )
        except StageTimeoutError:
            raise
        except Exception as exc:
            logger.error("Text generation failed: %s", exc)
            raise GenerationError(GENERIC_FAILURE) from exc

    def _validate(self, raw: str) -> ParsedStory:
        try:
            return parse_story_response(raw)
        except ValidationError as exc:
            logger.warning("Malformed story response: %s", exc.message)
            raise ValidationError(
                "The story came back in an unexpected format. Please try a different prompt."
            ) from exc

    async def _illustrate(self, image_prompt: str, persona: Optional[User]) -> Optional[str]:
        try:
            payloads = await with_timeout(
                self.image_generator.generate(compose_image_prompt(image_prompt, persona, self.templates)),
                self.image_timeout,
                "Image generation timed out.",
            )
            payload = first_image(payloads)
            if payload is None:
                logger.warning("No image data found in the image response; continuing without an image.")
                return None
            return await with_timeout(
                self._upload(payload),
                self.upload_timeout,
                "Image upload timed out.",
            )
        except Exception as exc:
            logger.warning("Image generation or upload failed, continuing without an image: %s", exc)
            return None

    async def _upload(self, payload: ImagePayload) -> str:
        name = image_object_name(self.image_prefix, payload.mime_type)
        await self.artifacts.save(name, payload.data, payload.mime_type)
        return await self.artifacts.issue_read_url(name, self.url_expires_at)
