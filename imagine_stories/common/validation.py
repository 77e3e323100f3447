from __future__ import annotations

from imagine_stories.common.errors import ValidationError
from imagine_stories.common.models import ParsedStory

MIN_STORY_CHARS = 100
MIN_IMAGE_PROMPT_CHARS = 10


def parse_story_response(text: str) -> ParsedStory:
    """
    Split raw model output into the story body and the illustration cue.

    The model is asked to finish with one line describing the scene, so the
    last non-empty line is the cue and everything before it is the story.
    """
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError("The story generator returned an empty response.")

    lines = [line for line in cleaned.splitlines() if line.strip()]
    if len(lines) < 2:
        raise ValidationError("The story generator did not include an illustration line.")

    image_prompt = lines[-1].strip()
    # Keep the body's own paragraph breaks; only the cue line is removed.
    body_end = cleaned.rstrip().rfind(lines[-1])
    story = cleaned[:body_end].strip()

    if len(story) < MIN_STORY_CHARS:
        raise ValidationError(
            f"The generated story is too short ({len(story)} characters)."
        )
    if len(image_prompt) < MIN_IMAGE_PROMPT_CHARS:
        raise ValidationError(
            f"The illustration description is too short ({len(image_prompt)} characters)."
        )
    return ParsedStory(story=story, image_prompt=image_prompt)
