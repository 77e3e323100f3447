"""Prompt builders for the text and image models.

All prose lives in :class:`PromptTemplates` so it can be replaced (or
translated) with a JSON file without touching the pipeline.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields, replace
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from imagine_stories.common import config
from imagine_stories.common.grades import grade_profile
from imagine_stories.common.models import Lesson, User

logger = logging.getLogger("imagine-stories.prompts")

ILLUSTRATION_CUE_RULE = (
    "At the very end, on a new line, write a short, simple sentence describing "
    "the main scene for an illustration. That last line must be a single line "
    "and must not be part of the story."
)


@dataclass(frozen=True)
class PromptTemplates:
    generic_story: str = (
        'Create a short, exciting, and creative story for a 6-year-old based on the '
        'following idea: "{prompt}". The story should be about 5 minutes to read and '
        "include a positive life lesson.{lesson_line} {cue_rule}"
    )
    persona_story: str = (
        "Create a short, exciting, and creative story for {name}, a {gender_noun} in "
        'grade {grade}, based on the following idea: "{prompt}". Make {name} the hero '
        "of the story and refer to {object_pronoun} as {subject_pronoun}/{possessive_pronoun}. "
        "The story should take {reading_time} to read and include a positive life lesson."
        "{lesson_line}\n"
        "Writing level: {complexity}\n"
        "Length: {length}\n"
        "{cue_rule}"
    )
    lesson_line: str = ' The life lesson should be: "{lesson}".'
    generic_image: str = (
        "An illustration for a children's storybook: {description}, if a illustration "
        "of a child is created make sure for girls it is {girl_depiction} and for boys "
        "it is {boy_depiction}"
    )
    persona_image: str = (
        "An illustration for a children's storybook: {description}. The main character "
        "is {name}, {depiction}."
    )
    character_depiction: Dict[str, str] = field(
        default_factory=lambda: {
            "girl": "a little brown girl with curly long hair",
            "boy": "a little brown boy with curly short hair",
        }
    )
    pronouns: Dict[str, Dict[str, str]] = field(
        default_factory=lambda: {
            "girl": {"noun": "girl", "subject": "she", "object": "her", "possessive": "her"},
            "boy": {"noun": "boy", "subject": "he", "object": "him", "possessive": "his"},
        }
    )


def load_prompt_templates(path: str | Path) -> PromptTemplates:
    """Defaults overlaid with whatever keys the JSON file at ``path`` provides."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    known = {f.name for f in fields(PromptTemplates)}
    unknown = sorted(set(data) - known)
    if unknown:
        logger.warning("Ignoring unknown prompt template keys: %s", ", ".join(unknown))
    return replace(PromptTemplates(), **{k: v for k, v in data.items() if k in known})


@lru_cache(maxsize=1)
def default_templates() -> PromptTemplates:
    if config.PROMPT_TEMPLATES_PATH:
        logger.info("Loading prompt templates from %s", config.PROMPT_TEMPLATES_PATH)
        return load_prompt_templates(config.PROMPT_TEMPLATES_PATH)
    return PromptTemplates()


def _lesson_line(lesson: Optional[Lesson], templates: PromptTemplates) -> str:
    if lesson is None:
        return ""
    return templates.lesson_line.format(lesson=lesson.lesson)


def compose_story_prompt(
    user_prompt: str,
    persona: Optional[User] = None,
    lesson: Optional[Lesson] = None,
    templates: Optional[PromptTemplates] = None,
) -> str:
    t = templates or default_templates()
    lesson_line = _lesson_line(lesson, t)
    if persona is None:
        return t.generic_story.format(
            prompt=user_prompt, lesson_line=lesson_line, cue_rule=ILLUSTRATION_CUE_RULE
        )

    profile = grade_profile(persona.grade)
    words = t.pronouns.get(persona.gender) or t.pronouns["girl"]
    return t.persona_story.format(
        prompt=user_prompt,
        name=persona.name,
        grade=persona.grade,
        gender_noun=words["noun"],
        subject_pronoun=words["subject"],
        object_pronoun=words["object"],
        possessive_pronoun=words["possessive"],
        reading_time=profile.reading_time,
        complexity=profile.complexity,
        length=profile.length,
        lesson_line=lesson_line,
        cue_rule=ILLUSTRATION_CUE_RULE,
    )


def compose_image_prompt(
    description: str,
    persona: Optional[User] = None,
    templates: Optional[PromptTemplates] = None,
) -> str:
    t = templates or default_templates()
    # The templates supply their own punctuation after the scene.
    description = (description or "").strip().rstrip(".")
    if persona is None:
        return t.generic_image.format(
            description=description,
            girl_depiction=t.character_depiction.get("girl", ""),
            boy_depiction=t.character_depiction.get("boy", ""),
        )
    return t.persona_image.format(
        description=description,
        name=persona.name,
        depiction=t.character_depiction.get(persona.gender, ""),
    )
