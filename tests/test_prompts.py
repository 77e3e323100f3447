import json

import pytest

from imagine_stories.common.grades import grade_profile
from imagine_stories.common.models import Lesson, User
from imagine_stories.common.prompts import (
    ILLUSTRATION_CUE_RULE,
    PromptTemplates,
    compose_image_prompt,
    compose_story_prompt,
    load_prompt_templates,
)

MAYA = User(id=1, name="Maya", grade="2", gender="girl")
OMAR = User(id=2, name="Omar", grade="6", gender="boy")


def test_generic_story_prompt():
    prompt = compose_story_prompt("A turtle who wants to fly")
    assert '"A turtle who wants to fly"' in prompt
    assert "5 minutes" in prompt
    assert "life lesson" in prompt
    assert prompt.endswith(ILLUSTRATION_CUE_RULE)


@pytest.mark.parametrize("persona", [MAYA, OMAR])
def test_persona_story_prompt_mentions_child(persona):
    prompt = compose_story_prompt("A dragon who is afraid of loud noises", persona)
    profile = grade_profile(persona.grade)
    assert persona.name in prompt
    assert f"grade {persona.grade}" in prompt
    assert ILLUSTRATION_CUE_RULE in prompt
    assert profile.reading_time in prompt
    assert profile.complexity in prompt
    assert profile.length in prompt


def test_persona_story_prompt_uses_gendered_words():
    girl = compose_story_prompt("A picnic on the moon", MAYA)
    boy = compose_story_prompt("A picnic on the moon", OMAR)
    assert "a girl in grade 2" in girl
    assert "she/her" in girl
    assert "a boy in grade 6" in boy
    assert "he/his" in boy


def test_lesson_line_is_included_only_when_given():
    lesson = Lesson(id=3, lesson="Sharing makes everyone happier")
    with_lesson = compose_story_prompt("A picnic on the moon", MAYA, lesson)
    assert '"Sharing makes everyone happier"' in with_lesson
    assert "Sharing" not in compose_story_prompt("A picnic on the moon", MAYA)
    assert '"Sharing makes everyone happier"' in compose_story_prompt("A picnic on the moon", None, lesson)


def test_generic_image_prompt_carries_both_depictions():
    prompt = compose_image_prompt("A castle made of candy")
    assert "A castle made of candy" in prompt
    assert "a little brown girl with curly long hair" in prompt
    assert "a little brown boy with curly short hair" in prompt


def test_persona_image_prompt_uses_matching_depiction():
    girl = compose_image_prompt("A castle made of candy", MAYA)
    boy = compose_image_prompt("A castle made of candy", OMAR)
    assert "Maya" in girl and "curly long hair" in girl
    assert "curly short hair" not in girl
    assert "Omar" in boy and "curly short hair" in boy


def test_custom_templates_change_the_prose():
    templates = PromptTemplates(
        persona_image="Dibujo: {description}. Protagonista: {name}, {depiction}.",
        character_depiction={"girl": "una niña con trenzas", "boy": "un niño con gorra"},
    )
    prompt = compose_image_prompt("un castillo", MAYA, templates)
    assert prompt == "Dibujo: un castillo. Protagonista: Maya, una niña con trenzas."


def test_load_prompt_templates_overlays_defaults(tmp_path, caplog):
    path = tmp_path / "templates.json"
    path.write_text(
        json.dumps(
            {
                "lesson_line": " Lesson: {lesson}.",
                "character_depiction": {"girl": "a girl with braids", "boy": "a boy with a cap"},
                "unused_key": "ignored",
            }
        ),
        encoding="utf-8",
    )
    templates = load_prompt_templates(path)
    assert templates.lesson_line == " Lesson: {lesson}."
    assert templates.persona_story == PromptTemplates().persona_story
    assert "a girl with braids" in compose_image_prompt("A boat", MAYA, templates)
    assert "unused_key" in caplog.text
