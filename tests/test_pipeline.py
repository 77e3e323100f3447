import pytest
from conftest import (
    DRAGON_CUE,
    DRAGON_PROMPT,
    DRAGON_STORY,
    PNG_BYTES,
    BrokenUploadStore,
    FailingImageGenerator,
    FailingTextGenerator,
    FakeImageGenerator,
    FakeTextGenerator,
    SlowImageGenerator,
    SlowTextGenerator,
)

from imagine_stories.backend.pipeline import GENERIC_FAILURE, StoryPipeline, image_object_name
from imagine_stories.common import db as store
from imagine_stories.common.db import DATABASE_FAILURE
from imagine_stories.common.models import Failure, ImagePayload, Success
from imagine_stories.common.prompts import ILLUSTRATION_CUE_RULE


def _pipeline(db, artifacts, text=None, image=None, **kwargs):
    return StoryPipeline(
        db,
        text or FakeTextGenerator(),
        image or FakeImageGenerator(),
        artifacts,
        **kwargs,
    )


async def test_personalized_story_end_to_end(db, artifacts, text_generator, image_generator):
    maya = store.create_user(db, "Maya", "2", "girl")
    pipeline = _pipeline(db, artifacts, text_generator, image_generator)

    outcome = await pipeline.run(DRAGON_PROMPT, user_id=maya)

    assert isinstance(outcome, Success)
    assert outcome.location == f"/story/{outcome.story_id}"
    story = store.get_story(db, outcome.story_id)
    assert story.prompt == DRAGON_PROMPT
    assert story.content == DRAGON_STORY
    assert story.grade_level == "2"
    assert story.user_id == maya
    assert story.lesson_id is None
    assert story.image_url.startswith("/media/imagine-by-lai/story-")
    assert story.image_url.endswith(".png")

    saved = artifacts.root / story.image_url[len("/media/") :]
    assert saved.read_bytes() == PNG_BYTES

    [story_prompt] = text_generator.prompts
    assert "Maya" in story_prompt and "grade 2" in story_prompt
    assert ILLUSTRATION_CUE_RULE in story_prompt
    [image_prompt] = image_generator.prompts
    assert DRAGON_CUE.rstrip(".") in image_prompt
    assert "curly long hair" in image_prompt


async def test_story_without_persona_defaults_grade(db, artifacts):
    outcome = await _pipeline(db, artifacts).run(DRAGON_PROMPT)
    story = store.get_story(db, outcome.story_id)
    assert story.grade_level == "1"
    assert story.user_id is None


async def test_prompt_is_stored_verbatim(db, artifacts):
    outcome = await _pipeline(db, artifacts).run(f"  {DRAGON_PROMPT}  ")
    assert store.get_story(db, outcome.story_id).prompt == f"  {DRAGON_PROMPT}  "


async def test_lesson_is_woven_into_prompt_and_row(db, artifacts, text_generator):
    lesson_id = store.create_lesson(db, "It is okay to ask for help")
    outcome = await _pipeline(db, artifacts, text_generator).run(
        DRAGON_PROMPT, user_id="", lesson_id=str(lesson_id)
    )
    assert store.get_story(db, outcome.story_id).lesson_id == lesson_id
    assert "It is okay to ask for help" in text_generator.prompts[0]


@pytest.mark.parametrize(
    "image_generator",
    [
        FailingImageGenerator(),
        FakeImageGenerator(payloads=[]),
        FakeImageGenerator(payloads=[ImagePayload(b"caption only", "text/plain")]),
    ],
    ids=["provider-error", "no-payload", "no-image-part"],
)
async def test_image_stage_failure_still_saves_story(db, artifacts, image_generator):
    outcome = await _pipeline(db, artifacts, image=image_generator).run(DRAGON_PROMPT)
    assert isinstance(outcome, Success)
    story = store.get_story(db, outcome.story_id)
    assert story.image_url is None
    assert story.content == DRAGON_STORY


async def test_image_timeout_still_saves_story(db, artifacts):
    pipeline = _pipeline(db, artifacts, image=SlowImageGenerator(), image_timeout=0.01)
    outcome = await pipeline.run(DRAGON_PROMPT)
    assert isinstance(outcome, Success)
    assert store.get_story(db, outcome.story_id).image_url is None


async def test_upload_failure_still_saves_story(db, tmp_path):
    broken = BrokenUploadStore(tmp_path / "media")
    outcome = await _pipeline(db, broken).run(DRAGON_PROMPT)
    assert isinstance(outcome, Success)
    assert store.get_story(db, outcome.story_id).image_url is None


async def test_text_timeout_fails_without_calling_image_stage(db, artifacts, image_generator):
    pipeline = _pipeline(db, artifacts, SlowTextGenerator(), image_generator, text_timeout=0.01)
    outcome = await pipeline.run(DRAGON_PROMPT)
    assert outcome == Failure("timeout", "The story took too long to write. Please try again.", 504)
    assert image_generator.prompts == []
    assert store.list_stories(db) == []


async def test_text_provider_error_is_a_generation_failure(db, artifacts, image_generator):
    outcome = await _pipeline(db, artifacts, FailingTextGenerator(), image_generator).run(DRAGON_PROMPT)
    assert outcome == Failure("generation", GENERIC_FAILURE, 500)
    assert image_generator.prompts == []
    assert store.list_stories(db) == []


@pytest.mark.parametrize(
    "reply",
    ["", "only one line", "Too short.\nA fox in a hat on a hill."],
    ids=["empty", "one-line", "short-body"],
)
async def test_malformed_reply_is_a_validation_failure(db, artifacts, image_generator, reply):
    outcome = await _pipeline(db, artifacts, FakeTextGenerator(reply), image_generator).run(DRAGON_PROMPT)
    assert isinstance(outcome, Failure)
    assert outcome.kind == "validation"
    assert outcome.status_code == 500
    assert "different prompt" in outcome.message
    assert image_generator.prompts == []
    assert store.list_stories(db) == []


@pytest.mark.parametrize(
    "prompt,user_id",
    [
        (None, None),
        ("", None),
        ("   short   ", None),
        (DRAGON_PROMPT, 999),
        (DRAGON_PROMPT, "maya"),
    ],
    ids=["missing", "empty", "too-short", "unknown-user", "bad-user-id"],
)
async def test_bad_input_fails_before_any_model_call(db, artifacts, text_generator, prompt, user_id):
    outcome = await _pipeline(db, artifacts, text_generator).run(prompt, user_id=user_id)
    assert isinstance(outcome, Failure)
    assert outcome.kind == "input"
    assert outcome.status_code == 400
    assert text_generator.prompts == []
    assert store.list_stories(db) == []


async def test_unknown_lesson_is_rejected(db, artifacts, text_generator):
    outcome = await _pipeline(db, artifacts, text_generator).run(DRAGON_PROMPT, lesson_id=42)
    assert outcome.kind == "input"
    assert text_generator.prompts == []


async def test_database_failure_is_a_storage_failure(db, artifacts):
    db.close()
    db.path = db.path.parent  # a directory cannot be opened as a database
    outcome = await _pipeline(db, artifacts).run(DRAGON_PROMPT)
    assert isinstance(outcome, Failure)
    assert outcome == Failure("storage", DATABASE_FAILURE, 500)
    assert "sqlite" not in outcome.message.lower()


@pytest.mark.parametrize(
    "mime,ext",
    [("image/png", ".png"), ("image/jpeg", ".jpg"), ("application/x-unknown", ".png")],
)
def test_image_object_name(mime, ext):
    name = image_object_name("imagine-by-lai/story-", mime)
    assert name.startswith("imagine-by-lai/story-")
    assert name.endswith(ext)
    assert image_object_name("imagine-by-lai/story-", mime) != name


class DeletingImageGenerator(FakeImageGenerator):
    """Removes the child and the lesson while the illustration is being drawn."""

    def __init__(self, db, user_id, lesson_id):
        super().__init__()
        self.db = db
        self.user_id = user_id
        self.lesson_id = lesson_id

    async def generate(self, prompt):
        store.delete_user(self.db, self.user_id)
        store.delete_lesson(self.db, self.lesson_id)
        return await super().generate(prompt)


async def test_story_commits_when_persona_is_deleted_mid_generation(db, artifacts):
    maya = store.create_user(db, "Maya", "2", "girl")
    lesson_id = store.create_lesson(db, "It is okay to be scared")
    image = DeletingImageGenerator(db, maya, lesson_id)

    outcome = await _pipeline(db, artifacts, image=image).run(
        DRAGON_PROMPT, user_id=maya, lesson_id=lesson_id
    )

    assert isinstance(outcome, Success)
    story = store.get_story(db, outcome.story_id)
    assert story.content == DRAGON_STORY
    assert story.grade_level == "2"
    assert story.image_url is not None
    assert store.get_user(db, maya) is None
