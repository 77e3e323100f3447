import asyncio
import os
from typing import List, Optional

import pytest
from faker import Faker

# Set test environment before the config module reads it
os.environ["ADMIN_PASSWORD"] = "test-admin-password"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["ARTIFACT_STORE"] = "local"
os.environ["PROMPT_TEMPLATES_PATH"] = ""

from imagine_stories.backend.adapters.capabilities import ImageGenerator, TextGenerator  # noqa: E402
from imagine_stories.backend.storage.files import LocalArtifactStore  # noqa: E402
from imagine_stories.common.db import Database, init_db  # noqa: E402
from imagine_stories.common.errors import StorageError  # noqa: E402
from imagine_stories.common.models import ImagePayload  # noqa: E402

fake = Faker()

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32

DRAGON_PROMPT = "A dragon who is afraid of loud noises"
DRAGON_CUE = "A small dragon hides under a blanket as thunder rumbles outside."
DRAGON_STORY = (
    "Once upon a time, in a valley full of soft green hills, lived a little dragon named Pip. "
    "Pip loved flowers, warm sunshine and quiet afternoons.\n\n"
    "One evening the sky grew dark and thunder began to roar. Pip shook from nose to tail, "
    "and Maya, who lived next door, came running with a cozy blanket.\n\n"
    "Together they counted the seconds between the flashes and the booms. Pip learned that "
    "being brave does not mean never feeling scared, it means asking a friend for help."
)
DRAGON_REPLY = f"{DRAGON_STORY}\n{DRAGON_CUE}"


class FakeTextGenerator(TextGenerator):
    provider = "fake"

    def __init__(self, reply: str = DRAGON_REPLY):
        self.reply = reply
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.reply


class FailingTextGenerator(TextGenerator):
    provider = "failing"

    def __init__(self):
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        raise RuntimeError("quota exceeded")


class SlowTextGenerator(TextGenerator):
    provider = "slow"

    def __init__(self, delay: float = 5.0):
        self.delay = delay

    async def generate(self, prompt: str) -> str:
        await asyncio.sleep(self.delay)
        return DRAGON_REPLY


class FakeImageGenerator(ImageGenerator):
    provider = "fake"

    def __init__(self, payloads: Optional[List[ImagePayload]] = None):
        self.payloads = payloads if payloads is not None else [ImagePayload(PNG_BYTES, "image/png")]
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> List[ImagePayload]:
        self.prompts.append(prompt)
        return list(self.payloads)


class FailingImageGenerator(ImageGenerator):
    provider = "failing"

    async def generate(self, prompt: str) -> List[ImagePayload]:
        raise RuntimeError("image provider is down")


class SlowImageGenerator(ImageGenerator):
    provider = "slow"

    async def generate(self, prompt: str) -> List[ImagePayload]:
        await asyncio.sleep(5)
        return [ImagePayload(PNG_BYTES, "image/png")]


class BrokenUploadStore(LocalArtifactStore):
    name = "broken"

    async def save(self, name: str, data: bytes, content_type: str) -> None:
        raise StorageError("bucket unreachable")


@pytest.fixture
def db(tmp_path) -> Database:
    """A fresh database file per test."""
    database = Database(tmp_path / "data" / "imagine.db")
    init_db(database)
    yield database
    database.close()


@pytest.fixture
def artifacts(tmp_path) -> LocalArtifactStore:
    store = LocalArtifactStore(tmp_path / "media")
    store.ensure_root()
    return store


@pytest.fixture
def text_generator() -> FakeTextGenerator:
    return FakeTextGenerator()


@pytest.fixture
def image_generator() -> FakeImageGenerator:
    return FakeImageGenerator()


@pytest.fixture
def child_name() -> str:
    return fake.first_name()
