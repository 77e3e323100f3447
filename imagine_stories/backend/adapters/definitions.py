from __future__ import annotations

import json
import re
from typing import Any, Dict

from imagine_stories.backend.adapters.capabilities import TextGenerator
from imagine_stories.common import config
from imagine_stories.common.errors import GenerationError, InputError
from imagine_stories.common.timeouts import with_timeout

FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```")


def _definition_prompt(word: str) -> str:
    return (
        f'For the word "{word}", provide its phonetic spelling and a simple definition '
        "suitable for a 6-year-old. Return the response as a JSON object with two keys: "
        '"phonetic" and "definition".'
    )


def _safe_json_load(raw_json: str) -> Dict[str, Any]:
    try:
        return json.loads(raw_json)
    except json.JSONDecodeError:
        start = raw_json.find("{")
        end = raw_json.rfind("}")
        if start != -1 and end != -1 and end > start:
            return json.loads(raw_json[start : end + 1])
        raise


async def define_word(generator: TextGenerator, word: str) -> Dict[str, str]:
    word = (word or "").strip()
    if not word:
        raise InputError("Word parameter is missing")

    raw = await with_timeout(
        generator.generate(_definition_prompt(word)),
        config.TEXT_TIMEOUT_S,
        "Looking up the word took too long. Please try again.",
    )
    cleaned = FENCE_RE.sub("", raw or "").strip()
    try:
        data = _safe_json_load(cleaned)
    except json.JSONDecodeError as exc:
        raise GenerationError("Failed to fetch definition") from exc
    if not isinstance(data, dict):
        raise GenerationError("Failed to fetch definition")
    return {
        "word": word,
        "phonetic": str(data.get("phonetic") or "").strip(),
        "definition": str(data.get("definition") or "").strip(),
    }
