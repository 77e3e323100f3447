from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union


# -----------------------------
# Data Models
# -----------------------------
@dataclass(frozen=True)
class User:
    id: int
    name: str
    grade: str
    gender: str  # "boy" | "girl"

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "User":
        return cls(id=int(row["id"]), name=row["name"], grade=row["grade"], gender=row["gender"])


@dataclass(frozen=True)
class Lesson:
    id: int
    lesson: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Lesson":
        return cls(id=int(row["id"]), lesson=row["lesson"])


@dataclass(frozen=True)
class Story:
    id: int
    prompt: str
    content: str
    image_url: Optional[str]
    grade_level: str
    lesson_id: Optional[int]
    user_id: Optional[int]
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Story":
        return cls(
            id=int(row["id"]),
            prompt=row["prompt"],
            content=row["content"],
            image_url=row["image_url"],
            grade_level=row["grade_level"],
            lesson_id=row["lesson_id"],
            user_id=row["user_id"],
            created_at=row["created_at"],
        )


@dataclass(frozen=True)
class GradeProfile:
    reading_time: str
    complexity: str
    length: str


@dataclass(frozen=True)
class ParsedStory:
    story: str
    image_prompt: str


@dataclass(frozen=True)
class ImagePayload:
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class StoredArtifact:
    name: str
    created_at: datetime


# -----------------------------
# Pipeline outcome
# -----------------------------
@dataclass(frozen=True)
class Success:
    story_id: int

    @property
    def location(self) -> str:
        return f"/story/{self.story_id}"


@dataclass(frozen=True)
class Failure:
    kind: str
    message: str
    status_code: int

    def to_detail(self) -> dict:
        return {"kind": self.kind, "message": self.message}


Outcome = Union[Success, Failure]
