from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from imagine_stories.common.errors import InputError, NotFoundError, StorageError
from imagine_stories.common.models import Lesson, Story, User

logger = logging.getLogger("imagine-stories.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    grade TEXT NOT NULL,
    gender TEXT NOT NULL CHECK(gender IN ('boy', 'girl'))
);
CREATE TABLE IF NOT EXISTS lessons (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    lesson TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS stories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    prompt TEXT NOT NULL,
    content TEXT NOT NULL,
    image_url TEXT,
    grade_level TEXT NOT NULL,
    lesson_id INTEGER,
    user_id INTEGER,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY(lesson_id) REFERENCES lessons(id),
    FOREIGN KEY(user_id) REFERENCES users(id)
);
"""

GENDERS = ("boy", "girl")
DATABASE_FAILURE = "The story database is unavailable right now. Please try again."


class Database:
    """
    Process-wide handle on the single-writer SQLite file.

    The handle is either closed or open. Every transition and every checkout
    happens under one re-entrant lock, so a backup or restore that closes the
    handle can never interleave with a request that is using it. The handle
    reopens on the next checkout.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def _open(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path, check_same_thread=False)
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            # Declared, not enforced: stories outlive deleted users and lessons.
            conn.execute("PRAGMA foreign_keys=OFF;")
            conn.executescript(SCHEMA)
        except sqlite3.Error:
            conn.close()
            raise
        logger.info("Opened database %s", self.path)
        return conn

    def _close_locked(self) -> None:
        if self._conn is not None:
            # Closing the last connection checkpoints the WAL into the main file.
            self._conn.close()
            self._conn = None
            logger.info("Closed database %s", self.path)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Check out the handle inside a transaction, opening it if needed."""
        with self._lock:
            try:
                if self._conn is None:
                    self._conn = self._open()
                with self._conn as conn:
                    yield conn
            except sqlite3.Error as exc:
                logger.error("Database error on %s: %s", self.path, exc)
                raise StorageError(DATABASE_FAILURE) from exc

    def close(self) -> None:
        with self._lock:
            self._close_locked()

    @contextmanager
    def quiesced(self) -> Iterator[Path]:
        """Close the handle and hold it closed while the caller touches the file."""
        with self._lock:
            self._close_locked()
            yield self.path


def init_db(db: Database) -> None:
    with db.connection():
        pass


# -------------------------------
# Users
# -------------------------------
def list_users(db: Database) -> List[User]:
    with db.connection() as conn:
        rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
    return [User.from_row(r) for r in rows]


def get_user(db: Database, user_id: int) -> Optional[User]:
    with db.connection() as conn:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    return User.from_row(row) if row else None


def create_user(db: Database, name: str, grade: str, gender: str) -> int:
    name = (name or "").strip()
    grade = (grade or "").strip()
    gender = (gender or "").strip().lower()
    if not name or not grade or not gender:
        raise InputError("All user fields are required")
    if gender not in GENDERS:
        raise InputError("Gender must be 'boy' or 'girl'")
    with db.connection() as conn:
        cur = conn.execute(
            "INSERT INTO users (name, grade, gender) VALUES (?, ?, ?)",
            (name, grade, gender),
        )
        return int(cur.lastrowid)


def delete_user(db: Database, user_id: int) -> None:
    """Delete a user; their stories stay but lose the reference."""
    with db.connection() as conn:
        conn.execute("UPDATE stories SET user_id = NULL WHERE user_id = ?", (user_id,))
        conn.execute("DELETE FROM users WHERE id = ?", (user_id,))


# -------------------------------
# Lessons
# -------------------------------
def list_lessons(db: Database) -> List[Lesson]:
    with db.connection() as conn:
        rows = conn.execute("SELECT * FROM lessons ORDER BY id").fetchall()
    return [Lesson.from_row(r) for r in rows]


def get_lesson(db: Database, lesson_id: int) -> Optional[Lesson]:
    with db.connection() as conn:
        row = conn.execute("SELECT * FROM lessons WHERE id = ?", (lesson_id,)).fetchone()
    return Lesson.from_row(row) if row else None


def create_lesson(db: Database, lesson: str) -> int:
    lesson = (lesson or "").strip()
    if not lesson:
        raise InputError("Lesson text is required")
    try:
        with db.connection() as conn:
            cur = conn.execute("INSERT INTO lessons (lesson) VALUES (?)", (lesson,))
            return int(cur.lastrowid)
    except StorageError as exc:
        if isinstance(exc.__cause__, sqlite3.IntegrityError):
            raise InputError("That lesson already exists") from exc
        raise


def delete_lesson(db: Database, lesson_id: int) -> None:
    """Delete a lesson; stories tagged with it keep existing, untagged."""
    with db.connection() as conn:
        conn.execute("UPDATE stories SET lesson_id = NULL WHERE lesson_id = ?", (lesson_id,))
        conn.execute("DELETE FROM lessons WHERE id = ?", (lesson_id,))


# -------------------------------
# Stories
# -------------------------------
def list_stories(db: Database) -> List[Story]:
    with db.connection() as conn:
        rows = conn.execute(
            "SELECT * FROM stories ORDER BY created_at DESC, id DESC"
        ).fetchall()
    return [Story.from_row(r) for r in rows]


def list_stories_without_images(db: Database) -> List[Story]:
    with db.connection() as conn:
        rows = conn.execute(
            "SELECT * FROM stories WHERE image_url IS NULL ORDER BY created_at DESC, id DESC"
        ).fetchall()
    return [Story.from_row(r) for r in rows]


def get_story(db: Database, story_id: int) -> Optional[Story]:
    with db.connection() as conn:
        row = conn.execute("SELECT * FROM stories WHERE id = ?", (story_id,)).fetchone()
    return Story.from_row(row) if row else None


def insert_story(
    db: Database,
    *,
    prompt: str,
    content: str,
    image_url: Optional[str],
    grade_level: str,
    lesson_id: Optional[int] = None,
    user_id: Optional[int] = None,
) -> int:
    with db.connection() as conn:
        cur = conn.execute(
            "INSERT INTO stories (prompt, content, image_url, grade_level, lesson_id, user_id) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (prompt, content, image_url, grade_level, lesson_id, user_id),
        )
        return int(cur.lastrowid)


def delete_story(db: Database, story_id: int) -> None:
    with db.connection() as conn:
        conn.execute("DELETE FROM stories WHERE id = ?", (story_id,))


def assign_image_to_story(db: Database, story_id: int, image_url: str) -> None:
    image_url = (image_url or "").strip()
    if not image_url:
        raise InputError("Story ID and image URL are required.")
    with db.connection() as conn:
        row = conn.execute("SELECT id FROM stories WHERE id = ?", (story_id,)).fetchone()
        if not row:
            raise NotFoundError("Story not found.")
        # Not de-duplicated: the same image may be assigned to several stories.
        conn.execute("UPDATE stories SET image_url = ? WHERE id = ?", (image_url, story_id))
