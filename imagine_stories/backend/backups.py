from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from imagine_stories.backend.storage.artifacts import ArtifactStore
from imagine_stories.common import config
from imagine_stories.common.db import Database
from imagine_stories.common.errors import InputError, NotFoundError, StorageError
from imagine_stories.common.models import StoredArtifact

logger = logging.getLogger("imagine-stories.backups")

SQLITE_HEADER = b"SQLite format 3\x00"
BACKUP_SUFFIX = ".db"
SIDE_FILE_SUFFIXES = ("-wal", "-shm")


def backup_name(prefix: str, now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).isoformat(timespec="milliseconds")
    stamp = stamp.replace("+00:00", "Z").replace(":", "-").replace(".", "-")
    return f"{prefix}backup-{stamp}{BACKUP_SUFFIX}"


def _read_bytes(path: Path) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def _is_sqlite_file(path: str | Path) -> bool:
    with open(path, "rb") as f:
        return f.read(len(SQLITE_HEADER)) == SQLITE_HEADER


class BackupCoordinator:
    """
    Copies the database file to and from the artifact store.

    The live handle is closed (quiesced) for the duration of every file read
    or swap so a snapshot never captures a half-written WAL state. The handle
    reopens on the next checkout. Every failure here is surfaced: a failed
    restore is preferable to a half-restored database.
    """

    def __init__(self, db: Database, artifacts: ArtifactStore, prefix: str = config.BACKUP_PREFIX):
        self.db = db
        self.artifacts = artifacts
        self.prefix = prefix

    async def list_backups(self) -> List[StoredArtifact]:
        items = await self.artifacts.list_by_prefix(self.prefix)
        backups = [item for item in items if item.name.endswith(BACKUP_SUFFIX)]
        backups.sort(key=lambda b: (b.created_at, b.name), reverse=True)
        return backups

    async def create_backup(self) -> str:
        data = await asyncio.to_thread(self._snapshot)
        name = backup_name(self.prefix)
        await self.artifacts.save(name, data, "application/x-sqlite3")
        logger.info("Database backed up to %s (%d bytes)", name, len(data))
        return name

    def _snapshot(self) -> bytes:
        with self.db.quiesced() as path:
            if not path.exists():
                raise StorageError(f"Database file {path} does not exist.")
            try:
                return _read_bytes(path)
            except OSError as exc:
                raise StorageError(f"Could not read {path}: {exc}") from exc

    async def restore_latest_backup(self) -> str:
        backups = await self.list_backups()
        if not backups:
            raise NotFoundError("No backups found to restore.")
        latest = backups[0]
        await self._restore(latest.name)
        return latest.name

    async def restore_named(self, name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise InputError("File name is required.")
        if not name.startswith(self.prefix) or not name.endswith(BACKUP_SUFFIX):
            raise InputError(f"{name!r} is not a backup file.")
        backups = await self.list_backups()
        if not any(b.name == name for b in backups):
            raise NotFoundError(f"Backup {name} not found.")
        await self._restore(name)
        return name

    async def _restore(self, name: str) -> None:
        target = self.db.path
        target.parent.mkdir(parents=True, exist_ok=True)
        # Same directory as the live file so the final rename is atomic.
        fd, tmp_name = tempfile.mkstemp(prefix=f"{target.name}.", suffix=".tmp", dir=target.parent)
        os.close(fd)
        try:
            await self.artifacts.download_to_path(name, tmp_name)
            if not await asyncio.to_thread(_is_sqlite_file, tmp_name):
                raise StorageError(f"Backup {name} is not a SQLite database.")
            await asyncio.to_thread(self._swap_in, Path(tmp_name))
        except OSError as exc:
            raise StorageError(f"Database restore failed: {exc}") from exc
        finally:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
        logger.info("Database restored from %s", name)

    def _swap_in(self, tmp_path: Path) -> None:
        with self.db.quiesced() as path:
            for suffix in SIDE_FILE_SUFFIXES:
                side = path.with_name(path.name + suffix)
                if side.exists():
                    side.unlink()
            os.replace(tmp_path, path)
