from __future__ import annotations

import asyncio
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from imagine_stories.backend.storage.artifacts import ArtifactStore
from imagine_stories.common.errors import StorageError
from imagine_stories.common.models import StoredArtifact


class LocalArtifactStore(ArtifactStore):
    """Artifacts as plain files under ``root``, served by the app at ``/media``."""

    name = "local"

    def __init__(self, root: str | Path, base_url: str = "/media"):
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")

    def ensure_root(self) -> None:
        os.makedirs(self.root, exist_ok=True)

    def _path(self, name: str) -> Path:
        path = (self.root / name).resolve()
        if path == self.root or self.root not in path.parents:
            raise StorageError(f"Invalid artifact name: {name}")
        return path

    def _list(self, prefix: str) -> List[StoredArtifact]:
        if not self.root.exists():
            return []
        items = []
        for path in self.root.rglob("*"):
            if not path.is_file():
                continue
            name = path.relative_to(self.root).as_posix()
            if not name.startswith(prefix):
                continue
            created = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            items.append(StoredArtifact(name=name, created_at=created))
        return items

    async def list_by_prefix(self, prefix: str) -> List[StoredArtifact]:
        try:
            return await asyncio.to_thread(self._list, prefix)
        except OSError as exc:
            raise StorageError(f"Could not list {prefix!r}: {exc}") from exc

    def _write(self, name: str, data: bytes) -> None:
        path = self._path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)

    async def save(self, name: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(self._write, name, data)
        except OSError as exc:
            raise StorageError(f"Could not save {name!r}: {exc}") from exc

    async def issue_read_url(self, name: str, expires_at: datetime) -> str:
        # Local media is served unsigned; the expiry only matters for remote stores.
        self._path(name)
        return f"{self.base_url}/{name}"

    async def download_to_path(self, name: str, local_path: str | Path) -> None:
        source = self._path(name)
        if not source.is_file():
            raise StorageError(f"Artifact not found: {name}")
        try:
            await asyncio.to_thread(shutil.copyfile, source, local_path)
        except OSError as exc:
            raise StorageError(f"Could not download {name!r}: {exc}") from exc
