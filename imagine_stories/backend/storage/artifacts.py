from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import List

from imagine_stories.common import config
from imagine_stories.common.models import StoredArtifact


class ArtifactStore(ABC):
    """Object storage as the app needs it: list, put, sign, fetch.

    Implementations raise StorageError for any transport failure; callers
    decide whether that is fatal.
    """

    name = "abstract"

    @abstractmethod
    async def list_by_prefix(self, prefix: str) -> List[StoredArtifact]:
        ...

    @abstractmethod
    async def save(self, name: str, data: bytes, content_type: str) -> None:
        ...

    @abstractmethod
    async def issue_read_url(self, name: str, expires_at: datetime) -> str:
        ...

    @abstractmethod
    async def download_to_path(self, name: str, local_path: str | Path) -> None:
        ...


def build_artifact_store(kind: str | None = None) -> ArtifactStore:
    kind = (kind or config.ARTIFACT_STORE).strip().lower()
    if kind == "local":
        from imagine_stories.backend.storage.files import LocalArtifactStore

        return LocalArtifactStore(config.MEDIA_DIR)
    if kind == "supabase":
        from imagine_stories.backend.storage.supabase_storage import SupabaseArtifactStore

        return SupabaseArtifactStore(
            url=config.SUPABASE_URL,
            service_key=config.SUPABASE_SERVICE_ROLE_KEY,
            bucket=config.SUPABASE_STORAGE_BUCKET,
        )
    if kind == "gcs":
        from imagine_stories.backend.storage.gcs import GCSArtifactStore

        return GCSArtifactStore(config.GCS_BUCKET_NAME)
    raise ValueError(f"Unknown artifact store: {kind}")
