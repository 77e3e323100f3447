from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import List

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage

from imagine_stories.backend.storage.artifacts import ArtifactStore
from imagine_stories.common.errors import StorageError
from imagine_stories.common.models import StoredArtifact


class GCSArtifactStore(ArtifactStore):
    """Google Cloud Storage bucket. The client is synchronous, so calls run in a thread."""

    name = "gcs"

    def __init__(self, bucket_name: str, client: storage.Client | None = None):
        if not bucket_name:
            raise ValueError("Missing GCS_BUCKET_NAME environment variable.")
        self.client = client or storage.Client()
        self.bucket = self.client.bucket(bucket_name)

    def _list(self, prefix: str) -> List[StoredArtifact]:
        return [
            StoredArtifact(name=blob.name, created_at=blob.time_created)
            for blob in self.client.list_blobs(self.bucket, prefix=prefix)
        ]

    async def list_by_prefix(self, prefix: str) -> List[StoredArtifact]:
        try:
            return await asyncio.to_thread(self._list, prefix)
        except gcs_exceptions.GoogleAPIError as exc:
            raise StorageError(f"GCS list failed for {prefix!r}: {exc}") from exc

    async def save(self, name: str, data: bytes, content_type: str) -> None:
        blob = self.bucket.blob(name)
        try:
            await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)
        except gcs_exceptions.GoogleAPIError as exc:
            raise StorageError(f"GCS upload failed for {name!r}: {exc}") from exc

    async def issue_read_url(self, name: str, expires_at: datetime) -> str:
        blob = self.bucket.blob(name)
        try:
            # V4 signatures cap out at 7 days; V2 accepts the far-future expiry.
            return await asyncio.to_thread(
                blob.generate_signed_url, version="v2", expiration=expires_at, method="GET"
            )
        except (gcs_exceptions.GoogleAPIError, AttributeError, ValueError) as exc:
            # AttributeError: credentials that cannot sign (e.g. user ADC).
            raise StorageError(f"GCS signing failed for {name!r}: {exc}") from exc

    async def download_to_path(self, name: str, local_path: str | Path) -> None:
        blob = self.bucket.blob(name)
        try:
            await asyncio.to_thread(blob.download_to_filename, str(local_path))
        except gcs_exceptions.GoogleAPIError as exc:
            raise StorageError(f"GCS download failed for {name!r}: {exc}") from exc
