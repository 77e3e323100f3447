from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from imagine_stories.backend.storage.artifacts import ArtifactStore
from imagine_stories.common.errors import StorageError
from imagine_stories.common.models import StoredArtifact

LIST_PAGE_SIZE = 1000


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text.replace("Z", "+00:00")
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


class SupabaseArtifactStore(ArtifactStore):
    """Supabase Storage over its REST API, authenticated with the service role key."""

    name = "supabase"

    def __init__(self, *, url: str, service_key: str, bucket: str, timeout: float = 60):
        if not (url and service_key and bucket):
            raise ValueError(
                "Supabase storage is not configured "
                "(SUPABASE_URL/SUPABASE_SERVICE_ROLE_KEY/SUPABASE_STORAGE_BUCKET)."
            )
        self.url = url.rstrip("/")
        self.service_key = service_key
        self.bucket = bucket
        self.timeout = timeout

    def _headers(self, content_type: str = "application/json") -> Dict[str, str]:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": content_type,
        }

    def _storage_url(self, path: str) -> str:
        return f"{self.url}/storage/v1/{path.lstrip('/')}"

    async def list_by_prefix(self, prefix: str) -> List[StoredArtifact]:
        # Supabase lists one folder at a time; the rest of the prefix is a name search.
        folder, _, search = prefix.rpartition("/")
        body: Dict[str, Any] = {
            "prefix": folder,
            "limit": LIST_PAGE_SIZE,
            "offset": 0,
            "sortBy": {"column": "created_at", "order": "desc"},
        }
        if search:
            body["search"] = search
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self._storage_url(f"object/list/{self.bucket}"),
                    headers=self._headers(),
                    json=body,
                )
                resp.raise_for_status()
                rows = resp.json() or []
        except httpx.HTTPError as exc:
            raise StorageError(f"Supabase list failed: {exc}") from exc

        items = []
        for row in rows:
            # Folder placeholders come back without an id.
            if not row.get("id"):
                continue
            name = f"{folder}/{row['name']}" if folder else row["name"]
            if not name.startswith(prefix):
                continue
            created = _parse_ts(row.get("created_at")) or datetime.fromtimestamp(0, tz=timezone.utc)
            items.append(StoredArtifact(name=name, created_at=created))
        return items

    async def save(self, name: str, data: bytes, content_type: str) -> None:
        headers = {**self._headers(content_type), "x-upsert": "true"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self._storage_url(f"object/{self.bucket}/{name}"),
                    headers=headers,
                    content=data,
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise StorageError(f"Supabase upload failed for {name!r}: {exc}") from exc

    async def issue_read_url(self, name: str, expires_at: datetime) -> str:
        expires_in = int((expires_at - datetime.now(timezone.utc)).total_seconds())
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self._storage_url(f"object/sign/{self.bucket}/{name}"),
                    headers=self._headers(),
                    json={"expiresIn": max(expires_in, 1)},
                )
                resp.raise_for_status()
                signed = (resp.json() or {}).get("signedURL")
        except httpx.HTTPError as exc:
            raise StorageError(f"Supabase signing failed for {name!r}: {exc}") from exc
        if not signed:
            raise StorageError(f"Supabase returned no signed URL for {name!r}.")
        return self._storage_url(signed)

    async def download_to_path(self, name: str, local_path: str | Path) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async with client.stream(
                    "GET",
                    self._storage_url(f"object/{self.bucket}/{name}"),
                    headers=self._headers(),
                ) as resp:
                    resp.raise_for_status()
                    with open(local_path, "wb") as f:
                        async for chunk in resp.aiter_bytes():
                            f.write(chunk)
        except httpx.HTTPError as exc:
            raise StorageError(f"Supabase download failed for {name!r}: {exc}") from exc
        except OSError as exc:
            raise StorageError(f"Could not write {local_path}: {exc}") from exc
