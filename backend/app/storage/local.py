from __future__ import annotations

import re
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote

from app.storage.base import FileLocator, StorageBackend, StorageError, StoredFile, UploadResult


class LocalFilesystemBackend(StorageBackend):
    """Writes under `<root>/uploads/<bucket-dir>/`, served as `/uploads/...`."""

    name = "local"

    def __init__(self, root: str | Path, url_prefix: str = "/uploads"):
        self.root = Path(root)
        self.url_prefix = "/" + url_prefix.strip("/")

    @property
    def upload_root(self) -> Path:
        return self.root / self.url_prefix.strip("/")

    def upload(self, item: StoredFile) -> UploadResult:
        bucket_dir = self.upload_root / item.directory
        bucket_dir.mkdir(parents=True, exist_ok=True)
        target = bucket_dir / item.file_name
        target.write_bytes(item.content)
        return UploadResult(
            file_name=item.file_name,
            file_path=str(target.resolve()),
            file_url=f"{self.url_prefix}/{quote(item.directory)}/{quote(item.file_name)}",
            backend=self.name,
            file_size=len(item.content),
            file_type=item.content_type or None,
        )

    def resolve_url(self, file_url: Optional[str]) -> Optional[Path]:
        """
        Map a root-relative URL back to disk; None if it is not ours.

        Names are percent-encoded in the URL, so a raw "?" or "#" can only start
        a query or fragment and is cut before decoding.
        """
        if not file_url:
            return None
        url = unquote(re.split(r"[?#]", file_url, maxsplit=1)[0])
        if not url.startswith(self.url_prefix + "/"):
            return None
        base = self.upload_root.resolve()
        candidate = (base / url[len(self.url_prefix) + 1:]).resolve()
        if candidate == base or base not in candidate.parents:
            raise StorageError(f"Refusing path outside upload root: {file_url}")
        return candidate

    def can_delete(self, locator: FileLocator) -> bool:
        return bool(locator.file_url and unquote(locator.file_url).startswith(self.url_prefix + "/"))

    def delete(self, locator: FileLocator) -> None:
        path = self.resolve_url(locator.file_url)
        if path is None:
            raise StorageError(f"Not a local upload URL: {locator.file_url}")
        path.unlink(missing_ok=True)
