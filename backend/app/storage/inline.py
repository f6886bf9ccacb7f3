from __future__ import annotations

import base64
import binascii
from typing import Optional, Tuple

from app.storage.base import FileLocator, StorageBackend, StorageError, StoredFile, UploadResult


DEFAULT_CONTENT_TYPE = "application/octet-stream"


def to_data_uri(content: bytes, content_type: Optional[str]) -> str:
    payload = base64.b64encode(content).decode("ascii")
    return f"data:{content_type or DEFAULT_CONTENT_TYPE};base64,{payload}"


def parse_data_uri(uri: str) -> Tuple[str, bytes]:
    """Return (content_type, bytes) for a base64 data URI."""
    if not uri or not uri.startswith("data:") or "," not in uri:
        raise StorageError("Not a data URI")
    header, payload = uri[5:].split(",", 1)
    if not header.endswith(";base64"):
        raise StorageError("Only base64 data URIs are supported")
    content_type = header[: -len(";base64")] or DEFAULT_CONTENT_TYPE
    try:
        return content_type, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise StorageError("Malformed base64 payload") from e


class InlineBackend(StorageBackend):
    """Embeds the bytes as a data URI; the database row is the storage."""

    name = "inline"

    def upload(self, item: StoredFile) -> UploadResult:
        return UploadResult(
            file_name=item.file_name,
            file_path=f"{item.directory}/{item.file_name}",
            file_url=to_data_uri(item.content, item.content_type),
            backend=self.name,
            file_size=len(item.content),
            file_type=item.content_type or DEFAULT_CONTENT_TYPE,
        )

    def can_delete(self, locator: FileLocator) -> bool:
        return bool(locator.file_url and locator.file_url.startswith("data:"))

    def delete(self, locator: FileLocator) -> None:
        # Payload disappears with the owning row.
        return None
