from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


class StorageError(Exception):
    """Base class for file storage failures."""


class InvalidBucketError(StorageError):
    def __init__(self, bucket: Optional[str]):
        super().__init__(f"Invalid bucket: {bucket!r}")
        self.bucket = bucket


class MissingFileError(StorageError):
    """No file (or no usable file name) was supplied."""


class RemoteStorageError(StorageError):
    """The remote content API rejected the request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class UploadFailedError(StorageError):
    """Every configured backend failed; `failures` holds (backend, error) pairs."""

    def __init__(self, failures: List[Tuple[str, Exception]]):
        summary = "; ".join(f"{name}: {err}" for name, err in failures) or "no storage backend configured"
        super().__init__(f"Failed to upload file ({summary})")
        self.failures = failures


@dataclass
class UploadResult:
    file_name: str
    file_path: str
    file_url: str
    backend: str
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    github_sha: Optional[str] = None
    github_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Caller-facing shape; optional keys are omitted when unset."""
        out: Dict[str, Any] = {
            "fileName": self.file_name,
            "filePath": self.file_path,
            "fileUrl": self.file_url,
        }
        optional = {
            "fileSize": self.file_size,
            "fileType": self.file_type,
            "githubSha": self.github_sha,
            "githubUrl": self.github_url,
        }
        out.update({k: v for k, v in optional.items() if v is not None})
        return out


@dataclass
class FileLocator:
    """Whatever is known about where a stored file lives."""

    file_url: Optional[str] = None
    file_path: Optional[str] = None
    sha: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.file_url or (self.file_path and self.sha))


@dataclass
class StoredFile:
    """Input to a backend: the final name plus the bytes to persist."""

    file_name: str
    original_name: str
    directory: str
    content: bytes
    content_type: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class StorageBackend:
    """Capability interface shared by the remote, local and inline adapters."""

    name = "base"

    def upload(self, item: StoredFile) -> UploadResult:
        raise NotImplementedError

    def can_delete(self, locator: FileLocator) -> bool:
        return False

    def delete(self, locator: FileLocator) -> None:
        raise NotImplementedError
