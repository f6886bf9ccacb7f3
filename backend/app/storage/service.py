"""
Upload / delete orchestration across the configured storage backends.

Uploads walk an ordered list of adapters and return on the first success
(default: GitHub contents API, then the local static root). Deletes walk every
adapter able to handle the locator and never raise: a stale file must not
block deleting the record that referenced it.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import PurePosixPath, PureWindowsPath
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from prometheus_client import Counter

from app.core.config import Settings, get_settings
from app.storage.base import (
    FileLocator,
    MissingFileError,
    StorageBackend,
    StoredFile,
    UploadFailedError,
    UploadResult,
)
from app.storage.buckets import DEFAULT_BUCKETS, resolve_bucket
from app.storage.github import GitHubContentsBackend
from app.storage.inline import InlineBackend
from app.storage.local import LocalFilesystemBackend


logger = logging.getLogger("fa.storage")

STORAGE_OPS = Counter(
    "fa_storage_operations_total",
    "File storage operations by backend and outcome",
    ["operation", "backend", "outcome"],
)


def _log(level: int, event: str, **fields) -> None:
    logger.log(level, json.dumps({"event": event, **fields}, ensure_ascii=False, default=str))


def _now_ms() -> int:
    return int(time.time() * 1000)


def clean_original_name(name: Optional[str]) -> str:
    """Drop any directory part a client may have sent along with the name."""
    raw = (name or "").strip()
    base = PureWindowsPath(PurePosixPath(raw).name).name
    return base.strip()


def build_file_name(original_name: str, now_ms: int) -> str:
    return f"{now_ms}-{original_name}"


@dataclass
class StorageConfig:
    remote_enabled: bool = True
    local_root: str = "./public"
    buckets: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_BUCKETS))
    backend_order: Tuple[str, ...] = ("github", "local")
    github_token: Optional[str] = None
    github_owner: str = "finance-office"
    github_repo: str = "finance-files"
    github_branch: str = "main"
    github_api_url: str = "https://api.github.com"
    github_raw_url: str = "https://raw.githubusercontent.com"
    github_path_prefix: str = "public/uploads"
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageConfig":
        order = tuple(n for n in settings.storage_backends.split(",") if n)
        return cls(
            remote_enabled=settings.storage_remote_enabled,
            local_root=settings.storage_local_root,
            backend_order=order,
            github_token=settings.github_token,
            github_owner=settings.github_owner,
            github_repo=settings.github_repo,
            github_branch=settings.github_branch,
            github_api_url=settings.github_api_url,
            github_raw_url=settings.github_raw_url,
            github_path_prefix=settings.github_path_prefix,
            timeout=settings.github_timeout_seconds,
        )


class FileStorage:
    def __init__(
        self,
        backends: Sequence[StorageBackend],
        buckets: Optional[Dict[str, str]] = None,
        delete_backends: Optional[Sequence[StorageBackend]] = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self.backends = list(backends)
        self.delete_backends = list(delete_backends) if delete_backends is not None else list(backends)
        self.buckets = dict(buckets or DEFAULT_BUCKETS)
        self.clock = clock

    def backend(self, name: str) -> Optional[StorageBackend]:
        for b in [*self.backends, *self.delete_backends]:
            if b.name == name:
                return b
        return None

    def prepare(
        self,
        content: bytes,
        original_name: Optional[str],
        bucket: Optional[str],
        content_type: Optional[str] = None,
    ) -> StoredFile:
        """Validate input and build the stored name. Raises before any I/O."""
        directory = resolve_bucket(bucket, self.buckets)
        name = clean_original_name(original_name)
        if not name or content is None:
            raise MissingFileError("No file provided")
        return StoredFile(
            file_name=build_file_name(name, self.clock()),
            original_name=name,
            directory=directory,
            content=content,
            content_type=content_type or None,
        )

    def upload(
        self,
        content: bytes,
        original_name: Optional[str],
        bucket: Optional[str],
        content_type: Optional[str] = None,
    ) -> UploadResult:
        item = self.prepare(content, original_name, bucket, content_type)

        failures: List[Tuple[str, Exception]] = []
        for backend in self.backends:
            try:
                result = backend.upload(item)
            except Exception as e:
                failures.append((backend.name, e))
                STORAGE_OPS.labels("upload", backend.name, "error").inc()
                _log(
                    logging.WARNING,
                    "storage_upload_failed",
                    backend=backend.name,
                    bucket=item.directory,
                    file_name=item.file_name,
                    error=str(e),
                    error_type=type(e).__name__,
                    details=getattr(e, "details", None),
                )
                continue
            STORAGE_OPS.labels("upload", backend.name, "ok").inc()
            _log(
                logging.INFO,
                "storage_upload",
                backend=backend.name,
                bucket=item.directory,
                file_name=item.file_name,
                size=len(item.content),
                fallbacks=[name for name, _ in failures],
            )
            return result

        _log(logging.ERROR, "storage_upload_exhausted", bucket=item.directory, file_name=item.file_name,
             failures=[f"{name}: {err}" for name, err in failures])
        raise UploadFailedError(failures)

    def delete(self, locator: FileLocator) -> bool:
        """Best-effort removal. Returns True if some backend handled the locator."""
        if locator is None or locator.is_empty():
            return False
        for backend in self.delete_backends:
            if not backend.can_delete(locator):
                continue
            try:
                backend.delete(locator)
            except Exception as e:
                STORAGE_OPS.labels("delete", backend.name, "error").inc()
                _log(
                    logging.WARNING,
                    "storage_delete_failed",
                    backend=backend.name,
                    file_url=_short(locator.file_url),
                    file_path=locator.file_path,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            STORAGE_OPS.labels("delete", backend.name, "ok").inc()
            _log(logging.INFO, "storage_delete", backend=backend.name,
                 file_url=_short(locator.file_url), file_path=locator.file_path)
            return True

        _log(logging.WARNING, "storage_delete_unhandled", file_url=_short(locator.file_url), file_path=locator.file_path)
        return False


def _short(url: Optional[str]) -> Optional[str]:
    # data: URIs can be megabytes long
    if url and url.startswith("data:"):
        return url[:48] + "..."
    return url


def build_storage(config: StorageConfig, transport=None) -> FileStorage:
    """Instantiate adapters for `config.backend_order` plus a full delete chain."""
    github = GitHubContentsBackend(
        token=config.github_token,
        owner=config.github_owner,
        repo=config.github_repo,
        branch=config.github_branch,
        api_url=config.github_api_url,
        raw_url=config.github_raw_url,
        path_prefix=config.github_path_prefix,
        timeout=config.timeout,
        transport=transport,
    )
    available: Dict[str, StorageBackend] = {
        "local": LocalFilesystemBackend(config.local_root),
        "inline": InlineBackend(),
    }
    if config.remote_enabled:
        available["github"] = github

    upload_chain = [available[n] for n in config.backend_order if n in available]
    # Remote first, then local, then inline: matches the upload preference.
    delete_chain = [available[n] for n in ("github", "local", "inline") if n in available]
    return FileStorage(upload_chain, buckets=config.buckets, delete_backends=delete_chain)


@lru_cache()
def _default_storage() -> FileStorage:
    return build_storage(StorageConfig.from_settings(get_settings()))


def get_file_storage() -> FileStorage:
    """FastAPI dependency; tests override it with their own FileStorage."""
    return _default_storage()
