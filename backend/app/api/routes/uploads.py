from fastapi import APIRouter, UploadFile, File, Depends, Form
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from app.api.deps import require_writable_user
from app.core.config import get_settings
from app.models.user import User
from app.storage.base import (
    FileLocator,
    InvalidBucketError,
    MissingFileError,
    RemoteStorageError,
    UploadFailedError,
)
from app.services.record_files import read_upload, too_large
from app.storage.service import FileStorage, get_file_storage

router = APIRouter(prefix="/api/upload", tags=["uploads"])
github_router = APIRouter(prefix="/api/github-upload", tags=["uploads"])

logger = logging.getLogger("fa.storage")


def _error(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    body = {"error": error}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


@router.post("")
def upload_file(
    file: Optional[UploadFile] = File(default=None),
    bucket: Optional[str] = Form(default=None),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    """
    Store one file in the configured backends (remote first, then fallbacks).

    Returns {fileName, filePath, fileUrl, fileSize?, fileType?, githubSha?, githubUrl?}.
    """
    content = read_upload(file)
    if content is None:
        return _error(400, "No file provided")
    if too_large(content):
        return _error(413, "File too large", f"max {get_settings().upload_max_bytes} bytes")
    try:
        result = storage.upload(content, file.filename, bucket, file.content_type)
    except InvalidBucketError:
        return _error(400, "Invalid bucket")
    except MissingFileError:
        return _error(400, "No file provided")
    except UploadFailedError:
        # Per-backend diagnostics are in the storage_upload_exhausted log event.
        return _error(500, "Failed to upload file")
    return result.to_dict()


@router.delete("")
def delete_file(
    fileUrl: Optional[str] = None,
    filePath: Optional[str] = None,
    sha: Optional[str] = None,
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    locator = FileLocator(file_url=fileUrl, file_path=filePath, sha=sha)
    if locator.is_empty():
        return _error(400, "No file URL provided")
    # Deletion is idempotent; failures are logged by the storage layer only.
    storage.delete(locator)
    return {"success": True}


@github_router.post("")
def github_upload(
    file: Optional[UploadFile] = File(default=None),
    bucket: Optional[str] = Form(default=None),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    """Remote-only upload: no fallback, errors are reported to the caller."""
    remote = storage.backend("github")
    if remote is None:
        return _error(500, "GitHub storage not configured")
    content = read_upload(file)
    if content is None:
        return _error(400, "No file provided")
    if too_large(content):
        return _error(413, "File too large", f"max {get_settings().upload_max_bytes} bytes")
    try:
        item = storage.prepare(content, file.filename, bucket, file.content_type)
        result = remote.upload(item)
    except InvalidBucketError:
        return _error(400, "Invalid bucket")
    except MissingFileError:
        return _error(400, "No file provided")
    except RemoteStorageError as e:
        logger.error("github_upload_failed status=%s details=%s", e.status_code, e.details)
        return _error(500, "Failed to upload to GitHub", e.details or str(e))
    return result.to_dict()


@github_router.delete("")
def github_delete(
    filePath: Optional[str] = None,
    sha: Optional[str] = None,
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    remote = storage.backend("github")
    if remote is None:
        return _error(500, "GitHub storage not configured")
    if not filePath or not sha:
        return _error(400, "File path and SHA required")
    try:
        remote.delete(FileLocator(file_path=filePath, sha=sha))
    except RemoteStorageError as e:
        logger.error("github_delete_failed status=%s details=%s", e.status_code, e.details)
        return _error(500, "Failed to delete from GitHub", e.details or str(e))
    return {"success": True}
