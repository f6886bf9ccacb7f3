"""
Shared file handling for the record managers (budgets, rules, downloads, updates).

Every record may carry one file. The file is stored first; only then is the
row written, so a failed upload never leaves a half-persisted record. A file
replaced on update is purged after the new row state is committed.
"""
import logging
from typing import Any, Dict, Optional, Type
from urllib.parse import quote

from fastapi import HTTPException, UploadFile
from fastapi.responses import RedirectResponse, Response
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.file_fields import FileFieldsMixin
from app.storage.base import FileLocator, InvalidBucketError, MissingFileError, StorageError, UploadFailedError, UploadResult
from app.storage.inline import parse_data_uri
from app.storage.service import FileStorage

logger = logging.getLogger("fa.records")


def read_upload(file: Optional[UploadFile]) -> Optional[bytes]:
    """Read the whole upload, or None when the form carried no file."""
    if file is None or not (file.filename or "").strip():
        return None
    return file.file.read() or b""


def too_large(content: bytes) -> bool:
    return len(content) > get_settings().upload_max_bytes


def store_upload(storage: FileStorage, file: Optional[UploadFile], bucket: str) -> Optional[UploadResult]:
    """Upload the form file, if any. Maps storage errors onto HTTP errors."""
    content = read_upload(file)
    if content is None:
        return None
    if too_large(content):
        raise HTTPException(
            status_code=413,
            detail=f"File too large (max {get_settings().upload_max_bytes} bytes).",
        )
    try:
        return storage.upload(content, file.filename, bucket, file.content_type)
    except InvalidBucketError:
        raise HTTPException(status_code=400, detail="Invalid bucket")
    except MissingFileError:
        raise HTTPException(status_code=400, detail="No file provided")
    except UploadFailedError:
        raise HTTPException(status_code=500, detail="Failed to upload file")


def get_or_404(db: Session, model: Type[Any], record_id: int, label: str) -> Any:
    obj = db.get(model, record_id)
    if not obj:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


def create_record(
    db: Session,
    storage: FileStorage,
    model: Type[FileFieldsMixin],
    fields: Dict[str, Any],
    file: Optional[UploadFile],
    bucket: str,
) -> Any:
    result = store_upload(storage, file, bucket)
    obj = model(**fields)
    if result is not None:
        obj.apply_upload(result)
    try:
        db.add(obj)
        db.commit()
        db.refresh(obj)
    except Exception:
        db.rollback()
        # Row did not make it; do not leave the new file orphaned.
        if result is not None:
            storage.delete(FileLocator(file_url=result.file_url, file_path=result.file_path, sha=result.github_sha))
        raise
    logger.info("record_created table=%s id=%s file_backend=%s", model.__tablename__, obj.id, obj.file_backend)
    return obj


def update_record(
    db: Session,
    storage: FileStorage,
    obj: FileFieldsMixin,
    fields: Dict[str, Any],
    file: Optional[UploadFile],
    bucket: str,
) -> Any:
    """Apply non-None `fields`; a new file replaces (and purges) the previous one."""
    result = store_upload(storage, file, bucket)
    old_locator: Optional[FileLocator] = None
    for key, value in fields.items():
        if value is not None:
            setattr(obj, key, value)
    if result is not None:
        if obj.has_file():
            old_locator = obj.file_locator()
        obj.apply_upload(result)
    try:
        db.add(obj)
        db.commit()
        db.refresh(obj)
    except Exception:
        db.rollback()
        if result is not None:
            storage.delete(FileLocator(file_url=result.file_url, file_path=result.file_path, sha=result.github_sha))
        raise
    if old_locator is not None:
        storage.delete(old_locator)
    return obj


def delete_record(db: Session, storage: FileStorage, obj: FileFieldsMixin) -> None:
    # File first: a stale file must never block the row deletion, and
    # storage.delete() does not raise.
    table, record_id = obj.__tablename__, obj.id
    locator = obj.file_locator() if obj.has_file() else None
    if locator is not None:
        storage.delete(locator)
    try:
        db.delete(obj)
        db.commit()
    except Exception:
        db.rollback()
        # Row survives but its file is gone.
        logger.error(
            "record_delete_failed table=%s id=%s file_path=%s",
            table, record_id, locator.file_path if locator else None,
        )
        raise


def file_response(obj: FileFieldsMixin) -> Response:
    """Serve the attached file: decode inline payloads, redirect otherwise."""
    if not obj.has_file():
        raise HTTPException(status_code=404, detail="No file attached")
    if obj.file_url.startswith("data:"):
        try:
            content_type, content = parse_data_uri(obj.file_url)
        except StorageError:
            raise HTTPException(status_code=500, detail="Stored file is corrupted")
        filename = quote(obj.file_name or "file")
        return Response(
            content=content,
            media_type=obj.file_type or content_type,
            headers={"Content-Disposition": f"attachment; filename*=UTF-8''{filename}"},
        )
    return RedirectResponse(url=obj.file_url, status_code=307)
