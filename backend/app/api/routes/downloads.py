from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session
from typing import List, Optional

from app.db.session import get_db_session
from app.models.download import Download
from app.models.user import User
from app.schemas.records import DownloadOut
from app.api.deps import get_current_user, require_writable_user
from app.services.record_files import create_record, delete_record, file_response, get_or_404, update_record
from app.storage.service import FileStorage, get_file_storage


router = APIRouter(prefix="/downloads", tags=["downloads"])

BUCKET = "downloads"


@router.get("", response_model=List[DownloadOut])
def list_downloads(
    year: Optional[int] = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    q = db.query(Download)
    if year:
        q = q.filter(Download.year == year)
    return q.order_by(Download.year.desc(), Download.created_at.desc()).all()


@router.get("/{download_id}", response_model=DownloadOut)
def get_download(
    download_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return get_or_404(db, Download, download_id, "Download")


@router.post("", response_model=DownloadOut)
def create_download(
    year: int = Form(..., ge=1900, le=2200),
    description: str = Form(..., min_length=1),
    file: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_db_session),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    return create_record(db, storage, Download, {"year": year, "description": description.strip()}, file, BUCKET)


@router.put("/{download_id}", response_model=DownloadOut)
def update_download(
    download_id: int,
    year: Optional[int] = Form(default=None, ge=1900, le=2200),
    description: Optional[str] = Form(default=None),
    file: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_db_session),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    download = get_or_404(db, Download, download_id, "Download")
    fields = {"year": year, "description": description.strip() if description else None}
    return update_record(db, storage, download, fields, file, BUCKET)


@router.delete("/{download_id}")
def delete_download(
    download_id: int,
    db: Session = Depends(get_db_session),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    download = get_or_404(db, Download, download_id, "Download")
    delete_record(db, storage, download)
    return {"ok": True}


@router.get("/{download_id}/file")
def download_file(
    download_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return file_response(get_or_404(db, Download, download_id, "Download"))
