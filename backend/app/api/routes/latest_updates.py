from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session
from typing import List, Optional

from app.db.session import get_db_session
from app.models.latest_update import LatestUpdate
from app.models.user import User
from app.schemas.records import LatestUpdateOut
from app.api.deps import get_current_user, require_writable_user
from app.services.record_files import create_record, delete_record, file_response, get_or_404, update_record
from app.storage.service import FileStorage, get_file_storage


router = APIRouter(prefix="/latest-updates", tags=["latest-updates"])

BUCKET = "updates"


@router.get("", response_model=List[LatestUpdateOut])
def list_updates(
    limit: int = 100,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    q = db.query(LatestUpdate).order_by(LatestUpdate.created_at.desc(), LatestUpdate.id.desc())
    return q.limit(max(1, min(limit, 500))).all()


@router.get("/{update_id}", response_model=LatestUpdateOut)
def get_update(
    update_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return get_or_404(db, LatestUpdate, update_id, "Update")


@router.post("", response_model=LatestUpdateOut)
def create_update(
    description: str = Form(..., min_length=1),
    file: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_db_session),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    return create_record(db, storage, LatestUpdate, {"description": description.strip()}, file, BUCKET)


@router.put("/{update_id}", response_model=LatestUpdateOut)
def update_update(
    update_id: int,
    description: Optional[str] = Form(default=None),
    file: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_db_session),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    update = get_or_404(db, LatestUpdate, update_id, "Update")
    fields = {"description": description.strip() if description else None}
    return update_record(db, storage, update, fields, file, BUCKET)


@router.delete("/{update_id}")
def delete_update(
    update_id: int,
    db: Session = Depends(get_db_session),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    update = get_or_404(db, LatestUpdate, update_id, "Update")
    delete_record(db, storage, update)
    return {"ok": True}


@router.get("/{update_id}/file")
def download_update_file(
    update_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return file_response(get_or_404(db, LatestUpdate, update_id, "Update"))
