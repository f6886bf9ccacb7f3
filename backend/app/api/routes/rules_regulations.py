from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session
from typing import List, Optional

from app.db.session import get_db_session
from app.models.rules_regulation import RulesRegulation, RuleType
from app.models.user import User
from app.schemas.records import RulesRegulationOut
from app.api.deps import get_current_user, require_writable_user
from app.services.record_files import create_record, delete_record, file_response, get_or_404, update_record
from app.storage.service import FileStorage, get_file_storage


router = APIRouter(prefix="/rules-regulations", tags=["rules-regulations"])

BUCKET = "rules"


def _norm_type(value: Optional[str]) -> Optional[str]:
    """Accept 'rules'/'REGULATIONS' etc.; store the display value."""
    if value is None:
        return None
    v = value.strip().lower()
    for t in RuleType:
        if t.value.lower() == v:
            return t.value
    raise HTTPException(status_code=400, detail="type must be 'Rules' or 'Regulations'")


@router.get("", response_model=List[RulesRegulationOut])
def list_rules(
    year: Optional[int] = None,
    type: Optional[str] = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    q = db.query(RulesRegulation)
    if year:
        q = q.filter(RulesRegulation.year == year)
    if type:
        q = q.filter(RulesRegulation.type == _norm_type(type))
    return q.order_by(RulesRegulation.year.desc(), RulesRegulation.created_at.desc()).all()


@router.get("/{rule_id}", response_model=RulesRegulationOut)
def get_rule(
    rule_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return get_or_404(db, RulesRegulation, rule_id, "Rule/regulation")


@router.post("", response_model=RulesRegulationOut)
def create_rule(
    year: int = Form(..., ge=1900, le=2200),
    type: str = Form(default=RuleType.rules.value),
    description: str = Form(..., min_length=1),
    file: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_db_session),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    fields = {"year": year, "type": _norm_type(type), "description": description.strip()}
    return create_record(db, storage, RulesRegulation, fields, file, BUCKET)


@router.put("/{rule_id}", response_model=RulesRegulationOut)
def update_rule(
    rule_id: int,
    year: Optional[int] = Form(default=None, ge=1900, le=2200),
    type: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
    file: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_db_session),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    rule = get_or_404(db, RulesRegulation, rule_id, "Rule/regulation")
    fields = {
        "year": year,
        "type": _norm_type(type),
        "description": description.strip() if description else None,
    }
    return update_record(db, storage, rule, fields, file, BUCKET)


@router.delete("/{rule_id}")
def delete_rule(
    rule_id: int,
    db: Session = Depends(get_db_session),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    rule = get_or_404(db, RulesRegulation, rule_id, "Rule/regulation")
    delete_record(db, storage, rule)
    return {"ok": True}


@router.get("/{rule_id}/file")
def download_rule_file(
    rule_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return file_response(get_or_404(db, RulesRegulation, rule_id, "Rule/regulation"))
