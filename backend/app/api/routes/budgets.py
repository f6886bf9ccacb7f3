from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session
from typing import List, Optional

from app.db.session import get_db_session
from app.models.budget import Budget
from app.models.user import User
from app.schemas.records import BudgetOut
from app.api.deps import get_current_user, require_writable_user
from app.services.record_files import create_record, delete_record, file_response, get_or_404, update_record
from app.storage.service import FileStorage, get_file_storage


router = APIRouter(prefix="/budgets", tags=["budgets"])

BUCKET = "budgets"


@router.get("", response_model=List[BudgetOut])
def list_budgets(
    financial_year: Optional[str] = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    q = db.query(Budget)
    if financial_year:
        q = q.filter(Budget.financial_year == financial_year.strip())
    return q.order_by(Budget.financial_year.desc(), Budget.created_at.desc()).all()


@router.get("/{budget_id}", response_model=BudgetOut)
def get_budget(
    budget_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return get_or_404(db, Budget, budget_id, "Budget")


@router.post("", response_model=BudgetOut)
def create_budget(
    financial_year: str = Form(..., min_length=1, max_length=20),
    description: str = Form(..., min_length=1),
    file: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_db_session),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    fields = {"financial_year": financial_year.strip(), "description": description.strip()}
    return create_record(db, storage, Budget, fields, file, BUCKET)


@router.put("/{budget_id}", response_model=BudgetOut)
def update_budget(
    budget_id: int,
    financial_year: Optional[str] = Form(default=None, max_length=20),
    description: Optional[str] = Form(default=None),
    file: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_db_session),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    budget = get_or_404(db, Budget, budget_id, "Budget")
    fields = {
        "financial_year": financial_year.strip() if financial_year else None,
        "description": description.strip() if description else None,
    }
    return update_record(db, storage, budget, fields, file, BUCKET)


@router.delete("/{budget_id}")
def delete_budget(
    budget_id: int,
    db: Session = Depends(get_db_session),
    storage: FileStorage = Depends(get_file_storage),
    current_user: User = Depends(require_writable_user),
):
    budget = get_or_404(db, Budget, budget_id, "Budget")
    delete_record(db, storage, budget)
    return {"ok": True}


@router.get("/{budget_id}/file")
def download_budget_file(
    budget_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return file_response(get_or_404(db, Budget, budget_id, "Budget"))
