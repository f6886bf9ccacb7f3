from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class FileFieldsOut(BaseModel):
    file_name: Optional[str] = None
    file_url: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    file_sha: Optional[str] = None
    file_backend: Optional[str] = None


class BudgetOut(FileFieldsOut):
    id: int
    financial_year: str
    description: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RulesRegulationOut(FileFieldsOut):
    id: int
    year: int
    type: str = Field(..., description="Rules | Regulations")
    description: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DownloadOut(FileFieldsOut):
    id: int
    year: int
    description: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class LatestUpdateOut(FileFieldsOut):
    id: int
    description: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
