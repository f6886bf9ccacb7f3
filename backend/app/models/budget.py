from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.file_fields import FileFieldsMixin


class Budget(FileFieldsMixin, Base):
    __tablename__ = "budgets"

    id = Column(Integer, primary_key=True, index=True)
    # Free-form label such as "2022-23"
    financial_year = Column(String(20), nullable=False, index=True)
    description = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
