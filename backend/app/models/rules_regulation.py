from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
import enum

from app.db.base import Base
from app.models.file_fields import FileFieldsMixin


class RuleType(str, enum.Enum):
    rules = "Rules"
    regulations = "Regulations"


class RulesRegulation(FileFieldsMixin, Base):
    __tablename__ = "rules_regulations"

    id = Column(Integer, primary_key=True, index=True)
    year = Column(Integer, nullable=False, index=True)
    # Stored as the display value ("Rules" / "Regulations")
    type = Column(String(20), nullable=False, default=RuleType.rules.value)
    description = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
