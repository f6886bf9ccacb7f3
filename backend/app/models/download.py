from sqlalchemy import Column, Integer, Text, DateTime
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.file_fields import FileFieldsMixin


class Download(FileFieldsMixin, Base):
    __tablename__ = "downloads"

    id = Column(Integer, primary_key=True, index=True)
    year = Column(Integer, nullable=False, index=True)
    description = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
