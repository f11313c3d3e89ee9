"""ORM models for saved report configurations."""

from sqlalchemy import JSON, Column, DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class SavedReport(Base):
    """A custom report definition saved for reuse."""

    __tablename__ = "saved_report_configs"

    id = Column(String(64), primary_key=True)  # report_<epoch ms>
    name = Column(String(255), nullable=False)
    template_id = Column(String(64), nullable=True)
    description = Column(Text, nullable=True)
    fields = Column(JSON, nullable=True)  # [field name, ...]
    filters = Column(JSON, nullable=True)  # {field: value | [values]}
    group_by = Column(String(64), nullable=True)
    sort_by = Column(String(64), nullable=True)
    sort_order = Column(String(4), default="asc")
    created_at = Column(DateTime(timezone=True), nullable=False)
