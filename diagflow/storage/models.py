"""SQLAlchemy database models for stored workflow documents."""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, Integer, Boolean, UniqueConstraint
from .database import Base


class WorkflowDocumentModel(Base):
    """Database model for saved workflow documents, keyed by name and folder."""
    __tablename__ = "workflow_documents"
    __table_args__ = (
        UniqueConstraint("name", "folder", name="uq_workflow_documents_name_folder"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    folder = Column(String, nullable=False, default="default")
    appliance = Column(String)
    symptom = Column(String)
    is_active = Column(Boolean, nullable=False, default=True)
    node_count = Column(Integer, nullable=False, default=0)
    document = Column(JSON, nullable=False)  # Complete document in its wire format
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class WorkflowVersionModel(Base):
    """Database model for the saved revisions of a workflow."""
    __tablename__ = "workflow_versions"
    __table_args__ = (
        UniqueConstraint("name", "folder", "version", name="uq_workflow_versions_name_folder_version"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, index=True)
    folder = Column(String, nullable=False, default="default")
    version = Column(Integer, nullable=False)
    description = Column(String, nullable=False, default="")
    node_count = Column(Integer, nullable=False, default=0)
    document = Column(JSON, nullable=False)
    saved_at = Column(DateTime, default=datetime.utcnow)
