"""Database models and storage layer."""

from .database import Base, create_database_engine, create_tables, drop_tables
from .models import WorkflowDocumentModel, WorkflowVersionModel
from .workflow_store import WorkflowStore, InMemoryWorkflowStore, SqlWorkflowStore

__all__ = [
    "Base",
    "create_database_engine",
    "create_tables",
    "drop_tables",
    "WorkflowDocumentModel",
    "WorkflowVersionModel",
    "WorkflowStore",
    "InMemoryWorkflowStore",
    "SqlWorkflowStore",
]
