"""Persistence of workflow documents keyed by name and folder."""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import Engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..core.document import document_to_dict
from ..core.exceptions import StorageError
from ..core.logging import get_logger
from ..models.graph import WorkflowDocument, WorkflowSummary, WorkflowVersion
from .database import create_session_factory, create_tables
from .models import WorkflowDocumentModel, WorkflowVersionModel

logger = get_logger(__name__)

# Saved revisions kept per workflow; older ones are dropped on save
MAX_SAVED_VERSIONS = 20


def _summarize(document: WorkflowDocument) -> WorkflowSummary:
    return WorkflowSummary(
        name=document.metadata.name,
        folder=document.metadata.folder,
        updated_at=document.metadata.updated_at,
        is_active=document.metadata.is_active,
        node_count=len(document.nodes),
    )


def _next_version(document: WorkflowDocument, previous_version: Optional[int]) -> int:
    """First save keeps the document's version; every later save adds one."""
    if previous_version is None:
        return document.metadata.version
    return previous_version + 1


class WorkflowStore(ABC):
    """Storage contract for workflow documents.

    ``save`` is idempotent per ``(name, folder)``: the last write wins but
    the ``createdAt`` of the first save is kept. Every save also bumps
    ``metadata.version`` and records a revision; the newest
    ``MAX_SAVED_VERSIONS`` revisions can be listed and loaded back.
    """

    @abstractmethod
    async def save(self, document: WorkflowDocument, description: str = "") -> WorkflowDocument:
        """Persist ``document`` and return the stored version."""

    @abstractmethod
    async def load(self, name: str, folder: str = "default") -> Optional[WorkflowDocument]:
        """Return the stored document, or None when it does not exist."""

    @abstractmethod
    async def list_workflows(self, folder: Optional[str] = None) -> List[WorkflowSummary]:
        """List stored workflows, optionally limited to one folder."""

    @abstractmethod
    async def delete(self, name: str, folder: str = "default") -> bool:
        """Delete a stored workflow and its revisions; False when nothing was stored."""

    @abstractmethod
    async def list_versions(self, name: str, folder: str = "default") -> List[WorkflowVersion]:
        """Saved revisions, newest first; empty when the workflow is unknown."""

    @abstractmethod
    async def load_version(self, name: str, folder: str, version: int) -> Optional[WorkflowDocument]:
        """The document as it was saved at ``version``, or None."""


class InMemoryWorkflowStore(WorkflowStore):
    """Process-local store, mainly for tests and single-user tooling."""

    def __init__(self):
        self._documents: Dict[Tuple[str, str], WorkflowDocument] = {}
        # Oldest first
        self._versions: Dict[Tuple[str, str], List[Tuple[WorkflowVersion, WorkflowDocument]]] = {}
        self._lock = asyncio.Lock()

    async def save(self, document: WorkflowDocument, description: str = "") -> WorkflowDocument:
        key = (document.metadata.name, document.metadata.folder)
        async with self._lock:
            stored = document.model_copy(deep=True)
            existing = self._documents.get(key)
            if existing is not None:
                stored.metadata.created_at = existing.metadata.created_at
            stored.metadata.version = _next_version(
                document, existing.metadata.version if existing is not None else None
            )
            self._documents[key] = stored

            revision = WorkflowVersion(
                version=stored.metadata.version,
                saved_at=datetime.utcnow(),
                description=description,
                node_count=len(stored.nodes),
            )
            history = self._versions.setdefault(key, [])
            history.append((revision, stored.model_copy(deep=True)))
            del history[:-MAX_SAVED_VERSIONS]
        logger.debug(f"Saved workflow '{key[0]}' in folder '{key[1]}' as version {stored.metadata.version}")
        return stored.model_copy(deep=True)

    async def load(self, name: str, folder: str = "default") -> Optional[WorkflowDocument]:
        document = self._documents.get((name, folder))
        return document.model_copy(deep=True) if document is not None else None

    async def list_workflows(self, folder: Optional[str] = None) -> List[WorkflowSummary]:
        return [
            _summarize(document)
            for (_, doc_folder), document in sorted(self._documents.items())
            if folder is None or doc_folder == folder
        ]

    async def delete(self, name: str, folder: str = "default") -> bool:
        async with self._lock:
            self._versions.pop((name, folder), None)
            return self._documents.pop((name, folder), None) is not None

    async def list_versions(self, name: str, folder: str = "default") -> List[WorkflowVersion]:
        history = self._versions.get((name, folder), [])
        return [revision.model_copy() for revision, _ in reversed(history)]

    async def load_version(self, name: str, folder: str, version: int) -> Optional[WorkflowDocument]:
        for revision, document in self._versions.get((name, folder), []):
            if revision.version == version:
                return document.model_copy(deep=True)
        return None


class SqlWorkflowStore(WorkflowStore):
    """SQLAlchemy-backed store; one row per ``(name, folder)`` plus its revisions.

    Database calls are blocking, so every public method runs its query in
    the thread pool instead of on the event loop.
    """

    def __init__(self, engine: Engine, create_schema: bool = True):
        self.engine = engine
        self._session_factory = create_session_factory(engine)
        if create_schema:
            create_tables(engine)

    def _storage_error(self, operation: str, table: str, error: SQLAlchemyError) -> StorageError:
        logger.error(f"Database error during {operation} on {table}: {str(error)}")
        return StorageError(f"Failed to {operation} workflow: {str(error)}", operation=operation, table=table)

    @staticmethod
    def _find_row(db: Session, name: str, folder: str) -> Optional[WorkflowDocumentModel]:
        return db.execute(
            select(WorkflowDocumentModel).where(
                WorkflowDocumentModel.name == name,
                WorkflowDocumentModel.folder == folder,
            )
        ).scalar_one_or_none()

    async def save(self, document: WorkflowDocument, description: str = "") -> WorkflowDocument:
        """
        Insert or replace the row for the document's name and folder.

        Raises:
            StorageError: If the database operation fails
        """
        metadata = document.metadata
        logger.info(f"Saving workflow '{metadata.name}' in folder '{metadata.folder}'")
        try:
            return await run_in_threadpool(self._save, document, description)
        except SQLAlchemyError as e:
            raise self._storage_error("save", WorkflowDocumentModel.__tablename__, e)

    def _save(self, document: WorkflowDocument, description: str) -> WorkflowDocument:
        metadata = document.metadata
        stored = document.model_copy(deep=True)
        with self._session_factory() as db:
            row = self._find_row(db, metadata.name, metadata.folder)
            previous_version = None
            if row is None:
                row = WorkflowDocumentModel(
                    name=metadata.name,
                    folder=metadata.folder,
                    created_at=metadata.created_at,
                )
                db.add(row)
            else:
                previous_version = row.document.get("metadata", {}).get("version", 0)
                if row.created_at is not None:
                    stored.metadata.created_at = row.created_at
            stored.metadata.version = _next_version(document, previous_version)

            payload = document_to_dict(stored)
            row.appliance = metadata.appliance
            row.symptom = metadata.symptom
            row.is_active = metadata.is_active
            row.node_count = len(stored.nodes)
            row.document = payload
            row.updated_at = metadata.updated_at or datetime.utcnow()

            db.add(WorkflowVersionModel(
                name=metadata.name,
                folder=metadata.folder,
                version=stored.metadata.version,
                description=description,
                node_count=len(stored.nodes),
                document=payload,
                saved_at=datetime.utcnow(),
            ))
            db.flush()
            self._prune_versions(db, metadata.name, metadata.folder)
            db.commit()
        return stored

    @staticmethod
    def _prune_versions(db: Session, name: str, folder: str) -> None:
        stale_ids = db.execute(
            select(WorkflowVersionModel.id)
            .where(WorkflowVersionModel.name == name, WorkflowVersionModel.folder == folder)
            .order_by(WorkflowVersionModel.version.desc())
            .offset(MAX_SAVED_VERSIONS)
        ).scalars().all()
        if stale_ids:
            db.execute(delete(WorkflowVersionModel).where(WorkflowVersionModel.id.in_(stale_ids)))

    async def load(self, name: str, folder: str = "default") -> Optional[WorkflowDocument]:
        """
        Load a stored workflow.

        Raises:
            StorageError: If the database operation fails
        """
        logger.debug(f"Loading workflow '{name}' from folder '{folder}'")
        try:
            return await run_in_threadpool(self._load, name, folder)
        except SQLAlchemyError as e:
            raise self._storage_error("load", WorkflowDocumentModel.__tablename__, e)

    def _load(self, name: str, folder: str) -> Optional[WorkflowDocument]:
        with self._session_factory() as db:
            row = self._find_row(db, name, folder)
            return WorkflowDocument.model_validate(row.document) if row is not None else None

    async def list_workflows(self, folder: Optional[str] = None) -> List[WorkflowSummary]:
        try:
            return await run_in_threadpool(self._list_workflows, folder)
        except SQLAlchemyError as e:
            raise self._storage_error("list", WorkflowDocumentModel.__tablename__, e)

    def _list_workflows(self, folder: Optional[str]) -> List[WorkflowSummary]:
        with self._session_factory() as db:
            query = select(WorkflowDocumentModel).order_by(
                WorkflowDocumentModel.folder, WorkflowDocumentModel.name
            )
            if folder is not None:
                query = query.where(WorkflowDocumentModel.folder == folder)
            return [
                WorkflowSummary(
                    name=row.name,
                    folder=row.folder,
                    updated_at=row.updated_at,
                    is_active=row.is_active,
                    node_count=row.node_count,
                )
                for row in db.execute(query).scalars().all()
            ]

    async def delete(self, name: str, folder: str = "default") -> bool:
        try:
            deleted = await run_in_threadpool(self._delete, name, folder)
        except SQLAlchemyError as e:
            raise self._storage_error("delete", WorkflowDocumentModel.__tablename__, e)
        if deleted:
            logger.info(f"Deleted workflow '{name}' from folder '{folder}'")
        return deleted

    def _delete(self, name: str, folder: str) -> bool:
        with self._session_factory() as db:
            row = self._find_row(db, name, folder)
            if row is None:
                return False
            db.delete(row)
            db.execute(delete(WorkflowVersionModel).where(
                WorkflowVersionModel.name == name,
                WorkflowVersionModel.folder == folder,
            ))
            db.commit()
        return True

    async def list_versions(self, name: str, folder: str = "default") -> List[WorkflowVersion]:
        try:
            return await run_in_threadpool(self._list_versions, name, folder)
        except SQLAlchemyError as e:
            raise self._storage_error("list versions of", WorkflowVersionModel.__tablename__, e)

    def _list_versions(self, name: str, folder: str) -> List[WorkflowVersion]:
        with self._session_factory() as db:
            rows = db.execute(
                select(WorkflowVersionModel)
                .where(WorkflowVersionModel.name == name, WorkflowVersionModel.folder == folder)
                .order_by(WorkflowVersionModel.version.desc())
            ).scalars().all()
            return [
                WorkflowVersion(
                    version=row.version,
                    saved_at=row.saved_at,
                    description=row.description,
                    node_count=row.node_count,
                )
                for row in rows
            ]

    async def load_version(self, name: str, folder: str, version: int) -> Optional[WorkflowDocument]:
        try:
            return await run_in_threadpool(self._load_version, name, folder, version)
        except SQLAlchemyError as e:
            raise self._storage_error("load version of", WorkflowVersionModel.__tablename__, e)

    def _load_version(self, name: str, folder: str, version: int) -> Optional[WorkflowDocument]:
        with self._session_factory() as db:
            row = db.execute(
                select(WorkflowVersionModel).where(
                    WorkflowVersionModel.name == name,
                    WorkflowVersionModel.folder == folder,
                    WorkflowVersionModel.version == version,
                )
            ).scalar_one_or_none()
            return WorkflowDocument.model_validate(row.document) if row is not None else None
