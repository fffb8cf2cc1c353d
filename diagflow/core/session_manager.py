"""Registry of live execution sessions."""

import threading
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.core import ExecutionStatusEnum, ValidationResult
from .exceptions import GraphValidationError, InvalidStateError, NotFoundError
from .execution_engine import ExecutionEngine
from .graph_model import GraphModel
from .graph_validator import GraphValidator
from .logging import get_logger, logging_context

logger = get_logger(__name__)


class SessionInfo(BaseModel):
    """Summary of a registered execution session."""
    session_id: str
    workflow_name: str
    status: ExecutionStatusEnum
    current_node_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class SessionManager:
    """Creates, tracks and discards ExecutionEngine instances by session id.

    Guarded by a re-entrant lock because the API may serve requests from a
    thread pool. Individual engines are not synchronized; callers drive one
    session from one request at a time.
    """

    def __init__(self, max_active_sessions: int = 100, validator: Optional[GraphValidator] = None):
        self.max_active_sessions = max_active_sessions
        self._validator = validator or GraphValidator()
        self._sessions: Dict[str, ExecutionEngine] = {}
        self._created_at: Dict[str, datetime] = {}
        self._lock = threading.RLock()
        logger.info(f"SessionManager initialized (max_active_sessions={max_active_sessions})")

    def create_session(self, graph: GraphModel, workflow_name: str = "Untitled Workflow") -> str:
        """
        Register a new idle session for ``graph``.

        Args:
            graph: The graph to execute; the engine keeps a reference, not a copy
            workflow_name: Name used in logs and reports

        Returns:
            str: The new session id

        Raises:
            GraphValidationError: If the graph has error-severity findings
            InvalidStateError: If the active session limit is reached
        """
        result: ValidationResult = self._validator.validate(graph)
        if not result.is_executable:
            messages = [finding.message for finding in result.errors]
            logger.warning(f"Refusing to start '{workflow_name}': {'; '.join(messages)}")
            raise GraphValidationError(
                f"Workflow '{workflow_name}' is not executable",
                validation_errors=messages,
                workflow_name=workflow_name
            )

        with self._lock:
            if len(self._sessions) >= self.max_active_sessions:
                raise InvalidStateError(
                    f"Active session limit of {self.max_active_sessions} reached",
                    operation="create_session"
                )
            session_id = str(uuid.uuid4())
            self._sessions[session_id] = ExecutionEngine(graph, workflow_name=workflow_name)
            self._created_at[session_id] = datetime.utcnow()

        with logging_context(session_id=session_id, workflow=workflow_name):
            logger.info(f"Created session {session_id} for '{workflow_name}'")
        return session_id

    def get_session(self, session_id: str) -> ExecutionEngine:
        """
        Look up a session.

        Raises:
            NotFoundError: If no session has this id
        """
        with self._lock:
            engine = self._sessions.get(session_id)
        if engine is None:
            raise NotFoundError(f"Session '{session_id}' not found").add_context(session_id=session_id)
        return engine

    def discard_session(self, session_id: str) -> bool:
        """Drop a session. Returns False when the id is unknown."""
        with self._lock:
            engine = self._sessions.pop(session_id, None)
            self._created_at.pop(session_id, None)
        if engine is None:
            return False
        logger.info(f"Discarded session {session_id} ({engine.status.value})")
        return True

    def list_sessions(self) -> List[SessionInfo]:
        with self._lock:
            return [
                SessionInfo(
                    session_id=session_id,
                    workflow_name=engine.workflow_name,
                    status=engine.status,
                    current_node_id=engine.current_node_id,
                    created_at=self._created_at[session_id],
                )
                for session_id, engine in self._sessions.items()
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
