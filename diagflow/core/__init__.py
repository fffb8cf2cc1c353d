"""Core diagnostic workflow engine components."""

from .exceptions import (
    WorkflowEngineError,
    MalformedDocumentError,
    NotFoundError,
    InvalidConnectionError,
    GraphValidationError,
    InvalidStateError,
    ExecutionEngineError,
    NoStartNodeError,
    DanglingReferenceError,
    StorageError,
    ConfigurationError,
)
from .logging import setup_logging, get_logger
from .graph_model import GraphModel
from .graph_validator import GraphValidator, validate_graph
from .execution_engine import ExecutionEngine
from .history_manager import HistoryManager
from .authoring import AuthoringSession
from .session_manager import SessionManager
from .document import import_document, export_document

__all__ = [
    "WorkflowEngineError",
    "MalformedDocumentError",
    "NotFoundError",
    "InvalidConnectionError",
    "GraphValidationError",
    "InvalidStateError",
    "ExecutionEngineError",
    "NoStartNodeError",
    "DanglingReferenceError",
    "StorageError",
    "ConfigurationError",
    "setup_logging",
    "get_logger",
    "GraphModel",
    "GraphValidator",
    "validate_graph",
    "ExecutionEngine",
    "HistoryManager",
    "AuthoringSession",
    "SessionManager",
    "import_document",
    "export_document",
]
