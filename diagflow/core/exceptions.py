"""Exceptions raised by the diagnostic workflow engine.

Each error class declares its severity, category and whether retrying can
help; keyword arguments beyond ``message`` become the error's context
(ids of the nodes, sessions or tables involved). ``create_error_response``
turns any of them into the JSON body the API returns.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Which part of the engine an error comes from."""
    DOCUMENT = "document"
    VALIDATION = "validation"
    EXECUTION = "execution"
    STATE = "state"
    STORAGE = "storage"
    CONFIGURATION = "configuration"


class WorkflowEngineError(Exception):
    """Base exception for all diagnostic workflow engine errors."""

    severity = ErrorSeverity.MEDIUM
    category = ErrorCategory.EXECUTION
    recoverable = False

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        **context
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = dict(details or {})
        self.context = {key: value for key, value in context.items() if value is not None}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__
        }

    def add_context(self, **kwargs):
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs):
        self.details.update(kwargs)
        return self


class MalformedDocumentError(WorkflowEngineError):
    """An imported workflow document is structurally invalid.

    ``problems`` lists every individual defect, one string per defect.
    """

    category = ErrorCategory.DOCUMENT

    def __init__(self, message: str, problems: Optional[List[str]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.problems = list(problems or [])
        if self.problems:
            self.add_details(problems=self.problems)


class NotFoundError(WorkflowEngineError):
    """A node, edge, workflow, version or session does not exist."""

    severity = ErrorSeverity.LOW
    category = ErrorCategory.VALIDATION


class InvalidConnectionError(WorkflowEngineError):
    """An edge cannot be created between two nodes."""

    severity = ErrorSeverity.LOW
    category = ErrorCategory.VALIDATION


class GraphValidationError(WorkflowEngineError):
    """A graph has error-severity findings and cannot be executed."""

    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, validation_errors: Optional[List[str]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.validation_errors = list(validation_errors or [])
        if self.validation_errors:
            self.add_details(validation_errors=self.validation_errors)


class InvalidStateError(WorkflowEngineError):
    """An operation was called in a status that does not allow it."""

    category = ErrorCategory.STATE


class ExecutionEngineError(WorkflowEngineError):
    """A run hit a structural problem it cannot continue past."""

    severity = ErrorSeverity.HIGH


class NoStartNodeError(ExecutionEngineError):
    """A run cannot locate a start node."""


class DanglingReferenceError(ExecutionEngineError):
    """An edge or option points at a node that does not exist."""


class StorageError(WorkflowEngineError):
    """A workflow store operation failed."""

    severity = ErrorSeverity.HIGH
    category = ErrorCategory.STORAGE
    recoverable = True


class ConfigurationError(WorkflowEngineError):
    """Settings are invalid or unusable in this environment.

    ``problems`` lists every failed check.
    """

    severity = ErrorSeverity.HIGH
    category = ErrorCategory.CONFIGURATION

    def __init__(self, message: str, problems: Optional[List[str]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.problems = list(problems or [])
        if self.problems:
            self.add_details(problems=self.problems)


def create_error_response(error: WorkflowEngineError) -> Dict[str, Any]:
    """Create a standardized error response from a WorkflowEngineError."""
    return {
        "error": error.error_code,
        "message": error.message,
        "details": {
            **error.details,
            "severity": error.severity.value,
            "category": error.category.value,
            "recoverable": error.recoverable,
            "timestamp": error.timestamp.isoformat()
        },
        "context": error.context
    }
