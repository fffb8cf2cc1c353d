"""Core Pydantic models for validation findings, execution state and history."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field

from .graph import Edge, Node, WorkflowBaseModel


class ExecutionStatusEnum(str, Enum):
    """Enumeration of execution session statuses."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class FindingSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class FindingCode(str, Enum):
    """Codes reported by the graph validator."""
    NO_START_NODE = "NoStartNode"
    MULTIPLE_START_NODES = "MultipleStartNodes"
    NO_END_NODE = "NoEndNode"
    UNREACHABLE_NODE = "UnreachableNode"
    DISCONNECTED_NODE = "DisconnectedNode"
    MISSING_CONTENT = "MissingContent"
    QUESTION_WITHOUT_OPTIONS = "QuestionWithoutOptions"
    DANGLING_OPTION_TARGET = "DanglingOptionTarget"
    DUPLICATE_TITLE = "DuplicateTitle"


class ValidationFinding(BaseModel):
    """A single structural problem found in a workflow graph."""
    severity: FindingSeverity = Field(..., description="error blocks execution, warning is advisory")
    node_id: Optional[str] = Field(None, description="Node the finding is about, if any")
    code: FindingCode = Field(..., description="Machine-readable finding code")
    message: str = Field(..., description="Human-readable explanation")


class ValidationResult(BaseModel):
    """Result of graph validation."""
    findings: List[ValidationFinding] = Field(default_factory=list)
    start_node_id: Optional[str] = Field(None, description="Chosen (possibly provisional) start node")
    end_node_ids: List[str] = Field(default_factory=list, description="Terminal nodes in document order")

    @property
    def errors(self) -> List[ValidationFinding]:
        return [f for f in self.findings if f.severity == FindingSeverity.ERROR]

    @property
    def warnings(self) -> List[ValidationFinding]:
        return [f for f in self.findings if f.severity == FindingSeverity.WARNING]

    @property
    def is_executable(self) -> bool:
        """A document is executable iff it has no error-severity findings."""
        return not self.errors

    def codes(self) -> List[FindingCode]:
        return [f.code for f in self.findings]

    def summary(self) -> Dict[str, Any]:
        return {
            "is_executable": self.is_executable,
            "start_node_id": self.start_node_id,
            "end_node_ids": self.end_node_ids,
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "findings": [f.model_dump(mode="json") for f in self.findings],
        }


class AuditEntry(WorkflowBaseModel):
    """One recorded answer in an execution session."""
    node_id: str = Field(..., description="Node at which the answer was given")
    answer: Any = Field(None, description="Answer as submitted by the operator")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ExecutionState(WorkflowBaseModel):
    """State of one guided diagnostic session."""
    status: ExecutionStatusEnum = Field(default=ExecutionStatusEnum.IDLE)
    current_node_id: Optional[str] = Field(None, description="Node awaiting an answer")
    visited: List[str] = Field(default_factory=list, description="Entered nodes in order, repeats allowed")
    answers: Dict[str, Any] = Field(default_factory=dict, description="Latest answer per node")
    audit_trail: List[AuditEntry] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    failure_reason: Optional[str] = None


class SessionReport(WorkflowBaseModel):
    """Summary of a session suitable for display or export."""
    workflow_name: str
    status: ExecutionStatusEnum
    visited: List[str]
    answers: Dict[str, Any]
    audit_trail: List[AuditEntry]
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    steps_answered: int = 0
    total_steps: int = 0
    progress: float = Field(0.0, description="Share of distinct steps visited, in percent")
    failure_reason: Optional[str] = None


class GraphSnapshot(WorkflowBaseModel):
    """Immutable copy of the graph state used for undo/redo."""
    model_config = ConfigDict(frozen=True)

    nodes: Tuple[Node, ...] = ()
    edges: Tuple[Edge, ...] = ()
    node_counter: int = 1
