"""Data models for the diagnostic workflow engine."""

from .graph import (
    NodeKind,
    BranchHandle,
    Option,
    Position,
    NodeBase,
    Node,
    Edge,
    WorkflowMetadata,
    WorkflowDocument,
    WorkflowSummary,
    parse_node,
)
from .core import (
    ExecutionStatusEnum,
    FindingCode,
    FindingSeverity,
    ValidationFinding,
    ValidationResult,
    AuditEntry,
    ExecutionState,
    SessionReport,
    GraphSnapshot,
)

__all__ = [
    "NodeKind",
    "BranchHandle",
    "Option",
    "Position",
    "NodeBase",
    "Node",
    "Edge",
    "WorkflowMetadata",
    "WorkflowDocument",
    "WorkflowSummary",
    "parse_node",
    "ExecutionStatusEnum",
    "FindingCode",
    "FindingSeverity",
    "ValidationFinding",
    "ValidationResult",
    "AuditEntry",
    "ExecutionState",
    "SessionReport",
    "GraphSnapshot",
]
