"""Execution engine walking a diagnostic workflow one answer at a time."""

import logging
from datetime import datetime
from typing import Any, List, Optional

from ..models.core import AuditEntry, ExecutionState, ExecutionStatusEnum, SessionReport
from ..models.graph import Edge, NodeBase, canonical_handle
from .exceptions import DanglingReferenceError, InvalidStateError, NoStartNodeError
from .graph_model import GraphModel
from .graph_validator import find_start_node
from .logging import get_logger, log_with_context

logger = get_logger(__name__)


class ExecutionEngine:
    """State machine driving one guided session over a GraphModel.

    Statuses move ``idle -> running -> (paused <-> running) -> completed``,
    or ``running -> failed`` when a branch points at a node that does not
    exist. The engine only reads the graph, so several engines can share one
    GraphModel. Cycles are tolerated: ``visited`` may repeat and no step
    bound is enforced.
    """

    def __init__(self, graph: GraphModel, workflow_name: str = "Untitled Workflow"):
        self.graph = graph
        self.workflow_name = workflow_name
        self._state = ExecutionState()

    @property
    def state(self) -> ExecutionState:
        """Copy of the current execution state."""
        return self._state.model_copy(deep=True)

    @property
    def status(self) -> ExecutionStatusEnum:
        return self._state.status

    @property
    def current_node_id(self) -> Optional[str]:
        return self._state.current_node_id

    @property
    def current_node(self) -> Optional[NodeBase]:
        if self._state.current_node_id is None:
            return None
        return self.graph.get_node(self._state.current_node_id)

    @property
    def visited(self) -> List[str]:
        return list(self._state.visited)

    @property
    def audit_trail(self) -> List[AuditEntry]:
        return [entry.model_copy() for entry in self._state.audit_trail]

    def visit_count(self, node_id: str) -> int:
        """How often ``node_id`` has been entered; >1 means a cycle was taken."""
        return self._state.visited.count(node_id)

    def _require(self, operation: str, *allowed: ExecutionStatusEnum) -> None:
        if self._state.status not in allowed:
            raise InvalidStateError(
                f"Cannot {operation} while session is {self._state.status.value}",
                operation=operation,
                status=self._state.status.value
            )

    def start(self) -> ExecutionState:
        """
        Enter the start node and begin the session.

        Raises:
            InvalidStateError: If the session is not idle
            NoStartNodeError: If no node lacks incoming edges (status becomes failed)
        """
        self._require("start", ExecutionStatusEnum.IDLE)

        start_node_id = find_start_node(self.graph)
        now = datetime.utcnow()
        if start_node_id is None:
            reason = "No start node: every node has an incoming edge" if len(self.graph) else "Workflow has no nodes"
            self._fail(reason, now)
            raise NoStartNodeError(reason)

        self._state.status = ExecutionStatusEnum.RUNNING
        self._state.current_node_id = start_node_id
        self._state.visited.append(start_node_id)
        self._state.started_at = now
        log_with_context(
            logger, logging.INFO,
            f"Started session for '{self.workflow_name}' at node {start_node_id}",
            workflow=self.workflow_name, node_id=start_node_id
        )
        return self.state

    def submit_answer(self, answer: Any) -> ExecutionState:
        """
        Record the operator's answer at the current node and advance.

        The next node is resolved in order: an explicit ``nextNodeId`` on the
        selected option, then the outgoing edge whose handle matches the
        answer, then the single unhandled outgoing edge. When nothing
        resolves the current node is terminal and the session completes.

        Raises:
            InvalidStateError: If the session is not running
            DanglingReferenceError: If the resolved target does not exist (status becomes failed)
        """
        self._require("submit an answer", ExecutionStatusEnum.RUNNING)
        node_id = self._state.current_node_id
        if node_id is None:
            raise InvalidStateError(
                "Cannot submit an answer without a current node",
                operation="submit_answer",
                status=self._state.status.value
            )

        now = datetime.utcnow()
        self._state.answers[node_id] = answer
        self._state.audit_trail.append(AuditEntry(node_id=node_id, answer=answer, timestamp=now))

        node = self.graph.get_node(node_id)
        if node is None:
            reason = f"Current node '{node_id}' no longer exists in the workflow"
            self._fail(reason, now)
            raise DanglingReferenceError(reason, node_id=node_id, target_id=node_id)

        next_node_id = self._resolve_next(node, answer)
        if next_node_id is None:
            self._state.status = ExecutionStatusEnum.COMPLETED
            self._state.current_node_id = None
            self._state.ended_at = now
            logger.info(f"Session for '{self.workflow_name}' completed at terminal node {node_id}")
            return self.state

        if not self.graph.has_node(next_node_id):
            reason = f"Node '{node_id}' branches to non-existent node '{next_node_id}'"
            self._fail(reason, now)
            raise DanglingReferenceError(reason, node_id=node_id, target_id=next_node_id)

        self._state.current_node_id = next_node_id
        self._state.visited.append(next_node_id)
        logger.debug(f"Advanced {node_id} -> {next_node_id} on answer {answer!r}")
        return self.state

    def _resolve_next(self, node: NodeBase, answer: Any) -> Optional[str]:
        option = node.find_option(answer)
        if option is not None and option.next_node_id:
            return option.next_node_id

        edges = self.graph.outgoing_edges(node.id)
        edge = self._select_edge(edges, option.handle if option else None, canonical_handle(answer))
        return edge.target if edge else None

    @staticmethod
    def _select_edge(edges: List[Edge], option_handle: Optional[str], answer_handle: str) -> Optional[Edge]:
        for handle in (option_handle, answer_handle):
            if handle is None:
                continue
            for edge in edges:
                if edge.source_handle == handle:
                    return edge

        defaults = [edge for edge in edges if edge.source_handle is None]
        if len(defaults) == 1:
            return defaults[0]
        return None

    def pause(self) -> ExecutionState:
        """Pause a running session."""
        self._require("pause", ExecutionStatusEnum.RUNNING)
        self._state.status = ExecutionStatusEnum.PAUSED
        logger.info(f"Session for '{self.workflow_name}' paused at node {self._state.current_node_id}")
        return self.state

    def resume(self) -> ExecutionState:
        """Resume a paused session."""
        self._require("resume", ExecutionStatusEnum.PAUSED)
        self._state.status = ExecutionStatusEnum.RUNNING
        logger.info(f"Session for '{self.workflow_name}' resumed at node {self._state.current_node_id}")
        return self.state

    def toggle_pause(self) -> ExecutionState:
        """Switch between running and paused."""
        if self._state.status == ExecutionStatusEnum.PAUSED:
            return self.resume()
        return self.pause()

    def reset(self) -> ExecutionState:
        """Return to idle, discarding visited nodes, answers and timestamps."""
        self._state = ExecutionState()
        logger.info(f"Session for '{self.workflow_name}' reset")
        return self.state

    def _fail(self, reason: str, when: datetime) -> None:
        self._state.status = ExecutionStatusEnum.FAILED
        self._state.failure_reason = reason
        self._state.ended_at = when
        logger.error(f"Session for '{self.workflow_name}' failed: {reason}")

    def report(self) -> SessionReport:
        """Build a report of the session so far."""
        state = self._state
        duration = None
        if state.started_at is not None:
            end = state.ended_at or datetime.utcnow()
            duration = (end - state.started_at).total_seconds()

        total = len(self.graph)
        distinct = len(set(state.visited))
        progress = 100.0 if state.status == ExecutionStatusEnum.COMPLETED else (
            round(distinct / total * 100, 1) if total else 0.0
        )

        return SessionReport(
            workflow_name=self.workflow_name,
            status=state.status,
            visited=list(state.visited),
            answers=dict(state.answers),
            audit_trail=[entry.model_copy() for entry in state.audit_trail],
            started_at=state.started_at,
            ended_at=state.ended_at,
            duration_seconds=duration,
            steps_answered=len(state.audit_trail),
            total_steps=total,
            progress=progress,
            failure_reason=state.failure_reason,
        )
