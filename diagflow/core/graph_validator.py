"""Structural analysis of workflow graphs."""

from collections import deque
from typing import Dict, List, Optional, Set

from ..models.core import FindingCode, FindingSeverity, ValidationFinding, ValidationResult
from ..models.graph import BranchingNode, NodeBase
from .graph_model import GraphModel
from .logging import get_logger

logger = get_logger(__name__)


def find_start_candidates(graph: GraphModel) -> List[str]:
    """Node ids with no incoming edge, in document order."""
    targets = {edge.target for edge in graph.edges}
    return [node.id for node in graph.nodes if node.id not in targets]


def find_start_node(graph: GraphModel) -> Optional[str]:
    """First start candidate by document order, or None."""
    candidates = find_start_candidates(graph)
    return candidates[0] if candidates else None


class GraphValidator:
    """Pure, side-effect-free structural analysis of a GraphModel.

    ``validate`` runs in a single O(N+E) pass and never mutates the graph.
    Re-running it on an unchanged graph yields identical findings.
    """

    def validate(self, graph: GraphModel) -> ValidationResult:
        """
        Analyse a graph and report errors and warnings.

        Args:
            graph: The graph to analyse

        Returns:
            ValidationResult: Findings plus the chosen start node and end nodes
        """
        nodes = graph.nodes
        findings: List[ValidationFinding] = []

        incoming: Dict[str, Set[str]] = {node.id: set() for node in nodes}
        outgoing: Dict[str, Set[str]] = {node.id: set() for node in nodes}
        for edge in graph.edges:
            if edge.source in outgoing:
                outgoing[edge.source].add(edge.target)
            if edge.target in incoming:
                incoming[edge.target].add(edge.source)

        start_candidates = [node.id for node in nodes if not incoming[node.id]]
        start_node_id = start_candidates[0] if start_candidates else None

        if nodes and not start_candidates:
            findings.append(ValidationFinding(
                severity=FindingSeverity.ERROR,
                code=FindingCode.NO_START_NODE,
                message="No node without incoming edges; a cycle may cover every node",
            ))
        elif len(start_candidates) > 1:
            findings.append(ValidationFinding(
                severity=FindingSeverity.WARNING,
                node_id=start_node_id,
                code=FindingCode.MULTIPLE_START_NODES,
                message=(
                    f"{len(start_candidates)} possible start nodes "
                    f"({', '.join(start_candidates)}); using '{start_node_id}'"
                ),
            ))

        end_node_ids = [node.id for node in nodes if not outgoing[node.id]]
        if nodes and not end_node_ids:
            findings.append(ValidationFinding(
                severity=FindingSeverity.WARNING,
                code=FindingCode.NO_END_NODE,
                message="No terminal node; the workflow can run indefinitely",
            ))

        if start_candidates:
            reachable = self._reachable_from(start_candidates, outgoing)
            for node in nodes:
                if node.id not in reachable:
                    findings.append(ValidationFinding(
                        severity=FindingSeverity.WARNING,
                        node_id=node.id,
                        code=FindingCode.UNREACHABLE_NODE,
                        message=f"Node {self._describe(node)} is unreachable from every start node",
                    ))

        if len(nodes) > 1:
            for node in nodes:
                if not incoming[node.id] and not outgoing[node.id]:
                    findings.append(ValidationFinding(
                        severity=FindingSeverity.WARNING,
                        node_id=node.id,
                        code=FindingCode.DISCONNECTED_NODE,
                        message=f"Node {self._describe(node)} is not connected to the workflow",
                    ))

        findings.extend(self._check_content(nodes))
        findings.extend(self._check_options(graph, nodes))

        result = ValidationResult(
            findings=findings,
            start_node_id=start_node_id,
            end_node_ids=end_node_ids,
        )
        logger.debug(
            f"Graph validation completed. Executable: {result.is_executable}, "
            f"Errors: {len(result.errors)}, Warnings: {len(result.warnings)}"
        )
        return result

    @staticmethod
    def _reachable_from(start_node_ids: List[str], outgoing: Dict[str, Set[str]]) -> Set[str]:
        """Breadth-first traversal following outgoing edges from every seed."""
        reachable = set(start_node_ids)
        queue = deque(start_node_ids)
        while queue:
            current = queue.popleft()
            for neighbor in outgoing.get(current, ()):
                if neighbor not in reachable:
                    reachable.add(neighbor)
                    queue.append(neighbor)
        return reachable

    def _check_content(self, nodes: List[NodeBase]) -> List[ValidationFinding]:
        findings = []
        titles: Dict[str, List[str]] = {}
        for node in nodes:
            title = node.title.strip()
            if not title:
                findings.append(ValidationFinding(
                    severity=FindingSeverity.ERROR,
                    node_id=node.id,
                    code=FindingCode.MISSING_CONTENT,
                    message=f"Node '{node.id}' is missing a title",
                ))
            elif not node.content.strip():
                findings.append(ValidationFinding(
                    severity=FindingSeverity.WARNING,
                    node_id=node.id,
                    code=FindingCode.MISSING_CONTENT,
                    message=f"Node {self._describe(node)} has no body content",
                ))
            if title:
                titles.setdefault(title.lower(), []).append(node.id)

        for node_ids in titles.values():
            if len(node_ids) > 1:
                for node_id in node_ids:
                    findings.append(ValidationFinding(
                        severity=FindingSeverity.WARNING,
                        node_id=node_id,
                        code=FindingCode.DUPLICATE_TITLE,
                        message=f"Node '{node_id}' shares its title with {len(node_ids) - 1} other node(s)",
                    ))
        return findings

    def _check_options(self, graph: GraphModel, nodes: List[NodeBase]) -> List[ValidationFinding]:
        findings = []
        for node in nodes:
            if isinstance(node, BranchingNode) and not node.branch_options:
                findings.append(ValidationFinding(
                    severity=FindingSeverity.WARNING,
                    node_id=node.id,
                    code=FindingCode.QUESTION_WITHOUT_OPTIONS,
                    message=f"Branching node {self._describe(node)} has no response options",
                ))
            for option in node.branch_options:
                if option.next_node_id and not graph.has_node(option.next_node_id):
                    findings.append(ValidationFinding(
                        severity=FindingSeverity.ERROR,
                        node_id=node.id,
                        code=FindingCode.DANGLING_OPTION_TARGET,
                        message=(
                            f"Option '{option.id}' of node '{node.id}' points at "
                            f"non-existent node '{option.next_node_id}'"
                        ),
                    ))
        return findings

    @staticmethod
    def _describe(node: NodeBase) -> str:
        return f"'{node.title}' ({node.id})" if node.title else f"'{node.id}'"


def validate_graph(graph: GraphModel) -> ValidationResult:
    """Convenience wrapper around ``GraphValidator().validate``."""
    return GraphValidator().validate(graph)
