"""Authoring session: the single funnel for graph edits and their history."""

from typing import Any, Dict, Iterable, List, Optional, Union

from ..models.core import GraphSnapshot
from ..models.graph import Edge, NodeBase, NodeKind, Position, WorkflowDocument, WorkflowMetadata
from .document import export_document
from .document import import_document as parse_document
from .graph_model import GraphModel
from .graph_validator import GraphValidator
from .history_manager import HistoryManager
from .logging import get_logger

logger = get_logger(__name__)


class AuthoringSession:
    """Applies edits to a GraphModel and records one snapshot per edit.

    Every mutation made through the authoring surface goes through this
    class so undo/redo never misses a step. Idempotent removals of missing
    ids change nothing and record nothing.
    """

    def __init__(
        self,
        graph: Optional[GraphModel] = None,
        metadata: Optional[WorkflowMetadata] = None,
        history_capacity: Optional[int] = None,
    ):
        if history_capacity is None:
            from ..config import get_config
            history_capacity = get_config().history_capacity
        self.graph = graph if graph is not None else GraphModel()
        self.metadata = metadata or WorkflowMetadata()
        self.history = HistoryManager(self.graph, capacity=history_capacity)
        self._validator = GraphValidator()

    @classmethod
    def from_document(cls, document: WorkflowDocument, history_capacity: Optional[int] = None) -> "AuthoringSession":
        return cls(
            graph=GraphModel.from_document(document),
            metadata=document.metadata.model_copy(),
            history_capacity=history_capacity,
        )

    def _commit(self, action: str) -> None:
        self.history.record(self.graph)
        logger.debug(f"Recorded history after {action} (cursor={self.history.cursor})")

    def add_node(
        self,
        kind: Union[NodeKind, str],
        position: Optional[Union[Position, Dict[str, float]]] = None,
        seed_data: Optional[Dict[str, Any]] = None,
    ) -> NodeBase:
        node = self.graph.add_node(kind, position, seed_data)
        self._commit("add_node")
        return node

    def update_node(self, node_id: str, patch: Dict[str, Any]) -> NodeBase:
        node = self.graph.update_node(node_id, patch)
        self._commit("update_node")
        return node

    def remove_node(self, node_id: str) -> None:
        if not self.graph.has_node(node_id):
            return
        self.graph.remove_node(node_id)
        self._commit("remove_node")

    def connect(self, source_id: str, target_id: str, source_handle: Optional[str] = None) -> Edge:
        edge = self.graph.connect(source_id, target_id, source_handle)
        self._commit("connect")
        return edge

    def disconnect(self, edge_id: str) -> None:
        if self.graph.get_edge(edge_id) is None:
            return
        self.graph.disconnect(edge_id)
        self._commit("disconnect")

    def paste(
        self,
        node_ids: Iterable[str],
        offset: Optional[Union[Position, Dict[str, float]]] = None,
    ) -> List[NodeBase]:
        copies = self.graph.duplicate_nodes(node_ids, offset)
        if copies:
            self._commit("paste")
        return copies

    def import_document(self, raw: Union[str, bytes, Dict[str, Any], WorkflowDocument]) -> WorkflowDocument:
        """Replace the graph with an imported document, as one undoable edit."""
        document = raw if isinstance(raw, WorkflowDocument) else parse_document(raw)
        self.graph.restore(GraphModel.from_document(document).snapshot())
        self.metadata = document.metadata.model_copy()
        self._commit("import_document")
        return document

    def undo(self) -> Optional[GraphSnapshot]:
        snapshot = self.history.undo()
        if snapshot is not None:
            self.graph.restore(snapshot)
        return snapshot

    def redo(self) -> Optional[GraphSnapshot]:
        snapshot = self.history.redo()
        if snapshot is not None:
            self.graph.restore(snapshot)
        return snapshot

    def validate(self):
        return self._validator.validate(self.graph)

    def export(self) -> WorkflowDocument:
        document = export_document(self.graph, self.metadata)
        self.metadata = document.metadata.model_copy()
        return document
