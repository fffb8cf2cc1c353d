"""In-memory workflow graph with safe mutation primitives."""

from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic.alias_generators import to_camel

from ..models.core import GraphSnapshot
from ..models.graph import (
    Edge,
    NodeBase,
    NodeKind,
    NodeSearchMatch,
    Position,
    SearchMatchType,
    WorkflowDocument,
    WorkflowMetadata,
    canonical_handle,
    edge_id_for,
    minimum_node_counter,
    parse_node,
)
from .exceptions import InvalidConnectionError, NotFoundError
from .logging import get_logger

logger = get_logger(__name__)

NODE_ID_PREFIX = "N"
SEARCH_EXCERPT_LENGTH = 50


class GraphModel:
    """Canonical node/edge collections plus the node id counter.

    Nodes and edges are kept in insertion order, which is the document
    order used for start-node tiebreaks. Mutations replace node objects
    rather than editing them in place, so snapshots taken earlier are never
    affected by later edits.
    """

    def __init__(
        self,
        nodes: Optional[Iterable[NodeBase]] = None,
        edges: Optional[Iterable[Edge]] = None,
        node_counter: int = 1,
    ):
        self._nodes: Dict[str, NodeBase] = {}
        self._edges: Dict[str, Edge] = {}
        for node in nodes or []:
            self._nodes[node.id] = node
        for edge in edges or []:
            self._edges[edge.id] = edge
        self._node_counter = max(node_counter, minimum_node_counter(list(self._nodes)))

    @property
    def nodes(self) -> List[NodeBase]:
        return list(self._nodes.values())

    @property
    def edges(self) -> List[Edge]:
        return list(self._edges.values())

    @property
    def node_counter(self) -> int:
        return self._node_counter

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: str) -> Optional[NodeBase]:
        return self._nodes.get(node_id)

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        return self._edges.get(edge_id)

    def outgoing_edges(self, node_id: str) -> List[Edge]:
        return [edge for edge in self._edges.values() if edge.source == node_id]

    def incoming_edges(self, node_id: str) -> List[Edge]:
        return [edge for edge in self._edges.values() if edge.target == node_id]

    def search_nodes(
        self,
        query: str = "",
        kinds: Optional[Iterable[Union[NodeKind, str]]] = None,
    ) -> List[NodeSearchMatch]:
        """
        Find nodes by case-insensitive text and/or by kind, in document order.

        The title is checked first, then the body content, then metadata
        tags; each node is reported once, for its first matching field.
        With only ``kinds`` given every node of those kinds matches. With
        neither given nothing matches.
        """
        term = query.strip().lower()
        wanted = {NodeKind(kind) for kind in kinds} if kinds else None
        if not term and not wanted:
            return []

        matches = []
        for node in self._nodes.values():
            kind = NodeKind(node.kind)
            if wanted is not None and kind not in wanted:
                continue
            if not term:
                matches.append(NodeSearchMatch(
                    node_id=node.id, kind=kind,
                    match_type=SearchMatchType.KIND, match_text=node.title or node.id,
                ))
                continue
            match = self._match_text(node, term)
            if match is not None:
                match_type, match_text = match
                matches.append(NodeSearchMatch(
                    node_id=node.id, kind=kind, match_type=match_type, match_text=match_text,
                ))
        return matches

    @staticmethod
    def _match_text(node: NodeBase, term: str):
        if term in node.title.lower():
            return SearchMatchType.TITLE, node.title
        if term in node.content.lower():
            excerpt = node.content[:SEARCH_EXCERPT_LENGTH]
            if len(node.content) > SEARCH_EXCERPT_LENGTH:
                excerpt += "..."
            return SearchMatchType.CONTENT, excerpt
        tags = node.metadata.tags if node.metadata else []
        for tag in tags:
            if term in tag.lower():
                return SearchMatchType.TAG, tag
        return None

    def _mint_node_id(self) -> str:
        node_id = f"{NODE_ID_PREFIX}{self._node_counter:03d}"
        self._node_counter += 1
        while node_id in self._nodes:
            node_id = f"{NODE_ID_PREFIX}{self._node_counter:03d}"
            self._node_counter += 1
        return node_id

    def add_node(
        self,
        kind: Union[NodeKind, str],
        position: Optional[Union[Position, Dict[str, float]]] = None,
        seed_data: Optional[Dict[str, Any]] = None,
    ) -> NodeBase:
        """
        Create a node of the given kind with a freshly minted id.

        Args:
            kind: Step kind of the new node
            position: Canvas position of the node
            seed_data: Initial field values (title, content, options, ...)

        Returns:
            The created node
        """
        kind = NodeKind(kind)
        data = dict(seed_data or {})
        data.pop("id", None)
        data["kind"] = kind.value
        if position is not None:
            data["position"] = position
        # Validate before minting so a bad seed does not burn a counter value.
        parse_node({**data, "id": "pending"})

        data["id"] = self._mint_node_id()
        node = parse_node(data)
        self._nodes[node.id] = node
        logger.debug(f"Added {kind.value} node {node.id}")
        return node

    def update_node(self, node_id: str, patch: Dict[str, Any]) -> NodeBase:
        """
        Merge ``patch`` into an existing node and revalidate it.

        The patch may change the node's kind; fields the new kind does not
        carry are dropped.

        Raises:
            NotFoundError: If the node does not exist
            ValueError: If the patch tries to change the node id
        """
        current = self._nodes.get(node_id)
        if current is None:
            raise NotFoundError(f"Node '{node_id}' not found", node_id=node_id)
        if "id" in patch and patch["id"] != node_id:
            raise ValueError("Node ID cannot be changed through an update")

        merged = current.model_dump(by_alias=True)
        merged.update({to_camel(key) if "_" in key else key: value for key, value in patch.items()})
        updated = parse_node(merged)
        self._nodes[node_id] = updated
        logger.debug(f"Updated node {node_id} with fields: {sorted(patch)}")
        return updated

    def remove_node(self, node_id: str) -> None:
        """Remove a node and every edge touching it. Missing ids are ignored."""
        if self._nodes.pop(node_id, None) is None:
            return
        touching = [
            edge_id for edge_id, edge in self._edges.items()
            if edge.source == node_id or edge.target == node_id
        ]
        for edge_id in touching:
            del self._edges[edge_id]
        logger.debug(f"Removed node {node_id} and {len(touching)} connected edge(s)")

    def connect(self, source_id: str, target_id: str, source_handle: Optional[str] = None) -> Edge:
        """
        Create an edge between two existing nodes.

        Raises:
            InvalidConnectionError: If an endpoint is missing or the edge duplicates
                an existing ``(source, target, source_handle)`` triple
        """
        handle = canonical_handle(source_handle) if source_handle else None
        for endpoint in (source_id, target_id):
            if endpoint not in self._nodes:
                raise InvalidConnectionError(
                    f"Cannot connect: node '{endpoint}' does not exist",
                    source=source_id, target=target_id, source_handle=handle
                )

        key = (source_id, target_id, handle)
        if any(edge.key == key for edge in self._edges.values()):
            raise InvalidConnectionError(
                f"Edge {source_id} -> {target_id} with handle '{handle}' already exists",
                source=source_id, target=target_id, source_handle=handle
            )

        edge_id = edge_id_for(source_id, target_id, handle)
        suffix = 1
        while edge_id in self._edges:
            suffix += 1
            edge_id = f"{edge_id_for(source_id, target_id, handle)}-{suffix}"

        edge = Edge(id=edge_id, source=source_id, target=target_id, source_handle=handle)
        self._edges[edge.id] = edge
        logger.debug(f"Connected {source_id} -> {target_id} (handle={handle})")
        return edge

    def disconnect(self, edge_id: str) -> None:
        """Remove an edge. Missing ids are ignored."""
        if self._edges.pop(edge_id, None) is not None:
            logger.debug(f"Disconnected edge {edge_id}")

    def duplicate_nodes(
        self,
        node_ids: Iterable[str],
        offset: Optional[Union[Position, Dict[str, float]]] = None,
    ) -> List[NodeBase]:
        """
        Copy nodes under fresh ids (copy/paste).

        Copies get a "(Copy)" title suffix and are shifted by ``offset``.
        Edges are not copied.

        Raises:
            NotFoundError: If any of the nodes does not exist
        """
        node_ids = list(node_ids)
        missing = [node_id for node_id in node_ids if node_id not in self._nodes]
        if missing:
            raise NotFoundError(f"Cannot copy missing node(s): {', '.join(missing)}", node_id=missing[0])

        shift = Position.model_validate(offset) if offset is not None else Position(x=40.0, y=40.0)
        copies = []
        for node_id in node_ids:
            data = self._nodes[node_id].model_dump(by_alias=True)
            data["id"] = self._mint_node_id()
            data["title"] = f"{data.get('title') or node_id} (Copy)"
            data["position"] = {
                "x": data["position"]["x"] + shift.x,
                "y": data["position"]["y"] + shift.y,
            }
            copy = parse_node(data)
            self._nodes[copy.id] = copy
            copies.append(copy)
        logger.debug(f"Duplicated {len(copies)} node(s)")
        return copies

    def snapshot(self) -> GraphSnapshot:
        """Return a deep, independent copy of the current graph state."""
        return GraphSnapshot(
            nodes=tuple(node.model_copy(deep=True) for node in self._nodes.values()),
            edges=tuple(edge.model_copy(deep=True) for edge in self._edges.values()),
            node_counter=self._node_counter,
        )

    def restore(self, snapshot: GraphSnapshot) -> None:
        """Replace the graph contents with a copy of ``snapshot``."""
        self._nodes = {node.id: node.model_copy(deep=True) for node in snapshot.nodes}
        self._edges = {edge.id: edge.model_copy(deep=True) for edge in snapshot.edges}
        self._node_counter = snapshot.node_counter

    @classmethod
    def from_snapshot(cls, snapshot: GraphSnapshot) -> "GraphModel":
        graph = cls()
        graph.restore(snapshot)
        return graph

    @classmethod
    def from_document(cls, document: WorkflowDocument) -> "GraphModel":
        return cls(
            nodes=[node.model_copy(deep=True) for node in document.nodes],
            edges=[edge.model_copy(deep=True) for edge in document.edges],
            node_counter=document.node_counter,
        )

    def to_document(self, metadata: Optional[WorkflowMetadata] = None) -> WorkflowDocument:
        return WorkflowDocument(
            metadata=metadata or WorkflowMetadata(),
            nodes=[node.model_copy(deep=True) for node in self._nodes.values()],
            edges=[edge.model_copy(deep=True) for edge in self._edges.values()],
            node_counter=self._node_counter,
        )

    def __len__(self) -> int:
        return len(self._nodes)

    def __eq__(self, other) -> bool:
        if not isinstance(other, GraphModel):
            return NotImplemented
        return (
            self.nodes == other.nodes
            and self.edges == other.edges
            and self.node_counter == other.node_counter
        )
