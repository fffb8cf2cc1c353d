"""Pydantic models for workflow graphs: nodes, edges and documents."""

import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic.alias_generators import to_camel


_NUMERIC_SUFFIX = re.compile(r"(\d+)$")
_AFFIRMATIVE = {"yes", "y", "true"}
_NEGATIVE = {"no", "n", "false"}


class NodeKind(str, Enum):
    """Enumeration of diagnostic step kinds."""
    START = "start"
    QUESTION = "question"
    INSTRUCTION = "instruction"
    CONDITION = "condition"
    END = "end"
    MEDIA = "media"
    DECISION = "decision"
    WARNING = "warning"
    INFO = "info"
    ACTION = "action"


class BranchHandle(str, Enum):
    """Branch outcomes of a binary step. Multi-choice steps use option ids."""
    YES = "yes"
    NO = "no"


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class HazardLevel(str, Enum):
    CAUTION = "caution"
    WARNING = "warning"
    DANGER = "danger"


def canonical_handle(answer: Any) -> str:
    """Map an answer or handle name to its canonical branch handle.

    Booleans and yes/no spellings collapse onto ``BranchHandle`` values;
    anything else (an option id) is returned stripped but otherwise as is.
    """
    if isinstance(answer, Enum):
        answer = answer.value
    if isinstance(answer, bool):
        return BranchHandle.YES.value if answer else BranchHandle.NO.value
    text = str(answer).strip()
    lowered = text.lower()
    if lowered in _AFFIRMATIVE:
        return BranchHandle.YES.value
    if lowered in _NEGATIVE:
        return BranchHandle.NO.value
    return text


def numeric_suffix(node_id: str) -> Optional[int]:
    """Return the trailing integer of a node id, if any."""
    match = _NUMERIC_SUFFIX.search(node_id)
    return int(match.group(1)) if match else None


def minimum_node_counter(node_ids: List[str]) -> int:
    """Smallest counter value that exceeds every numeric suffix in ``node_ids``."""
    suffixes = [n for n in (numeric_suffix(node_id) for node_id in node_ids) if n is not None]
    return max(suffixes) + 1 if suffixes else 1


def edge_id_for(source: str, target: str, source_handle: Optional[str] = None) -> str:
    """Deterministic edge id for a ``(source, target, handle)`` triple."""
    edge_id = f"e{source}-{target}"
    return f"{edge_id}-{source_handle}" if source_handle else edge_id


class WorkflowBaseModel(BaseModel):
    """Base model serializing to the camelCase keys of the document format."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Position(WorkflowBaseModel):
    """Canvas coordinates of a node."""
    x: float = 0.0
    y: float = 0.0


class MediaRef(WorkflowBaseModel):
    """Reference to an image, video or document attached to a step."""
    url: str = Field(..., description="Location of the media asset")
    kind: MediaKind = Field(default=MediaKind.IMAGE, description="Type of media")
    caption: Optional[str] = Field(None, description="Alt text or caption")


class NodeMetadata(WorkflowBaseModel):
    """Authoring metadata for a step."""
    difficulty: Optional[Difficulty] = None
    tags: List[str] = Field(default_factory=list)
    time_estimate_minutes: Optional[int] = None

    @field_validator('time_estimate_minutes')
    @classmethod
    def validate_time_estimate(cls, minutes):
        """Ensure the estimate is not negative."""
        if minutes is not None and minutes < 0:
            raise ValueError("Time estimate cannot be negative")
        return minutes


class Option(WorkflowBaseModel):
    """One of the finite answers that can be given at a branching step."""
    id: str = Field(..., description="Option identifier, also its branch handle")
    label: str = Field(default="", description="Text shown to the operator")
    value: Optional[str] = Field(None, description="Stored answer value")
    next_node_id: Optional[str] = Field(None, description="Explicit branch target overriding edges")

    @field_validator('id')
    @classmethod
    def validate_id(cls, option_id):
        if not option_id or not option_id.strip():
            raise ValueError("Option ID cannot be empty")
        return option_id.strip()

    @property
    def handle(self) -> str:
        return canonical_handle(self.id)

    def matches(self, answer: Any) -> bool:
        """Check whether ``answer`` names this option by value or label."""
        key = canonical_handle(answer)
        return any(
            candidate and canonical_handle(candidate) == key
            for candidate in (self.value, self.label)
        )


class NodeBase(WorkflowBaseModel):
    """Fields shared by every step kind."""
    id: str = Field(..., description="Unique identifier for the node")
    title: str = Field(default="", description="Short human-readable title")
    content: str = Field(default="", description="Body text of the step")
    position: Position = Field(default_factory=Position)
    media: List[MediaRef] = Field(default_factory=list)
    metadata: Optional[NodeMetadata] = None

    @field_validator('id')
    @classmethod
    def validate_id_format(cls, id_value):
        """Ensure node ID is not blank."""
        if not id_value or not id_value.strip():
            raise ValueError("Node ID cannot be empty")
        return id_value.strip()

    @property
    def branch_options(self) -> List[Option]:
        return []

    def find_option(self, answer: Any) -> Optional[Option]:
        return None


class BranchingNode(NodeBase):
    """Step whose answer is chosen from an enumerated option set."""
    options: List[Option] = Field(default_factory=list)

    @field_validator('options')
    @classmethod
    def validate_unique_option_ids(cls, options):
        """Ensure option handles are unique within the step."""
        handles = [option.handle for option in options]
        if len(handles) != len(set(handles)):
            raise ValueError("Option IDs must be unique within a node")
        return options

    @property
    def branch_options(self) -> List[Option]:
        return self.options

    def find_option(self, answer: Any) -> Optional[Option]:
        """Find the option selected by ``answer``, preferring an id match."""
        if isinstance(answer, Option):
            answer = answer.id
        key = canonical_handle(answer)
        for option in self.options:
            if option.handle == key:
                return option
        for option in self.options:
            if option.matches(answer):
                return option
        return None


class StartNode(NodeBase):
    kind: Literal["start"] = "start"


class EndNode(NodeBase):
    kind: Literal["end"] = "end"


class InfoNode(NodeBase):
    kind: Literal["info"] = "info"


class MediaNode(NodeBase):
    kind: Literal["media"] = "media"


class QuestionNode(BranchingNode):
    kind: Literal["question"] = "question"


class ConditionNode(BranchingNode):
    kind: Literal["condition"] = "condition"


class DecisionNode(BranchingNode):
    kind: Literal["decision"] = "decision"


class InstructionNode(NodeBase):
    kind: Literal["instruction"] = "instruction"
    steps: List[str] = Field(default_factory=list, description="Ordered sub-steps")


class ActionNode(NodeBase):
    kind: Literal["action"] = "action"
    steps: List[str] = Field(default_factory=list, description="Ordered sub-steps")


class WarningNode(NodeBase):
    """Safety warning shown before a hazardous step."""
    kind: Literal["warning"] = "warning"
    hazard_level: HazardLevel = Field(default=HazardLevel.WARNING)
    requires_acknowledgement: bool = Field(default=True)


Node = Annotated[
    Union[
        StartNode, QuestionNode, InstructionNode, ConditionNode, EndNode,
        MediaNode, DecisionNode, WarningNode, InfoNode, ActionNode,
    ],
    Field(discriminator="kind"),
]

NODE_ADAPTER = TypeAdapter(Node)


def parse_node(data: Dict[str, Any]) -> NodeBase:
    """Validate a raw node mapping into its kind-specific model."""
    return NODE_ADAPTER.validate_python(data)


class Edge(WorkflowBaseModel):
    """Directed connection between two steps."""
    id: str = Field(default="", description="Unique identifier for the edge")
    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")
    source_handle: Optional[str] = Field(None, description="Branch outcome this edge answers")

    @field_validator('source', 'target')
    @classmethod
    def validate_endpoints(cls, value):
        if not value or not value.strip():
            raise ValueError("Edge endpoints cannot be empty")
        return value.strip()

    @field_validator('source_handle')
    @classmethod
    def normalize_handle(cls, handle):
        """Store handles in canonical form; blank means no handle."""
        if handle is None or not str(handle).strip():
            return None
        return canonical_handle(handle)

    @model_validator(mode='after')
    def default_id(self):
        """Derive an id from the endpoints when the document omits one."""
        self.id = self.id.strip() or edge_id_for(self.source, self.target, self.source_handle)
        return self

    @property
    def key(self):
        return (self.source, self.target, self.source_handle)


class WorkflowMetadata(WorkflowBaseModel):
    """Descriptive metadata persisted alongside a workflow graph."""
    name: str = Field(default="Untitled Workflow", description="Workflow name")
    folder: str = Field(default="default", description="Folder grouping workflows")
    version: int = Field(default=1, description="Document version")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    is_active: bool = Field(default=True)
    appliance: Optional[str] = Field(None, description="Appliance the procedure diagnoses")
    symptom: Optional[str] = Field(None, description="Symptom the procedure starts from")

    @field_validator('name', 'folder')
    @classmethod
    def validate_not_empty(cls, value):
        if not value or not value.strip():
            raise ValueError("Workflow name and folder cannot be empty")
        return value.strip()


class WorkflowDocument(WorkflowBaseModel):
    """Serialized workflow: metadata, nodes, edges and node counter."""
    metadata: WorkflowMetadata = Field(default_factory=WorkflowMetadata)
    nodes: List[Node] = Field(..., description="Steps of the workflow")
    edges: List[Edge] = Field(..., description="Connections between steps")
    node_counter: int = Field(..., description="Generator for fresh node ids")

    @field_validator('node_counter')
    @classmethod
    def validate_counter(cls, counter):
        if counter < 0:
            raise ValueError("Node counter cannot be negative")
        return counter

    @model_validator(mode='after')
    def validate_references(self):
        """Check id uniqueness, edge endpoints and that the counter is ahead of every id."""
        node_ids = [node.id for node in self.nodes]
        if len(node_ids) != len(set(node_ids)):
            raise ValueError("All node IDs must be unique")

        edge_ids = [edge.id for edge in self.edges]
        if len(edge_ids) != len(set(edge_ids)):
            raise ValueError("All edge IDs must be unique")

        known = set(node_ids)
        for edge in self.edges:
            if edge.source not in known:
                raise ValueError(f"Edge '{edge.id}' references non-existent source node: {edge.source}")
            if edge.target not in known:
                raise ValueError(f"Edge '{edge.id}' references non-existent target node: {edge.target}")

        minimum = minimum_node_counter(node_ids)
        if self.node_counter < minimum:
            raise ValueError(
                f"Node counter {self.node_counter} must exceed every numeric node id suffix "
                f"(expected at least {minimum})"
            )
        return self


class WorkflowSummary(BaseModel):
    """Summary information about a stored workflow."""
    name: str = Field(..., description="Workflow name")
    folder: str = Field(..., description="Workflow folder")
    updated_at: datetime = Field(..., description="Last update timestamp")
    is_active: bool = Field(..., description="Whether the workflow is published")
    node_count: int = Field(..., description="Number of nodes in the workflow")


class WorkflowVersion(BaseModel):
    """One saved revision of a stored workflow, newest first in listings."""
    version: int = Field(..., description="Value of metadata.version when saved")
    saved_at: datetime = Field(..., description="When this revision was stored")
    description: str = Field(default="", description="Free-text note entered on save")
    node_count: int = Field(..., description="Number of nodes in this revision")


class SearchMatchType(str, Enum):
    """Which part of a node matched a search."""
    TITLE = "title"
    CONTENT = "content"
    TAG = "tag"
    KIND = "kind"


class NodeSearchMatch(BaseModel):
    """A node found by ``GraphModel.search_nodes``."""
    node_id: str
    kind: NodeKind
    match_type: SearchMatchType
    match_text: str = Field(..., description="Title, or a short excerpt of the matching text")
