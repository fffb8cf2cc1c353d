"""Import and export of workflow documents."""

import json
from datetime import datetime
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from ..models.graph import WorkflowDocument, WorkflowMetadata
from .exceptions import MalformedDocumentError
from .graph_model import GraphModel
from .logging import get_logger

logger = get_logger(__name__)

REQUIRED_ARRAYS = ("nodes", "edges")


def import_document(raw: Union[str, bytes, Dict[str, Any]]) -> WorkflowDocument:
    """
    Parse and validate a serialized workflow document.

    Args:
        raw: JSON text or an already decoded mapping

    Returns:
        WorkflowDocument: The validated document

    Raises:
        MalformedDocumentError: If the input is not JSON, lacks the ``nodes`` or
            ``edges`` arrays, or breaks id/reference invariants
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedDocumentError(f"Document is not valid JSON: {e}")

    if not isinstance(raw, dict):
        raise MalformedDocumentError(f"Document must be a JSON object, got {type(raw).__name__}")

    problems = [
        f"'{key}' must be an array"
        for key in REQUIRED_ARRAYS
        if not isinstance(raw.get(key), list)
    ]
    if problems:
        raise MalformedDocumentError(f"Malformed workflow document: {'; '.join(problems)}", problems=problems)

    try:
        document = WorkflowDocument.model_validate(raw)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(part) for part in error['loc']) or 'document'}: {error['msg']}"
            for error in e.errors()
        ]
        logger.warning(f"Rejected malformed workflow document: {'; '.join(problems)}")
        raise MalformedDocumentError(f"Malformed workflow document: {'; '.join(problems)}", problems=problems)

    logger.debug(
        f"Imported workflow '{document.metadata.name}' with "
        f"{len(document.nodes)} nodes and {len(document.edges)} edges"
    )
    return document


def export_document(
    graph: GraphModel,
    metadata: Optional[WorkflowMetadata] = None,
    touch: bool = True,
) -> WorkflowDocument:
    """
    Serialize a graph plus metadata into a document.

    Args:
        graph: The graph to export
        metadata: Metadata to attach; defaults to a fresh WorkflowMetadata
        touch: Whether to stamp ``updated_at`` with the current time
    """
    metadata = (metadata or WorkflowMetadata()).model_copy()
    if touch:
        metadata.updated_at = datetime.utcnow()
    return graph.to_document(metadata)


def document_to_dict(document: WorkflowDocument) -> Dict[str, Any]:
    """Plain JSON-compatible mapping using the camelCase wire keys."""
    return document.model_dump(mode="json", by_alias=True)


def dumps(document: WorkflowDocument, indent: Optional[int] = 2) -> str:
    return json.dumps(document_to_dict(document), indent=indent)


def loads(text: Union[str, bytes]) -> WorkflowDocument:
    return import_document(text)
