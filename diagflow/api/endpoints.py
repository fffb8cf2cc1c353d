"""FastAPI REST endpoints for the diagnostic workflow engine."""

from datetime import datetime
from typing import Dict, List, Any, Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..core.document import document_to_dict, import_document
from ..core.exceptions import (
    NotFoundError,
    WorkflowEngineError,
    create_error_response
)
from ..core.execution_engine import ExecutionEngine
from ..core.graph_model import GraphModel
from ..core.graph_validator import GraphValidator
from ..core.middleware import status_code_for_error
from ..core.session_manager import SessionInfo, SessionManager
from ..models.core import ExecutionState, SessionReport
from ..models.graph import (
    Node,
    NodeKind,
    NodeSearchMatch,
    WorkflowBaseModel,
    WorkflowDocument,
    WorkflowSummary,
    WorkflowVersion,
)
from ..storage.workflow_store import WorkflowStore
from ..core.logging import get_logger

logger = get_logger(__name__)

# Create router
router = APIRouter(prefix="/api/v1", tags=["workflow"])

# Global instances (initialized by the application factory)
_workflow_store: Optional[WorkflowStore] = None
_session_manager: Optional[SessionManager] = None
_validator = GraphValidator()


def init_dependencies(workflow_store: WorkflowStore, session_manager: SessionManager):
    """Initialize the global dependencies."""
    global _workflow_store, _session_manager
    _workflow_store = workflow_store
    _session_manager = session_manager


def get_workflow_store() -> WorkflowStore:
    """Dependency to get the workflow store."""
    if _workflow_store is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Workflow store not initialized"
        )
    return _workflow_store


def get_session_manager() -> SessionManager:
    """Dependency to get the session manager."""
    if _session_manager is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Session manager not initialized"
        )
    return _session_manager


def _http_error(error: WorkflowEngineError, action: str) -> HTTPException:
    """Translate a workflow engine error into an HTTPException."""
    status_code = status_code_for_error(error)
    if status_code >= 500:
        logger.error(f"Workflow engine error while {action}: {str(error)}")
    else:
        logger.warning(f"Workflow engine error while {action}: {str(error)}")
    return HTTPException(status_code=status_code, detail=create_error_response(error))


def _internal_error(error: Exception, action: str) -> HTTPException:
    logger.error(f"Unexpected error while {action}: {str(error)}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "InternalError",
            "message": f"An unexpected error occurred while {action}",
            "details": {"original_error": str(error)},
            "timestamp": datetime.utcnow().isoformat()
        }
    )


# Request/Response models
class SaveWorkflowResponse(BaseModel):
    """Response model for saving a workflow."""
    name: str = Field(..., description="Stored workflow name")
    folder: str = Field(..., description="Stored workflow folder")
    version: int = Field(..., description="Version number assigned by this save")
    message: str = Field(..., description="Success message")
    validation: Dict[str, Any] = Field(..., description="Validation summary of the saved graph")


class StartSessionRequest(BaseModel):
    """Request model for starting a session from a stored or inline workflow."""
    name: Optional[str] = Field(None, description="Name of a stored workflow")
    folder: str = Field(default="default", description="Folder of the stored workflow")
    document: Optional[Dict[str, Any]] = Field(None, description="Inline workflow document")


class AnswerRequest(BaseModel):
    """Request model for answering the current step."""
    answer: Any = Field(..., description="Answer value, option id or yes/no")


class SessionStateResponse(WorkflowBaseModel):
    """Session state plus the node awaiting an answer."""
    session_id: str
    workflow_name: str
    state: ExecutionState
    current_node: Optional[Node] = None


def _session_response(session_id: str, engine: ExecutionEngine) -> SessionStateResponse:
    return SessionStateResponse(
        session_id=session_id,
        workflow_name=engine.workflow_name,
        state=engine.state,
        current_node=engine.current_node,
    )


async def _load_or_404(store: WorkflowStore, name: str, folder: str) -> WorkflowDocument:
    document = await store.load(name, folder)
    if document is None:
        raise NotFoundError(f"Workflow '{name}' not found in folder '{folder}'").add_context(
            name=name, folder=folder
        )
    return document


# Workflow endpoints

@router.post(
    "/workflows",
    response_model=SaveWorkflowResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save a workflow document",
    description="Import, validate and store a workflow document; saving again under the same name and folder replaces it"
)
async def save_workflow(
    payload: Dict[str, Any],
    description: str = Query("", description="Note recorded with this saved version"),
    store: WorkflowStore = Depends(get_workflow_store)
) -> SaveWorkflowResponse:
    """
    Save a workflow document.

    Non-executable documents are stored too; the validation summary in the
    response tells the author what still needs fixing.
    """
    try:
        document = import_document(payload)
        stored = await store.save(document, description=description)
        result = _validator.validate(GraphModel.from_document(stored))
        logger.info(f"Saved workflow '{stored.metadata.name}' (executable={result.is_executable})")
        return SaveWorkflowResponse(
            name=stored.metadata.name,
            folder=stored.metadata.folder,
            version=stored.metadata.version,
            message=f"Workflow '{stored.metadata.name}' saved successfully",
            validation=result.summary()
        )
    except WorkflowEngineError as e:
        raise _http_error(e, "saving workflow")
    except Exception as e:
        raise _internal_error(e, "saving workflow")


@router.get(
    "/workflows",
    response_model=List[WorkflowSummary],
    summary="List stored workflows"
)
async def list_workflows(
    folder: Optional[str] = Query(None, description="Only list workflows in this folder"),
    store: WorkflowStore = Depends(get_workflow_store)
) -> List[WorkflowSummary]:
    try:
        return await store.list_workflows(folder)
    except WorkflowEngineError as e:
        raise _http_error(e, "listing workflows")
    except Exception as e:
        raise _internal_error(e, "listing workflows")


@router.post(
    "/workflows/validate",
    summary="Validate an inline workflow document"
)
async def validate_document(payload: Dict[str, Any]) -> Dict[str, Any]:
    try:
        document = import_document(payload)
        return _validator.validate(GraphModel.from_document(document)).summary()
    except WorkflowEngineError as e:
        raise _http_error(e, "validating workflow")
    except Exception as e:
        raise _internal_error(e, "validating workflow")


@router.get(
    "/workflows/{folder}/{name}",
    summary="Load a stored workflow document"
)
async def load_workflow(
    folder: str,
    name: str,
    store: WorkflowStore = Depends(get_workflow_store)
) -> Dict[str, Any]:
    try:
        return document_to_dict(await _load_or_404(store, name, folder))
    except WorkflowEngineError as e:
        raise _http_error(e, "loading workflow")
    except Exception as e:
        raise _internal_error(e, "loading workflow")


@router.get(
    "/workflows/{folder}/{name}/validate",
    summary="Validate a stored workflow"
)
async def validate_workflow(
    folder: str,
    name: str,
    store: WorkflowStore = Depends(get_workflow_store)
) -> Dict[str, Any]:
    try:
        document = await _load_or_404(store, name, folder)
        return _validator.validate(GraphModel.from_document(document)).summary()
    except WorkflowEngineError as e:
        raise _http_error(e, "validating workflow")
    except Exception as e:
        raise _internal_error(e, "validating workflow")


@router.get(
    "/workflows/{folder}/{name}/export",
    summary="Download a stored workflow as a JSON file"
)
async def export_workflow(
    folder: str,
    name: str,
    store: WorkflowStore = Depends(get_workflow_store)
) -> JSONResponse:
    try:
        document = await _load_or_404(store, name, folder)
        filename = f"{name.replace(' ', '_')}.json"
        return JSONResponse(
            content=document_to_dict(document),
            headers={"Content-Disposition": f'attachment; filename="{filename}"'}
        )
    except WorkflowEngineError as e:
        raise _http_error(e, "exporting workflow")
    except Exception as e:
        raise _internal_error(e, "exporting workflow")


@router.get(
    "/workflows/{folder}/{name}/versions",
    response_model=List[WorkflowVersion],
    summary="List saved versions of a workflow, newest first"
)
async def list_workflow_versions(
    folder: str,
    name: str,
    store: WorkflowStore = Depends(get_workflow_store)
) -> List[WorkflowVersion]:
    try:
        versions = await store.list_versions(name, folder)
        if not versions:
            raise NotFoundError(f"Workflow '{name}' not found in folder '{folder}'").add_context(
                name=name, folder=folder
            )
        return versions
    except WorkflowEngineError as e:
        raise _http_error(e, "listing workflow versions")
    except Exception as e:
        raise _internal_error(e, "listing workflow versions")


@router.get(
    "/workflows/{folder}/{name}/versions/{version}",
    summary="Load a saved version of a workflow"
)
async def load_workflow_version(
    folder: str,
    name: str,
    version: int,
    store: WorkflowStore = Depends(get_workflow_store)
) -> Dict[str, Any]:
    try:
        document = await store.load_version(name, folder, version)
        if document is None:
            raise NotFoundError(f"Version {version} of workflow '{name}' not found").add_context(
                name=name, folder=folder, version=version
            )
        return document_to_dict(document)
    except WorkflowEngineError as e:
        raise _http_error(e, "loading workflow version")
    except Exception as e:
        raise _internal_error(e, "loading workflow version")


@router.get(
    "/workflows/{folder}/{name}/search",
    response_model=List[NodeSearchMatch],
    summary="Search the steps of a stored workflow by text and kind"
)
async def search_workflow(
    folder: str,
    name: str,
    q: str = Query("", description="Case-insensitive text to look for"),
    kind: Optional[List[NodeKind]] = Query(None, description="Only match steps of these kinds"),
    store: WorkflowStore = Depends(get_workflow_store)
) -> List[NodeSearchMatch]:
    try:
        document = await _load_or_404(store, name, folder)
        return GraphModel.from_document(document).search_nodes(q, kind)
    except WorkflowEngineError as e:
        raise _http_error(e, "searching workflow")
    except Exception as e:
        raise _internal_error(e, "searching workflow")


@router.delete(
    "/workflows/{folder}/{name}",
    summary="Delete a stored workflow"
)
async def delete_workflow(
    folder: str,
    name: str,
    store: WorkflowStore = Depends(get_workflow_store)
) -> Dict[str, Any]:
    try:
        if not await store.delete(name, folder):
            raise NotFoundError(f"Workflow '{name}' not found in folder '{folder}'").add_context(
                name=name, folder=folder
            )
        return {"message": f"Workflow '{name}' deleted successfully", "name": name, "folder": folder}
    except WorkflowEngineError as e:
        raise _http_error(e, "deleting workflow")
    except Exception as e:
        raise _internal_error(e, "deleting workflow")


# Session endpoints

@router.post(
    "/sessions",
    response_model=SessionStateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a guided diagnostic session"
)
async def start_session(
    request: StartSessionRequest,
    store: WorkflowStore = Depends(get_workflow_store),
    sessions: SessionManager = Depends(get_session_manager)
) -> SessionStateResponse:
    """
    Start a session for a stored workflow (``name``/``folder``) or an inline ``document``.

    The workflow must validate without errors; the returned state already
    points at the start node.
    """
    try:
        if request.document is not None:
            document = import_document(request.document)
        elif request.name:
            document = await _load_or_404(store, request.name, request.folder)
        else:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={
                    "error": "InvalidRequest",
                    "message": "Either 'name' or 'document' must be provided"
                }
            )

        session_id = sessions.create_session(
            GraphModel.from_document(document),
            workflow_name=document.metadata.name
        )
        engine = sessions.get_session(session_id)
        engine.start()
        return _session_response(session_id, engine)
    except HTTPException:
        raise
    except WorkflowEngineError as e:
        raise _http_error(e, "starting session")
    except Exception as e:
        raise _internal_error(e, "starting session")


@router.get(
    "/sessions",
    response_model=List[SessionInfo],
    summary="List live sessions"
)
async def list_sessions(sessions: SessionManager = Depends(get_session_manager)) -> List[SessionInfo]:
    return sessions.list_sessions()


@router.get(
    "/sessions/{session_id}",
    response_model=SessionStateResponse,
    summary="Get session state"
)
async def get_session_state(
    session_id: str,
    sessions: SessionManager = Depends(get_session_manager)
) -> SessionStateResponse:
    try:
        return _session_response(session_id, sessions.get_session(session_id))
    except WorkflowEngineError as e:
        raise _http_error(e, "retrieving session")


@router.post(
    "/sessions/{session_id}/start",
    response_model=SessionStateResponse,
    summary="Start an idle session again after a reset"
)
async def restart_session(
    session_id: str,
    sessions: SessionManager = Depends(get_session_manager)
) -> SessionStateResponse:
    try:
        engine = sessions.get_session(session_id)
        engine.start()
        return _session_response(session_id, engine)
    except WorkflowEngineError as e:
        raise _http_error(e, "starting session")


@router.post(
    "/sessions/{session_id}/answer",
    response_model=SessionStateResponse,
    summary="Answer the current step"
)
async def submit_answer(
    session_id: str,
    request: AnswerRequest,
    sessions: SessionManager = Depends(get_session_manager)
) -> SessionStateResponse:
    try:
        engine = sessions.get_session(session_id)
        engine.submit_answer(request.answer)
        return _session_response(session_id, engine)
    except WorkflowEngineError as e:
        raise _http_error(e, "submitting answer")
    except Exception as e:
        raise _internal_error(e, "submitting answer")


@router.post(
    "/sessions/{session_id}/pause",
    response_model=SessionStateResponse,
    summary="Pause a running session"
)
async def pause_session(
    session_id: str,
    sessions: SessionManager = Depends(get_session_manager)
) -> SessionStateResponse:
    try:
        engine = sessions.get_session(session_id)
        engine.pause()
        return _session_response(session_id, engine)
    except WorkflowEngineError as e:
        raise _http_error(e, "pausing session")


@router.post(
    "/sessions/{session_id}/resume",
    response_model=SessionStateResponse,
    summary="Resume a paused session"
)
async def resume_session(
    session_id: str,
    sessions: SessionManager = Depends(get_session_manager)
) -> SessionStateResponse:
    try:
        engine = sessions.get_session(session_id)
        engine.resume()
        return _session_response(session_id, engine)
    except WorkflowEngineError as e:
        raise _http_error(e, "resuming session")


@router.post(
    "/sessions/{session_id}/reset",
    response_model=SessionStateResponse,
    summary="Reset a session to idle"
)
async def reset_session(
    session_id: str,
    sessions: SessionManager = Depends(get_session_manager)
) -> SessionStateResponse:
    try:
        engine = sessions.get_session(session_id)
        engine.reset()
        return _session_response(session_id, engine)
    except WorkflowEngineError as e:
        raise _http_error(e, "resetting session")


@router.get(
    "/sessions/{session_id}/report",
    response_model=SessionReport,
    summary="Get the session report"
)
async def session_report(
    session_id: str,
    sessions: SessionManager = Depends(get_session_manager)
) -> SessionReport:
    try:
        return sessions.get_session(session_id).report()
    except WorkflowEngineError as e:
        raise _http_error(e, "building session report")


@router.delete(
    "/sessions/{session_id}",
    summary="Discard a session"
)
async def discard_session(
    session_id: str,
    sessions: SessionManager = Depends(get_session_manager)
) -> Dict[str, Any]:
    try:
        if not sessions.discard_session(session_id):
            raise NotFoundError(f"Session '{session_id}' not found").add_context(session_id=session_id)
        return {"message": f"Session '{session_id}' discarded", "session_id": session_id}
    except WorkflowEngineError as e:
        raise _http_error(e, "discarding session")
