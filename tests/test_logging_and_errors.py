"""Tests for structured logging and error payloads."""

import asyncio
import json
import logging

import pytest

from diagflow.core.exceptions import (
    ConfigurationError,
    DanglingReferenceError,
    ErrorCategory,
    ExecutionEngineError,
    GraphValidationError,
    InvalidStateError,
    MalformedDocumentError,
    NotFoundError,
    create_error_response,
)
from diagflow.core.logging import (
    StructuredFormatter,
    clear_logging_context,
    get_logger,
    get_logging_context,
    log_with_context,
    logging_context,
    set_logging_context,
    setup_logging,
)
from diagflow.core.middleware import status_code_for_error
from diagflow.core.session_manager import SessionManager


class TestStructuredLogging:
    """Test cases for the logging helpers."""

    def test_formatter_emits_json_with_extra_fields(self):
        record = logging.LogRecord("diagflow.core", logging.INFO, __file__, 10, "hello", None, None)
        record.extra_fields = {"session_id": "abc"}

        payload = json.loads(StructuredFormatter().format(record))
        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"
        assert payload["session_id"] == "abc"

    def test_context_is_attached_to_records(self, tmp_path):
        log_file = tmp_path / "diagflow.log"
        setup_logging(level="INFO", log_file=str(log_file), structured=True)
        logger = get_logger("diagflow.core.test")

        set_logging_context(session_id="s-1")
        try:
            log_with_context(logger, logging.INFO, "answered", node_id="N002")
        finally:
            clear_logging_context()

        for handler in logging.getLogger().handlers:
            handler.flush()
        lines = [json.loads(line) for line in log_file.read_text().splitlines()]
        entry = next(line for line in lines if line["message"] == "answered")
        assert entry["session_id"] == "s-1"
        assert entry["node_id"] == "N002"

    def test_text_output_carries_context_suffix(self, tmp_path):
        log_file = tmp_path / "text.log"
        setup_logging(level="INFO", log_file=str(log_file))

        with logging_context(session_id="s-9", node_id="N003"):
            get_logger("diagflow.core.test").info("advanced")

        for handler in logging.getLogger().handlers:
            handler.flush()
        line = next(line for line in log_file.read_text().splitlines() if "advanced" in line)
        assert line.endswith("advanced [session_id=s-9 node_id=N003]")

    def test_session_creation_keeps_request_context(self, dishwasher_graph):
        before = get_logging_context()
        with logging_context(request_id="req-1"):
            SessionManager().create_session(dishwasher_graph, "Dishwasher")
            assert get_logging_context() == {**before, "request_id": "req-1"}
        assert get_logging_context() == before

    @pytest.mark.asyncio
    async def test_concurrent_tasks_keep_their_own_context(self):
        async def handle(request_id):
            with logging_context(request_id=request_id):
                await asyncio.sleep(0.01)
                return get_logging_context()["request_id"]

        assert await asyncio.gather(handle("a"), handle("b")) == ["a", "b"]


class TestErrorPayloads:
    """Test cases for exception metadata and HTTP mapping."""

    def test_error_response(self):
        error = MalformedDocumentError("bad document", problems=["nodes: missing"])
        response = create_error_response(error)

        assert response["error"] == "MalformedDocumentError"
        assert response["details"]["problems"] == ["nodes: missing"]
        assert response["details"]["category"] == ErrorCategory.DOCUMENT.value

    def test_dangling_reference_context(self):
        error = DanglingReferenceError("dangling", node_id="N002", target_id="ghost")

        assert isinstance(error, ExecutionEngineError)
        assert error.context == {"node_id": "N002", "target_id": "ghost"}

    def test_status_codes(self):
        assert status_code_for_error(NotFoundError("x")) == 404
        assert status_code_for_error(InvalidStateError("x")) == 409
        assert status_code_for_error(MalformedDocumentError("x")) == 422
        assert status_code_for_error(GraphValidationError("x")) == 400

    def test_configuration_error_payload(self):
        error = ConfigurationError("bad settings", problems=["Port must be between 1 and 65535"])

        assert status_code_for_error(error) == 500
        assert create_error_response(error)["details"]["problems"] == ["Port must be between 1 and 65535"]

    def test_unset_context_values_are_dropped(self):
        error = InvalidStateError("Cannot pause", operation="pause", status=None)

        assert error.context == {"operation": "pause"}
