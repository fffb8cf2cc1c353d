"""Pytest configuration and fixtures."""

import copy
import os
import tempfile

import pytest

from diagflow.config import get_testing_config, reset_config
from diagflow.core.document import import_document
from diagflow.core.graph_model import GraphModel
from diagflow.storage.database import create_database_engine


YES_NO_DOCUMENT = {
    "nodes": [
        {"id": "1", "kind": "start"},
        {"id": "2", "kind": "question", "options": [{"id": "yes"}, {"id": "no"}]},
        {"id": "3", "kind": "end"},
        {"id": "4", "kind": "end"},
    ],
    "edges": [
        {"source": "1", "target": "2"},
        {"source": "2", "target": "3", "sourceHandle": "yes"},
        {"source": "2", "target": "4", "sourceHandle": "no"},
    ],
    "nodeCounter": 5,
}

DISHWASHER_DOCUMENT = {
    "metadata": {
        "name": "Dishwasher not draining",
        "folder": "dishwashers",
        "appliance": "dishwasher",
        "symptom": "Water left in tub",
    },
    "nodes": [
        {"id": "N001", "kind": "start", "title": "Begin", "content": "Unplug the dishwasher before starting."},
        {
            "id": "N002", "kind": "question", "title": "Filter clogged?",
            "content": "Remove the filter and inspect it.",
            "options": [
                {"id": "yes", "label": "Yes"},
                {"id": "no", "label": "No"},
            ],
        },
        {
            "id": "N003", "kind": "instruction", "title": "Clean the filter",
            "content": "Rinse the filter under warm water.",
            "steps": ["Twist the filter out", "Rinse", "Reinstall"],
        },
        {
            "id": "N004", "kind": "decision", "title": "Drain hose condition",
            "content": "Inspect the drain hose.",
            "options": [
                {"id": "kinked", "label": "Kinked", "value": "kinked"},
                {"id": "blocked", "label": "Blocked", "value": "blocked", "nextNodeId": "N006"},
                {"id": "fine", "label": "Looks fine", "value": "fine"},
            ],
        },
        {"id": "N005", "kind": "end", "title": "Resolved", "content": "Run a rinse cycle to confirm."},
        {"id": "N006", "kind": "end", "title": "Call a technician", "content": "The pump may need replacing."},
    ],
    "edges": [
        {"id": "e1", "source": "N001", "target": "N002"},
        {"id": "e2", "source": "N002", "target": "N003", "sourceHandle": "yes"},
        {"id": "e3", "source": "N002", "target": "N004", "sourceHandle": "no"},
        {"id": "e4", "source": "N003", "target": "N005"},
        {"id": "e5", "source": "N004", "target": "N005", "sourceHandle": "kinked"},
        {"id": "e6", "source": "N004", "target": "N006", "sourceHandle": "fine"},
    ],
    "nodeCounter": 7,
}


@pytest.fixture
def yes_no_document():
    """Raw yes/no branching document without titles."""
    return copy.deepcopy(YES_NO_DOCUMENT)


@pytest.fixture
def dishwasher_document():
    """Raw, fully authored and executable document."""
    return copy.deepcopy(DISHWASHER_DOCUMENT)


@pytest.fixture
def yes_no_graph(yes_no_document):
    return GraphModel.from_document(import_document(yes_no_document))


@pytest.fixture
def dishwasher_graph(dishwasher_document):
    return GraphModel.from_document(import_document(dishwasher_document))


@pytest.fixture
def linear_graph():
    """start -> question -> end, built through the mutation primitives."""
    graph = GraphModel()
    start = graph.add_node("start", seed_data={"title": "Start", "content": "Begin"})
    question = graph.add_node("question", seed_data={
        "title": "Is the power on?",
        "content": "Check the indicator light.",
        "options": [{"id": "yes"}, {"id": "no"}],
    })
    end = graph.add_node("end", seed_data={"title": "Done", "content": "Finished"})
    graph.connect(start.id, question.id)
    graph.connect(question.id, end.id)
    return graph


@pytest.fixture
def testing_config():
    """Testing configuration with an in-memory database."""
    reset_config()
    yield get_testing_config()
    reset_config()


@pytest.fixture
def temp_db():
    """Create a temporary SQLite database engine for testing."""
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(db_fd)

    engine = create_database_engine(f"sqlite:///{db_path}")

    yield engine

    engine.dispose()
    try:
        os.unlink(db_path)
    except OSError:
        pass
