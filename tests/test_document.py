"""Tests for workflow document import and export."""

import json

import pytest

from diagflow.core.document import document_to_dict, dumps, export_document, import_document, loads
from diagflow.core.exceptions import MalformedDocumentError
from diagflow.core.graph_model import GraphModel
from diagflow.models.graph import QuestionNode, WarningNode, WorkflowMetadata


class TestImportDocument:
    """Test cases for document import."""

    def test_import_from_text(self, dishwasher_document):
        document = import_document(json.dumps(dishwasher_document))

        assert document.metadata.name == "Dishwasher not draining"
        assert isinstance(document.nodes[1], QuestionNode)
        assert document.nodes[3].options[1].next_node_id == "N006"
        assert document.edges[1].source_handle == "yes"

    def test_edge_ids_are_derived(self, yes_no_document):
        document = import_document(yes_no_document)

        assert [edge.id for edge in document.edges] == ["e1-2", "e2-3-yes", "e2-4-no"]

    def test_node_counter_is_kept(self, yes_no_document):
        yes_no_document["nodeCounter"] = 12

        assert import_document(yes_no_document).node_counter == 12

    def test_stale_node_counter_is_rejected(self, dishwasher_document):
        dishwasher_document["nodes"].append({"id": "N007", "kind": "end", "title": "Extra"})
        dishwasher_document["nodeCounter"] = 2

        with pytest.raises(MalformedDocumentError) as exc_info:
            import_document(dishwasher_document)
        assert "expected at least 8" in exc_info.value.message

    def test_missing_node_counter_is_rejected(self, yes_no_document):
        del yes_no_document["nodeCounter"]

        with pytest.raises(MalformedDocumentError) as exc_info:
            import_document(yes_no_document)
        assert any(problem.startswith("nodeCounter") for problem in exc_info.value.problems)

    def test_default_metadata(self, yes_no_document):
        metadata = import_document(yes_no_document).metadata

        assert metadata.name == "Untitled Workflow"
        assert metadata.folder == "default"

    @pytest.mark.parametrize("raw", [
        "not json",
        "[]",
        {"edges": []},
        {"nodes": [], "edges": {}},
    ])
    def test_structural_problems(self, raw):
        with pytest.raises(MalformedDocumentError):
            import_document(raw)

    def test_duplicate_node_ids(self, yes_no_document):
        yes_no_document["nodes"].append({"id": "1", "kind": "end"})

        with pytest.raises(MalformedDocumentError) as exc_info:
            import_document(yes_no_document)
        assert exc_info.value.problems

    def test_edge_to_unknown_node(self, yes_no_document):
        yes_no_document["edges"].append({"source": "4", "target": "99"})

        with pytest.raises(MalformedDocumentError) as exc_info:
            import_document(yes_no_document)
        assert "99" in exc_info.value.message

    def test_unknown_kind(self, yes_no_document):
        yes_no_document["nodes"][0]["kind"] = "portal"

        with pytest.raises(MalformedDocumentError):
            import_document(yes_no_document)


class TestExportDocument:
    """Test cases for export and the round-trip law."""

    def test_round_trip(self, dishwasher_graph):
        exported = export_document(dishwasher_graph, WorkflowMetadata(name="Round trip"))
        reimported = loads(dumps(exported))

        assert GraphModel.from_document(reimported) == dishwasher_graph
        assert reimported.metadata.name == "Round trip"

    def test_round_trip_preserves_kind_fields(self):
        graph = GraphModel()
        graph.add_node("warning", seed_data={
            "title": "Hot surface",
            "hazardLevel": "danger",
            "media": [{"url": "https://example.com/heater.png", "caption": "Heater"}],
            "metadata": {"difficulty": "advanced", "tags": ["heat"], "timeEstimateMinutes": 5},
        })

        reimported = import_document(document_to_dict(export_document(graph)))
        node = reimported.nodes[0]
        assert isinstance(node, WarningNode)
        assert node.hazard_level.value == "danger"
        assert node.media[0].caption == "Heater"
        assert node.metadata.time_estimate_minutes == 5

    def test_wire_format_uses_camel_case(self, dishwasher_graph):
        data = document_to_dict(export_document(dishwasher_graph))

        assert set(data) == {"metadata", "nodes", "edges", "nodeCounter"}
        assert "sourceHandle" in data["edges"][0]
        assert "createdAt" in data["metadata"]

    def test_export_touches_updated_at(self, dishwasher_graph):
        metadata = WorkflowMetadata()
        exported = export_document(dishwasher_graph, metadata)

        assert exported.metadata.updated_at >= metadata.updated_at
        assert exported.metadata.created_at == metadata.created_at
