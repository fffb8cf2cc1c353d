"""Tests for structural graph validation."""

from diagflow.core.graph_model import GraphModel
from diagflow.core.graph_validator import GraphValidator, find_start_candidates, validate_graph
from diagflow.models.core import FindingCode, FindingSeverity
from diagflow.models.graph import EndNode, Edge, InfoNode, QuestionNode, StartNode


def titled(cls, node_id, **fields):
    return cls(id=node_id, title=f"Step {node_id}", content="Details", **fields)


def build(nodes, edges):
    return GraphModel(nodes=nodes, edges=[Edge(source=s, target=t, source_handle=h) for s, t, h in edges])


class TestGraphValidator:
    """Test cases for GraphValidator."""

    def test_well_formed_workflow_has_no_findings(self, dishwasher_graph):
        result = GraphValidator().validate(dishwasher_graph)

        assert result.findings == []
        assert result.is_executable
        assert result.start_node_id == "N001"
        assert result.end_node_ids == ["N005", "N006"]

    def test_validation_is_deterministic(self, yes_no_graph):
        validator = GraphValidator()
        first = validator.validate(yes_no_graph)
        second = validator.validate(yes_no_graph)

        assert first == second

    def test_validation_does_not_mutate_graph(self, yes_no_graph):
        before = yes_no_graph.snapshot()
        validate_graph(yes_no_graph)

        assert yes_no_graph == GraphModel.from_snapshot(before)

    def test_pure_cycle_has_no_start_node(self):
        graph = build(
            [titled(InfoNode, "A"), titled(InfoNode, "B")],
            [("A", "B", None), ("B", "A", None)],
        )
        result = validate_graph(graph)

        assert FindingCode.NO_START_NODE in result.codes()
        assert FindingCode.NO_END_NODE in result.codes()
        assert result.start_node_id is None
        assert not result.is_executable

    def test_self_loop_is_not_an_end_node(self):
        graph = build(
            [titled(StartNode, "S"), titled(QuestionNode, "X", options=[{"id": "again"}]),
             titled(EndNode, "E")],
            [("S", "X", None), ("X", "X", "again"), ("S", "E", None)],
        )
        result = validate_graph(graph)

        assert FindingCode.NO_END_NODE not in result.codes()
        assert "X" not in result.end_node_ids
        assert result.end_node_ids == ["E"]

    def test_multiple_starts_warn_and_pick_first(self):
        graph = build(
            [titled(StartNode, "S1"), titled(StartNode, "S2"), titled(EndNode, "E")],
            [("S1", "E", None), ("S2", "E", None)],
        )
        result = validate_graph(graph)

        assert result.start_node_id == "S1"
        assert find_start_candidates(graph) == ["S1", "S2"]
        multiple = [f for f in result.findings if f.code == FindingCode.MULTIPLE_START_NODES]
        assert len(multiple) == 1
        assert multiple[0].severity == FindingSeverity.WARNING
        assert not [f for f in result.findings if f.code == FindingCode.UNREACHABLE_NODE]
        assert result.is_executable

    def test_every_start_seeds_reachability(self):
        graph = build(
            [titled(StartNode, "S1"), titled(EndNode, "E1"), titled(StartNode, "S2"), titled(EndNode, "E2")],
            [("S1", "E1", None), ("S2", "E2", None)],
        )
        result = validate_graph(graph)

        codes = [f.code for f in result.findings]
        assert FindingCode.UNREACHABLE_NODE not in codes
        assert codes.count(FindingCode.MULTIPLE_START_NODES) == 1
        assert result.end_node_ids == ["E1", "E2"]

    def test_unreachable_node_behind_cycle(self):
        graph = build(
            [titled(StartNode, "S"), titled(EndNode, "E"), titled(InfoNode, "L1"), titled(InfoNode, "L2")],
            [("S", "E", None), ("L1", "L2", None), ("L2", "L1", None)],
        )
        result = validate_graph(graph)

        unreachable = sorted(f.node_id for f in result.findings if f.code == FindingCode.UNREACHABLE_NODE)
        assert unreachable == ["L1", "L2"]

    def test_disconnected_node(self):
        graph = build(
            [titled(StartNode, "S"), titled(EndNode, "E"), titled(InfoNode, "lonely")],
            [("S", "E", None)],
        )
        result = validate_graph(graph)

        disconnected = [f.node_id for f in result.findings if f.code == FindingCode.DISCONNECTED_NODE]
        assert disconnected == ["lonely"]

    def test_single_node_is_not_disconnected(self):
        result = validate_graph(GraphModel(nodes=[titled(StartNode, "S")]))

        assert FindingCode.DISCONNECTED_NODE not in result.codes()
        assert result.start_node_id == "S"
        assert result.end_node_ids == ["S"]

    def test_missing_title_is_an_error(self, yes_no_graph):
        result = validate_graph(yes_no_graph)

        missing = [f for f in result.findings if f.code == FindingCode.MISSING_CONTENT]
        assert {f.node_id for f in missing} == {"1", "2", "3", "4"}
        assert all(f.severity == FindingSeverity.ERROR for f in missing)
        assert not result.is_executable

    def test_missing_body_is_a_warning(self):
        graph = build(
            [StartNode(id="S", title="Start"), titled(EndNode, "E")],
            [("S", "E", None)],
        )
        result = validate_graph(graph)

        assert result.is_executable
        assert [f.code for f in result.warnings] == [FindingCode.MISSING_CONTENT]

    def test_branching_node_without_options(self):
        graph = build(
            [titled(StartNode, "S"), titled(QuestionNode, "Q"), titled(EndNode, "E")],
            [("S", "Q", None), ("Q", "E", None)],
        )
        result = validate_graph(graph)

        finding = next(f for f in result.findings if f.code == FindingCode.QUESTION_WITHOUT_OPTIONS)
        assert finding.node_id == "Q"
        assert finding.severity == FindingSeverity.WARNING

    def test_dangling_option_target_is_an_error(self):
        graph = build(
            [titled(StartNode, "S"),
             titled(QuestionNode, "Q", options=[{"id": "yes", "nextNodeId": "ghost"}]),
             titled(EndNode, "E")],
            [("S", "Q", None), ("Q", "E", None)],
        )
        result = validate_graph(graph)

        assert FindingCode.DANGLING_OPTION_TARGET in [f.code for f in result.errors]

    def test_duplicate_titles_warn(self):
        graph = build(
            [titled(StartNode, "S"), EndNode(id="E1", title="Done", content="x"),
             EndNode(id="E2", title="done ", content="y")],
            [("S", "E1", None), ("S", "E2", None)],
        )
        result = validate_graph(graph)

        duplicates = sorted(f.node_id for f in result.findings if f.code == FindingCode.DUPLICATE_TITLE)
        assert duplicates == ["E1", "E2"]
        assert result.is_executable

    def test_empty_graph(self):
        result = validate_graph(GraphModel())

        assert result.findings == []
        assert result.start_node_id is None

    def test_summary(self, dishwasher_graph):
        summary = validate_graph(dishwasher_graph).summary()

        assert summary["is_executable"] is True
        assert summary["error_count"] == 0
        assert summary["start_node_id"] == "N001"
