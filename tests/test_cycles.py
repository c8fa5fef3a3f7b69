from taskgraph_engine.core.lint.cycles import find_cycle_path, would_create_cycle
from taskgraph_engine.core.model import Edge


def _e(src: str, dst: str, relation: str = "DEPENDS_ON") -> Edge:
    return Edge(id=f"{src}-{dst}", from_node_id=src, to_node_id=dst, relation=relation)


EXISTING = [_e("B", "A"), _e("C", "B"), _e("D", "C"), _e("A", "X", "HANDOFF_TO")]


def test_closing_edge_is_detected_with_path():
    new = _e("A", "D")
    assert would_create_cycle(EXISTING, new) is True
    assert find_cycle_path(EXISTING, new) == ["D", "C", "B", "A"]


def test_safe_edge():
    assert would_create_cycle(EXISTING, _e("D", "A")) is False
    assert find_cycle_path(EXISTING, _e("X", "D")) is None


def test_non_depends_on_edges_are_never_cycles():
    assert would_create_cycle(EXISTING, _e("A", "D", "APPROVAL_BY")) is False
    assert would_create_cycle(EXISTING, _e("A", "A", "HANDOFF_TO")) is False


def test_existing_non_depends_on_edges_are_ignored():
    # A -> X exists only as HANDOFF_TO or APPROVAL_BY, so X DEPENDS_ON A closes nothing.
    assert would_create_cycle(EXISTING, _e("X", "A")) is False
    assert would_create_cycle([_e("A", "X", "APPROVAL_BY")], _e("X", "A")) is False


def test_self_loop():
    assert find_cycle_path([], _e("A", "A")) == ["A", "A"]
