from taskgraph_engine.core.model import Edge, Node
from taskgraph_engine.core.status.action_center import im_blocking, my_actions, my_waiting
from taskgraph_engine.core.status.compute_status import compute_statuses


NODES = [
    Node(id="A", title="Mine, free", manual_status="TODO", owners=("me",)),
    Node(id="B", title="Mine, blocked", manual_status="DOING", owners=("me", "you")),
    Node(id="C", title="Mine, done", manual_status="DONE", owners=("me",)),
    Node(id="D", title="Theirs, waits on A", manual_status="TODO", owners=("you",)),
    Node(id="E", title="Unowned, waits on A", manual_status="TODO"),
    Node(id="F", title="Theirs", manual_status="TODO", owners=("you",)),
]
EDGES = [
    Edge(id="e1", from_node_id="B", to_node_id="F", relation="DEPENDS_ON"),
    Edge(id="e2", from_node_id="D", to_node_id="A", relation="DEPENDS_ON"),
    Edge(id="e3", from_node_id="E", to_node_id="A", relation="DEPENDS_ON"),
    Edge(id="e4", from_node_id="F", to_node_id="C", relation="DEPENDS_ON"),
    Edge(id="e5", from_node_id="B", to_node_id="A", relation="DEPENDS_ON"),
]


def test_my_actions_and_waiting():
    statuses = compute_statuses(NODES, EDGES, [])
    assert [n.id for n in my_actions("me", NODES, statuses)] == ["A"]
    assert [n.id for n in my_waiting("me", NODES, statuses)] == ["B"]
    assert [n.id for n in my_waiting("you", NODES, statuses)] == ["B", "D"]


def test_missing_status_is_not_actionable():
    assert my_actions("me", NODES, {}) == []


def test_im_blocking_skips_self_and_unowned():
    pairs = im_blocking("me", NODES, EDGES)
    # B is co-owned by me, E has no owner, C is DONE.
    assert [(p.blocked_node.id, p.waiting_on_my_node.id) for p in pairs] == [("D", "A")]


def test_im_blocking_for_other_user():
    pairs = im_blocking("you", NODES, EDGES)
    assert [(p.blocked_node.id, p.waiting_on_my_node.id) for p in pairs] == []
