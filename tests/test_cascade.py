import threading

from taskgraph_engine.core.model import Edge, Node, Snapshot
from taskgraph_engine.core.notify.cascade import (
    trigger_assignment_notifications,
    trigger_unblock_cascade,
    unblocked_dedupe_key,
)
from taskgraph_engine.core.notify.sink import InMemoryNotificationSink


def _dep(src: str, dst: str, eid: str) -> Edge:
    return Edge(id=eid, from_node_id=src, to_node_id=dst, relation="DEPENDS_ON")


def _chain_snapshot() -> Snapshot:
    return Snapshot(
        nodes=(
            Node(id="A", title="Design", manual_status="DONE", owners=("alice",)),
            Node(id="B", title="Build", manual_status="TODO", owners=("bob", "carol")),
            Node(id="C", title="Ship", manual_status="TODO", owners=("alice",)),
        ),
        edges=(_dep("B", "A", "e1"), _dep("C", "B", "e2")),
        org_id="ORG-1",
    )


def test_completing_a_notifies_b_owners_once():
    sink = InMemoryNotificationSink()
    result = trigger_unblock_cascade("A", "ORG-1", _chain_snapshot(), sink=sink)

    assert [(n.node_id, n.owner_id) for n in result.notified] == [("B", "bob"), ("B", "carol")]
    assert result.errors == []
    assert result.ok
    notes = sink.notifications
    assert [n.dedupe_key for n in notes] == ["UNBLOCKED:B:bob", "UNBLOCKED:B:carol"]
    assert notes[0].title == "Node Unblocked"
    assert '"Build"' in notes[0].message
    assert notes[0].org_id == "ORG-1"


def test_rerun_is_idempotent():
    sink = InMemoryNotificationSink()
    snap = _chain_snapshot()
    trigger_unblock_cascade("A", "ORG-1", snap, sink=sink)
    again = trigger_unblock_cascade("A", "ORG-1", snap, sink=sink)

    assert again.notified == []
    assert [(n.node_id, n.owner_id) for n in again.deduplicated] == [("B", "bob"), ("B", "carol")]
    assert len(sink.notifications) == 2


def test_other_unfinished_dependency_holds_back_candidate():
    snap = Snapshot(
        nodes=(
            Node(id="A", title="a", manual_status="DONE"),
            Node(id="B", title="b", manual_status="DOING"),
            Node(id="C", title="c", manual_status="TODO", owners=("cy",)),
        ),
        edges=(_dep("C", "A", "e1"), _dep("C", "B", "e2")),
    )
    sink = InMemoryNotificationSink()
    assert trigger_unblock_cascade("A", None, snap, sink=sink).notified == []
    assert sink.notifications == []


def test_dangling_other_dependency_holds_back_candidate():
    snap = Snapshot(
        nodes=(
            Node(id="A", title="a", manual_status="DONE"),
            Node(id="C", title="c", manual_status="TODO", owners=("cy",)),
        ),
        edges=(_dep("C", "A", "e1"), _dep("C", "GHOST", "e2")),
    )
    assert trigger_unblock_cascade("A", None, snap, sink=InMemoryNotificationSink()).notified == []


def test_only_todo_candidates_are_notified():
    snap = Snapshot(
        nodes=(
            Node(id="A", title="a", manual_status="DONE"),
            Node(id="B", title="b", manual_status="DOING", owners=("bo",)),
            Node(id="C", title="c", manual_status="DONE", owners=("cy",)),
        ),
        edges=(_dep("B", "A", "e1"), _dep("C", "A", "e2")),
    )
    assert trigger_unblock_cascade("A", None, snap, sink=InMemoryNotificationSink()).notified == []


def test_approval_and_advisory_edges_do_not_make_candidates():
    snap = Snapshot(
        nodes=(
            Node(id="A", title="a", manual_status="DONE"),
            Node(id="B", title="b", owners=("bo",)),
        ),
        edges=(
            Edge(id="e1", from_node_id="B", to_node_id="A", relation="APPROVAL_BY"),
            Edge(id="e2", from_node_id="B", to_node_id="A", relation="HANDOFF_TO"),
        ),
    )
    assert trigger_unblock_cascade("A", None, snap, sink=InMemoryNotificationSink()).notified == []


def test_duplicate_edges_and_unknown_dependents_are_tolerated():
    snap = Snapshot(
        nodes=(
            Node(id="A", title="a", manual_status="DONE"),
            Node(id="B", title="b", owners=("bo",)),
        ),
        edges=(_dep("B", "A", "e1"), _dep("B", "A", "e2"), _dep("GHOST", "A", "e3")),
    )
    result = trigger_unblock_cascade("A", None, snap, sink=InMemoryNotificationSink())
    assert [(n.node_id, n.owner_id) for n in result.notified] == [("B", "bo")]
    assert result.deduplicated == []


class _FlakySink(InMemoryNotificationSink):
    def __init__(self, failing_owner: str) -> None:
        super().__init__()
        self.failing_owner = failing_owner

    def emit(self, **kwargs):
        if kwargs["owner_id"] == self.failing_owner:
            raise ConnectionError("sink unavailable")
        return super().emit(**kwargs)


def test_sink_failure_does_not_abort_other_owners():
    sink = _FlakySink("bob")
    result = trigger_unblock_cascade("A", "ORG-1", _chain_snapshot(), sink=sink)

    assert [(n.node_id, n.owner_id) for n in result.notified] == [("B", "carol")]
    assert len(result.errors) == 1
    err = result.errors[0]
    assert (err.code, err.node_id, err.owner_id) == ("E_NOTIFY_FAILED", "B", "bob")
    assert "sink unavailable" in str(err)
    assert not result.ok


def test_resolver_failure_is_collected_per_candidate():
    snap = Snapshot(
        nodes=(
            Node(id="A", title="a", manual_status="DONE"),
            Node(id="B", title="b", owners=("bo",)),
            Node(id="C", title="c", owners=("cy",)),
        ),
        edges=(_dep("B", "A", "e1"), _dep("C", "A", "e2")),
    )

    def resolver(node: Node):
        if node.id == "B":
            raise LookupError("membership service down")
        return ["team-lead", *node.owners]

    result = trigger_unblock_cascade("A", None, snap, sink=InMemoryNotificationSink(), owner_resolver=resolver)
    assert [(n.node_id, n.owner_id) for n in result.notified] == [("C", "team-lead"), ("C", "cy")]
    assert [(e.code, e.node_id) for e in result.errors] == [("E_OWNER_RESOLVE", "B")]


def test_concurrent_sibling_cascades_notify_once():
    # C depends on A and B; both complete at the same time and each cascade
    # sees the other one as DONE.
    snap = Snapshot(
        nodes=(
            Node(id="A", title="a", manual_status="DONE"),
            Node(id="B", title="b", manual_status="DONE"),
            Node(id="C", title="c", owners=("cy", "cat")),
        ),
        edges=(_dep("C", "A", "e1"), _dep("C", "B", "e2")),
    )
    sink = InMemoryNotificationSink()
    results = []
    threads = [
        threading.Thread(target=lambda nid=nid: results.append(trigger_unblock_cascade(nid, None, snap, sink=sink)))
        for nid in ("A", "B", "A", "B")
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(n.dedupe_key for n in sink.notifications) == [
        unblocked_dedupe_key("C", "cat"),
        unblocked_dedupe_key("C", "cy"),
    ]
    assert sum(len(r.notified) for r in results) == 2


def test_assignment_notifications():
    sink = InMemoryNotificationSink()
    first = trigger_assignment_notifications("N-1", "ORG-1", "Build", ["bo", "cy"], sink=sink, is_new=True)
    second = trigger_assignment_notifications("N-1", "ORG-1", "Build", ["bo"], sink=sink)

    assert [n.owner_id for n in first.notified] == ["bo", "cy"]
    assert [n.owner_id for n in second.deduplicated] == ["bo"]
    assert sink.for_owner("bo")[0].title == "New Node Assigned"
    assert sink.for_owner("bo")[0].dedupe_key == "NODE_ASSIGN:N-1:bo"


def test_team_assignment_notifications():
    sink = InMemoryNotificationSink()
    first = trigger_assignment_notifications(
        "N-1",
        "ORG-1",
        "Build",
        ["bo"],
        sink=sink,
        team_ids=["t-fin", "t-ops"],
        team_names={"t-fin": "Finance"},
        is_new=True,
    )
    second = trigger_assignment_notifications("N-1", "ORG-1", "Build", sink=sink, team_ids=["t-fin"])

    assert [(n.owner_id, n.team_id) for n in first.notified] == [("bo", None), (None, "t-fin"), (None, "t-ops")]
    assert [n.dedupe_key for n in second.deduplicated] == ["NODE_TEAM_ASSIGN:N-1:t-fin"]

    fin = sink.for_team("t-fin")
    assert len(fin) == 1
    assert fin[0].owner_id is None
    assert fin[0].title == "Team Node Assigned"
    assert fin[0].message == 'Your team "Finance" has been assigned to "Build".'
    assert sink.for_team("t-ops")[0].message == 'Your team "Unknown" has been assigned to "Build".'


def test_team_assignment_failure_is_collected():
    class _TeamDownSink(InMemoryNotificationSink):
        def emit(self, **kwargs):
            if kwargs["team_id"] == "t-bad":
                raise ConnectionError("team inbox unavailable")
            return super().emit(**kwargs)

    sink = _TeamDownSink()
    result = trigger_assignment_notifications(
        "N-2", None, "Ship", sink=sink, team_ids=["t-bad", "t-ok"]
    )

    assert [n.team_id for n in result.notified] == ["t-ok"]
    err = result.errors[0]
    assert (err.code, err.node_id, err.owner_id, err.team_id) == ("E_NOTIFY_FAILED", "N-2", None, "t-bad")
    assert str(err).startswith("N-2/t-bad: E_NOTIFY_FAILED")
    assert sink.for_team("t-ok")[0].title == "Team Added to Node"
