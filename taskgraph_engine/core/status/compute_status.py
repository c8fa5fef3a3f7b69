from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal, Optional

from taskgraph_engine.core.model import (
    ComputedStatus,
    Edge,
    GraphIndex,
    Node,
    Request,
    build_index,
)


BlockingKind = Literal["DEPENDENCY", "APPROVAL", "REQUEST"]
WaitingKind = Literal["TASK", "APPROVAL", "PERSON"]

_KIND_BY_RELATION: dict[str, BlockingKind] = {
    "DEPENDS_ON": "DEPENDENCY",
    "APPROVAL_BY": "APPROVAL",
}


@dataclass(frozen=True)
class BlockingReason:
    """One reason a node cannot proceed.

    Edge-derived reasons carry the target node; request reasons carry the request.
    `target_missing` marks an edge whose target is not in the snapshot.
    """

    kind: BlockingKind
    node_id: Optional[str] = None
    node_title: Optional[str] = None
    node_status: Optional[str] = None
    edge_id: Optional[str] = None
    target_missing: bool = False
    request_id: Optional[str] = None
    request_status: Optional[str] = None
    question: Optional[str] = None

    def describe(self) -> str:
        if self.kind == "REQUEST":
            return f"request {self.request_id} is {self.request_status}"
        verb = "depends on" if self.kind == "DEPENDENCY" else "needs approval from"
        if self.target_missing:
            return f"{verb} {self.node_id} (not found)"
        return f'{verb} {self.node_id} "{self.node_title}" ({self.node_status})'


def _unmet_gating_edges(node: Node, index: GraphIndex) -> list[Edge]:
    return [e for e in index.gating_edges(node.id) if not index.is_done(e.to_node_id)]


def compute_node_status(node: Node, index: GraphIndex) -> ComputedStatus:
    """Derive a single node's status.

    DONE wins outright. Any unmet DEPENDS_ON/APPROVAL_BY target or active request
    makes the node BLOCKED. Otherwise the manual status stands.
    """

    if node.manual_status == "DONE":
        return "DONE"

    if _unmet_gating_edges(node, index):
        return "BLOCKED"

    if index.active_requests.get(node.id):
        return "BLOCKED"

    # A DONE prerequisite is absorbing and a non-DONE one blocks directly, so a
    # node that gets here cannot sit downstream of an unresolved chain.
    return node.manual_status


def compute_statuses(
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    requests: Iterable[Request],
    *,
    index: Optional[GraphIndex] = None,
) -> dict[str, ComputedStatus]:
    """Compute the status of every node in a project snapshot.

    Keys follow node input order; duplicate ids keep their first node. Pass
    `index` to reuse one built for the same snapshot.
    """

    nodes = list(nodes)
    if index is None:
        index = build_index(nodes, edges, requests)

    out: dict[str, ComputedStatus] = {}
    for n in nodes:
        if n.id in out:
            continue
        out[n.id] = compute_node_status(index.nodes_by_id.get(n.id, n), index)
    return out


def blocking_details(
    node: Node,
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    requests: Iterable[Request],
    *,
    index: Optional[GraphIndex] = None,
) -> list[BlockingReason]:
    """Explain why `node` is blocked.

    Dependency and approval reasons come first in edge declaration order, then
    request reasons in request list order. Reasons are listed whatever the
    node's own status; only computed status treats DONE as final.

    Each call without `index` builds its own, which logs dangling edges again.
    Pass one shared index when explaining several nodes of the same snapshot.
    """

    if index is None:
        index = build_index(nodes, edges, requests)
    return blocking_details_for(node, index)


def blocking_details_for(node: Node, index: GraphIndex) -> list[BlockingReason]:
    reasons: list[BlockingReason] = []
    for e in _unmet_gating_edges(node, index):
        target = index.node(e.to_node_id)
        reasons.append(
            BlockingReason(
                kind=_KIND_BY_RELATION[e.relation],
                node_id=e.to_node_id,
                node_title=target.title if target else None,
                node_status=target.manual_status if target else None,
                edge_id=e.id,
                target_missing=target is None,
            )
        )

    for r in index.active_requests.get(node.id, ()):
        reasons.append(
            BlockingReason(
                kind="REQUEST",
                request_id=r.id,
                request_status=r.status,
                question=r.question or None,
            )
        )
    return reasons


def waiting_kind(reasons: list[BlockingReason]) -> Optional[WaitingKind]:
    """Classify what a blocked node is waiting on.

    TASK when any dependency is unmet, APPROVAL when only approvals (and maybe
    requests) remain, PERSON when only requests remain.
    """

    kinds = {r.kind for r in reasons}
    if not kinds:
        return None
    if "DEPENDENCY" in kinds:
        return "TASK"
    if "APPROVAL" in kinds:
        return "APPROVAL"
    return "PERSON"


def display_status(status: ComputedStatus, reasons: list[BlockingReason]) -> ComputedStatus:
    """Status to show in a UI.

    BLOCKED splits into BLOCKED (waiting on a task) and WAITING (waiting on a
    person: an approver or an open request). Other values pass through.
    """

    if status != "BLOCKED":
        return status
    return "BLOCKED" if waiting_kind(reasons) in (None, "TASK") else "WAITING"


def status_label(status: ComputedStatus, reasons: list[BlockingReason]) -> str:
    kind = waiting_kind(reasons) if status == "BLOCKED" else None
    if kind == "TASK":
        n = sum(1 for r in reasons if r.kind == "DEPENDENCY")
        return f"Blocked by {n} task" + ("" if n == 1 else "s")
    if kind == "APPROVAL":
        return "Waiting for approval"
    if kind == "PERSON":
        n = len(reasons)
        return f"Waiting on {n} request" + ("" if n == 1 else "s")
    return status.capitalize()
