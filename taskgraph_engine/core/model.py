from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Literal, Optional


logger = logging.getLogger(__name__)

ManualStatus = Literal["TODO", "DOING", "DONE"]
ComputedStatus = Literal["BLOCKED", "WAITING", "TODO", "DOING", "DONE"]
NodeType = Literal["task", "decision", "blocker", "info_request"]
EdgeRelation = Literal["DEPENDS_ON", "APPROVAL_BY", "NEEDS_INFO_FROM", "HANDOFF_TO"]
RequestStatus = Literal["OPEN", "RESPONDED", "APPROVED", "CLOSED"]

MANUAL_STATUSES: tuple[str, ...] = ("TODO", "DOING", "DONE")
NODE_TYPES: tuple[str, ...] = ("task", "decision", "blocker", "info_request")
EDGE_RELATIONS: tuple[str, ...] = ("DEPENDS_ON", "APPROVAL_BY", "NEEDS_INFO_FROM", "HANDOFF_TO")
REQUEST_STATUSES: tuple[str, ...] = ("OPEN", "RESPONDED", "APPROVED", "CLOSED")

# Relations where `from` cannot proceed until `to` is DONE.
GATING_RELATIONS: frozenset[str] = frozenset({"DEPENDS_ON", "APPROVAL_BY"})
ACTIVE_REQUEST_STATUSES: frozenset[str] = frozenset({"OPEN", "RESPONDED"})


@dataclass(frozen=True)
class Node:
    id: str
    title: str
    manual_status: ManualStatus = "TODO"
    type: NodeType = "task"
    owners: tuple[str, ...] = ()
    teams: tuple[str, ...] = ()
    priority: int = 0
    due_at: Optional[str] = None
    description: Optional[str] = None

    # Layout hints; the layout engine falls back to its defaults.
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class Edge:
    id: str
    from_node_id: str
    to_node_id: str
    relation: EdgeRelation

    @property
    def is_gating(self) -> bool:
        return self.relation in GATING_RELATIONS


@dataclass(frozen=True)
class Request:
    id: str
    linked_node_id: str
    status: RequestStatus
    to_user_id: Optional[str] = None
    to_team_id: Optional[str] = None
    question: str = ""

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_REQUEST_STATUSES


@dataclass(frozen=True)
class Snapshot:
    """Everything the engine knows about one project at one point in time."""

    nodes: tuple[Node, ...]
    edges: tuple[Edge, ...]
    requests: tuple[Request, ...] = ()
    project_id: Optional[str] = None
    org_id: Optional[str] = None
    schema_version: str = "0.1.0"


@dataclass(frozen=True)
class GraphIndex:
    """Adjacency maps built once per snapshot and shared by the status and cascade code."""

    nodes_by_id: dict[str, Node]
    outgoing: dict[str, tuple[Edge, ...]]
    incoming: dict[str, tuple[Edge, ...]]
    active_requests: dict[str, tuple[Request, ...]]
    dangling_edges: tuple[Edge, ...]

    def node(self, node_id: str) -> Optional[Node]:
        return self.nodes_by_id.get(node_id)

    def is_done(self, node_id: str) -> bool:
        n = self.nodes_by_id.get(node_id)
        return n is not None and n.manual_status == "DONE"

    def gating_edges(self, node_id: str) -> tuple[Edge, ...]:
        return tuple(e for e in self.outgoing.get(node_id, ()) if e.is_gating)

    def dependents(self, node_id: str, relation: str = "DEPENDS_ON") -> tuple[Edge, ...]:
        return tuple(e for e in self.incoming.get(node_id, ()) if e.relation == relation)


def build_index(
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    requests: Iterable[Request] = (),
) -> GraphIndex:
    """Index a snapshot.

    Edge and request lists keep their declaration order. Duplicate node ids keep
    the first occurrence. Dangling edges are indexed like any other edge and
    reported once here.
    """

    nodes_by_id: dict[str, Node] = {}
    for n in nodes:
        nodes_by_id.setdefault(n.id, n)

    outgoing: dict[str, list[Edge]] = defaultdict(list)
    incoming: dict[str, list[Edge]] = defaultdict(list)
    dangling: list[Edge] = []
    for e in edges:
        outgoing[e.from_node_id].append(e)
        incoming[e.to_node_id].append(e)
        if e.from_node_id not in nodes_by_id or e.to_node_id not in nodes_by_id:
            dangling.append(e)

    for e in dangling:
        logger.warning(
            "edge %s references unknown node (%s -> %s); treating target as not done",
            e.id,
            e.from_node_id,
            e.to_node_id,
        )

    active: dict[str, list[Request]] = defaultdict(list)
    for r in requests:
        if r.is_active:
            active[r.linked_node_id].append(r)

    return GraphIndex(
        nodes_by_id=nodes_by_id,
        outgoing={k: tuple(v) for k, v in outgoing.items()},
        incoming={k: tuple(v) for k, v in incoming.items()},
        active_requests={k: tuple(v) for k, v in active.items()},
        dangling_edges=tuple(dangling),
    )


def index_snapshot(snapshot: Snapshot) -> GraphIndex:
    return build_index(snapshot.nodes, snapshot.edges, snapshot.requests)
