from __future__ import annotations

from collections import Counter
from datetime import date, datetime
from typing import Any, Iterable, Optional, cast

from taskgraph_engine.core.errors import SnapshotValidationError
from taskgraph_engine.core.model import (
    EDGE_RELATIONS,
    MANUAL_STATUSES,
    NODE_TYPES,
    REQUEST_STATUSES,
    Edge,
    EdgeRelation,
    ManualStatus,
    Node,
    NodeType,
    Request,
    RequestStatus,
    Snapshot,
)


def _is_list_of_str(v: Any) -> bool:
    return isinstance(v, list) and all(isinstance(x, str) for x in v)


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and bool(v.strip())


def validate_snapshot(
    raw: dict[str, Any],
) -> tuple[Optional[Snapshot], list[SnapshotValidationError]]:
    """Validate the shape of a loaded snapshot.

    Returns (snapshot, errors). Snapshot is None when errors exist.

    Only shape problems are errors here. Edges pointing at unknown nodes,
    self-loops and duplicate edges are accepted: the status and layout engines
    tolerate them and `lint_graph` reports them.
    """

    file = cast(Optional[str], raw.get("__file__"))
    errors: list[SnapshotValidationError] = []

    def err(code: str, message: str, path: str) -> None:
        errors.append(SnapshotValidationError(code=code, message=message, file=file, path=path))

    schema_version = raw.get("schema_version")
    if not _is_non_empty_str(schema_version):
        err("E_REQUIRED_FIELD", "schema_version is required and must be a non-empty string", "schema_version")

    for key in ("project_id", "org_id"):
        v = raw.get(key)
        if v is not None and not isinstance(v, str):
            err("E_INVALID_TYPE", f"{key} must be a string", key)

    raw_nodes = raw.get("nodes")
    if not isinstance(raw_nodes, list):
        err("E_REQUIRED_FIELD", "nodes is required and must be an array", "nodes")
        return None, _sorted(errors)

    raw_edges = raw.get("edges")
    if raw_edges is None:
        raw_edges = []
    if not isinstance(raw_edges, list):
        err("E_INVALID_TYPE", "edges must be an array", "edges")
        raw_edges = []

    raw_requests = raw.get("requests")
    if raw_requests is None:
        raw_requests = []
    if not isinstance(raw_requests, list):
        err("E_INVALID_TYPE", "requests must be an array", "requests")
        raw_requests = []

    nodes: list[Node] = []
    seen_ids: set[str] = set()
    for i, item in enumerate(raw_nodes):
        node = _validate_node(item, f"nodes[{i}]", seen_ids, err)
        if node is not None:
            seen_ids.add(node.id)
            nodes.append(node)

    edges: list[Edge] = []
    for i, item in enumerate(raw_edges):
        edge = _validate_edge(item, i, err)
        if edge is not None:
            edges.append(edge)

    requests: list[Request] = []
    for i, item in enumerate(raw_requests):
        req = _validate_request(item, f"requests[{i}]", err)
        if req is not None:
            requests.append(req)

    dup_edge_ids = [k for k, v in Counter(e.id for e in edges).items() if v > 1]
    for eid in sorted(dup_edge_ids):
        err("E_DUPLICATE_ID", f"duplicate edge id: {eid}", "edges")

    if errors:
        return None, _sorted(errors)

    snapshot = Snapshot(
        nodes=tuple(nodes),
        edges=tuple(edges),
        requests=tuple(requests),
        project_id=cast(Optional[str], raw.get("project_id")),
        org_id=cast(Optional[str], raw.get("org_id")),
        schema_version=cast(str, schema_version),
    )
    return snapshot, []


def _validate_node(item: Any, node_path: str, seen_ids: set[str], err) -> Optional[Node]:
    if not isinstance(item, dict):
        err("E_INVALID_TYPE", "node must be an object", node_path)
        return None

    nid = item.get("id")
    if not _is_non_empty_str(nid):
        err("E_REQUIRED_FIELD", "id is required and must be a non-empty string", f"{node_path}.id")
        return None
    if nid in seen_ids:
        err("E_DUPLICATE_ID", f"duplicate node id: {nid}", f"{node_path}.id")
        return None

    title = item.get("title")
    if not _is_non_empty_str(title):
        err("E_REQUIRED_FIELD", "title is required and must be a non-empty string", f"{node_path}.title")
        return None

    status = item.get("manual_status", "TODO")
    if status not in MANUAL_STATUSES:
        err("E_INVALID_ENUM", f"manual_status must be one of {list(MANUAL_STATUSES)}", f"{node_path}.manual_status")
        return None

    ntype = item.get("type", "task")
    if ntype not in NODE_TYPES:
        err("E_INVALID_ENUM", f"type must be one of {list(NODE_TYPES)}", f"{node_path}.type")
        return None

    owners = item.get("owners", [])
    if owners is None:
        owners = []
    if not _is_list_of_str(owners):
        err("E_INVALID_TYPE", "owners must be an array of strings", f"{node_path}.owners")
        return None

    teams = item.get("teams", [])
    if teams is None:
        teams = []
    if not _is_list_of_str(teams):
        err("E_INVALID_TYPE", "teams must be an array of strings", f"{node_path}.teams")
        return None

    ok = True
    priority = item.get("priority", 0)
    # bool is an int subclass; reject it explicitly.
    if priority is None or isinstance(priority, bool) or not isinstance(priority, int):
        err("E_INVALID_TYPE", "priority must be an integer", f"{node_path}.priority")
        ok = False

    due_at = item.get("due_at")
    if isinstance(due_at, (datetime, date)):
        due_at = due_at.isoformat()
    if due_at is not None and not isinstance(due_at, str):
        err("E_INVALID_TYPE", "due_at must be an ISO-8601 string", f"{node_path}.due_at")
        ok = False

    description = item.get("description")
    if description is not None and not isinstance(description, str):
        err("E_INVALID_TYPE", "description must be a string", f"{node_path}.description")
        ok = False

    for dim in ("width", "height"):
        v = item.get(dim)
        if v is not None and (isinstance(v, bool) or not isinstance(v, int) or v <= 0):
            err("E_INVALID_TYPE", f"{dim} must be a positive integer", f"{node_path}.{dim}")
            ok = False

    if not ok:
        return None

    return Node(
        id=nid,
        title=title,
        manual_status=cast(ManualStatus, status),
        type=cast(NodeType, ntype),
        owners=tuple(owners),
        teams=tuple(teams),
        priority=priority,
        due_at=due_at,
        description=description,
        width=item.get("width"),
        height=item.get("height"),
    )


def _validate_edge(item: Any, index: int, err) -> Optional[Edge]:
    edge_path = f"edges[{index}]"
    if not isinstance(item, dict):
        err("E_INVALID_TYPE", "edge must be an object", edge_path)
        return None

    eid = item.get("id", f"edge-{index}")
    if not _is_non_empty_str(eid):
        err("E_INVALID_TYPE", "id must be a non-empty string", f"{edge_path}.id")
        return None

    ends: dict[str, str] = {}
    for key in ("from", "to"):
        v = item.get(key)
        if not _is_non_empty_str(v):
            err("E_REQUIRED_FIELD", f"{key} is required and must be a non-empty string", f"{edge_path}.{key}")
            return None
        ends[key] = v

    relation = item.get("relation")
    if relation not in EDGE_RELATIONS:
        err("E_INVALID_ENUM", f"relation must be one of {list(EDGE_RELATIONS)}", f"{edge_path}.relation")
        return None

    return Edge(
        id=eid,
        from_node_id=ends["from"],
        to_node_id=ends["to"],
        relation=cast(EdgeRelation, relation),
    )


def _validate_request(item: Any, req_path: str, err) -> Optional[Request]:
    if not isinstance(item, dict):
        err("E_INVALID_TYPE", "request must be an object", req_path)
        return None

    rid = item.get("id")
    if not _is_non_empty_str(rid):
        err("E_REQUIRED_FIELD", "id is required and must be a non-empty string", f"{req_path}.id")
        return None

    linked = item.get("linked_node_id")
    if not _is_non_empty_str(linked):
        err(
            "E_REQUIRED_FIELD",
            "linked_node_id is required and must be a non-empty string",
            f"{req_path}.linked_node_id",
        )
        return None

    status = item.get("status")
    if status not in REQUEST_STATUSES:
        err("E_INVALID_ENUM", f"status must be one of {list(REQUEST_STATUSES)}", f"{req_path}.status")
        return None

    ok = True
    for key in ("to_user_id", "to_team_id"):
        v = item.get(key)
        if v is not None and not isinstance(v, str):
            err("E_INVALID_TYPE", f"{key} must be a string", f"{req_path}.{key}")
            ok = False

    question = item.get("question", "")
    if question is None:
        question = ""
    if not isinstance(question, str):
        err("E_INVALID_TYPE", "question must be a string", f"{req_path}.question")
        ok = False

    if not ok:
        return None

    return Request(
        id=rid,
        linked_node_id=linked,
        status=cast(RequestStatus, status),
        to_user_id=item.get("to_user_id"),
        to_team_id=item.get("to_team_id"),
        question=question,
    )


def summarize_snapshot(snapshot: Snapshot) -> str:
    counts = Counter([n.manual_status for n in snapshot.nodes])
    parts = [f"{s}={counts.get(s, 0)}" for s in MANUAL_STATUSES]
    return (
        f"OK: {len(snapshot.nodes)} nodes ("
        + ", ".join(parts)
        + f"), {len(snapshot.edges)} edges, {len(snapshot.requests)} requests"
    )


def _sorted(errors: Iterable[SnapshotValidationError]) -> list[SnapshotValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.file or "",
            e.path or "",
            e.code,
        ),
    )
