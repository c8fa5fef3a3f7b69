from __future__ import annotations

import heapq
from collections import deque
from dataclasses import dataclass
from typing import Iterable, Optional

from taskgraph_engine.core.layout.layout_config import DEFAULT_LAYOUT, LayoutOptions
from taskgraph_engine.core.model import Edge, Node


CYCLE_DEPTH = 999
CYCLE_ORDER_BASE = 10000


@dataclass(frozen=True)
class LayoutNode:
    id: str
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class LayoutEdge:
    """`source` is placed before `target`."""

    source: str
    target: str


@dataclass(frozen=True)
class Position:
    x: int
    y: int


def layout_nodes_for(nodes: Iterable[Node]) -> list[LayoutNode]:
    return [LayoutNode(id=n.id, width=n.width, height=n.height) for n in nodes]


def layout_edges_for(edges: Iterable[Edge]) -> list[LayoutEdge]:
    """Map domain edges to precursor -> successor layout edges.

    HANDOFF_TO runs forward (from hands off to `to`). Every other relation
    points at a prerequisite, so `to` is laid out before `from`.
    """
    out: list[LayoutEdge] = []
    for e in edges:
        if e.relation == "HANDOFF_TO":
            out.append(LayoutEdge(source=e.from_node_id, target=e.to_node_id))
        else:
            out.append(LayoutEdge(source=e.to_node_id, target=e.from_node_id))
    return out


def _graph(
    nodes: list[LayoutNode], edges: Iterable[LayoutEdge]
) -> tuple[dict[str, int], dict[str, list[str]], dict[str, int]]:
    index_of: dict[str, int] = {}
    for i, n in enumerate(nodes):
        index_of.setdefault(n.id, i)

    adj: dict[str, list[str]] = {nid: [] for nid in index_of}
    in_degree: dict[str, int] = {nid: 0 for nid in index_of}
    for e in edges:
        if e.source not in index_of or e.target not in index_of:
            continue
        adj[e.source].append(e.target)
        in_degree[e.target] += 1
    return index_of, adj, in_degree


def calculate_depths(nodes: Iterable[LayoutNode], edges: Iterable[LayoutEdge]) -> dict[str, int]:
    """Longest-path depth per node; roots (in-degree 0) are depth 0.

    Nodes left over when the queue drains sit on or behind a cycle and get
    CYCLE_DEPTH.
    """
    index_of, adj, in_degree = _graph(list(nodes), edges)

    depths: dict[str, int] = {nid: 0 for nid in index_of}
    queue: deque[str] = deque(nid for nid in index_of if in_degree[nid] == 0)
    processed: set[str] = set()

    while queue:
        u = queue.popleft()
        processed.add(u)
        for v in adj[u]:
            depths[v] = max(depths[v], depths[u] + 1)
            in_degree[v] -= 1
            if in_degree[v] == 0:
                queue.append(v)

    for nid in index_of:
        if nid not in processed:
            depths[nid] = CYCLE_DEPTH
    return depths


def topological_order(nodes: Iterable[LayoutNode], edges: Iterable[LayoutEdge]) -> dict[str, int]:
    """Stable topological rank per node.

    Ties in readiness are broken by input position. Unreached nodes get
    CYCLE_ORDER_BASE + input index.
    """
    index_of, adj, in_degree = _graph(list(nodes), edges)

    ready: list[tuple[int, str]] = [(i, nid) for nid, i in index_of.items() if in_degree[nid] == 0]
    heapq.heapify(ready)

    order: dict[str, int] = {}
    while ready:
        _, u = heapq.heappop(ready)
        order[u] = len(order)
        for v in adj[u]:
            in_degree[v] -= 1
            if in_degree[v] == 0:
                heapq.heappush(ready, (index_of[v], v))

    for nid, i in index_of.items():
        if nid not in order:
            order[nid] = CYCLE_ORDER_BASE + i
    return order


def compute_layout(
    nodes: Iterable[LayoutNode],
    edges: Iterable[LayoutEdge],
    options: Optional[LayoutOptions] = None,
) -> dict[str, Position]:
    """Grid layout: rows of `columns` nodes, sorted by depth then topological order.

    Column x positions use the default node width so columns line up; each row
    is as tall as its tallest node.
    """
    opts = options or DEFAULT_LAYOUT
    nodes = list(nodes)
    edges = list(edges)

    depths = calculate_depths(nodes, edges)
    topo = topological_order(nodes, edges)

    unique: dict[str, LayoutNode] = {}
    for n in nodes:
        unique.setdefault(n.id, n)
    ordered = sorted(unique.values(), key=lambda n: (depths[n.id], topo[n.id]))

    positions: dict[str, Position] = {}
    current_y = 0
    row_max_height = 0
    for i, n in enumerate(ordered):
        col = i % opts.columns
        if col == 0 and i > 0:
            current_y += row_max_height + opts.y_gap
            row_max_height = 0

        row_max_height = max(row_max_height, n.height or opts.node_height)
        positions[n.id] = Position(x=col * (opts.node_width + opts.x_gap), y=current_y)
    return positions


def compute_graph_layout(
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    options: Optional[LayoutOptions] = None,
) -> dict[str, Position]:
    return compute_layout(layout_nodes_for(nodes), layout_edges_for(edges), options)
