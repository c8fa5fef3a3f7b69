from __future__ import annotations

from collections import deque
from typing import Iterable, Optional

from taskgraph_engine.core.model import Edge


def _depends_on_graph(existing: Iterable[Edge], new_edge: Edge) -> dict[str, list[str]]:
    graph: dict[str, list[str]] = {}
    for e in existing:
        if e.relation == "DEPENDS_ON":
            graph.setdefault(e.from_node_id, []).append(e.to_node_id)
    graph.setdefault(new_edge.from_node_id, []).append(new_edge.to_node_id)
    return graph


def find_cycle_path(existing: Iterable[Edge], new_edge: Edge) -> Optional[list[str]]:
    """Path that adding `new_edge` would close into a DEPENDS_ON cycle.

    Returns [to, ..., from] (shortest by BFS), or None when the edge is safe or
    not a DEPENDS_ON edge. A self-loop returns [node, node].
    """

    if new_edge.relation != "DEPENDS_ON":
        return None

    start, target = new_edge.to_node_id, new_edge.from_node_id
    graph = _depends_on_graph(existing, new_edge)
    if start == target:
        return [start, target]

    q: deque[tuple[str, list[str]]] = deque([(start, [start])])
    seen: set[str] = {start}
    while q:
        cur, path = q.popleft()
        for nxt in graph.get(cur, []):
            if nxt == target:
                return path + [nxt]
            if nxt not in seen:
                seen.add(nxt)
                q.append((nxt, path + [nxt]))
    return None


def would_create_cycle(existing: Iterable[Edge], new_edge: Edge) -> bool:
    return find_cycle_path(existing, new_edge) is not None
