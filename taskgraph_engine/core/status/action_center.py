from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from taskgraph_engine.core.model import ComputedStatus, Edge, Node


# Action-center views for a single user:
# - my_actions: owned nodes that are actionable right now
# - my_waiting: owned nodes that cannot proceed
# - im_blocking: other people's nodes that depend on my unfinished nodes


@dataclass(frozen=True)
class BlockingPair:
    blocked_node: Node
    waiting_on_my_node: Node


def _is_owner(user_id: str, node: Node) -> bool:
    return user_id in node.owners


def my_actions(
    user_id: str,
    nodes: Iterable[Node],
    statuses: dict[str, ComputedStatus],
) -> list[Node]:
    out: list[Node] = []
    for n in nodes:
        if not _is_owner(user_id, n):
            continue
        computed = statuses.get(n.id)
        if computed is None or computed in ("BLOCKED", "WAITING"):
            continue
        if n.manual_status in ("TODO", "DOING"):
            out.append(n)
    return out


def my_waiting(
    user_id: str,
    nodes: Iterable[Node],
    statuses: dict[str, ComputedStatus],
) -> list[Node]:
    return [
        n
        for n in nodes
        if _is_owner(user_id, n) and statuses.get(n.id) in ("BLOCKED", "WAITING")
    ]


def im_blocking(user_id: str, nodes: Iterable[Node], edges: Iterable[Edge]) -> list[BlockingPair]:
    """Nodes owned by someone else that DEPENDS_ON one of my unfinished nodes.

    Dependents I also own, and dependents with no owner, are skipped.
    """

    nodes = list(nodes)
    by_id: dict[str, Node] = {}
    for n in nodes:
        by_id.setdefault(n.id, n)

    dependents: dict[str, list[Edge]] = {}
    for e in edges:
        if e.relation == "DEPENDS_ON":
            dependents.setdefault(e.to_node_id, []).append(e)

    out: list[BlockingPair] = []
    for mine in nodes:
        if not _is_owner(user_id, mine) or mine.manual_status == "DONE":
            continue
        for e in dependents.get(mine.id, []):
            blocked = by_id.get(e.from_node_id)
            if blocked is None:
                continue
            if _is_owner(user_id, blocked) or not blocked.owners:
                continue
            out.append(BlockingPair(blocked_node=blocked, waiting_on_my_node=mine))
    return out
