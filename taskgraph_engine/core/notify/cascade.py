from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Optional, Sequence

from taskgraph_engine.core.errors import CascadeError
from taskgraph_engine.core.model import GraphIndex, Node, Snapshot, index_snapshot
from taskgraph_engine.core.notify.sink import NotificationSink


logger = logging.getLogger(__name__)

OwnerResolver = Callable[[Node], Sequence[str]]

UNBLOCKED_TITLE = "Node Unblocked"


@dataclass(frozen=True)
class Notified:
    node_id: str
    owner_id: Optional[str]
    dedupe_key: str
    team_id: Optional[str] = None


@dataclass
class CascadeResult:
    notified: list[Notified] = field(default_factory=list)
    deduplicated: list[Notified] = field(default_factory=list)
    errors: list[CascadeError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def unblocked_dedupe_key(node_id: str, owner_id: str) -> str:
    return f"UNBLOCKED:{node_id}:{owner_id}"


def assignment_dedupe_key(node_id: str, owner_id: str) -> str:
    return f"NODE_ASSIGN:{node_id}:{owner_id}"


def team_assignment_dedupe_key(node_id: str, team_id: str) -> str:
    return f"NODE_TEAM_ASSIGN:{node_id}:{team_id}"


def _default_owners(node: Node) -> Sequence[str]:
    return node.owners


def unblocked_candidates(completed_node_id: str, index: GraphIndex) -> list[Node]:
    """Dependents of the completed node that are now free to start.

    A candidate qualifies when every other DEPENDS_ON target is DONE and it is
    still sitting at TODO.
    """

    out: list[Node] = []
    seen: set[str] = set()
    for edge in index.dependents(completed_node_id, "DEPENDS_ON"):
        cid = edge.from_node_id
        if cid in seen:
            continue
        seen.add(cid)

        candidate = index.node(cid)
        if candidate is None:
            logger.warning("edge %s comes from unknown node %s; skipping", edge.id, cid)
            continue
        if candidate.manual_status != "TODO":
            continue

        others = [
            e
            for e in index.outgoing.get(cid, ())
            if e.relation == "DEPENDS_ON" and e.to_node_id != completed_node_id
        ]
        if all(index.is_done(e.to_node_id) for e in others):
            out.append(candidate)
    return out


def trigger_unblock_cascade(
    completed_node_id: str,
    org_id: Optional[str],
    snapshot: Snapshot,
    *,
    sink: NotificationSink,
    owner_resolver: Optional[OwnerResolver] = None,
) -> CascadeResult:
    """Notify owners of nodes unblocked by `completed_node_id` reaching DONE.

    Call once per transition into DONE. Re-running is safe: every event carries
    a per (node, owner) dedupe key and the sink drops repeats. A failure for one
    owner is recorded and the rest still run.
    """

    resolve = owner_resolver or _default_owners
    index = index_snapshot(snapshot)
    result = CascadeResult()

    for candidate in unblocked_candidates(completed_node_id, index):
        try:
            owners = list(resolve(candidate))
        except Exception as e:
            logger.warning("owner lookup failed for %s: %s", candidate.id, e)
            result.errors.append(
                CascadeError(code="E_OWNER_RESOLVE", message=str(e), node_id=candidate.id)
            )
            continue

        message = (
            f'All dependencies for "{candidate.title}" are now complete. '
            "You can start working on it."
        )
        for owner_id in owners:
            _emit(
                result,
                sink,
                org_id=org_id,
                owner_id=owner_id,
                node_id=candidate.id,
                title=UNBLOCKED_TITLE,
                message=message,
                dedupe_key=unblocked_dedupe_key(candidate.id, owner_id),
            )

    if result.errors:
        logger.warning(
            "unblock cascade for %s finished with %d error(s)", completed_node_id, len(result.errors)
        )
    return result


def trigger_assignment_notifications(
    node_id: str,
    org_id: Optional[str],
    title: str,
    owner_ids: Iterable[str] = (),
    *,
    sink: NotificationSink,
    team_ids: Iterable[str] = (),
    team_names: Optional[Mapping[str, str]] = None,
    is_new: bool = False,
) -> CascadeResult:
    """Tell new owners and teams they were put on a node.

    Owners are notified one by one, then each team once as a whole. Team names
    come from `team_names`; unknown teams read as "Unknown".
    """

    result = CascadeResult()
    for owner_id in owner_ids:
        if is_new:
            heading = "New Node Assigned"
            message = f'You have been assigned to the node "{title}".'
        else:
            heading = "Assigned to Node"
            message = f'You were added as an owner of "{title}".'
        _emit(
            result,
            sink,
            org_id=org_id,
            owner_id=owner_id,
            node_id=node_id,
            title=heading,
            message=message,
            dedupe_key=assignment_dedupe_key(node_id, owner_id),
        )

    names = team_names or {}
    for team_id in team_ids:
        team_name = names.get(team_id, "Unknown")
        if is_new:
            heading = "Team Node Assigned"
            message = f'Your team "{team_name}" has been assigned to "{title}".'
        else:
            heading = "Team Added to Node"
            message = f'Your team "{team_name}" was added to "{title}".'
        _emit(
            result,
            sink,
            org_id=org_id,
            owner_id=None,
            team_id=team_id,
            node_id=node_id,
            title=heading,
            message=message,
            dedupe_key=team_assignment_dedupe_key(node_id, team_id),
        )
    return result


def _emit(
    result: CascadeResult,
    sink: NotificationSink,
    *,
    org_id: Optional[str],
    owner_id: Optional[str],
    node_id: str,
    title: str,
    message: str,
    dedupe_key: str,
    team_id: Optional[str] = None,
) -> None:
    record = Notified(node_id=node_id, owner_id=owner_id, dedupe_key=dedupe_key, team_id=team_id)
    try:
        outcome = sink.emit(
            org_id=org_id,
            owner_id=owner_id,
            node_id=node_id,
            title=title,
            message=message,
            dedupe_key=dedupe_key,
            team_id=team_id,
        )
    except Exception as e:
        logger.warning("notification %s failed: %s", dedupe_key, e)
        result.errors.append(
            CascadeError(
                code="E_NOTIFY_FAILED",
                message=str(e),
                node_id=node_id,
                owner_id=owner_id,
                team_id=team_id,
            )
        )
        return

    if outcome == "deduplicated":
        result.deduplicated.append(record)
    else:
        logger.info("notified %s about %s", owner_id or f"team:{team_id}", node_id)
        result.notified.append(record)
