from __future__ import annotations

from collections import defaultdict

from taskgraph_engine.core.errors import LintFinding
from taskgraph_engine.core.model import GATING_RELATIONS, Snapshot


# Graph lint rules. None of these stop status or layout computation:
# - L_DANGLING_EDGE: edge endpoint is not a node in the snapshot
# - L_SELF_LOOP: edge from a node to itself
# - L_DUPLICATE_EDGE: same (from, to, relation) declared more than once
# - L_CYCLE_DETECTED: cycle through DEPENDS_ON/APPROVAL_BY edges
# - L_DANGLING_REQUEST: request linked to a node not in the snapshot
# - L_REQUEST_TARGET: request addressed to both a user and a team, or to neither


def lint_graph(snapshot: Snapshot, file: str | None = None) -> list[LintFinding]:
    node_ids = {n.id for n in snapshot.nodes}
    errors: list[LintFinding] = []

    def add(code: str, message: str, path: str) -> None:
        errors.append(LintFinding(code=code, message=message, file=file, path=path))

    seen_edges: dict[tuple[str, str, str], int] = {}
    for i, e in enumerate(snapshot.edges):
        path = f"edges[{i}]"
        for end in (e.from_node_id, e.to_node_id):
            if end not in node_ids:
                add("L_DANGLING_EDGE", f"edge {e.id} references unknown node: {end}", path)
        if e.from_node_id == e.to_node_id:
            add("L_SELF_LOOP", f"edge {e.id} points {e.from_node_id} at itself", path)

        key = (e.from_node_id, e.to_node_id, e.relation)
        if key in seen_edges:
            add(
                "L_DUPLICATE_EDGE",
                f"edge {e.id} duplicates edges[{seen_edges[key]}] ({e.from_node_id} {e.relation} {e.to_node_id})",
                path,
            )
        else:
            seen_edges[key] = i

    gating: dict[str, list[str]] = defaultdict(list)
    for e in snapshot.edges:
        # Self-loops are reported above.
        if e.relation in GATING_RELATIONS and e.from_node_id != e.to_node_id:
            gating[e.from_node_id].append(e.to_node_id)
    index_of: dict[str, int] = {}
    for i, n in enumerate(snapshot.nodes):
        index_of.setdefault(n.id, i)
    for nid, msg in detect_cycles({nid: gating.get(nid, []) for nid in index_of}):
        add("L_CYCLE_DETECTED", msg, f"nodes[{index_of.get(nid, 0)}]")

    for i, r in enumerate(snapshot.requests):
        path = f"requests[{i}]"
        if r.linked_node_id not in node_ids:
            add("L_DANGLING_REQUEST", f"request {r.id} is linked to unknown node: {r.linked_node_id}", path)
        if (r.to_user_id is None) == (r.to_team_id is None):
            add("L_REQUEST_TARGET", f"request {r.id} must be addressed to exactly one of a user or a team", path)

    return _sorted(errors)


def detect_cycles(id_to_deps: dict[str, list[str]]) -> list[tuple[str, str]]:
    WHITE, GRAY, BLACK = 0, 1, 2
    state: dict[str, int] = {nid: WHITE for nid in id_to_deps.keys()}
    emitted: set[frozenset[str]] = set()
    out: list[tuple[str, str]] = []

    # Iterative DFS over an explicit stack of neighbour iterators.
    for root in list(state.keys()):
        if state[root] != WHITE:
            continue
        state[root] = GRAY
        stack: list[str] = [root]
        iters = [iter(id_to_deps.get(root, []))]
        while iters:
            u = stack[-1]
            advanced = False
            for v in iters[-1]:
                if v not in state:
                    continue
                if state[v] == GRAY:
                    cycle = stack[stack.index(v):] + [v]
                    key = frozenset(cycle)
                    if key not in emitted:
                        emitted.add(key)
                        out.append((u, "dependency cycle detected: " + " -> ".join(cycle)))
                elif state[v] == WHITE:
                    state[v] = GRAY
                    stack.append(v)
                    iters.append(iter(id_to_deps.get(v, [])))
                    advanced = True
                    break
            if not advanced:
                state[u] = BLACK
                stack.pop()
                iters.pop()

    return out


def _sorted(errors: list[LintFinding]) -> list[LintFinding]:
    return sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
