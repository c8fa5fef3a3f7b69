from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import Any, Optional, cast

import typer

from taskgraph_engine.core.errors import GraphError, SnapshotLoadError, SnapshotValidationError
from taskgraph_engine.core.io.load_snapshot import load_snapshot
from taskgraph_engine.core.layout.grid_layout import compute_graph_layout
from taskgraph_engine.core.layout.layout_config import LayoutConfigError, load_and_merge
from taskgraph_engine.core.lint.cycles import find_cycle_path
from taskgraph_engine.core.lint.lint_graph import lint_graph
from taskgraph_engine.core.model import (
    EDGE_RELATIONS,
    Edge,
    EdgeRelation,
    Snapshot,
    index_snapshot,
)
from taskgraph_engine.core.notify.cascade import trigger_unblock_cascade
from taskgraph_engine.core.notify.sink import InMemoryNotificationSink
from taskgraph_engine.core.status.action_center import im_blocking, my_actions, my_waiting
from taskgraph_engine.core.status.compute_status import (
    blocking_details_for,
    compute_statuses,
    display_status,
    status_label,
)
from taskgraph_engine.core.validate.validate_snapshot import summarize_snapshot, validate_snapshot

app = typer.Typer(add_completion=False, no_args_is_help=True)

FORMATS = ("text", "json")


class _EchoHandler(logging.Handler):
    """Writes records through typer.echo so they land on the current stderr."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            typer.echo(self.format(record), err=True)
        except Exception:  # pragma: no cover
            self.handleError(record)


def _configure_logging(log_level: str) -> None:
    log = logging.getLogger("taskgraph_engine")
    for h in [h for h in log.handlers if isinstance(h, _EchoHandler)]:
        log.removeHandler(h)
    handler = _EchoHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    log.addHandler(handler)
    log.setLevel(getattr(logging, log_level.upper(), logging.WARNING))


@app.callback()
def _callback(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level for stderr output"),
) -> None:
    """Task graph status & layout CLI."""
    _configure_logging(log_level)


@app.command("validate")
def validate(
    path: str = typer.Argument(..., help="Path to a snapshot file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Validate the shape of a project snapshot file."""
    _check_format(format, "E_VALIDATE_UNKNOWN_FORMAT")

    def _emit_json(ok: bool, errors: list[GraphError], exit_code: int, summary: dict | None) -> None:
        payload = {
            "tool": "taskgraph",
            "command": "validate",
            "ok": ok,
            "error_count": len(errors),
            "errors": [_to_item(e) for e in errors],
            "summary": summary,
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        raise typer.Exit(code=exit_code)

    try:
        raw = load_snapshot(path)
    except SnapshotLoadError as e:
        if format == "json":
            _emit_json(False, [e], 1, None)
        _print_errors([e])
        raise typer.Exit(code=1)

    snapshot, errors = validate_snapshot(raw)
    if errors:
        if format == "json":
            _emit_json(False, list(errors), 2, None)
        _print_errors(list(errors))
        raise typer.Exit(code=2)

    assert snapshot is not None

    if format == "text":
        typer.echo(summarize_snapshot(snapshot))
        return

    summary = {
        "node_count": len(snapshot.nodes),
        "edge_count": len(snapshot.edges),
        "request_count": len(snapshot.requests),
        "project_id": snapshot.project_id,
    }
    _emit_json(True, [], 0, summary)


@app.command("lint")
def lint(
    path: str = typer.Argument(..., help="Path to a snapshot file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Report malformed-graph findings (dangling edges, self-loops, duplicates, cycles)."""
    _check_format(format, "E_LINT_UNKNOWN_FORMAT")
    snapshot = _load(path)
    findings = lint_graph(snapshot, file=path)

    if format == "json":
        payload = {
            "tool": "taskgraph",
            "command": "lint",
            "ok": not findings,
            "error_count": len(findings),
            "errors": [_to_item(e) for e in findings],
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        raise typer.Exit(code=2 if findings else 0)

    if findings:
        _print_errors(list(findings))
        raise typer.Exit(code=2)
    typer.echo("OK: lint passed")


@app.command("status")
def status(
    path: str = typer.Argument(..., help="Path to a snapshot file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Compute the status of every node."""
    _check_format(format, "E_STATUS_UNKNOWN_FORMAT")
    snapshot = _load(path)
    index = index_snapshot(snapshot)
    statuses = compute_statuses(snapshot.nodes, snapshot.edges, snapshot.requests, index=index)

    rows: list[dict[str, Any]] = []
    for n in snapshot.nodes:
        computed = statuses[n.id]
        reasons = blocking_details_for(n, index)
        rows.append(
            {
                "id": n.id,
                "title": n.title,
                "manual_status": n.manual_status,
                "computed_status": computed,
                "display_status": display_status(computed, reasons),
                "label": status_label(computed, reasons),
            }
        )

    if format == "json":
        typer.echo(json.dumps({"command": "status", "nodes": rows}, indent=2, sort_keys=True))
        return
    for row in rows:
        typer.echo(f"{row['id']}\t{row['computed_status']}\t{row['label']}\t{row['title']}")


@app.command("blocking")
def blocking(
    path: str = typer.Argument(..., help="Path to a snapshot file (.yaml/.yml/.json)"),
    node_id: str = typer.Argument(..., help="Node to explain"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Explain why a node is blocked."""
    _check_format(format, "E_BLOCKING_UNKNOWN_FORMAT")
    snapshot = _load(path)
    index = index_snapshot(snapshot)
    node = index.node(node_id)
    if node is None:
        _print_errors(
            [
                SnapshotValidationError(
                    code="E_UNKNOWN_NODE",
                    message=f"unknown node id: {node_id}",
                    file=path,
                    path="node_id",
                )
            ]
        )
        raise typer.Exit(code=2)

    reasons = blocking_details_for(node, index)
    if format == "json":
        payload = {"command": "blocking", "node_id": node_id, "reasons": [asdict(r) for r in reasons]}
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return
    if not reasons:
        typer.echo(f"{node_id}: not blocked")
        return
    for r in reasons:
        typer.echo(f"{r.kind}\t{r.describe()}")


@app.command("layout")
def layout(
    path: str = typer.Argument(..., help="Path to a snapshot file (.yaml/.yml/.json)"),
    layout_file: Optional[str] = typer.Option(None, "--layout-file", help="Optional YAML file with layout options"),
    columns: Optional[int] = typer.Option(None, "--columns"),
    x_gap: Optional[int] = typer.Option(None, "--x-gap"),
    y_gap: Optional[int] = typer.Option(None, "--y-gap"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Compute grid positions for every node."""
    _check_format(format, "E_LAYOUT_UNKNOWN_FORMAT")
    snapshot = _load(path)
    try:
        options = load_and_merge(layout_file, columns=columns, x_gap=x_gap, y_gap=y_gap)
    except FileNotFoundError:
        _print_errors(
            [
                SnapshotLoadError(
                    code="E_LAYOUT_FILE_NOT_FOUND",
                    message=f"layout file not found: {layout_file}",
                    file=None,
                    path="layout_file",
                )
            ]
        )
        raise typer.Exit(code=1)
    except LayoutConfigError as e:
        _print_errors(
            [
                SnapshotValidationError(
                    code="E_LAYOUT_INVALID",
                    message=str(e),
                    file=layout_file,
                    path="layout",
                )
            ]
        )
        raise typer.Exit(code=2)

    positions = compute_graph_layout(snapshot.nodes, snapshot.edges, options)
    if format == "json":
        payload = {
            "command": "layout",
            "positions": [{"node_id": nid, "x": p.x, "y": p.y} for nid, p in positions.items()],
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return
    for nid, p in positions.items():
        typer.echo(f"{nid}\t{p.x}\t{p.y}")


@app.command("now")
def now(
    path: str = typer.Argument(..., help="Path to a snapshot file (.yaml/.yml/.json)"),
    user: str = typer.Option(..., "--user", help="User id to build the action center for"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Action center for one user: actionable, waiting, and blocking-others nodes."""
    _check_format(format, "E_NOW_UNKNOWN_FORMAT")
    snapshot = _load(path)
    index = index_snapshot(snapshot)
    statuses = compute_statuses(snapshot.nodes, snapshot.edges, snapshot.requests, index=index)

    actions = [n.id for n in my_actions(user, snapshot.nodes, statuses)]
    waiting = [n.id for n in my_waiting(user, snapshot.nodes, statuses)]
    blocking_pairs = [
        {"blocked_node": p.blocked_node.id, "waiting_on_my_node": p.waiting_on_my_node.id}
        for p in im_blocking(user, snapshot.nodes, snapshot.edges)
    ]

    if format == "json":
        payload = {
            "command": "now",
            "user": user,
            "my_actions": actions,
            "my_waiting": waiting,
            "im_blocking": blocking_pairs,
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return
    typer.echo("My actions: " + (", ".join(actions) or "-"))
    typer.echo("My waiting: " + (", ".join(waiting) or "-"))
    typer.echo(
        "I'm blocking: "
        + (", ".join(f"{p['blocked_node']}<-{p['waiting_on_my_node']}" for p in blocking_pairs) or "-")
    )


@app.command("cascade")
def cascade(
    path: str = typer.Argument(..., help="Path to a snapshot file (.yaml/.yml/.json)"),
    node_id: str = typer.Argument(..., help="Node that just transitioned to DONE"),
    org: Optional[str] = typer.Option(None, "--org", help="Organization id (defaults to the snapshot's org_id)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Dry-run the unblock cascade into an in-memory sink and print the notifications."""
    _check_format(format, "E_CASCADE_UNKNOWN_FORMAT")
    snapshot = _load(path)
    sink = InMemoryNotificationSink()
    result = trigger_unblock_cascade(node_id, org or snapshot.org_id, snapshot, sink=sink)

    if format == "json":
        payload = {
            "command": "cascade",
            "completed_node_id": node_id,
            "notifications": [asdict(n) for n in sink.notifications],
            "errors": [asdict(e) for e in result.errors],
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
    else:
        if not sink.notifications:
            typer.echo("No nodes unblocked")
        for n in sink.notifications:
            typer.echo(f"{n.owner_id}\t{n.node_id}\t{n.dedupe_key}")
        for e in result.errors:
            typer.echo(str(e), err=True)

    if result.errors:
        raise typer.Exit(code=2)


@app.command("check-edge")
def check_edge(
    path: str = typer.Argument(..., help="Path to a snapshot file (.yaml/.yml/.json)"),
    from_node: str = typer.Option(..., "--from", help="Dependent node id"),
    to_node: str = typer.Option(..., "--to", help="Prerequisite node id"),
    relation: str = typer.Option("DEPENDS_ON", "--relation"),
) -> None:
    """Check whether adding an edge would close a DEPENDS_ON cycle."""
    if relation not in EDGE_RELATIONS:
        _print_errors(
            [
                SnapshotValidationError(
                    code="E_INVALID_ENUM",
                    message=f"relation must be one of {list(EDGE_RELATIONS)}",
                    file=None,
                    path="relation",
                )
            ]
        )
        raise typer.Exit(code=2)

    snapshot = _load(path)
    new_edge = Edge(
        id="<new>",
        from_node_id=from_node,
        to_node_id=to_node,
        relation=cast(EdgeRelation, relation),
    )
    cycle = find_cycle_path(snapshot.edges, new_edge)
    if cycle is None:
        typer.echo("OK: no cycle")
        return
    _print_errors(
        [
            SnapshotValidationError(
                code="E_EDGE_CREATES_CYCLE",
                message="adding this edge closes a cycle: " + " -> ".join(cycle),
                file=path,
                path="edge",
            )
        ]
    )
    raise typer.Exit(code=2)


def _load(path: str) -> Snapshot:
    try:
        raw = load_snapshot(path)
    except SnapshotLoadError as e:
        _print_errors([e])
        raise typer.Exit(code=1)

    snapshot, errors = validate_snapshot(raw)
    if errors or snapshot is None:
        _print_errors(list(errors))
        raise typer.Exit(code=2)
    return snapshot


def _check_format(format: str, code: str) -> None:
    if format not in FORMATS:
        err = SnapshotValidationError(
            code=code,
            message=f"unknown format: {format} (choose one of: {', '.join(FORMATS)})",
            file=None,
            path="format",
        )
        _print_errors([err])
        raise typer.Exit(code=2)


def _to_item(e: GraphError) -> dict:
    code = e.code
    source = "lint" if code.startswith("L_") else "load" if isinstance(e, SnapshotLoadError) else "validate"
    return {
        "code": e.code,
        "message": e.message,
        "file": e.file,
        "path": e.path,
        "severity": "error",
        "source": source,
    }


def _print_errors(errors: list[GraphError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="taskgraph")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
