from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable

import yaml

from taskgraph_engine.core.errors import SnapshotLoadError


logger = logging.getLogger(__name__)

# suffix -> (parse error code, parser)
_PARSERS: dict[str, tuple[str, Callable[[str], Any]]] = {
    ".yaml": ("E_YAML_PARSE", yaml.safe_load),
    ".yml": ("E_YAML_PARSE", yaml.safe_load),
    ".json": ("E_JSON_PARSE", json.loads),
}

_SCALAR_KEYS = ("schema_version", "project_id", "org_id", "nodes")
# A project may have no edges or requests yet.
_LIST_KEYS = ("edges", "requests")


def load_snapshot(path: str | Path) -> dict[str, Any]:
    """Read a project snapshot from a .yaml/.yml/.json file.

    See `parse_snapshot_text` for the returned shape.
    """

    p = Path(path)
    if not p.exists():
        raise SnapshotLoadError(code="E_FILE_NOT_FOUND", message="file does not exist", file=str(p))
    if p.is_dir():
        raise SnapshotLoadError(code="E_FILE_READ", message="path is a directory", file=str(p))

    suffix = p.suffix.lower()
    if suffix not in _PARSERS:
        raise SnapshotLoadError(
            code="E_UNSUPPORTED_FORMAT",
            message="supported formats are .yaml/.yml and .json",
            file=str(p),
        )

    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SnapshotLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    return parse_snapshot_text(text, suffix, file=str(p))


def parse_snapshot_text(text: str, suffix: str, file: str = "<snapshot>") -> dict[str, Any]:
    """Parse snapshot text already in memory.

    Returns a dict with keys schema_version, project_id, org_id, nodes, edges,
    requests and `__file__`. Missing edges/requests become empty lists; nothing
    else is coerced, the validator owns shape checking. Unknown top-level keys
    are dropped.
    """

    try:
        code, parse = _PARSERS[suffix.lower()]
    except KeyError:
        raise SnapshotLoadError(
            code="E_UNSUPPORTED_FORMAT",
            message=f"unsupported snapshot format '{suffix}'",
            file=file,
        ) from None

    try:
        data = parse(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise SnapshotLoadError(code=code, message=str(e), file=file) from e

    if not isinstance(data, dict):
        raise SnapshotLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a mapping/object",
            file=file,
        )

    extra = sorted(str(k) for k in data if k not in _SCALAR_KEYS and k not in _LIST_KEYS)
    if extra:
        logger.debug("%s: ignoring top-level keys %s", file, ", ".join(extra))

    snapshot: dict[str, Any] = {k: data.get(k) for k in _SCALAR_KEYS}
    snapshot.update({k: data.get(k, []) for k in _LIST_KEYS})
    snapshot["__file__"] = file
    return snapshot
