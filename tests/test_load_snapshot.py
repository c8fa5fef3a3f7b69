from pathlib import Path

import pytest

from taskgraph_engine.core.errors import SnapshotLoadError
from taskgraph_engine.core.io.load_snapshot import load_snapshot, parse_snapshot_text

EXAMPLES = Path(__file__).resolve().parents[1] / "examples"


def test_load_yaml_success():
    raw = load_snapshot(str(EXAMPLES / "basic-snapshot.yaml"))
    assert raw["schema_version"] == "0.1.0"
    assert raw["project_id"] == "PRJ-001"
    assert isinstance(raw["nodes"], list)
    assert isinstance(raw["edges"], list)
    assert raw["__file__"].endswith("basic-snapshot.yaml")


def test_load_json_defaults_requests():
    raw = load_snapshot(str(EXAMPLES / "basic-snapshot.json"))
    assert raw["requests"] == []
    assert raw["org_id"] is None


def test_load_missing_file():
    with pytest.raises(SnapshotLoadError) as exc:
        load_snapshot(str(EXAMPLES / "does-not-exist.yaml"))
    assert exc.value.code == "E_FILE_NOT_FOUND"


def test_load_unsupported_format(tmp_path: Path):
    p = tmp_path / "snapshot.txt"
    p.write_text("hello", encoding="utf-8")
    with pytest.raises(SnapshotLoadError) as exc:
        load_snapshot(str(p))
    assert exc.value.code == "E_UNSUPPORTED_FORMAT"


def test_load_bad_yaml(tmp_path: Path):
    p = tmp_path / "snapshot.yaml"
    p.write_text("nodes: [unclosed\n", encoding="utf-8")
    with pytest.raises(SnapshotLoadError) as exc:
        load_snapshot(str(p))
    assert exc.value.code == "E_YAML_PARSE"


def test_load_bad_json(tmp_path: Path):
    p = tmp_path / "snapshot.json"
    p.write_text("{nope", encoding="utf-8")
    with pytest.raises(SnapshotLoadError) as exc:
        load_snapshot(str(p))
    assert exc.value.code == "E_JSON_PARSE"


def test_load_non_mapping(tmp_path: Path):
    p = tmp_path / "snapshot.yaml"
    p.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(SnapshotLoadError) as exc:
        load_snapshot(str(p))
    assert exc.value.code == "E_INVALID_TOP_LEVEL"
    assert str(exc.value).endswith("E_INVALID_TOP_LEVEL: top-level document must be a mapping/object")


def test_load_directory_is_read_error(tmp_path: Path):
    d = tmp_path / "snap.yaml"
    d.mkdir()
    with pytest.raises(SnapshotLoadError) as exc:
        load_snapshot(d)
    assert exc.value.code == "E_FILE_READ"


def test_parse_text_in_memory():
    raw = parse_snapshot_text(
        '{"schema_version": "0.1.0", "nodes": [], "extra": 1}',
        ".JSON",
    )
    assert raw == {
        "schema_version": "0.1.0",
        "project_id": None,
        "org_id": None,
        "nodes": [],
        "edges": [],
        "requests": [],
        "__file__": "<snapshot>",
    }

    with pytest.raises(SnapshotLoadError) as exc:
        parse_snapshot_text("nodes: []", ".toml", file="inline")
    assert exc.value.code == "E_UNSUPPORTED_FORMAT"
    assert exc.value.file == "inline"
