from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml


class LayoutConfigError(ValueError):
    pass


def _check_value(key: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise LayoutConfigError(f"layout option '{key}' must be an integer")
    if key in ("x_gap", "y_gap"):
        if value < 0:
            raise LayoutConfigError(f"layout option '{key}' must be >= 0")
    elif value <= 0:
        raise LayoutConfigError(f"layout option '{key}' must be > 0")


@dataclass(frozen=True)
class LayoutOptions:
    columns: int = 5
    x_gap: int = 100
    y_gap: int = 80
    node_width: int = 240
    node_height: int = 120

    def __post_init__(self) -> None:
        for f in fields(self):
            _check_value(f.name, getattr(self, f.name))


DEFAULT_LAYOUT = LayoutOptions()

LAYOUT_KEYS: tuple[str, ...] = tuple(f.name for f in fields(LayoutOptions))


def load_layout_file(path: str | Path) -> dict[str, int]:
    """Load layout overrides from a YAML file.

    Format:
      columns: 4
      x_gap: 60

    Keys must be LayoutOptions fields; values must be integers (columns and
    node sizes positive, gaps non-negative).
    """
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise LayoutConfigError("layout file must be a mapping of option -> integer")

    out: dict[str, int] = {}
    for k, v in raw.items():
        if k not in LAYOUT_KEYS:
            raise LayoutConfigError(f"unknown layout option '{k}' (choose from: {', '.join(LAYOUT_KEYS)})")
        _check_value(k, v)
        out[k] = v
    return out


def merged_layout(overrides: dict[str, Any] | None = None) -> LayoutOptions:
    """Return DEFAULT_LAYOUT with overrides applied. None values are ignored."""
    if not overrides:
        return DEFAULT_LAYOUT
    clean = {k: v for k, v in overrides.items() if v is not None}
    for k in clean:
        if k not in LAYOUT_KEYS:
            raise LayoutConfigError(f"unknown layout option '{k}'")
    return replace(DEFAULT_LAYOUT, **clean)


def load_and_merge(layout_file: str | None, **overrides: Any) -> LayoutOptions:
    merged: dict[str, Any] = {}
    if layout_file:
        merged.update(load_layout_file(layout_file))
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return merged_layout(merged)

