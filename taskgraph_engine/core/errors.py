from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class GraphError(Exception):
    """Base error envelope. Prefer returning/printing these rather than raising raw exceptions."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<snapshot>"
        return f"{loc}: {self.code}: {self.message}"


class SnapshotLoadError(GraphError):
    pass


class SnapshotValidationError(GraphError):
    pass


class LintFinding(GraphError):
    pass


@dataclass(frozen=True)
class CascadeError:
    """A single failed notification inside a cascade run. Collected, never raised."""

    code: str
    message: str
    node_id: str
    owner_id: Optional[str] = None
    team_id: Optional[str] = None

    def __str__(self) -> str:
        recipient = self.owner_id or self.team_id
        target = self.node_id if recipient is None else f"{self.node_id}/{recipient}"
        return f"{target}: {self.code}: {self.message}"
