from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Literal, Optional, Protocol


logger = logging.getLogger(__name__)

EmitResult = Literal["created", "deduplicated"]


@dataclass(frozen=True)
class Notification:
    org_id: Optional[str]
    owner_id: Optional[str]
    node_id: str
    title: str
    message: str
    dedupe_key: str
    team_id: Optional[str] = None


class NotificationSink(Protocol):
    """Stores one notification per dedupe key.

    A notification goes to one owner or, when `team_id` is set, to a whole team.
    """

    def emit(
        self,
        *,
        org_id: Optional[str],
        owner_id: Optional[str],
        node_id: str,
        title: str,
        message: str,
        dedupe_key: str,
        team_id: Optional[str] = None,
    ) -> EmitResult: ...


class InMemoryNotificationSink:
    """Sink that treats dedupe_key as a unique constraint.

    Safe to share between threads: two cascades racing on the same key store
    exactly one notification.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_key: dict[str, Notification] = {}

    def emit(
        self,
        *,
        org_id: Optional[str],
        owner_id: Optional[str],
        node_id: str,
        title: str,
        message: str,
        dedupe_key: str,
        team_id: Optional[str] = None,
    ) -> EmitResult:
        with self._lock:
            if dedupe_key in self._by_key:
                logger.debug("notification deduplicated: %s", dedupe_key)
                return "deduplicated"
            self._by_key[dedupe_key] = Notification(
                org_id=org_id,
                owner_id=owner_id,
                node_id=node_id,
                title=title,
                message=message,
                dedupe_key=dedupe_key,
                team_id=team_id,
            )
            return "created"

    @property
    def notifications(self) -> list[Notification]:
        with self._lock:
            return list(self._by_key.values())

    def for_owner(self, owner_id: str) -> list[Notification]:
        return [n for n in self.notifications if n.owner_id == owner_id]

    def for_team(self, team_id: str) -> list[Notification]:
        return [n for n in self.notifications if n.team_id == team_id]
