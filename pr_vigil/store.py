"""In-memory application store for the reconciliation loop.

Single-writer rule: only :meth:`pr_vigil.poller.Poller.poll` replaces the
snapshot and writes the state table. Everything else reads, or appends
notifications through :meth:`PRStore.add_notification`.
"""

from collections.abc import Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Protocol

from .models import Notification, PrState, Snapshot


class Store(Protocol):
    """What the poller needs from a store."""

    @property
    def snapshot(self) -> Snapshot: ...

    def replace_snapshot(self, snapshot: Snapshot) -> None: ...
    def set_state(self, key: str, state: PrState) -> None: ...
    def set_polling(self, is_polling: bool) -> None: ...
    def set_last_poll_at(self, timestamp: datetime) -> None: ...


class PRStore:
    """Holds the last published snapshot, its state table, and notifications."""

    def __init__(self) -> None:
        self._snapshot: Snapshot = MappingProxyType({})
        self._states: dict[str, PrState] = {}
        self._notifications: list[Notification] = []
        self.last_poll_at: datetime | None = None
        self.is_polling = False

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def states(self) -> Mapping[str, PrState]:
        return MappingProxyType(self._states)

    @property
    def notifications(self) -> list[Notification]:
        return list(self._notifications)

    def get_state(self, key: str) -> PrState | None:
        return self._states.get(key)

    def replace_snapshot(self, snapshot: Snapshot) -> None:
        """Publish a new snapshot, dropping states of PRs no longer present."""
        self._snapshot = MappingProxyType(dict(snapshot))
        self._states = {
            key: state for key, state in self._states.items() if key in snapshot
        }

    def set_state(self, key: str, state: PrState) -> None:
        self._states[key] = state

    def set_polling(self, is_polling: bool) -> None:
        self.is_polling = is_polling

    def set_last_poll_at(self, timestamp: datetime) -> None:
        self.last_poll_at = timestamp

    def add_notification(self, notification: Notification) -> None:
        self._notifications.append(notification)

    def unread_notifications(self) -> list[Notification]:
        return [n for n in self._notifications if not n.read]

    def mark_read(self, notification_id: str) -> None:
        self._notifications = [
            n.model_copy(update={"read": True}) if n.id == notification_id else n
            for n in self._notifications
        ]
