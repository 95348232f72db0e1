"""Mapping of PR events to user-facing notifications."""

import uuid

from .classifier import FAILING_CONCLUSIONS
from .config import NotificationConfig
from .models import (
    ChecksChangedData,
    EventType,
    Notification,
    NotificationPriority,
    PrEvent,
    ReviewState,
    ReviewSubmittedData,
)


def _is_ci_failure(event: PrEvent) -> bool:
    return isinstance(event.data, ChecksChangedData) and any(
        check.conclusion in FAILING_CONCLUSIONS for check in event.data.checks
    )


def _is_changes_requested(event: PrEvent) -> bool:
    return (
        isinstance(event.data, ReviewSubmittedData)
        and event.data.review.state == ReviewState.CHANGES_REQUESTED
    )


def _is_enabled(event_type: EventType, config: NotificationConfig) -> bool:
    if event_type == EventType.CHECKS_CHANGED:
        return config.on_ci_failure
    if event_type == EventType.REVIEW_SUBMITTED:
        return config.on_blocking_review
    if event_type == EventType.READY_TO_MERGE:
        return config.on_ready_to_merge
    if event_type == EventType.COMMENT_ADDED:
        return config.on_new_comment
    return True


def event_to_notification(
    event: PrEvent, config: NotificationConfig | None = None
) -> Notification | None:
    """Build a notification for an event, or None if it is not worth one."""
    config = config or NotificationConfig()
    if not config.enabled or not _is_enabled(event.type, config):
        return None

    if event.type == EventType.CHECKS_CHANGED and _is_ci_failure(event):
        message, priority = f"CI failed on {event.pr_key}", NotificationPriority.HIGH
    elif event.type == EventType.REVIEW_SUBMITTED and _is_changes_requested(event):
        message = f"Changes requested on {event.pr_key}"
        priority = NotificationPriority.HIGH
    elif event.type == EventType.CONFLICT_DETECTED:
        message, priority = f"Conflict on {event.pr_key}", NotificationPriority.HIGH
    elif event.type == EventType.READY_TO_MERGE:
        message = f"{event.pr_key} is ready to merge"
        priority = NotificationPriority.MEDIUM
    elif event.type == EventType.COMMENT_ADDED:
        message, priority = f"New comment on {event.pr_key}", NotificationPriority.LOW
    else:
        return None

    return Notification(
        id=str(uuid.uuid4()),
        pr_key=event.pr_key,
        message=message,
        priority=priority,
        timestamp=event.timestamp,
    )


def events_to_notifications(
    events: list[PrEvent], config: NotificationConfig | None = None
) -> list[Notification]:
    """Apply :func:`event_to_notification` to a batch, dropping the Nones."""
    notifications = []
    for event in events:
        notification = event_to_notification(event, config)
        if notification is not None:
            notifications.append(notification)
    return notifications
