"""Snapshot diffing: turn two consecutive snapshots into change events."""

from collections import Counter
from datetime import UTC, datetime

from .classifier import is_ready_to_merge
from .models import (
    ChecksChangedData,
    CommentAddedData,
    EventData,
    EventType,
    LabelsChangedData,
    MergeableState,
    PRState,
    PrEvent,
    PullRequest,
    ReviewSubmittedData,
    Snapshot,
)


def checks_changed(previous: PullRequest, current: PullRequest) -> bool:
    """True if the check count or any check's (name, conclusion) pair differs."""
    if len(previous.checks) != len(current.checks):
        return True
    before = Counter((check.name, check.conclusion) for check in previous.checks)
    after = Counter((check.name, check.conclusion) for check in current.checks)
    return before != after


def _label_changes(
    previous: PullRequest, current: PullRequest
) -> tuple[list[str], list[str]]:
    before = dict.fromkeys(label.name for label in previous.labels)
    after = dict.fromkeys(label.name for label in current.labels)
    added = [name for name in after if name not in before]
    removed = [name for name in before if name not in after]
    return added, removed


def _diff_pr(
    previous: PullRequest, current: PullRequest, timestamp: datetime
) -> list[PrEvent]:
    events: list[PrEvent] = []

    def emit(event_type: EventType, data: EventData | None = None) -> None:
        events.append(
            PrEvent(
                type=event_type,
                pr_key=current.key,
                pr=current,
                timestamp=timestamp,
                data=data,
            )
        )

    # Lifecycle
    if previous.state == PRState.OPEN and current.state == PRState.MERGED:
        emit(EventType.MERGED)
    elif previous.state == PRState.OPEN and current.state == PRState.CLOSED:
        emit(EventType.CLOSED)

    # Draft
    if previous.is_draft and not current.is_draft:
        emit(EventType.UNDRAFTED)
    elif not previous.is_draft and current.is_draft:
        emit(EventType.BECAME_DRAFT)

    seen_reviews = {review.id for review in previous.reviews}
    for review in current.reviews:
        if review.id not in seen_reviews:
            emit(EventType.REVIEW_SUBMITTED, ReviewSubmittedData(review=review))

    seen_comments = {comment.id for comment in previous.comments}
    for comment in current.comments:
        if comment.id not in seen_comments:
            emit(EventType.COMMENT_ADDED, CommentAddedData(comment=comment))

    if checks_changed(previous, current):
        emit(
            EventType.CHECKS_CHANGED,
            ChecksChangedData(checks=current.checks, previous_checks=previous.checks),
        )

    # Conflicts
    was_conflicting = previous.mergeable == MergeableState.CONFLICTING
    is_conflicting = current.mergeable == MergeableState.CONFLICTING
    if is_conflicting and not was_conflicting:
        emit(EventType.CONFLICT_DETECTED)
    elif was_conflicting and not is_conflicting:
        emit(EventType.CONFLICT_RESOLVED)

    added, removed = _label_changes(previous, current)
    if added or removed:
        emit(EventType.LABELS_CHANGED, LabelsChangedData(added=added, removed=removed))

    if is_ready_to_merge(current) and not is_ready_to_merge(previous):
        emit(EventType.READY_TO_MERGE)

    return events


def diff_prs(
    previous: Snapshot, current: Snapshot, now: datetime | None = None
) -> list[PrEvent]:
    """
    Compare two snapshots and emit one event per detected change.

    Every PR in ``current`` is checked in iteration order, and a single PR may
    emit several events. A PR missing from ``previous`` only emits
    ``pr_opened``. PRs that vanished from ``current`` emit ``pr_closed``
    carrying their last known record. All events share one timestamp.
    """
    timestamp = now or datetime.now(UTC)
    events: list[PrEvent] = []

    for key, pr in current.items():
        prev = previous.get(key)
        if prev is None:
            events.append(
                PrEvent(type=EventType.OPENED, pr_key=key, pr=pr, timestamp=timestamp)
            )
            continue
        events.extend(_diff_pr(prev, pr, timestamp))

    for key, prev in previous.items():
        if key not in current:
            events.append(
                PrEvent(type=EventType.CLOSED, pr_key=key, pr=prev, timestamp=timestamp)
            )

    return events
