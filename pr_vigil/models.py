"""Pydantic data models for pull request snapshots, events, and states."""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class PRState(str, Enum):
    """Pull request lifecycle state."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"
    MERGED = "MERGED"


class MergeableState(str, Enum):
    """Merge-conflict status computed by GitHub."""

    MERGEABLE = "MERGEABLE"
    CONFLICTING = "CONFLICTING"
    UNKNOWN = "UNKNOWN"


class ReviewDecision(str, Enum):
    """Aggregate review verdict across all reviews on a PR."""

    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    REVIEW_REQUIRED = "REVIEW_REQUIRED"
    NONE = ""


class ReviewState(str, Enum):
    """Pull request review state."""

    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    COMMENTED = "COMMENTED"
    DISMISSED = "DISMISSED"
    PENDING = "PENDING"


class CheckStatus(str, Enum):
    """CI check status."""

    COMPLETED = "COMPLETED"
    IN_PROGRESS = "IN_PROGRESS"
    QUEUED = "QUEUED"
    PENDING = "PENDING"
    WAITING = "WAITING"
    REQUESTED = "REQUESTED"


class CheckConclusion(str, Enum):
    """Terminal outcome of a CI check. Pending checks carry no conclusion."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    SKIPPED = "SKIPPED"
    CANCELLED = "CANCELLED"
    NEUTRAL = "NEUTRAL"
    TIMED_OUT = "TIMED_OUT"
    ACTION_REQUIRED = "ACTION_REQUIRED"
    STALE = "STALE"
    STARTUP_FAILURE = "STARTUP_FAILURE"


PASSING_CONCLUSIONS = frozenset(
    {CheckConclusion.SUCCESS, CheckConclusion.SKIPPED, CheckConclusion.NEUTRAL}
)


class PrState(str, Enum):
    """Urgency classification of a PR."""

    HOT = "hot"
    WAITING = "waiting"
    READY = "ready"
    DORMANT = "dormant"
    BLOCKED = "blocked"


class EventType(str, Enum):
    """Kinds of change detected between two snapshots."""

    OPENED = "pr_opened"
    CLOSED = "pr_closed"
    MERGED = "pr_merged"
    REVIEW_SUBMITTED = "review_submitted"
    COMMENT_ADDED = "comment_added"
    CHECKS_CHANGED = "checks_changed"
    CONFLICT_DETECTED = "conflict_detected"
    CONFLICT_RESOLVED = "conflict_resolved"
    LABELS_CHANGED = "labels_changed"
    READY_TO_MERGE = "ready_to_merge"
    BECAME_DRAFT = "became_draft"
    UNDRAFTED = "undrafted"


class Author(BaseModel):
    """Author of a PR, review, or comment."""

    model_config = ConfigDict(frozen=True)

    login: str
    name: str | None = None
    is_bot: bool = False


class Label(BaseModel):
    """PR label."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    color: str = ""


class Review(BaseModel):
    """Pull request review."""

    model_config = ConfigDict(frozen=True)

    id: str
    author: Author
    state: ReviewState
    body: str = ""
    submitted_at: datetime | None = None


class Comment(BaseModel):
    """Conversation comment on a PR."""

    model_config = ConfigDict(frozen=True)

    id: str
    author: Author
    body: str = ""
    created_at: datetime
    url: str = ""


class Check(BaseModel):
    """A single CI check, normalized from either check runs or commit statuses."""

    model_config = ConfigDict(frozen=True)

    name: str
    status: CheckStatus
    conclusion: CheckConclusion | None = None
    workflow_name: str | None = None
    details_url: str | None = None


class Repository(BaseModel):
    """Repository a PR belongs to."""

    model_config = ConfigDict(frozen=True)

    name: str
    name_with_owner: str


class Worktree(BaseModel):
    """Local checkout of a PR branch, maintained outside the reconciliation loop."""

    model_config = ConfigDict(frozen=True)

    path: str
    branch: str
    is_clean: bool
    uncommitted_changes: int = 0


class PullRequest(BaseModel):
    """One revision of a pull request as observed in a poll cycle.

    Records are never updated in place: the next cycle produces a new one with
    the same ``key``.
    """

    model_config = ConfigDict(frozen=True)

    # Identity
    key: str  # "owner/repo#number"
    number: int
    title: str
    body: str = ""
    url: str
    repository: Repository
    author: Author

    # Branches and lifecycle
    head_ref_name: str = ""
    base_ref_name: str = ""
    is_draft: bool = False
    state: PRState = PRState.OPEN
    mergeable: MergeableState = MergeableState.UNKNOWN
    review_decision: ReviewDecision = ReviewDecision.NONE

    # Activity
    reviews: list[Review] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list)
    checks: list[Check] = Field(default_factory=list)
    labels: list[Label] = Field(default_factory=list)

    # Diff stats
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0

    created_at: datetime
    updated_at: datetime
    worktree: Worktree | None = None

    # False for discovery stubs whose detail query has not succeeded yet
    detailed: bool = False


Snapshot = Mapping[str, PullRequest]


class ReviewSubmittedData(BaseModel):
    """Payload of a review_submitted event."""

    model_config = ConfigDict(frozen=True)

    type: Literal["review_submitted"] = "review_submitted"
    review: Review


class CommentAddedData(BaseModel):
    """Payload of a comment_added event."""

    model_config = ConfigDict(frozen=True)

    type: Literal["comment_added"] = "comment_added"
    comment: Comment


class ChecksChangedData(BaseModel):
    """Payload of a checks_changed event."""

    model_config = ConfigDict(frozen=True)

    type: Literal["checks_changed"] = "checks_changed"
    checks: list[Check]
    previous_checks: list[Check]


class LabelsChangedData(BaseModel):
    """Payload of a labels_changed event."""

    model_config = ConfigDict(frozen=True)

    type: Literal["labels_changed"] = "labels_changed"
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)


EventData = Annotated[
    ReviewSubmittedData | CommentAddedData | ChecksChangedData | LabelsChangedData,
    Field(discriminator="type"),
]


class PrEvent(BaseModel):
    """A single change detected on a PR between two poll cycles."""

    model_config = ConfigDict(frozen=True)

    type: EventType
    pr_key: str
    pr: PullRequest
    timestamp: datetime
    data: EventData | None = None


class NotificationPriority(str, Enum):
    """How loudly a notification should be surfaced."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Notification(BaseModel):
    """A user-facing notification derived from a PR event."""

    id: str
    pr_key: str
    message: str
    priority: NotificationPriority
    timestamp: datetime
    read: bool = False
