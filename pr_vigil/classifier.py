"""Urgency classification of pull requests."""

from datetime import UTC, datetime, timedelta

from .models import (
    PASSING_CONCLUSIONS,
    CheckConclusion,
    MergeableState,
    PRState,
    PrState,
    PullRequest,
    ReviewDecision,
)

FAILING_CONCLUSIONS = frozenset({CheckConclusion.FAILURE, CheckConclusion.CANCELLED})


def is_ready_to_merge(pr: PullRequest) -> bool:
    """Checks all green (and present), approved, and free of conflicts."""
    all_checks_passing = bool(pr.checks) and all(
        check.conclusion in PASSING_CONCLUSIONS for check in pr.checks
    )
    return (
        all_checks_passing
        and pr.review_decision == ReviewDecision.APPROVED
        and pr.mergeable == MergeableState.MERGEABLE
    )


def classify_pr(
    pr: PullRequest, dormant_threshold_hours: float, now: datetime | None = None
) -> PrState:
    """
    Classify a PR into one of five states.

    Priority order (first match wins):
    - blocked: closed, merged, or draft
    - hot: failing or cancelled CI, changes requested, or a merge conflict
    - ready: all checks green, approved, mergeable
    - dormant: no update for longer than the threshold
    - waiting: everything else (CI running, reviews pending)
    """
    if pr.state != PRState.OPEN or pr.is_draft:
        return PrState.BLOCKED

    has_ci_failure = any(check.conclusion in FAILING_CONCLUSIONS for check in pr.checks)
    has_blocking_review = pr.review_decision == ReviewDecision.CHANGES_REQUESTED
    has_conflict = pr.mergeable == MergeableState.CONFLICTING

    if has_ci_failure or has_blocking_review or has_conflict:
        return PrState.HOT

    if is_ready_to_merge(pr):
        return PrState.READY

    now = now or datetime.now(UTC)
    if now - pr.updated_at > timedelta(hours=dormant_threshold_hours):
        return PrState.DORMANT

    return PrState.WAITING
