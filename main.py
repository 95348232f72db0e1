"""FastMCP server exposing PR reconciliation as tools."""

import asyncio
from typing import Any, Protocol

from fastmcp import FastMCP
from fastmcp.server.dependencies import Progress
from pydantic import ValidationError

from pr_vigil.classifier import FAILING_CONCLUSIONS, classify_pr
from pr_vigil.client import AuthError, GitHubClient, ProviderError, RateLimitError
from pr_vigil.config import ConfigurationError, VigilConfig, load_config
from pr_vigil.fetcher import SnapshotFetcher
from pr_vigil.logger import get_logger, setup_logging
from pr_vigil.models import PrEvent, PrState, PullRequest
from pr_vigil.notify import events_to_notifications
from pr_vigil.parser import PRReference, parse_pr_key, parse_pr_url
from pr_vigil.poller import Poller
from pr_vigil.store import PRStore

mcp = FastMCP("PR Vigil")
logger = get_logger("server")

MIN_POLL_INTERVAL_SECONDS = 5.0
MIN_TIMEOUT_SECONDS = 60.0

# Most urgent first
STATE_ORDER = [
    PrState.HOT,
    PrState.READY,
    PrState.WAITING,
    PrState.DORMANT,
    PrState.BLOCKED,
]


class ProgressReporter(Protocol):
    """Protocol for progress reporting."""

    async def set_total(self, total: int) -> None: ...
    async def set_message(self, message: str) -> None: ...
    async def increment(self, amount: int = 1) -> None: ...


def _build_config(**overrides: Any) -> VigilConfig:
    """Load the config file and apply non-None tool arguments on top."""
    data = load_config().model_dump()
    data.update({key: value for key, value in overrides.items() if value is not None})
    return VigilConfig.model_validate(data)


def _parse_reference(pr: str) -> PRReference:
    """Accept either a PR URL or an ``owner/repo#number`` key."""
    if pr.startswith(("http://", "https://")):
        return parse_pr_url(pr)
    return parse_pr_key(pr)


def _summarize(pr: PullRequest, state: PrState | None) -> dict[str, Any]:
    return {
        "key": pr.key,
        "title": pr.title,
        "url": pr.url,
        "state": state.value if state else None,
        "is_draft": pr.is_draft,
        "review_decision": pr.review_decision.value or None,
        "mergeable": pr.mergeable.value,
        "failing_checks": [
            check.name
            for check in pr.checks
            if check.conclusion in FAILING_CONCLUSIONS
        ],
    }


def _state_table(store: PRStore) -> list[dict[str, Any]]:
    rows = [_summarize(pr, store.get_state(key)) for key, pr in store.snapshot.items()]
    order = {state.value: index for index, state in enumerate(STATE_ORDER)}
    return sorted(rows, key=lambda row: (order.get(row["state"], len(order)), row["key"]))


def _error_result(error: ProviderError) -> dict[str, Any]:
    if isinstance(error, AuthError):
        return {"success": False, "reason": "auth_error", "error": str(error)}
    if isinstance(error, RateLimitError):
        return {
            "success": False,
            "reason": "rate_limited",
            "error": str(error),
            "reset_time": error.reset_time,
        }
    return {
        "success": False,
        "reason": "api_error",
        "error": str(error),
        "status_code": error.status_code,
    }


async def check_prs_impl(
    repos: list[str] | None = None,
    dormant_threshold_hours: float | None = None,
) -> dict[str, Any]:
    """
    Run a single reconciliation cycle and report every open PR's state.

    Args:
        repos: Optional list of owner/repo names to restrict the search to
        dormant_threshold_hours: Hours of inactivity before a PR is dormant

    Returns:
        PRs sorted by urgency, the cycle's events, and derived notifications.
    """
    try:
        config = _build_config(
            repos=repos, dormant_threshold_hours=dormant_threshold_hours
        )
    except (ConfigurationError, ValidationError) as e:
        return {"success": False, "reason": "invalid_config", "error": str(e)}

    store = PRStore()
    async with GitHubClient(timeout=config.request_timeout_seconds) as client:
        fetcher = SnapshotFetcher(client, config.max_detail_concurrency)
        poller = Poller(fetcher, store, config.dormant_threshold_hours)
        try:
            events = await poller.poll(config.repos or None)
        except ProviderError as e:
            return _error_result(e)

    notifications = events_to_notifications(events, config.notifications)
    return {
        "success": True,
        "prs": _state_table(store),
        "events": [{"type": event.type.value, "pr_key": event.pr_key} for event in events],
        "notifications": [n.model_dump(mode="json") for n in notifications],
        "failed_repos": sorted(fetcher.failed_repos),
        "polled_at": store.last_poll_at.isoformat() if store.last_poll_at else None,
    }


async def get_pr_state_impl(pr: str) -> dict[str, Any]:
    """
    Fetch one PR in full and classify it.

    Args:
        pr: GitHub PR URL or owner/repo#number key
    """
    try:
        ref = _parse_reference(pr)
        config = _build_config()
    except (ValueError, ConfigurationError) as e:
        return {"success": False, "reason": "invalid_input", "error": str(e)}

    async with GitHubClient(timeout=config.request_timeout_seconds) as client:
        fetcher = SnapshotFetcher(client, config.max_detail_concurrency)
        try:
            detail = await fetcher.fetch_pr_detail(ref.owner, ref.repo, ref.number)
        except ProviderError as e:
            return _error_result(e)

    state = classify_pr(detail, config.dormant_threshold_hours)
    return {
        "success": True,
        **_summarize(detail, state),
        "checks": [check.model_dump(mode="json") for check in detail.checks],
        "reviews": len(detail.reviews),
        "comments": len(detail.comments),
    }


async def watch_prs_impl(
    repos: list[str] | None,
    poll_interval_seconds: float,
    max_timeout_seconds: float,
    progress: ProgressReporter,
) -> dict[str, Any]:
    """
    Keep reconciling PRs until the timeout, reporting notifications as progress.

    Stops early if GitHub rejects the credentials.

    Returns:
        Final state table and every notification raised while watching.
    """
    try:
        config = _build_config(repos=repos)
    except (ConfigurationError, ValidationError) as e:
        return {"success": False, "reason": "invalid_config", "error": str(e)}

    interval = max(MIN_POLL_INTERVAL_SECONDS, poll_interval_seconds)
    timeout = max(MIN_TIMEOUT_SECONDS, max_timeout_seconds)

    await progress.set_total(int(timeout / interval))
    scope = ", ".join(config.repos) if config.repos else "all repositories"
    await progress.set_message(f"Watching open PRs in {scope}")

    store = PRStore()
    errors: list[Exception] = []
    auth_failed = asyncio.Event()

    async def on_events(events: list[PrEvent]) -> None:
        for notification in events_to_notifications(events, config.notifications):
            store.add_notification(notification)
            await progress.set_message(notification.message)

    def on_error(error: Exception) -> None:
        logger.warning(f"Poll failed: {error}")
        errors.append(error)
        if isinstance(error, AuthError):
            auth_failed.set()

    loop = asyncio.get_running_loop()
    started = loop.time()
    reported_errors = 0

    async with GitHubClient(timeout=config.request_timeout_seconds) as client:
        auth_status = "authenticated" if client.is_authenticated else "unauthenticated"
        await progress.set_message(f"Connected ({auth_status})")

        poller = Poller(
            SnapshotFetcher(client, config.max_detail_concurrency),
            store,
            config.dormant_threshold_hours,
        )
        poller.start(interval, config.repos or None, on_events, on_error)
        try:
            while loop.time() - started < timeout:
                try:
                    await asyncio.wait_for(auth_failed.wait(), timeout=interval)
                except TimeoutError:
                    pass

                for error in errors[reported_errors:]:
                    await progress.set_message(f"Poll failed: {error}")
                reported_errors = len(errors)

                if auth_failed.is_set():
                    return {
                        **_error_result(next(e for e in errors if isinstance(e, AuthError))),
                        "elapsed_seconds": loop.time() - started,
                    }

                await progress.increment()
                counts = {
                    state.value: sum(1 for s in store.states.values() if s == state)
                    for state in STATE_ORDER
                }
                await progress.set_message(
                    " | ".join(f"{name}: {count}" for name, count in counts.items())
                )
        finally:
            await poller.aclose()

    return {
        "success": True,
        "reason": "timeout",
        "elapsed_seconds": loop.time() - started,
        "last_poll_at": store.last_poll_at.isoformat() if store.last_poll_at else None,
        "prs": _state_table(store),
        "notifications": [n.model_dump(mode="json") for n in store.notifications],
        "errors": [str(error) for error in errors],
    }


@mcp.tool
async def check_prs(
    repos: list[str] | None = None,
    dormant_threshold_hours: float | None = None,
) -> dict[str, Any]:  # pragma: no cover
    """
    Classify all of your open PRs by urgency.

    States: hot (failing CI, changes requested, conflicts), ready (green,
    approved, mergeable), waiting, dormant (no recent activity), blocked
    (draft or closed).

    Args:
        repos: Optional list of owner/repo names to restrict the search to
        dormant_threshold_hours: Hours of inactivity before a PR counts as dormant

    Returns:
        PRs sorted by urgency with their state and key signals.
    """
    return await check_prs_impl(
        repos=repos, dormant_threshold_hours=dormant_threshold_hours
    )


@mcp.tool
async def get_pr_state(pr: str) -> dict[str, Any]:  # pragma: no cover
    """
    Fetch a single PR and classify its urgency.

    Args:
        pr: GitHub PR URL (e.g., https://github.com/owner/repo/pull/123) or
            key (e.g., owner/repo#123)

    Returns:
        The PR's state, checks, and review summary.
    """
    return await get_pr_state_impl(pr)


@mcp.tool(task=True)
async def watch_prs(
    repos: list[str] | None = None,
    poll_interval_seconds: float = 30.0,
    max_timeout_seconds: float = 3600.0,
    progress: Progress = Progress(),
) -> dict[str, Any]:  # pragma: no cover
    """
    Watch your open PRs and report notable changes as they happen.

    Reports CI failures, requested changes, conflicts, new comments, and PRs
    becoming ready to merge.

    Args:
        repos: Optional list of owner/repo names to restrict the search to
        poll_interval_seconds: Seconds between polls (default: 30, min: 5)
        max_timeout_seconds: How long to watch (default: 3600 = 1 hour, min: 60)

    Returns:
        Final PR states and all notifications raised while watching.
    """
    return await watch_prs_impl(
        repos=repos,
        poll_interval_seconds=poll_interval_seconds,
        max_timeout_seconds=max_timeout_seconds,
        progress=progress,
    )


if __name__ == "__main__":
    setup_logging(load_config().log_level)
    mcp.run()
