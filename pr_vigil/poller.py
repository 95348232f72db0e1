"""Scheduled reconciliation: fetch, diff, classify, publish."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Protocol

from .classifier import classify_pr
from .differ import diff_prs
from .logger import get_logger
from .models import PrEvent, Snapshot
from .store import Store

logger = get_logger("poller")

OnEvents = Callable[[list[PrEvent]], Awaitable[None]]
OnError = Callable[[Exception], None]


class SnapshotSource(Protocol):
    """Anything that can produce a fresh snapshot given the previous one."""

    async def fetch(
        self, repos: list[str] | None = None, known: Snapshot | None = None
    ) -> Snapshot: ...


class Poller:
    """
    Runs reconciliation cycles against an injected store.

    At most one cycle runs at a time: a timer tick that arrives while a cycle
    is still in flight is skipped rather than queued.
    """

    def __init__(
        self,
        fetcher: SnapshotSource,
        store: Store,
        dormant_threshold_hours: float = 48.0,
    ):
        self.fetcher = fetcher
        self.store = store
        self.dormant_threshold_hours = dormant_threshold_hours
        self._polling = False
        self._timer: asyncio.Task[None] | None = None
        self._cycle: asyncio.Task[None] | None = None

    @property
    def is_polling(self) -> bool:
        """Whether a cycle is currently in flight."""
        return self._polling

    @property
    def current_cycle(self) -> asyncio.Task[None] | None:
        """The most recently scheduled cycle task, if any."""
        return self._cycle

    async def poll(self, repos: list[str] | None = None) -> list[PrEvent]:
        """
        Run one cycle and return the events it detected.

        On a fetch failure the exception propagates and the previously
        published snapshot, states, and timestamp stay untouched.

        Raises:
            RuntimeError: If another cycle is already in flight
        """
        if self._polling:
            raise RuntimeError("Poll cycle already in progress")

        self._polling = True
        self.store.set_polling(True)
        try:
            previous = self.store.snapshot
            current = await self.fetcher.fetch(repos, previous)

            now = datetime.now(UTC)
            events = diff_prs(previous, current, now)
            states = {
                key: classify_pr(pr, self.dormant_threshold_hours, now)
                for key, pr in current.items()
            }

            self.store.replace_snapshot(current)
            for key, state in states.items():
                self.store.set_state(key, state)
            self.store.set_last_poll_at(now)

            logger.info(f"Poll complete: {len(current)} PRs, {len(events)} events")
            return events
        finally:
            self._polling = False
            self.store.set_polling(False)

    async def _run_cycle(
        self,
        repos: list[str] | None,
        on_events: OnEvents | None,
        on_error: OnError | None,
    ) -> None:
        try:
            events = await self.poll(repos)
            if events and on_events is not None:
                await on_events(events)
        except Exception as e:
            if on_error is None:
                logger.exception("Poll cycle failed")
            else:
                on_error(e)

    def _trigger(
        self,
        repos: list[str] | None,
        on_events: OnEvents | None,
        on_error: OnError | None,
    ) -> None:
        if self._polling or (self._cycle is not None and not self._cycle.done()):
            logger.debug("Poll cycle still in progress, skipping tick")
            return
        self._cycle = asyncio.create_task(self._run_cycle(repos, on_events, on_error))

    def start(
        self,
        interval_seconds: float,
        repos: list[str] | None = None,
        on_events: OnEvents | None = None,
        on_error: OnError | None = None,
    ) -> Callable[[], None]:
        """
        Poll immediately, then every ``interval_seconds``.

        Must be called from a running event loop.

        Returns:
            A function that stops the timer. An in-flight cycle is allowed to
            finish.
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if self._timer is not None and not self._timer.done():
            raise RuntimeError("Poller already started")

        async def tick_forever() -> None:
            while True:
                self._trigger(repos, on_events, on_error)
                await asyncio.sleep(interval_seconds)

        self._timer = asyncio.get_running_loop().create_task(tick_forever())
        return self.stop

    def stop(self) -> None:
        """Cancel the timer without aborting an in-flight cycle."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def aclose(self) -> None:
        """Stop the timer and wait for any in-flight cycle to finish."""
        self.stop()
        if self._cycle is not None:
            await asyncio.gather(self._cycle, return_exceptions=True)
