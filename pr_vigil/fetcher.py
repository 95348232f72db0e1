"""Two-pass, staleness-gated snapshot fetching."""

import asyncio

from pydantic import ValidationError

from .client import GitHubClient, ProviderError
from .logger import get_logger
from .models import PullRequest, Snapshot
from .normalize import RawPullRequest, build_detail, build_stub, parse_pull_requests

logger = get_logger("fetcher")

OPEN_AUTHORED_QUALIFIERS = "is:pr is:open author:@me"


def build_search_query(repos: list[str] | None = None) -> str:
    """Build the discovery search query, optionally scoped to repositories."""
    qualifiers = [OPEN_AUTHORED_QUALIFIERS]
    for repo in repos or []:
        qualifiers.append(f"repo:{repo}")
    return " ".join(qualifiers)


def is_repo_stale(stubs: list[PullRequest], known: Snapshot | None) -> bool:
    """
    A repository is stale if any discovered PR is new, has a new ``updated_at``,
    or is only known as a stub because its last detail query failed.
    """
    if not known:
        return True
    for stub in stubs:
        previous = known.get(stub.key)
        if previous is None or not previous.detailed:
            return True
        if previous.updated_at != stub.updated_at:
            return True
    return False


class SnapshotFetcher:
    """
    Fetch the current identity's open PRs as a snapshot.

    Discovery runs one cheap, account-wide search. Repositories whose PRs are
    unchanged since ``known`` are carried forward as-is; only stale
    repositories get the expensive detail query, with at most
    ``max_concurrency`` of those in flight at once. A failed detail query keeps
    that repository's discovery stubs instead of failing the whole fetch; the
    stubs keep the repository stale so the next fetch retries it.
    """

    DISCOVERY_LIMIT = 50
    DETAIL_LIMIT = 100

    def __init__(self, client: GitHubClient, max_concurrency: int = 4):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.client = client
        self.max_concurrency = max_concurrency
        self.failed_repos: dict[str, Exception] = {}

    async def fetch(
        self, repos: list[str] | None = None, known: Snapshot | None = None
    ) -> dict[str, PullRequest]:
        """
        Fetch a fresh snapshot.

        Args:
            repos: Optional ``owner/repo`` names to restrict discovery to
            known: The last published snapshot, used as a staleness hint

        Returns:
            Mapping of PR key to PullRequest

        Raises:
            AuthError, RateLimitError, ProviderError: If discovery fails
        """
        self.failed_repos = {}

        nodes = await self.client.search_pull_requests(
            build_search_query(repos), first=self.DISCOVERY_LIMIT
        )
        try:
            discovered = [build_stub(raw) for raw in parse_pull_requests(nodes)]
        except ValueError as e:
            raise ProviderError("Malformed discovery response", None, str(e)) from e

        prs: dict[str, PullRequest] = {}
        by_repo: dict[str, list[PullRequest]] = {}
        for stub in discovered:
            prs[stub.key] = stub
            by_repo.setdefault(stub.repository.name_with_owner, []).append(stub)

        stale_repos: list[str] = []
        for repo, stubs in by_repo.items():
            if is_repo_stale(stubs, known):
                stale_repos.append(repo)
                continue
            for stub in stubs:
                prs[stub.key] = known[stub.key]

        logger.debug(
            f"Discovered {len(prs)} PRs in {len(by_repo)} repos; "
            f"{len(stale_repos)} stale"
        )

        semaphore = asyncio.Semaphore(self.max_concurrency)
        details = await asyncio.gather(
            *(self._fetch_repo_detail(repo, semaphore) for repo in stale_repos)
        )
        for repo_prs in details:
            for pr in repo_prs:
                prs[pr.key] = pr

        return prs

    async def _fetch_repo_detail(
        self, repo: str, semaphore: asyncio.Semaphore
    ) -> list[PullRequest]:
        async with semaphore:
            try:
                nodes = await self.client.search_pull_requests(
                    f"repo:{repo} {OPEN_AUTHORED_QUALIFIERS}",
                    detailed=True,
                    first=self.DETAIL_LIMIT,
                )
                return [build_detail(raw, repo) for raw in parse_pull_requests(nodes)]
            except (ProviderError, ValueError) as e:
                logger.warning(f"Detail fetch failed for {repo}, keeping stubs: {e}")
                self.failed_repos[repo] = e
                return []

    async def fetch_pr_detail(self, owner: str, repo: str, number: int) -> PullRequest:
        """Fetch full detail for a single PR."""
        node = await self.client.get_pull_request(owner, repo, number)
        try:
            raw = RawPullRequest.model_validate(node)
        except ValidationError as e:
            raise ProviderError("Malformed pull request response", None, str(e)) from e
        return build_detail(raw, f"{owner}/{repo}")
