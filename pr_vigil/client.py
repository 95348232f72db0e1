"""Async GitHub API client for PR discovery and detail queries."""

import asyncio
import json
import os
from typing import Any

import httpx

from .logger import get_logger

logger = get_logger("client")

MERGE_METHODS = ("merge", "squash", "rebase")

# Fields cheap enough to request account-wide during discovery
SUMMARY_FRAGMENT = """
fragment PullRequestSummary on PullRequest {
  number
  title
  state
  isDraft
  url
  body
  createdAt
  updatedAt
  author { __typename login }
  repository { name nameWithOwner }
  labels(first: 50) { nodes { id name color } }
}
"""

# Expensive fields, only requested per repository
DETAIL_FRAGMENT = """
fragment PullRequestDetail on PullRequest {
  ...PullRequestSummary
  headRefName
  baseRefName
  mergeable
  reviewDecision
  additions
  deletions
  changedFiles
  reviews(first: 100) {
    nodes { id state body submittedAt author { __typename login } }
  }
  comments(first: 100) {
    nodes { id body createdAt url author { __typename login } }
  }
  commits(last: 1) {
    nodes {
      commit {
        statusCheckRollup {
          contexts(first: 100) {
            nodes {
              __typename
              ... on CheckRun {
                name
                status
                conclusion
                detailsUrl
                checkSuite { workflowRun { workflow { name } } }
              }
              ... on StatusContext { context state targetUrl }
            }
          }
        }
      }
    }
  }
}
"""

DISCOVER_QUERY = (
    """
query DiscoverPullRequests($query: String!, $first: Int!) {
  search(query: $query, type: ISSUE, first: $first) {
    nodes { ...PullRequestSummary }
  }
}
"""
    + SUMMARY_FRAGMENT
)

REPOSITORY_DETAIL_QUERY = (
    """
query RepositoryPullRequests($query: String!, $first: Int!) {
  search(query: $query, type: ISSUE, first: $first) {
    nodes { ...PullRequestDetail }
  }
}
"""
    + SUMMARY_FRAGMENT
    + DETAIL_FRAGMENT
)

PULL_REQUEST_DETAIL_QUERY = (
    """
query PullRequestDetail($owner: String!, $name: String!, $number: Int!) {
  repository(owner: $owner, name: $name) {
    pullRequest(number: $number) { ...PullRequestDetail }
  }
}
"""
    + SUMMARY_FRAGMENT
    + DETAIL_FRAGMENT
)


class ProviderError(Exception):
    """Base exception for GitHub provider failures."""

    def __init__(
        self, message: str, status_code: int | None = None, detail: str = ""
    ):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class AuthError(ProviderError):
    """Raised when the GitHub credentials are missing or rejected."""

    def __init__(self, detail: str = "", status_code: int | None = 401):
        super().__init__(
            "GitHub authentication failed. Set GITHUB_TOKEN to a valid token.",
            status_code,
            detail,
        )


class RateLimitError(ProviderError):
    """Raised when GitHub rate limit is exceeded."""

    def __init__(self, reset_time: int, status_code: int | None = 403, detail: str = ""):
        super().__init__(
            f"Rate limit exceeded. Resets at {reset_time}", status_code, detail
        )
        self.reset_time = reset_time


class GitHubClient:
    """Async client for the GitHub GraphQL and REST APIs."""

    BASE_URL = "https://api.github.com"

    def __init__(self, token: str | None = None, timeout: float = 30.0):
        self.token = (
            token or os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN")
        )
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def headers(self) -> dict[str, str]:
        """Return headers for API requests."""
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @property
    def is_authenticated(self) -> bool:
        """Check if client has authentication token."""
        return self.token is not None

    async def __aenter__(self) -> "GitHubClient":
        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers=self.headers,
            timeout=self.timeout,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request, turning transport failures into provider errors."""
        if not self._client:
            raise RuntimeError("Client not initialized. Use async context manager.")

        try:
            # httpx timeouts apply per phase; bound the whole exchange too
            async with asyncio.timeout(self.timeout):
                response = await self._client.request(method, path, **kwargs)
        except (httpx.TimeoutException, TimeoutError) as e:
            raise ProviderError(
                f"Request to {path} timed out after {self.timeout}s", None, str(e)
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(f"Network error calling {path}: {e}", None, str(e)) from e

        self._raise_for_status(response, path)
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, path: str) -> None:
        """Classify HTTP failures into auth, rate-limit, and generic errors."""
        if response.status_code < 400:
            return

        text = response.text

        if response.status_code == 401:
            raise AuthError(text, 401)

        # Handle rate limiting
        if response.status_code in (403, 429):
            remaining = response.headers.get("x-ratelimit-remaining")
            if remaining == "0" or "rate limit" in text.lower():
                reset_time = int(response.headers.get("x-ratelimit-reset", "0"))
                raise RateLimitError(reset_time, response.status_code, text)

        if response.status_code == 404:
            raise ProviderError(f"Resource not found: {path}", 404, text)

        raise ProviderError(f"API error: {text[:500]}", response.status_code, text)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Make a REST API request with error handling."""
        response = await self._send(method, path, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                f"Malformed response from {path}", response.status_code, response.text
            ) from e

    async def _graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run a GraphQL query and return its ``data`` member."""
        response = await self._send(
            "POST", "/graphql", json={"query": query, "variables": variables}
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(
                "Malformed GraphQL response", response.status_code, response.text
            ) from e
        if not isinstance(payload, dict):
            raise ProviderError(
                "Malformed GraphQL response", response.status_code, response.text
            )
        errors = payload.get("errors") or []

        if any(error.get("type") == "RATE_LIMITED" for error in errors):
            reset_time = int(response.headers.get("x-ratelimit-reset", "0"))
            raise RateLimitError(reset_time, response.status_code, json.dumps(errors))

        data = payload.get("data")
        if errors:
            messages = "; ".join(error.get("message", "") for error in errors)
            if data is None:
                raise ProviderError(
                    f"GraphQL error: {messages}", response.status_code, json.dumps(errors)
                )
            logger.warning(f"GraphQL returned partial data: {messages}")

        if data is None:
            raise ProviderError(
                "GraphQL response contained no data", response.status_code, response.text
            )
        return data

    async def search_pull_requests(
        self, query: str, detailed: bool = False, first: int = 50
    ) -> list[dict[str, Any]]:
        """Search pull requests; ``detailed`` requests reviews, checks, and merge state."""
        data = await self._graphql(
            REPOSITORY_DETAIL_QUERY if detailed else DISCOVER_QUERY,
            {"query": query, "first": first},
        )
        search = data.get("search") or {}
        return [node for node in search.get("nodes") or [] if node]

    async def get_pull_request(self, owner: str, repo: str, number: int) -> dict[str, Any]:
        """Get full detail for a single pull request."""
        data = await self._graphql(
            PULL_REQUEST_DETAIL_QUERY,
            {"owner": owner, "name": repo, "number": number},
        )
        pull_request = (data.get("repository") or {}).get("pullRequest")
        if not pull_request:
            raise ProviderError(f"Pull request not found: {owner}/{repo}#{number}", 404)
        return pull_request

    async def post_comment(self, owner: str, repo: str, number: int, body: str) -> None:
        """Post a new conversation comment on a PR."""
        await self._request(
            "POST", f"/repos/{owner}/{repo}/issues/{number}/comments", json={"body": body}
        )

    async def merge_pull_request(
        self, owner: str, repo: str, number: int, method: str = "squash"
    ) -> dict[str, Any]:
        """Merge a PR with the given strategy (merge, squash, or rebase)."""
        if method not in MERGE_METHODS:
            raise ValueError(f"Unsupported merge method: {method}")
        return await self._request(
            "PUT",
            f"/repos/{owner}/{repo}/pulls/{number}/merge",
            json={"merge_method": method},
        )
