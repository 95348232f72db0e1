"""Shared test fixtures."""

import json
import re
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import respx
from httpx import Request, Response

from pr_vigil.models import (
    Author,
    Check,
    CheckConclusion,
    CheckStatus,
    MergeableState,
    PullRequest,
    Repository,
    ReviewDecision,
)

OPERATION_PATTERN = re.compile(r"query (\w+)")


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep tests away from the real token and config file."""
    monkeypatch.setenv("GITHUB_TOKEN", "test-token")
    monkeypatch.delenv("GH_TOKEN", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))


@pytest.fixture
def mock_github_api():
    """Fixture providing a respx mock router for GitHub API."""
    with respx.mock(base_url="https://api.github.com") as respx_mock:
        yield respx_mock


class GraphQLStub:
    """Routes mocked GraphQL requests to handlers by operation name."""

    def __init__(self, router: respx.MockRouter):
        self.handlers: dict[str, Callable[[dict[str, Any]], Response]] = {}
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.route = router.post("/graphql").mock(side_effect=self._handle)

    def on(
        self, operation: str, handler: Callable[[dict[str, Any]], Response]
    ) -> None:
        self.handlers[operation] = handler

    def on_data(self, operation: str, data: dict[str, Any]) -> None:
        self.on(operation, lambda variables: Response(200, json={"data": data}))

    def calls(self, operation: str) -> list[dict[str, Any]]:
        return [variables for name, variables in self.requests if name == operation]

    def _handle(self, request: Request) -> Response:
        body = json.loads(request.content)
        operation = OPERATION_PATTERN.search(body["query"]).group(1)
        self.requests.append((operation, body["variables"]))
        return self.handlers[operation](body["variables"])


@pytest.fixture
def graphql(mock_github_api):
    """GraphQL endpoint stub on top of the respx router."""
    return GraphQLStub(mock_github_api)


def search_data(nodes: list[dict[str, Any]]) -> dict[str, Any]:
    return {"search": {"nodes": nodes}}


@pytest.fixture
def search_response():
    """Wrap PR nodes in a GraphQL search payload."""
    return search_data


@pytest.fixture
def discovery_node():
    """Factory for discovery-pass PR nodes."""

    def build(
        repo: str = "owner/repo",
        number: int = 1,
        updated_at: str = "2025-01-07T12:00:00Z",
        **overrides: Any,
    ) -> dict[str, Any]:
        name = repo.split("/", 1)[1]
        node = {
            "number": number,
            "title": f"PR {number}",
            "state": "OPEN",
            "isDraft": False,
            "url": f"https://github.com/{repo}/pull/{number}",
            "body": "Body",
            "createdAt": "2025-01-06T12:00:00Z",
            "updatedAt": updated_at,
            "author": {"__typename": "User", "login": "testuser"},
            "repository": {"name": name, "nameWithOwner": repo},
            "labels": {"nodes": [{"id": "L1", "name": "bug", "color": "ff0000"}]},
        }
        node.update(overrides)
        return node

    return build


@pytest.fixture
def detail_node(discovery_node):
    """Factory for detail-pass PR nodes with reviews, comments, and checks."""

    def build(
        repo: str = "owner/repo",
        number: int = 1,
        updated_at: str = "2025-01-07T12:00:00Z",
        contexts: list[dict[str, Any]] | None = None,
        **overrides: Any,
    ) -> dict[str, Any]:
        if contexts is None:
            contexts = [
                {
                    "__typename": "CheckRun",
                    "name": "build",
                    "status": "COMPLETED",
                    "conclusion": "SUCCESS",
                    "detailsUrl": f"https://github.com/{repo}/runs/1",
                    "checkSuite": {"workflowRun": {"workflow": {"name": "CI"}}},
                },
                {
                    "__typename": "StatusContext",
                    "context": "ci/legacy",
                    "state": "SUCCESS",
                    "targetUrl": "https://ci.example.com/1",
                },
            ]
        node = discovery_node(repo, number, updated_at)
        node.update(
            {
                "headRefName": "feature",
                "baseRefName": "main",
                "mergeable": "MERGEABLE",
                "reviewDecision": "APPROVED",
                "additions": 10,
                "deletions": 2,
                "changedFiles": 3,
                "reviews": {
                    "nodes": [
                        {
                            "id": "R1",
                            "state": "APPROVED",
                            "body": "LGTM",
                            "submittedAt": "2025-01-07T10:00:00Z",
                            "author": {"__typename": "User", "login": "reviewer"},
                        }
                    ]
                },
                "comments": {
                    "nodes": [
                        {
                            "id": "C1",
                            "body": "Nice",
                            "createdAt": "2025-01-07T11:00:00Z",
                            "url": f"https://github.com/{repo}/pull/{number}#issuecomment-1",
                            "author": {"__typename": "Bot", "login": "ci-helper"},
                        }
                    ]
                },
                "commits": {
                    "nodes": [
                        {"commit": {"statusCheckRollup": {"contexts": {"nodes": contexts}}}}
                    ]
                },
            }
        )
        node.update(overrides)
        return node

    return build


@pytest.fixture
def now():
    """Fixed reference time."""
    return datetime(2025, 1, 7, 12, 0, tzinfo=UTC)


@pytest.fixture
def make_pr(now):
    """Factory for canonical PullRequest records with sensible defaults."""

    def build(key: str = "owner/repo#1", **overrides: Any) -> PullRequest:
        repo, number = key.split("#")
        fields: dict[str, Any] = {
            "key": key,
            "number": int(number),
            "title": "Test PR",
            "url": f"https://github.com/{repo}/pull/{number}",
            "repository": Repository(name=repo.split("/")[1], name_with_owner=repo),
            "author": Author(login="dev"),
            "head_ref_name": "feat/test",
            "base_ref_name": "main",
            "mergeable": MergeableState.MERGEABLE,
            "review_decision": ReviewDecision.NONE,
            "created_at": now - timedelta(days=1),
            "updated_at": now,
            "detailed": True,
        }
        fields.update(overrides)
        return PullRequest(**fields)

    return build


@pytest.fixture
def passing_checks():
    return [
        Check(
            name="build",
            status=CheckStatus.COMPLETED,
            conclusion=CheckConclusion.SUCCESS,
        ),
        Check(
            name="lint",
            status=CheckStatus.COMPLETED,
            conclusion=CheckConclusion.SKIPPED,
        ),
    ]
