"""Integration tests for the MCP tool implementations."""

import json
from unittest.mock import patch

import pytest
from httpx import Response

from main import check_prs_impl, get_pr_state_impl, watch_prs_impl


class MockProgress:
    """Mock Progress dependency for testing."""

    def __init__(self):
        self.total = None
        self.messages = []
        self.progress = 0

    async def set_total(self, total: int) -> None:
        self.total = total

    async def set_message(self, message: str) -> None:
        self.messages.append(message)

    async def increment(self, amount: int = 1) -> None:
        self.progress += amount


@pytest.fixture
def mock_progress():
    """Fixture providing a mock Progress object."""
    return MockProgress()


@pytest.fixture
def fast_watch():
    """Allow sub-second intervals and timeouts in watch tests."""
    with (
        patch("main.MIN_POLL_INTERVAL_SECONDS", 0.01),
        patch("main.MIN_TIMEOUT_SECONDS", 0.01),
    ):
        yield


@pytest.fixture
def two_prs(graphql, search_response, discovery_node, detail_node):
    """One conflicting and one ready PR in owner/repo."""
    graphql.on_data(
        "DiscoverPullRequests",
        search_response([discovery_node(number=1), discovery_node(number=2)]),
    )
    graphql.on_data(
        "RepositoryPullRequests",
        search_response(
            [detail_node(number=1, mergeable="CONFLICTING"), detail_node(number=2)]
        ),
    )
    return graphql


class TestCheckPrs:
    """Tests for check_prs_impl."""

    async def test_classifies_and_sorts(self, two_prs):
        """Test PRs are returned most urgent first."""
        result = await check_prs_impl()

        assert result["success"] is True
        assert [(pr["key"], pr["state"]) for pr in result["prs"]] == [
            ("owner/repo#1", "hot"),
            ("owner/repo#2", "ready"),
        ]
        assert result["prs"][0]["mergeable"] == "CONFLICTING"
        assert result["prs"][1]["review_decision"] == "APPROVED"
        assert result["events"] == [
            {"type": "pr_opened", "pr_key": "owner/repo#1"},
            {"type": "pr_opened", "pr_key": "owner/repo#2"},
        ]
        assert result["notifications"] == []
        assert result["failed_repos"] == []
        assert result["polled_at"] is not None

    async def test_repo_scope(self, graphql, search_response):
        """Test the repos argument narrows discovery."""
        graphql.on_data("DiscoverPullRequests", search_response([]))

        result = await check_prs_impl(repos=["acme/widgets"])

        assert result["success"] is True
        assert result["prs"] == []
        assert "repo:acme/widgets" in graphql.calls("DiscoverPullRequests")[0]["query"]

    async def test_failing_check_names(
        self, graphql, search_response, discovery_node, detail_node
    ):
        """Test failing check names are surfaced."""
        graphql.on_data("DiscoverPullRequests", search_response([discovery_node()]))
        graphql.on_data(
            "RepositoryPullRequests",
            search_response(
                [
                    detail_node(
                        contexts=[
                            {
                                "__typename": "CheckRun",
                                "name": "tests",
                                "status": "COMPLETED",
                                "conclusion": "FAILURE",
                            }
                        ]
                    )
                ]
            ),
        )

        result = await check_prs_impl()

        assert result["prs"][0]["state"] == "hot"
        assert result["prs"][0]["failing_checks"] == ["tests"]

    async def test_partial_failure(self, graphql, search_response, discovery_node):
        """Test a failed detail query is reported, not fatal."""
        graphql.on_data("DiscoverPullRequests", search_response([discovery_node()]))
        graphql.on("RepositoryPullRequests", lambda variables: Response(502, text="oops"))

        result = await check_prs_impl()

        assert result["success"] is True
        assert result["failed_repos"] == ["owner/repo"]
        assert [pr["key"] for pr in result["prs"]] == ["owner/repo#1"]

    async def test_auth_error(self, mock_github_api):
        """Test rejected credentials."""
        mock_github_api.post("/graphql").mock(
            return_value=Response(401, json={"message": "Bad credentials"})
        )

        result = await check_prs_impl()

        assert result["success"] is False
        assert result["reason"] == "auth_error"

    async def test_malformed_response(self, mock_github_api):
        """Test a non-JSON 200 is reported as an API error."""
        mock_github_api.post("/graphql").mock(
            return_value=Response(200, text="<html>oops</html>")
        )

        result = await check_prs_impl()

        assert result["success"] is False
        assert result["reason"] == "api_error"
        assert "Malformed GraphQL response" in result["error"]

    async def test_rate_limited(self, mock_github_api):
        """Test rate limiting reports the reset time."""
        mock_github_api.post("/graphql").mock(
            return_value=Response(
                403,
                headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1704672000"},
            )
        )

        result = await check_prs_impl()

        assert result["reason"] == "rate_limited"
        assert result["reset_time"] == 1704672000

    async def test_invalid_argument(self):
        """Test out-of-range arguments are rejected before any request."""
        result = await check_prs_impl(dormant_threshold_hours=0)

        assert result["success"] is False
        assert result["reason"] == "invalid_config"

    async def test_invalid_config_file(self, tmp_path):
        """Test a broken config file is reported."""
        path = tmp_path / "config" / "vigil" / "config.json"
        path.parent.mkdir(parents=True)
        path.write_text("{broken")

        result = await check_prs_impl()

        assert result["reason"] == "invalid_config"
        assert "Cannot read" in result["error"]

    async def test_config_file_scope(self, tmp_path, graphql, search_response):
        """Test repos from the config file are used when none are passed."""
        path = tmp_path / "config" / "vigil" / "config.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"repos": ["acme/gadgets"]}))
        graphql.on_data("DiscoverPullRequests", search_response([]))

        await check_prs_impl()

        assert graphql.calls("DiscoverPullRequests")[0]["query"].endswith(
            "repo:acme/gadgets"
        )


class TestGetPrState:
    """Tests for get_pr_state_impl."""

    async def test_by_key(self, graphql, detail_node):
        """Test a key is resolved to a fully detailed, classified PR."""
        graphql.on_data("PullRequestDetail", {"repository": {"pullRequest": detail_node()}})

        result = await get_pr_state_impl("owner/repo#1")

        assert result["success"] is True
        assert result["key"] == "owner/repo#1"
        assert result["state"] == "ready"
        assert [check["name"] for check in result["checks"]] == ["build", "ci/legacy"]
        assert result["reviews"] == 1
        assert result["comments"] == 1

    async def test_by_url(self, graphql, detail_node):
        """Test URLs are accepted too."""
        graphql.on_data(
            "PullRequestDetail",
            {"repository": {"pullRequest": detail_node(number=123, isDraft=True)}},
        )

        result = await get_pr_state_impl("https://github.com/owner/repo/pull/123")

        assert result["state"] == "blocked"
        assert graphql.calls("PullRequestDetail") == [
            {"owner": "owner", "name": "repo", "number": 123}
        ]

    async def test_invalid_reference(self):
        """Test malformed references are rejected."""
        result = await get_pr_state_impl("not a pr")

        assert result["success"] is False
        assert result["reason"] == "invalid_input"
        assert "Not a valid PR key" in result["error"]

    async def test_invalid_url(self):
        """Test non-GitHub URLs are rejected."""
        result = await get_pr_state_impl("https://gitlab.com/owner/repo/pull/123")

        assert result["reason"] == "invalid_input"
        assert "Not a GitHub URL" in result["error"]

    async def test_not_found(self, graphql):
        """Test a missing PR is an API error."""
        graphql.on_data("PullRequestDetail", {"repository": {"pullRequest": None}})

        result = await get_pr_state_impl("owner/repo#999")

        assert result["success"] is False
        assert result["reason"] == "api_error"
        assert result["status_code"] == 404


class TestWatchPrs:
    """Tests for watch_prs_impl."""

    async def test_runs_until_timeout(self, fast_watch, two_prs, mock_progress):
        """Test watching polls repeatedly and returns the final state table."""
        result = await watch_prs_impl(
            repos=None,
            poll_interval_seconds=0.02,
            max_timeout_seconds=0.1,
            progress=mock_progress,
        )

        assert result["success"] is True
        assert result["reason"] == "timeout"
        assert result["elapsed_seconds"] >= 0.1
        assert [pr["state"] for pr in result["prs"]] == ["hot", "ready"]
        assert result["errors"] == []
        assert result["last_poll_at"] is not None
        assert mock_progress.total == int(0.1 / 0.02)
        assert mock_progress.messages[0] == "Watching open PRs in all repositories"
        assert mock_progress.messages[1] == "Connected (authenticated)"
        assert "hot: 1 | ready: 1 | waiting: 0 | dormant: 0 | blocked: 0" in (
            mock_progress.messages
        )
        assert mock_progress.progress >= 1
        assert len(two_prs.calls("DiscoverPullRequests")) >= 2
        assert len(two_prs.calls("RepositoryPullRequests")) == 1

    async def test_reports_notifications(
        self,
        fast_watch,
        graphql,
        search_response,
        discovery_node,
        detail_node,
        mock_progress,
    ):
        """Test changes between cycles surface as progress messages."""

        def discover(variables):
            updated_at = (
                "2025-01-07T12:00:00Z"
                if len(graphql.calls("DiscoverPullRequests")) == 1
                else "2025-01-07T13:00:00Z"
            )
            node = discovery_node(updated_at=updated_at)
            return Response(200, json={"data": search_response([node])})

        def detail(variables):
            first = len(graphql.calls("RepositoryPullRequests")) == 1
            node = detail_node(
                updated_at="2025-01-07T12:00:00Z" if first else "2025-01-07T13:00:00Z",
                mergeable="MERGEABLE" if first else "CONFLICTING",
            )
            return Response(200, json={"data": search_response([node])})

        graphql.on("DiscoverPullRequests", discover)
        graphql.on("RepositoryPullRequests", detail)

        result = await watch_prs_impl(
            repos=["owner/repo"],
            poll_interval_seconds=0.02,
            max_timeout_seconds=0.15,
            progress=mock_progress,
        )

        assert result["success"] is True
        assert mock_progress.messages[0] == "Watching open PRs in owner/repo"
        assert "Conflict on owner/repo#1" in mock_progress.messages
        assert [n["message"] for n in result["notifications"]] == [
            "Conflict on owner/repo#1"
        ]
        assert result["notifications"][0]["priority"] == "high"
        assert result["prs"][0]["state"] == "hot"

    async def test_stops_on_auth_error(self, fast_watch, mock_github_api, mock_progress):
        """Test rejected credentials end the watch early."""
        mock_github_api.post("/graphql").mock(
            return_value=Response(401, json={"message": "Bad credentials"})
        )

        result = await watch_prs_impl(
            repos=None,
            poll_interval_seconds=0.02,
            max_timeout_seconds=5.0,
            progress=mock_progress,
        )

        assert result["success"] is False
        assert result["reason"] == "auth_error"
        assert result["elapsed_seconds"] < 5.0
        assert any(m.startswith("Poll failed:") for m in mock_progress.messages)

    async def test_keeps_going_after_rate_limit(
        self, fast_watch, mock_github_api, mock_progress
    ):
        """Test transient errors are reported and watching continues."""
        mock_github_api.post("/graphql").mock(
            return_value=Response(
                403,
                headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1704672000"},
            )
        )

        result = await watch_prs_impl(
            repos=None,
            poll_interval_seconds=0.02,
            max_timeout_seconds=0.06,
            progress=mock_progress,
        )

        assert result["success"] is True
        assert result["reason"] == "timeout"
        assert result["prs"] == []
        assert result["errors"]
        assert all("Rate limit exceeded" in error for error in result["errors"])

    async def test_invalid_repo(self, mock_progress):
        """Test bad repository names fail before the watch starts."""
        result = await watch_prs_impl(
            repos=["not-a-repo"],
            poll_interval_seconds=0.001,
            max_timeout_seconds=0.001,
            progress=mock_progress,
        )

        assert result["success"] is False
        assert result["reason"] == "invalid_config"
        assert mock_progress.total is None
