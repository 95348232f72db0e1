"""Parsing utilities for GitHub PR URLs and PR keys."""

import re
from dataclasses import dataclass
from urllib.parse import urlparse

# Regex pattern for GitHub PR URLs
GITHUB_PR_PATTERN = re.compile(
    r"^/(?P<owner>[^/]+)/(?P<repo>[^/]+)/pull/(?P<number>\d+)/?$"
)

# Regex pattern for PR keys ("owner/repo#123")
PR_KEY_PATTERN = re.compile(r"^(?P<owner>[^/#\s]+)/(?P<repo>[^/#\s]+)#(?P<number>\d+)$")


@dataclass(frozen=True)
class PRReference:
    """Immutable reference to a GitHub PR."""

    owner: str
    repo: str
    number: int

    @property
    def name_with_owner(self) -> str:
        """Return the ``owner/repo`` form of the repository."""
        return f"{self.owner}/{self.repo}"

    @property
    def key(self) -> str:
        """Return the snapshot key for this PR."""
        return format_pr_key(self.name_with_owner, self.number)


def format_pr_key(name_with_owner: str, number: int) -> str:
    """Build the globally unique key ``owner/repo#number``."""
    return f"{name_with_owner}#{number}"


def parse_pr_key(key: str) -> PRReference:
    """
    Parse a PR key into its components.

    Args:
        key: A PR key (e.g., owner/repo#123)

    Returns:
        PRReference with owner, repo, and PR number

    Raises:
        ValueError: If the key is malformed
    """
    match = PR_KEY_PATTERN.match(key)
    if not match:
        raise ValueError(f"Not a valid PR key: {key}")

    return PRReference(
        owner=match.group("owner"),
        repo=match.group("repo"),
        number=int(match.group("number")),
    )


def parse_pr_url(url: str) -> PRReference:
    """
    Parse a GitHub PR URL into its components.

    Args:
        url: A GitHub PR URL (e.g., https://github.com/owner/repo/pull/123)

    Returns:
        PRReference with owner, repo, and PR number

    Raises:
        ValueError: If URL is not a valid GitHub PR URL
    """
    parsed = urlparse(url)

    # Validate host
    if parsed.netloc not in ("github.com", "www.github.com"):
        raise ValueError(f"Not a GitHub URL: {url}")

    # Match path pattern
    match = GITHUB_PR_PATTERN.match(parsed.path)
    if not match:
        raise ValueError(f"Not a valid PR URL format: {url}")

    return PRReference(
        owner=match.group("owner"),
        repo=match.group("repo"),
        number=int(match.group("number")),
    )


def parse_repo(name_with_owner: str) -> tuple[str, str]:
    """Split ``owner/repo`` into its two parts."""
    owner, sep, repo = name_with_owner.partition("/")
    if not sep or not owner or not repo or "/" in repo:
        raise ValueError(f"Not a valid repository name: {name_with_owner}")
    return owner, repo
