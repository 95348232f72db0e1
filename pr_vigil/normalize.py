"""Raw GitHub GraphQL shapes and their normalization into canonical models.

Everything the provider returns is validated into the ``Raw*`` models below and
converted to :mod:`pr_vigil.models` types before it leaves this module. The
status-check rollup mixes two unrelated shapes (``CheckRun`` and the legacy
``StatusContext``); they are modelled as a tagged union on ``__typename`` and
collapsed into a single :class:`~pr_vigil.models.Check`.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .models import (
    Author,
    Check,
    CheckConclusion,
    CheckStatus,
    Comment,
    Label,
    MergeableState,
    PRState,
    PullRequest,
    Repository,
    Review,
    ReviewDecision,
    ReviewState,
)
from .parser import format_pr_key

E = TypeVar("E", bound=Enum)

UNKNOWN_LOGIN = "unknown"


def _nodes(value: Any) -> list[Any]:
    """Unwrap a GraphQL connection (``{"nodes": [...]}``) into a plain list."""
    if value is None:
        return []
    if isinstance(value, dict):
        return [node for node in value.get("nodes") or [] if node]
    return list(value)


class _RawModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class RawAuthor(_RawModel):
    login: str | None = None
    name: str | None = None
    typename: str | None = Field(default=None, alias="__typename")
    type: str | None = None
    is_bot: bool | None = Field(
        default=None, validation_alias=AliasChoices("is_bot", "isBot")
    )


class RawLabel(_RawModel):
    id: str | None = None
    name: str
    color: str | None = None


class RawReview(_RawModel):
    id: str | None = None
    author: RawAuthor | None = None
    state: str = ""
    body: str | None = None
    submitted_at: datetime | None = None


class RawComment(_RawModel):
    id: str | None = None
    author: RawAuthor | None = None
    body: str | None = None
    created_at: datetime
    url: str | None = None


class RawCheckRun(_RawModel):
    typename: Literal["CheckRun"] = Field(alias="__typename")
    name: str | None = None
    status: str | None = None
    conclusion: str | None = None
    details_url: str | None = None
    workflow_name: str | None = None
    check_suite: dict[str, Any] | None = None

    @property
    def resolved_workflow_name(self) -> str | None:
        """Workflow name, either flattened or nested under the check suite."""
        if self.workflow_name:
            return self.workflow_name
        run = (self.check_suite or {}).get("workflowRun") or {}
        return (run.get("workflow") or {}).get("name")


class RawStatusContext(_RawModel):
    typename: Literal["StatusContext"] = Field(alias="__typename")
    context: str | None = None
    state: str | None = None
    target_url: str | None = None


RawCheck = Annotated[
    RawCheckRun | RawStatusContext, Field(discriminator="typename")
]

Connection = BeforeValidator(_nodes)


class RawRepository(_RawModel):
    name: str
    name_with_owner: str


class RawPullRequest(_RawModel):
    """A PR node from either the discovery or the detail query."""

    number: int
    title: str
    state: str = "OPEN"
    is_draft: bool = False
    url: str
    body: str | None = None
    created_at: datetime
    updated_at: datetime
    repository: RawRepository | None = None
    author: RawAuthor | None = None
    labels: Annotated[list[RawLabel], Connection] = Field(default_factory=list)

    # Detail-only fields
    head_ref_name: str | None = None
    base_ref_name: str | None = None
    mergeable: str | None = None
    review_decision: str | None = None
    additions: int | None = None
    deletions: int | None = None
    changed_files: int | None = None
    reviews: Annotated[list[RawReview], Connection] = Field(default_factory=list)
    comments: Annotated[list[RawComment], Connection] = Field(default_factory=list)
    status_check_rollup: Annotated[list[RawCheck], Connection] = Field(
        default_factory=list
    )

    @model_validator(mode="before")
    @classmethod
    def _lift_rollup(cls, data: Any) -> Any:
        """Pull the rollup contexts off the head commit when queried via GraphQL."""
        if isinstance(data, dict) and "statusCheckRollup" not in data:
            commits = _nodes(data.get("commits"))
            if commits:
                commit = commits[-1].get("commit") or {}
                rollup = commit.get("statusCheckRollup") or {}
                data = {**data, "statusCheckRollup": rollup.get("contexts")}
        return data


def _enum_or(enum_cls: type[E], value: str | None, default: E) -> E:
    if value is None:
        return default
    try:
        return enum_cls(value.upper())
    except ValueError:
        return default


def normalize_author(raw: RawAuthor | None) -> Author:
    """Normalize an author, falling back to ``unknown`` when absent."""
    if raw is None:
        return Author(login=UNKNOWN_LOGIN, is_bot=False)
    login = raw.login or UNKNOWN_LOGIN
    is_bot = (
        login.endswith("[bot]")
        or raw.typename == "Bot"
        or raw.type == "Bot"
        or raw.is_bot is True
    )
    return Author(login=login, name=raw.name or None, is_bot=is_bot)


def normalize_label(raw: RawLabel) -> Label:
    return Label(id=raw.id or raw.name, name=raw.name, color=raw.color or "")


def normalize_review(raw: RawReview) -> Review:
    return Review(
        id=raw.id or "",
        author=normalize_author(raw.author),
        state=_enum_or(ReviewState, raw.state, ReviewState.COMMENTED),
        body=raw.body or "",
        submitted_at=raw.submitted_at,
    )


def normalize_comment(raw: RawComment) -> Comment:
    return Comment(
        id=raw.id or "",
        author=normalize_author(raw.author),
        body=raw.body or "",
        created_at=raw.created_at,
        url=raw.url or "",
    )


# Legacy commit status states mapped onto check conclusions
STATUS_CONTEXT_CONCLUSIONS: dict[str, CheckConclusion | None] = {
    "SUCCESS": CheckConclusion.SUCCESS,
    "FAILURE": CheckConclusion.FAILURE,
    "ERROR": CheckConclusion.FAILURE,
    "PENDING": None,
    "EXPECTED": None,
}


def map_status_context_state(state: str | None) -> CheckConclusion | None:
    """Map a legacy commit status state onto the check conclusion vocabulary."""
    if not state:
        return None
    return STATUS_CONTEXT_CONCLUSIONS.get(state.upper())


def normalize_check(raw: RawCheckRun | RawStatusContext) -> Check:
    """Collapse either rollup variant into a canonical check."""
    if isinstance(raw, RawStatusContext):
        return Check(
            name=raw.context or "unknown",
            status=CheckStatus.COMPLETED if raw.state else CheckStatus.PENDING,
            conclusion=map_status_context_state(raw.state),
            details_url=raw.target_url,
        )

    status = (
        _enum_or(CheckStatus, raw.status, CheckStatus.PENDING)
        if raw.status
        else CheckStatus.QUEUED
    )
    conclusion = (
        _enum_or(CheckConclusion, raw.conclusion, None) if raw.conclusion else None
    )
    return Check(
        name=raw.name or "unknown",
        status=status,
        conclusion=conclusion,
        workflow_name=raw.resolved_workflow_name,
        details_url=raw.details_url,
    )


def normalize_mergeable(raw: str | None) -> MergeableState:
    value = (raw or "").upper()
    if value in ("MERGEABLE", "CLEAN"):
        return MergeableState.MERGEABLE
    if value == "CONFLICTING":
        return MergeableState.CONFLICTING
    return MergeableState.UNKNOWN


def normalize_review_decision(raw: str | None) -> ReviewDecision:
    return _enum_or(ReviewDecision, raw, ReviewDecision.NONE)


def normalize_state(raw: str | None) -> PRState:
    return _enum_or(PRState, raw, PRState.OPEN)


def _repository(raw: RawPullRequest, name_with_owner: str | None) -> Repository:
    if raw.repository is not None:
        return Repository(
            name=raw.repository.name,
            name_with_owner=raw.repository.name_with_owner,
        )
    if not name_with_owner:
        raise ValueError(f"PR #{raw.number} has no repository")
    return Repository(
        name=name_with_owner.split("/", 1)[-1], name_with_owner=name_with_owner
    )


def build_stub(raw: RawPullRequest) -> PullRequest:
    """
    Build a partial PR from a discovery result.

    Reviews, comments, and checks are empty; mergeability is unknown and the
    review decision is empty until the detail pass fills them in.
    """
    repository = _repository(raw, None)
    return PullRequest(
        key=format_pr_key(repository.name_with_owner, raw.number),
        number=raw.number,
        title=raw.title,
        body=raw.body or "",
        url=raw.url,
        repository=repository,
        author=normalize_author(raw.author),
        is_draft=raw.is_draft,
        state=normalize_state(raw.state),
        labels=[normalize_label(label) for label in raw.labels],
        created_at=raw.created_at,
        updated_at=raw.updated_at,
    )


def build_detail(raw: RawPullRequest, name_with_owner: str | None = None) -> PullRequest:
    """Build a complete PR from a detail query result."""
    repository = _repository(raw, name_with_owner)
    return PullRequest(
        key=format_pr_key(repository.name_with_owner, raw.number),
        number=raw.number,
        title=raw.title,
        body=raw.body or "",
        url=raw.url,
        repository=repository,
        author=normalize_author(raw.author),
        head_ref_name=raw.head_ref_name or "",
        base_ref_name=raw.base_ref_name or "",
        is_draft=raw.is_draft,
        state=normalize_state(raw.state),
        mergeable=normalize_mergeable(raw.mergeable),
        review_decision=normalize_review_decision(raw.review_decision),
        reviews=[normalize_review(review) for review in raw.reviews],
        comments=[normalize_comment(comment) for comment in raw.comments],
        checks=[normalize_check(check) for check in raw.status_check_rollup],
        labels=[normalize_label(label) for label in raw.labels],
        additions=raw.additions or 0,
        deletions=raw.deletions or 0,
        changed_files=raw.changed_files or 0,
        created_at=raw.created_at,
        updated_at=raw.updated_at,
        detailed=True,
    )


def parse_pull_requests(nodes: list[dict[str, Any]]) -> list[RawPullRequest]:
    """Validate raw search nodes, skipping non-PR results (empty fragments)."""
    return [RawPullRequest.model_validate(node) for node in nodes if node]
