"""Common types used across the codebase."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional, Protocol, NewType, Tuple, runtime_checkable

# Create NewTypes for commit identifiers
CommitID = NewType('CommitID', str)
CommitHash = NewType('CommitHash', str)

FORCE_PUSH_PREFIX = "+"


@dataclass(frozen=True)
class Ident:
    """Committer or author identity."""
    name: str
    email: str


@dataclass(frozen=True)
class Commit:
    """A single commit read from git history.

    ``id`` is the value of the ``commit-id`` trailer, when present. ``hash`` is
    the full object name.
    """
    hash: CommitHash
    short_message: str
    full_message: str
    id: Optional[CommitID] = None
    committer: Optional[Ident] = None
    commit_timestamp: Optional[int] = None
    author_timestamp: Optional[int] = None

    @property
    def short_hash(self) -> str:
        return self.hash[:8]

    def __str__(self) -> str:
        return f"{self.short_hash} [{self.id or '-'}] {self.short_message}"


@dataclass(frozen=True)
class RefSpec:
    """A ``<local>:<remote>`` push directive. A leading ``+`` on ``local_ref`` forces."""
    local_ref: str
    remote_ref: str

    def force_push(self) -> 'RefSpec':
        if self.local_ref.startswith(FORCE_PUSH_PREFIX):
            return self
        return replace(self, local_ref=f"{FORCE_PUSH_PREFIX}{self.local_ref}")

    @property
    def is_delete(self) -> bool:
        """A bare ``+`` (or empty) source deletes the remote ref."""
        return self.local_ref in ("", FORCE_PUSH_PREFIX)

    def __str__(self) -> str:
        return f"{self.local_ref}:{self.remote_ref}"


@dataclass(frozen=True)
class RemoteBranch:
    """Observed state of a branch on the remote."""
    name: str
    commit: Commit

    def to_ref_spec(self) -> RefSpec:
        return RefSpec(self.commit.hash, self.name)


@dataclass(frozen=True)
class RemoteRefParts:
    """Decoded form of an encoded remote branch name."""
    target_ref: str
    commit_id: CommitID
    revision_num: Optional[int] = None


@dataclass(frozen=True)
class PullRequest:
    """Pull request info. ``id is None`` means it does not exist on the host yet."""
    id: Optional[str]
    commit_id: Optional[CommitID]
    number: Optional[int]
    head_ref_name: str
    base_ref_name: str
    title: str
    body: str
    checks_pass: Optional[bool] = None
    approved: Optional[bool] = None
    check_conclusion_states: Tuple[str, ...] = ()
    permalink: Optional[str] = None
    is_draft: bool = False

    def __str__(self) -> str:
        number = f"#{self.number}" if self.number is not None else "(new)"
        return f"PR {number} {self.head_ref_name} -> {self.base_ref_name} : {self.title}"


@dataclass(frozen=True)
class RemoteCommitStatus:
    """Join of a local stack commit with its remote branch and pull request."""
    local_commit: Commit
    remote_commit: Optional[Commit] = None
    pull_request: Optional[PullRequest] = None
    checks_pass: Optional[bool] = None
    approved: Optional[bool] = None

    @property
    def mergeable(self) -> bool:
        return self.approved is True and self.checks_pass is True


class OutcomeKind(Enum):
    SUCCESS = "success"
    WARNING = "warning"


@dataclass(frozen=True)
class Outcome:
    """Result of a top-level operation that did not fail fatally.

    Fatal problems are raised as :class:`JasprError`; expected "nothing to do"
    conditions come back as warnings so callers can branch on ``kind``.
    """
    kind: OutcomeKind
    message: str = ""

    @classmethod
    def success(cls, message: str = "") -> 'Outcome':
        return cls(OutcomeKind.SUCCESS, message)

    @classmethod
    def warning(cls, message: str) -> 'Outcome':
        return cls(OutcomeKind.WARNING, message)

    @property
    def is_warning(self) -> bool:
        return self.kind is OutcomeKind.WARNING


class JasprError(Exception):
    """Base class for fatal errors."""


class PreconditionError(JasprError):
    """Local state does not allow the operation to proceed."""


class MergeCommitError(PreconditionError):
    """The stack contains a commit with more than one parent."""


class SinglePullRequestPerCommitError(PreconditionError):
    """More than one open pull request exists for the same commit id."""

    def __init__(self, prs_by_commit_id: Dict[str, List[PullRequest]]):
        self.prs_by_commit_id = prs_by_commit_id
        details = ", ".join(
            f"{commit_id}: {[pr.number for pr in prs]}" for commit_id, prs in prs_by_commit_id.items()
        )
        super().__init__(
            "Some commits have multiple open PRs; please correct this and retry your operation: " + details
        )


class DuplicateCommitIDError(PreconditionError):
    """Two or more commits in the stack carry the same commit id."""

    def __init__(self, duplicates: Dict[str, List[Commit]]):
        self.duplicates = duplicates
        details = "; ".join(
            f"{commit_id}: " + ", ".join(c.short_hash for c in commits) for commit_id, commits in duplicates.items()
        )
        super().__init__(
            f"Duplicate commit ids found in the stack ({details}). Each commit needs a unique id; "
            "this usually happens after a cherry-pick copied an existing commit-id trailer. "
            "Amend one of the commits to remove the trailer and re-run the command."
        )


class GitHubError(JasprError):
    """The GitHub API returned an error."""


class PushError(JasprError):
    """An atomic push was rejected."""


@runtime_checkable
class GitInterface(Protocol):
    """Git backend used by the stack engine."""

    def fetch(self, remote_name: str) -> None:
        ...

    def log(self, revision: str = "HEAD", max_count: int = -1) -> List[Commit]:
        ...

    def log_range(self, since: str, until: str) -> List[Commit]:
        """Commits reachable from ``until`` but not ``since``, oldest first."""
        ...

    def count_range(self, since: str, until: str) -> int:
        """Number of commits reachable from ``until`` but not ``since``."""
        ...

    def is_working_directory_clean(self) -> bool:
        ...

    def get_local_commit_stack(self, remote_name: str, local_object_name: str, target_ref_name: str) -> List[Commit]:
        ...

    def ref_exists(self, ref: str) -> bool:
        ...

    def get_remote_branches(self) -> List[RemoteBranch]:
        ...

    def get_remote_branches_by_id(self) -> Dict[str, RemoteBranch]:
        ...

    def reset(self, ref_name: str) -> None:
        ...

    def branch(self, name: str, start_point: str = "HEAD", force: bool = False) -> Optional[Commit]:
        ...

    def delete_branches(self, names: List[str], force: bool = False) -> List[str]:
        ...

    def set_commit_id(self, commit_id: str) -> None:
        ...

    def commit(self, message: str, trailers: Optional[Dict[str, str]] = None) -> Commit:
        ...

    def cherry_pick(self, commit: Commit) -> Commit:
        ...

    def push(self, ref_specs: List[RefSpec]) -> None:
        ...

    def get_remote_uri_or_none(self, remote_name: str) -> Optional[str]:
        ...


@runtime_checkable
class GitHubInterface(Protocol):
    """Review host operations used by the stack engine."""

    def get_pull_requests(self, commit_filter: Optional[List[Commit]] = None) -> List[PullRequest]:
        ...

    def get_pull_requests_by_head_ref(self, head_ref_name: str) -> List[PullRequest]:
        ...

    def create_pull_request(self, pull_request: PullRequest) -> PullRequest:
        ...

    def update_pull_request(self, pull_request: PullRequest) -> None:
        ...

    def close_pull_request(self, pull_request: PullRequest) -> None:
        ...

    def approve_pull_request(self, pull_request: PullRequest) -> None:
        ...
