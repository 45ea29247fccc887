"""Git interfaces and implementation."""

import re
import logging
from typing import Dict, List, Optional
import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from ..config.models import COMMIT_ID_LABEL, DEFAULT_REMOTE_BRANCH_PREFIX, DEFAULT_TARGET_REF, JasprConfig
from ..typing import (
    Commit,
    CommitHash,
    CommitID,
    GitInterface,
    Ident,
    JasprError,
    MergeCommitError,
    PreconditionError,
    PushError,
    RefSpec,
    RemoteBranch,
    RemoteRefParts,
)

# Get module logger
logger = logging.getLogger(__name__)

REV_NUM_DELIMITER = "_"

_TRAILER_SPLIT = re.compile(r'\s*:\s*')


def build_remote_ref(commit_id: str, target_ref: str = DEFAULT_TARGET_REF,
                     prefix: str = DEFAULT_REMOTE_BRANCH_PREFIX) -> str:
    """Encode ``<prefix>/<target_ref>/<commit_id>``."""
    return "/".join([prefix, target_ref, commit_id])


def build_revision_ref(remote_ref: str, revision: int) -> str:
    """Name of the numbered snapshot of ``remote_ref``."""
    return f"{remote_ref}{REV_NUM_DELIMITER}{revision:02d}"


def get_remote_ref_parts(remote_ref: str, prefix: str = DEFAULT_REMOTE_BRANCH_PREFIX) -> Optional[RemoteRefParts]:
    """Decode a remote branch name, or None if it isn't one of ours."""
    pattern = rf'^{re.escape(prefix)}/(.+)/(.+?)(?:{REV_NUM_DELIMITER}(\d+))?$'
    match = re.match(pattern, remote_ref)
    if not match:
        return None
    target_ref, commit_id, revision = match.groups()
    return RemoteRefParts(target_ref, CommitID(commit_id), int(revision) if revision is not None else None)


def get_commit_id_from_remote_ref(remote_ref: str, prefix: str = DEFAULT_REMOTE_BRANCH_PREFIX) -> Optional[CommitID]:
    parts = get_remote_ref_parts(remote_ref, prefix)
    return parts.commit_id if parts else None


def get_trailers(full_message: str) -> Dict[str, str]:
    """Parse the trailer block (final paragraph of ``key: value`` lines)."""
    trimmed = full_message.strip()
    if "\n\n" not in trimmed:
        return {}
    section = trimmed.rsplit("\n\n", 1)[1]
    lines = [_TRAILER_SPLIT.split(line) for line in section.splitlines()]
    if not all(len(parts) == 2 for parts in lines):
        return {}
    return {key: value for key, value in lines}


def add_trailers(full_message: str, trailers: Dict[str, str]) -> str:
    """Append trailers, joining an existing trailer block if there is one."""
    separator = "\n" if get_trailers(full_message) else "\n\n"
    block = "\n".join(f"{key}: {value}" for key, value in trailers.items())
    return full_message.strip() + separator + block + "\n"


def trim_trailers(full_message: str) -> str:
    """Return the message without its trailer block."""
    if not get_trailers(full_message):
        return full_message
    return full_message.strip().rsplit("\n\n", 1)[0] + "\n"


def get_commit_id(full_message: str) -> Optional[CommitID]:
    commit_id = get_trailers(full_message).get(COMMIT_ID_LABEL)
    return CommitID(commit_id) if commit_id else None


def refs_heads(ref: str) -> str:
    return ref if ref.startswith("refs/") else f"refs/heads/{ref}"


class BaseGit:
    """Behaviour shared by the git backends."""

    config: JasprConfig

    def log_range(self, since: str, until: str) -> List[Commit]:
        raise NotImplementedError

    def get_remote_branches(self) -> List[RemoteBranch]:
        raise NotImplementedError

    def ref_exists(self, ref: str) -> bool:
        raise NotImplementedError

    def get_local_commit_stack(self, remote_name: str, local_object_name: str, target_ref_name: str) -> List[Commit]:
        """Get local commit stack. Returns commits ordered with bottom commit first."""
        stack = self.log_range(f"{remote_name}/{target_ref_name}", local_object_name)
        logger.debug(f"get_local_commit_stack: {len(stack)} commit(s)")
        for commit in stack:
            logger.debug(f"  {commit}")
        return stack

    def get_remote_branches_by_id(self) -> Dict[str, RemoteBranch]:
        """Remote branches keyed by the commit id found in their tip commit."""
        return {
            branch.commit.id: branch
            for branch in self.get_remote_branches()
            if branch.commit.id is not None
        }

    def _check_range_endpoints(self, since: str, until: str) -> None:
        for ref in (since, until):
            if not self.ref_exists(ref):
                raise PreconditionError(f"{ref} does not exist")

    def _filter_push_specs(self, ref_specs: List[RefSpec]) -> List[RefSpec]:
        """Drop deletes of branches the remote no longer has and qualify destinations."""
        remote_name = self.config.remote_name
        filtered = [
            spec for spec in ref_specs
            if not (spec.is_delete and not self.ref_exists(f"refs/remotes/{remote_name}/{spec.remote_ref}"))
        ]
        return [
            RefSpec("" if spec.is_delete else spec.local_ref, refs_heads(spec.remote_ref))
            for spec in filtered
        ]


def reject_merge_commits(commits: List[Commit], parent_counts: Dict[str, int]) -> None:
    merges = [commit for commit in commits if parent_counts.get(commit.hash, 1) > 1]
    if merges:
        raise MergeCommitError(
            "Merge commits are not supported in the stack: " + ", ".join(str(c) for c in merges)
        )


class RealGit(BaseGit):
    """Git implementation backed by GitPython."""

    def __init__(self, config: JasprConfig, repo: Optional[git.Repo] = None):
        """Initialize with config."""
        self.config = config
        if repo is None:
            try:
                repo = git.Repo(config.working_directory, search_parent_directories=True)
            except (InvalidGitRepositoryError, NoSuchPathError):
                raise PreconditionError(f"Not in a git repository: {config.working_directory}")
        self.repo = repo

    @property
    def working_tree_dir(self) -> str:
        return str(self.repo.working_tree_dir)

    def _run(self, *args: str) -> str:
        logger.info(f"> git {' '.join(args)}")
        try:
            method = getattr(self.repo.git, args[0].replace('-', '_'))
            return method(*args[1:])
        except GitCommandError as e:
            raise JasprError(f"Git command failed: {e}")

    def _to_commit(self, c: git.Commit) -> Commit:
        message = c.message if isinstance(c.message, str) else c.message.decode('utf-8', 'replace')
        summary = c.summary if isinstance(c.summary, str) else c.summary.decode('utf-8', 'replace')
        return Commit(
            hash=CommitHash(c.hexsha),
            short_message=summary,
            full_message=message,
            id=get_commit_id(message),
            committer=Ident(str(c.committer.name), str(c.committer.email)),
            commit_timestamp=c.committed_date,
            author_timestamp=c.authored_date,
        )

    def fetch(self, remote_name: str) -> None:
        logger.info(f"> git fetch --prune {remote_name}")
        try:
            self.repo.remote(remote_name).fetch(prune=True)
        except (GitCommandError, ValueError) as e:
            raise JasprError(f"Failed to fetch {remote_name}: {e}")

    def log(self, revision: str = "HEAD", max_count: int = -1) -> List[Commit]:
        kwargs = {'max_count': max_count} if max_count > 0 else {}
        return [self._to_commit(c) for c in self.repo.iter_commits(revision, **kwargs)]

    def log_range(self, since: str, until: str) -> List[Commit]:
        self._check_range_endpoints(since, until)
        raw = list(self.repo.iter_commits(f"{since}..{until}", reverse=True))
        commits = [self._to_commit(c) for c in raw]
        reject_merge_commits(commits, {c.hexsha: len(c.parents) for c in raw})
        return commits

    def count_range(self, since: str, until: str) -> int:
        self._check_range_endpoints(since, until)
        return int(self.repo.git.rev_list("--count", f"{since}..{until}"))

    def is_working_directory_clean(self) -> bool:
        return not self.repo.is_dirty(untracked_files=False)

    def ref_exists(self, ref: str) -> bool:
        try:
            self.repo.git.rev_parse("--verify", "--quiet", f"{ref}^{{commit}}")
            return True
        except GitCommandError:
            return False

    def get_remote_branches(self) -> List[RemoteBranch]:
        remote_name = self.config.remote_name
        branches: List[RemoteBranch] = []
        for ref in self.repo.references:
            if not isinstance(ref, git.RemoteReference) or ref.remote_name != remote_name:
                continue
            if ref.remote_head == "HEAD":
                continue
            branches.append(RemoteBranch(ref.remote_head, self._to_commit(ref.commit)))
        return branches

    def reset(self, ref_name: str) -> None:
        self._run("reset", "--hard", ref_name)

    def branch(self, name: str, start_point: str = "HEAD", force: bool = False) -> Optional[Commit]:
        previous = self.log(name, 1)[0] if self.ref_exists(f"refs/heads/{name}") else None
        args = ["branch"] + (["-f"] if force else []) + [name, start_point]
        self._run(*args)
        return previous

    def delete_branches(self, names: List[str], force: bool = False) -> List[str]:
        existing = [name for name in names if self.ref_exists(f"refs/heads/{name}")]
        if existing:
            self._run("branch", "-D" if force else "-d", *existing)
        return names

    def set_commit_id(self, commit_id: str) -> None:
        head = self.log("HEAD", 1)[0]
        if COMMIT_ID_LABEL in get_trailers(head.full_message):
            raise PreconditionError(f"Commit already has a {COMMIT_ID_LABEL} trailer: {head}")
        self._run("commit", "--amend", "-m", add_trailers(head.full_message, {COMMIT_ID_LABEL: commit_id}))

    def commit(self, message: str, trailers: Optional[Dict[str, str]] = None) -> Commit:
        self._run("commit", "-m", add_trailers(message, trailers) if trailers else message)
        return self.log("HEAD", 1)[0]

    def cherry_pick(self, commit: Commit) -> Commit:
        self._run("cherry-pick", commit.hash)
        return self.log("HEAD", 1)[0]

    def push(self, ref_specs: List[RefSpec]) -> None:
        specs = self._filter_push_specs(ref_specs)
        if not specs:
            logger.info("No refspecs to push")
            return
        remote_name = self.config.remote_name
        wire = [str(spec) for spec in specs]
        logger.info(f"> git push --atomic {remote_name} {' '.join(wire)}")
        try:
            self.repo.git.push("--atomic", remote_name, *wire)
        except GitCommandError as e:
            raise PushError(f"Push to {remote_name} failed: {str(e.stderr).strip() or e}")

    def get_remote_uri_or_none(self, remote_name: str) -> Optional[str]:
        try:
            uri = self.repo.git.remote("get-url", remote_name).strip()
        except GitCommandError:
            return None
        return uri or None


def create_git(config: JasprConfig) -> GitInterface:
    """Build the git backend selected by the config."""
    if config.use_cli_git_client:
        from .cli import CliGit
        return CliGit(config)
    return RealGit(config)
