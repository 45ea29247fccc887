"""Git implementation that shells out to the git executable."""

import logging
import os
import subprocess
from typing import Dict, List, Optional, Sequence

from . import BaseGit, add_trailers, get_commit_id, get_trailers, reject_merge_commits
from ..config.models import COMMIT_ID_LABEL, JasprConfig
from ..typing import (
    Commit,
    CommitHash,
    Ident,
    JasprError,
    PreconditionError,
    PushError,
    RefSpec,
    RemoteBranch,
)

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "\x1f"
LOG_FORMAT = "%x1f".join([
    "%H",   # hash
    "%P",   # parent hashes
    "%s",   # subject
    "%cN",  # committer name
    "%cE",  # committer email
    "%ct",  # commit timestamp
    "%at",  # author timestamp
    "%B",   # raw body (subject + body)
])


def parse_log_entry(entry: str) -> Commit:
    """Parse one ``-z`` separated record produced with ``LOG_FORMAT``."""
    fields = entry.split(FIELD_SEPARATOR, 7)
    if len(fields) != 8:
        raise JasprError(f"Unexpected git log output: {entry!r}")
    commit_hash, _parents, subject, name, email, commit_ts, author_ts, body = fields
    return Commit(
        hash=CommitHash(commit_hash.strip()),
        short_message=subject,
        full_message=body,
        id=get_commit_id(body),
        committer=Ident(name, email),
        commit_timestamp=int(commit_ts),
        author_timestamp=int(author_ts),
    )


class CliGit(BaseGit):
    """Git implementation that runs git in a subprocess."""

    def __init__(self, config: JasprConfig):
        self.config = config
        self.working_directory = config.working_directory

    def run_cmd(self, args: Sequence[str], check: bool = True, quiet: bool = False) -> subprocess.CompletedProcess:
        """Run git with args, raising JasprError on a non-zero exit when check is set."""
        if not quiet:
            logger.info(f"> git {' '.join(args)}")
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
        result = subprocess.run(
            ["git", *args], cwd=self.working_directory, env=env,
            capture_output=True, text=True, check=False,
        )
        if check and result.returncode != 0:
            raise JasprError(f"git {' '.join(args)} failed ({result.returncode}): {result.stderr.strip()}")
        return result

    def must_git(self, *args: str) -> str:
        return self.run_cmd(args).stdout

    def _git_log(self, *args: str) -> List[Commit]:
        records = self._raw_log(*args)
        return [parse_log_entry(record) for record in records]

    def _raw_log(self, *args: str) -> List[str]:
        output = self.run_cmd(["log", *args, "-z", f"--pretty=format:{LOG_FORMAT}"], quiet=True).stdout
        return [record for record in output.split("\x00") if record.strip()]

    def fetch(self, remote_name: str) -> None:
        self.run_cmd(["fetch", "--prune", remote_name])

    def log(self, revision: str = "HEAD", max_count: int = -1) -> List[Commit]:
        args = [f"--max-count={max_count}"] if max_count > 0 else []
        return self._git_log(*args, revision)

    def log_range(self, since: str, until: str) -> List[Commit]:
        self._check_range_endpoints(since, until)
        records = self._raw_log("--reverse", f"{since}..{until}")
        commits = [parse_log_entry(record) for record in records]
        parent_counts = {
            commit.hash: len(record.split(FIELD_SEPARATOR, 2)[1].split())
            for commit, record in zip(commits, records)
        }
        reject_merge_commits(commits, parent_counts)
        return commits

    def count_range(self, since: str, until: str) -> int:
        self._check_range_endpoints(since, until)
        return int(self.must_git("rev-list", "--count", f"{since}..{until}").strip())

    def is_working_directory_clean(self) -> bool:
        output = self.run_cmd(["status", "--porcelain", "--untracked-files=no"], quiet=True).stdout
        return not output.strip()

    def ref_exists(self, ref: str) -> bool:
        result = self.run_cmd(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], check=False, quiet=True)
        return result.returncode == 0

    def get_remote_branches(self) -> List[RemoteBranch]:
        remote_name = self.config.remote_name
        output = self.run_cmd(
            ["for-each-ref", "--format=%(refname:lstrip=3) %(objectname)", f"refs/remotes/{remote_name}/"],
            quiet=True,
        ).stdout
        pairs = [line.split(" ", 1) for line in output.splitlines() if line.strip()]
        pairs = [(name, sha) for name, sha in pairs if name != "HEAD"]
        if not pairs:
            return []
        hashes = sorted({sha for _, sha in pairs})
        commits_by_hash = {c.hash: c for c in self._git_log("--no-walk=unsorted", *hashes)}
        return [RemoteBranch(name, commits_by_hash[sha]) for name, sha in pairs]

    def reset(self, ref_name: str) -> None:
        self.run_cmd(["reset", "--hard", ref_name])

    def branch(self, name: str, start_point: str = "HEAD", force: bool = False) -> Optional[Commit]:
        previous = self.log(name, 1)[0] if self.ref_exists(f"refs/heads/{name}") else None
        self.run_cmd(["branch"] + (["-f"] if force else []) + [name, start_point])
        return previous

    def delete_branches(self, names: List[str], force: bool = False) -> List[str]:
        existing = [name for name in names if self.ref_exists(f"refs/heads/{name}")]
        if existing:
            self.run_cmd(["branch", "-D" if force else "-d", *existing])
        return names

    def set_commit_id(self, commit_id: str) -> None:
        head = self.log("HEAD", 1)[0]
        if COMMIT_ID_LABEL in get_trailers(head.full_message):
            raise PreconditionError(f"Commit already has a {COMMIT_ID_LABEL} trailer: {head}")
        self.run_cmd(["commit", "--amend", "-m", add_trailers(head.full_message, {COMMIT_ID_LABEL: commit_id})])

    def commit(self, message: str, trailers: Optional[Dict[str, str]] = None) -> Commit:
        self.run_cmd(["commit", "-m", add_trailers(message, trailers) if trailers else message])
        return self.log("HEAD", 1)[0]

    def cherry_pick(self, commit: Commit) -> Commit:
        self.run_cmd(["cherry-pick", commit.hash])
        return self.log("HEAD", 1)[0]

    def push(self, ref_specs: List[RefSpec]) -> None:
        specs = self._filter_push_specs(ref_specs)
        if not specs:
            logger.info("No refspecs to push")
            return
        remote_name = self.config.remote_name
        args = ["push", "--atomic", "--porcelain", remote_name, *[str(spec) for spec in specs]]
        result = self.run_cmd(args, check=False)
        if result.returncode != 0:
            raise PushError(f"Push to {remote_name} failed: {result.stderr.strip() or result.stdout.strip()}")

    def get_remote_uri_or_none(self, remote_name: str) -> Optional[str]:
        result = self.run_cmd(["remote", "get-url", remote_name], check=False, quiet=True)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None
