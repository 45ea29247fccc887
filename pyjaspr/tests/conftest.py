"""Fixtures: a bare remote, a clone of it, and an engine wired to a fake GitHub."""

import itertools
import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, Generator, List, Optional

import pytest

from pyjaspr.config.models import GitHubInfo, JasprConfig
from pyjaspr.git import RealGit
from pyjaspr.git.cli import CliGit
from pyjaspr.stack import StackedPR
from pyjaspr.tests.fake_github import FakeGitHub
from pyjaspr.typing import Commit, GitInterface

logger = logging.getLogger(__name__)

GIT_ENV = {
    "GIT_AUTHOR_NAME": "Test User",
    "GIT_AUTHOR_EMAIL": "test@example.com",
    "GIT_COMMITTER_NAME": "Test User",
    "GIT_COMMITTER_EMAIL": "test@example.com",
    "GIT_CONFIG_NOSYSTEM": "1",
}


def run_cmd(args: List[str], cwd: Optional[Path] = None) -> str:
    """Run git in ``cwd`` and return stdout; raises CalledProcessError on failure."""
    env = {**os.environ, **GIT_ENV}
    logger.debug(f"run: {' '.join(args)}")
    result = subprocess.run(args, cwd=cwd, env=env, check=True, capture_output=True, text=True)
    return result.stdout.strip()


class RepoContext:
    """A local clone with helpers for building stacks."""

    def __init__(self, root: Path, backend: str):
        self.remote_dir = root / "remote.git"
        self.path = root / "local"
        self.path.mkdir()
        run_cmd(["git", "init", "--bare", "-q", str(self.remote_dir)])
        run_cmd(["git", "symbolic-ref", "HEAD", "refs/heads/main"], cwd=self.remote_dir)
        self.git("init", "-q")
        self.git("checkout", "-q", "-b", "main")
        self.git("config", "user.name", "Test User")
        self.git("config", "user.email", "test@example.com")
        self.git("config", "commit.gpgsign", "false")
        self.git("remote", "add", "origin", f"file://{self.remote_dir}")
        (self.path / "README.md").write_text("# test repository\n")
        self.git("add", "README.md")
        self.git("commit", "-q", "-m", "Initial commit")
        self.git("push", "-q", "-u", "origin", "main")

        self.config = JasprConfig(
            working_directory=str(self.path),
            github=GitHubInfo(owner="test-owner", name="test-repo"),
        )
        self.git_cmd: GitInterface = RealGit(self.config) if backend == "gitpython" else CliGit(self.config)
        self.github = FakeGitHub(prefix=self.config.remote_branch_prefix)
        ids = (f"gen{n:05d}" for n in itertools.count(1))
        self.engine = StackedPR(self.config, self.github, self.git_cmd, new_commit_id=lambda: next(ids))

    def git(self, *args: str) -> str:
        return run_cmd(["git", *args], cwd=self.path)

    def commit(self, title: str, commit_id: Optional[str] = None, filename: Optional[str] = None,
               content: Optional[str] = None) -> str:
        """Commit a change to one file; returns the new hash."""
        name = filename or f"{title.replace(' ', '_')}.txt"
        (self.path / name).write_text(content if content is not None else f"{title}\n")
        self.git("add", name)
        message = f"{title}\n\ncommit-id: {commit_id}\n" if commit_id else f"{title}\n"
        self.git("commit", "-q", "-m", message)
        return self.head()

    def head(self, ref: str = "HEAD") -> str:
        return self.git("rev-parse", ref)

    def stack(self) -> List[Commit]:
        return self.git_cmd.get_local_commit_stack("origin", "HEAD", "main")

    def remote_branches(self) -> Dict[str, str]:
        """Branch name to hash as the bare remote sees it."""
        output = run_cmd(["git", "for-each-ref", "--format=%(refname:lstrip=2) %(objectname)", "refs/heads/"],
                         cwd=self.remote_dir)
        return dict(line.split(" ", 1) for line in output.splitlines() if line)

    def push_to_remote_main(self, title: str) -> None:
        """Advance the remote main from a second clone."""
        other = self.path.parent / "other"
        if not other.exists():
            run_cmd(["git", "clone", "-q", f"file://{self.remote_dir}", str(other)])
        run_cmd(["git", "pull", "-q", "origin", "main"], cwd=other)
        (other / f"{title}.txt").write_text(f"{title}\n")
        run_cmd(["git", "add", f"{title}.txt"], cwd=other)
        run_cmd(["git", "commit", "-q", "-m", title], cwd=other)
        run_cmd(["git", "push", "-q", "origin", "HEAD:main"], cwd=other)


@pytest.fixture(params=["gitpython", "cli"])
def repo(request: pytest.FixtureRequest, tmp_path: Path) -> Generator[RepoContext, None, None]:
    """A fresh repository, once per git backend."""
    yield RepoContext(tmp_path, request.param)


@pytest.fixture
def gitpython_repo(tmp_path: Path) -> Generator[RepoContext, None, None]:
    yield RepoContext(tmp_path, "gitpython")
