"""Installation of the commit-msg hook that assigns commit ids."""

import logging
import os
import stat
from pathlib import Path

import git
from git.exc import InvalidGitRepositoryError, NoSuchPathError

from ..config.models import COMMIT_ID_LABEL
from ..typing import PreconditionError

logger = logging.getLogger(__name__)

COMMIT_MSG_HOOK = "commit-msg"

COMMIT_MSG_HOOK_SCRIPT = f"""#!/bin/sh
# Installed by pyjaspr: adds a {COMMIT_ID_LABEL} trailer to commits that lack one.
MSG_FILE="$1"

if grep -qiE '^{COMMIT_ID_LABEL}:' "$MSG_FILE"; then
    exit 0
fi

ID=$(od -An -N10 -tx1 /dev/urandom | tr -d ' \\n' | cut -c1-8)
git interpret-trailers --in-place --trailer "{COMMIT_ID_LABEL}: $ID" "$MSG_FILE"
"""


def install_commit_id_hook(working_directory: str) -> Path:
    """Write the commit-msg hook into the repository and make it executable.

    An existing hook is overwritten. Returns the hook path.
    """
    try:
        repo = git.Repo(working_directory, search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError):
        raise PreconditionError(f"Not in a git repository: {working_directory}")

    hooks_dir = Path(repo.git_dir) / "hooks"
    hooks_dir.mkdir(parents=True, exist_ok=True)
    hook = hooks_dir / COMMIT_MSG_HOOK
    logger.info(f"Installing/overwriting {COMMIT_MSG_HOOK} to {hook} and setting the executable bit")
    hook.write_text(COMMIT_MSG_HOOK_SCRIPT)
    mode = os.stat(hook).st_mode
    os.chmod(hook, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return hook
