"""Status table for the local stack."""

from typing import List

from ..pretty import STATUS_HEADER, Status, plural, status_line
from ..typing import RemoteCommitStatus


def status_flags(status: RemoteCommitStatus) -> List[Status]:
    """The pushed, PR exists, checks and approved flags for one stack entry."""
    pr = status.pull_request
    if pr is None:
        checks = Status.EMPTY
        approved = Status.EMPTY
    else:
        if status.checks_pass is None:
            checks = Status.PENDING
        else:
            checks = Status.SUCCESS if status.checks_pass else Status.FAIL
        if status.approved is None:
            approved = Status.EMPTY
        else:
            approved = Status.SUCCESS if status.approved else Status.FAIL
    return [
        Status.SUCCESS if status.remote_commit is not None else Status.EMPTY,
        Status.SUCCESS if pr is not None else Status.EMPTY,
        checks,
        approved,
    ]


def behind_message(num_behind: int, remote_name: str, target_ref: str) -> str:
    return (
        f"Your stack is out-of-date with the base branch "
        f"({num_behind} {plural(num_behind, 'commit')} behind {target_ref}).\n"
        f"You'll need to rebase it (`git rebase {remote_name}/{target_ref}`) "
        f"before your stack will be mergeable.\n"
    )


def render_status(statuses: List[RemoteCommitStatus], num_behind: int, remote_name: str, target_ref: str) -> str:
    """Render the status header and one line per stack entry, oldest first.

    The stack check flag stays on only while every earlier entry is fully
    green and the stack is not behind the target.
    """
    lines = [STATUS_HEADER]
    stack_check = num_behind == 0
    for status in statuses:
        flags = status_flags(status)
        if not all(flag is Status.SUCCESS for flag in flags):
            stack_check = False
        flags.append(Status.SUCCESS if stack_check else Status.EMPTY)
        permalink = status.pull_request.permalink if status.pull_request else None
        lines.append(status_line(flags, status.local_commit.short_message, permalink))
    if num_behind > 0:
        lines.append("\n")
        lines.append(behind_message(num_behind, remote_name, target_ref))
    return "".join(lines)
