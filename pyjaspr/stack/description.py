"""Pull request description rendering."""

from typing import Callable, List, Optional

from ..git import trim_trailers
from ..typing import PullRequest

STACK_WARNING = (
    "⚠️ *Part of a stack created by pyjaspr. "
    "Do not merge manually using the UI - doing so may have unexpected results.*\n"
)


def build_pull_request_body(
    full_message: str,
    pull_requests: Optional[List[PullRequest]] = None,
    current_commit_id: Optional[str] = None,
    history_links: Optional[Callable[[PullRequest], Optional[str]]] = None,
) -> str:
    """Body for a PR: message without trailers, the stack listing, then a warning.

    ``pull_requests`` is listed in the given order (callers pass newest first).
    """
    parts = [trim_trailers(full_message), "\n"]
    if pull_requests:
        parts.append("**Stack**:\n")
        for pr in pull_requests:
            marker = " ⬅" if pr.commit_id == current_commit_id else ""
            parts.append(f"- #{pr.number}{marker}\n")
            links = history_links(pr) if history_links else None
            if links:
                parts.append(links)
        parts.append("\n")
    parts.append(STACK_WARNING)
    return "".join(parts)
