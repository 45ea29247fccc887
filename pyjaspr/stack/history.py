"""Revision history refs: numbered snapshots of force-pushed branches."""

import re
import logging
from typing import Dict, Iterable, List, Optional, Set

from ..config.models import GitHubInfo
from ..git import REV_NUM_DELIMITER, build_remote_ref, build_revision_ref, get_remote_ref_parts
from ..typing import RefSpec

logger = logging.getLogger(__name__)


def next_revision_by_ref(branch_names: Iterable[str], prefix: str) -> Dict[str, int]:
    """Next free revision number for every encoded branch the remote knows about."""
    next_revision: Dict[str, int] = {}
    for name in branch_names:
        parts = get_remote_ref_parts(name, prefix)
        if parts is None:
            continue
        ref = build_remote_ref(parts.commit_id, parts.target_ref, prefix)
        revision = (parts.revision_num or 0) + 1
        next_revision[ref] = max(next_revision.get(ref, 0), revision)
    return next_revision


def get_revision_history_refs(
    stack_ref_names: List[str],
    branch_names: Iterable[str],
    remote_name: str,
    out_of_date: Set[str],
    prefix: str,
) -> List[RefSpec]:
    """Snapshot refspecs for stack branches that are about to be force-pushed.

    Each one copies the current remote tip of ``<ref>`` to ``<ref>_<NN>``.
    """
    names = set(branch_names)
    next_revision = next_revision_by_ref(names, prefix)
    ref_specs = [
        RefSpec(f"{remote_name}/{ref}", build_revision_ref(ref, next_revision[ref]))
        for ref in stack_ref_names
        if ref in out_of_date and ref in names and ref in next_revision
    ]
    logger.debug(f"get_revision_history_refs: {[str(spec) for spec in ref_specs]}")
    return ref_specs


def history_refs(head_ref_name: str, branch_names: Iterable[str]) -> List[str]:
    """Snapshots of ``head_ref_name``, newest first."""
    regex = re.compile(rf'^{re.escape(head_ref_name)}{REV_NUM_DELIMITER}(\d+)$')
    numbered = []
    for name in branch_names:
        match = regex.match(name)
        if match:
            numbered.append((int(match.group(1)), name))
    return [name for _, name in sorted(numbered, reverse=True)]


def history_links(head_ref_name: str, branch_names: Iterable[str], github: GitHubInfo) -> Optional[str]:
    """Compare links between consecutive revisions of a PR branch, or None without history."""
    refs = history_refs(head_ref_name, branch_names)
    if not refs:
        return None

    def label(ref: str) -> str:
        if ref == head_ref_name:
            return "Current"
        return ref[len(head_ref_name) + len(REV_NUM_DELIMITER):]

    chain = [head_ref_name] + refs
    links = [
        f"[{label(old)}..{label(new)}](https://{github.host}/{github.owner}/{github.name}/compare/{old}..{new})"
        for new, old in zip(chain, chain[1:])
    ]
    return "  - " + ", ".join(links) + "\n"
