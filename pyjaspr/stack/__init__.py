"""Stacked PR implementation."""

import logging
import sys
import threading
import time
from collections import defaultdict
from dataclasses import replace
from typing import Callable, Dict, List, Optional, TextIO

from .description import build_pull_request_body
from .history import get_revision_history_refs, history_links
from .status import behind_message, render_status
from ..config.models import DEFAULT_LOCAL_OBJECT, JasprConfig
from ..git import build_remote_ref, get_remote_ref_parts
from ..pretty import plural
from ..typing import (
    FORCE_PUSH_PREFIX,
    Commit,
    DuplicateCommitIDError,
    GitHubInterface,
    GitInterface,
    Outcome,
    PreconditionError,
    PullRequest,
    RefSpec,
    RemoteCommitStatus,
    SinglePullRequestPerCommitError,
)
from ..util import ensure, generate_commit_id, windowed_pairs

logger = logging.getLogger(__name__)

DIRTY_WORKING_DIRECTORY_MESSAGE = (
    "Your working directory has local changes. Please commit or stash them and re-run the command."
)


def check_for_duplicate_commit_ids(commits: List[Commit]) -> None:
    """Raise DuplicateCommitIDError if two commits share a commit id."""
    by_id: Dict[str, List[Commit]] = defaultdict(list)
    for commit in commits:
        if commit.id:
            by_id[commit.id].append(commit)
    duplicates = {commit_id: dupes for commit_id, dupes in by_id.items() if len(dupes) > 1}
    if duplicates:
        raise DuplicateCommitIDError(duplicates)


def check_single_pull_request_per_commit(pull_requests: List[PullRequest]) -> List[PullRequest]:
    by_id: Dict[str, List[PullRequest]] = defaultdict(list)
    for pr in pull_requests:
        by_id[ensure(pr.commit_id, f"{pr} has no commit id")].append(pr)
    violations = {commit_id: prs for commit_id, prs in by_id.items() if len(prs) > 1}
    if violations:
        raise SinglePullRequestPerCommitError(violations)
    return pull_requests


def last_mergeable_index(statuses: List[RemoteCommitStatus]) -> int:
    """Index of the end of the longest fully mergeable prefix, or -1."""
    index = -1
    for i, status in enumerate(statuses):
        if not status.mergeable:
            break
        index = i
    return index


class StackedPR:
    """Keeps a local commit stack in sync with a chain of pull requests."""

    def __init__(
        self,
        config: JasprConfig,
        github: GitHubInterface,
        git_cmd: GitInterface,
        new_commit_id: Callable[[], str] = generate_commit_id,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize with config, GitHub and git clients."""
        self.config = config
        self.github = github
        self.git_cmd = git_cmd
        self.new_commit_id = new_commit_id
        self.sleep = sleep
        self.output: TextIO = sys.stdout

    def default_ref_spec(self) -> RefSpec:
        return RefSpec(DEFAULT_LOCAL_OBJECT, self.config.default_target_ref)

    def remote_ref_name(self, commit: Commit, target_ref: str) -> str:
        commit_id = ensure(commit.id, f"Commit {commit} has no commit id")
        return build_remote_ref(commit_id, target_ref, self.config.remote_branch_prefix)

    def get_local_commit_stack(self, ref_spec: RefSpec) -> List[Commit]:
        return self.git_cmd.get_local_commit_stack(self.config.remote_name, ref_spec.local_ref, ref_spec.remote_ref)

    def add_commit_ids_to_local_stack(self, commits: List[Commit]) -> Optional[List[Commit]]:
        """Give every commit a commit id, rewriting history if needed.

        Returns the stack unchanged when nothing is missing, otherwise None to
        signal that hashes changed and the stack must be read again.
        """
        missing_index = next((i for i, c in enumerate(commits) if c.id is None), -1)
        if missing_index == -1:
            logger.debug("No commits are missing IDs")
            return commits

        logger.warning("Some commits in your local stack are missing commit IDs and are being amended to add them.")
        logger.warning("Consider running install-commit-id-hook to avoid this in the future.")
        missing = commits[missing_index:]
        self.git_cmd.reset(f"{missing[0].hash}^")
        for commit in missing:
            self.git_cmd.cherry_pick(commit)
            if commit.id is None:
                self.git_cmd.set_commit_id(self.new_commit_id())
        return None

    def update_base_ref_for_reordered_prs(
        self, pull_requests: List[PullRequest], stack: List[Commit], target_ref: str
    ) -> List[PullRequest]:
        """Point every PR whose predecessor changed at the target ref before branches move.

        GitHub closes a PR whose ``base..head`` becomes empty, and the branch
        pushes and base updates cannot happen atomically. The target ref is
        never empty against any head, so moved PRs wait there until the
        desired-state pass sets their real base. PRs for commits no longer in
        the stack are dropped from the returned list.
        """
        pairs_by_id = {current.id: (prev, current) for prev, current in windowed_pairs(stack)}
        updated: List[PullRequest] = []
        for pr in pull_requests:
            pair = pairs_by_id.get(pr.commit_id)
            if pair is None:
                continue
            prev, _ = pair
            expected_base = self.remote_ref_name(prev, target_ref) if prev else target_ref
            if pr.base_ref_name == expected_base:
                updated.append(pr)
                continue
            rebased = replace(pr, base_ref_name=target_ref)
            if rebased != pr:
                logger.info(f"Moving {pr} to {target_ref} while the stack is reordered")
                self.github.update_pull_request(rebased)
            updated.append(rebased)
        return updated

    def push(self, ref_spec: Optional[RefSpec] = None) -> Outcome:
        """Push the stack and create or update its pull requests."""
        ref_spec = ref_spec or self.default_ref_spec()
        if not self.git_cmd.is_working_directory_clean():
            raise PreconditionError(DIRTY_WORKING_DIRECTORY_MESSAGE)

        remote_name = self.config.remote_name
        target_ref = ref_spec.remote_ref
        self.git_cmd.fetch(remote_name)

        stack = self.add_commit_ids_to_local_stack(self.get_local_commit_stack(ref_spec))
        if stack is None:
            stack = self.get_local_commit_stack(ref_spec)
        if not stack:
            logger.warning("Stack is empty.")
            return Outcome.warning("Stack is empty.")
        check_for_duplicate_commit_ids(stack)

        pull_requests = check_single_pull_request_per_commit(self.github.get_pull_requests(stack))
        pull_requests = self.update_base_ref_for_reordered_prs(pull_requests, stack, target_ref)

        remote_branches = self.git_cmd.get_remote_branches()
        remote_ref_specs = {branch.to_ref_spec() for branch in remote_branches}
        stack_ref_specs = [RefSpec(c.hash, self.remote_ref_name(c, target_ref)) for c in stack]
        out_of_date = [spec for spec in stack_ref_specs if spec not in remote_ref_specs]
        revision_history_refs = get_revision_history_refs(
            [spec.remote_ref for spec in stack_ref_specs],
            [branch.name for branch in remote_branches],
            remote_name,
            {spec.remote_ref for spec in out_of_date},
            self.config.remote_branch_prefix,
        )
        self.git_cmd.push([spec.force_push() for spec in out_of_date] + revision_history_refs)
        logger.info(f"Pushed {len(out_of_date)} commit ref(s) and {len(revision_history_refs)} history ref(s)")

        existing_by_id = {pr.commit_id: pr for pr in pull_requests}
        prs_to_mutate: List[PullRequest] = []
        for prev, current in windowed_pairs(stack):
            existing = existing_by_id.get(current.id)
            desired = PullRequest(
                id=existing.id if existing else None,
                commit_id=current.id,
                number=existing.number if existing else None,
                head_ref_name=self.remote_ref_name(current, target_ref),
                # The first commit targets the branch the stack merges into, the rest chain on their predecessor
                base_ref_name=self.remote_ref_name(prev, target_ref) if prev else target_ref,
                title=current.short_message,
                # Bodies of existing PRs are owned by the description pass
                body=existing.body if existing else build_pull_request_body(current.full_message),
                checks_pass=existing.checks_pass if existing else None,
                approved=existing.approved if existing else None,
                check_conclusion_states=existing.check_conclusion_states if existing else (),
                permalink=existing.permalink if existing else None,
                is_draft=existing.is_draft if existing else False,
            )
            if desired != existing:
                prs_to_mutate.append(desired)

        for pr in prs_to_mutate:
            if pr.id is None:
                self.github.create_pull_request(pr)
            else:
                self.github.update_pull_request(pr)
        logger.info(f"Updated {len(prs_to_mutate)} pull request(s)")

        # PR numbers are only known once every PR exists, so descriptions are a second pass
        num_descriptions = self.update_descriptions(stack)
        return Outcome.success(
            f"Pushed {len(out_of_date)} commit ref(s), updated {len(prs_to_mutate)} pull request(s) "
            f"and {num_descriptions} description(s)"
        )

    def update_descriptions(self, stack: List[Commit]) -> int:
        """Rewrite PR bodies with the stack listing; only changed bodies are sent."""
        prs_by_id = {pr.commit_id: pr for pr in self.github.get_pull_requests(stack)}
        stack_prs = [ensure(prs_by_id.get(c.id), f"No pull request found for {c}") for c in stack]
        branch_names = [branch.name for branch in self.git_cmd.get_remote_branches()]
        newest_first = list(reversed(stack_prs))

        updated = 0
        for commit, pr in zip(stack, stack_prs):
            body = build_pull_request_body(
                commit.full_message,
                newest_first,
                pr.commit_id,
                lambda p: history_links(p.head_ref_name, branch_names, self.config.github),
            )
            if body != pr.body:
                self.github.update_pull_request(replace(pr, body=body))
                updated += 1
        logger.info(f"Updated descriptions for {updated} pull request(s)")
        return updated

    def get_remote_commit_statuses(self, stack: List[Commit], target_ref: str) -> List[RemoteCommitStatus]:
        branches = {branch.name: branch for branch in self.git_cmd.get_remote_branches()}
        with_ids = [commit for commit in stack if commit.id is not None]
        prs_by_id = {pr.commit_id: pr for pr in self.github.get_pull_requests(with_ids)} if with_ids else {}
        statuses: List[RemoteCommitStatus] = []
        for commit in stack:
            pr = prs_by_id.get(commit.id) if commit.id else None
            branch = branches.get(self.remote_ref_name(commit, target_ref)) if commit.id else None
            statuses.append(RemoteCommitStatus(
                local_commit=commit,
                remote_commit=branch.commit if branch else None,
                pull_request=pr,
                checks_pass=pr.checks_pass if pr else None,
                approved=pr.approved if pr else None,
            ))
        return statuses

    def get_status_string(self, ref_spec: Optional[RefSpec] = None) -> str:
        ref_spec = ref_spec or self.default_ref_spec()
        remote_name = self.config.remote_name
        self.git_cmd.fetch(remote_name)

        stack = self.get_local_commit_stack(ref_spec)
        if not stack:
            return "Stack is empty.\n"

        statuses = self.get_remote_commit_statuses(stack, ref_spec.remote_ref)
        num_behind = self.git_cmd.count_range(stack[-1].hash, f"{remote_name}/{ref_spec.remote_ref}")
        return render_status(statuses, num_behind, remote_name, ref_spec.remote_ref)

    def _check_not_behind(self, ref_spec: RefSpec) -> Optional[Outcome]:
        remote_name = self.config.remote_name
        num_behind = self.git_cmd.count_range(ref_spec.local_ref, f"{remote_name}/{ref_spec.remote_ref}")
        if num_behind == 0:
            return None
        message = (
            f"Cannot merge because your stack is out-of-date with the base branch "
            f"({num_behind} {plural(num_behind, 'commit')} behind {ref_spec.remote_ref})."
        )
        logger.warning(message)
        return Outcome.warning(message)

    def merge(self, ref_spec: Optional[RefSpec] = None) -> Outcome:
        """Merge the longest approved and passing prefix of the stack."""
        ref_spec = ref_spec or self.default_ref_spec()
        target_ref = ref_spec.remote_ref
        self.git_cmd.fetch(self.config.remote_name)

        behind = self._check_not_behind(ref_spec)
        if behind is not None:
            return behind

        stack = self.get_local_commit_stack(ref_spec)
        if not stack:
            logger.warning("Stack is empty.")
            return Outcome.warning("Stack is empty.")

        statuses = self.get_remote_commit_statuses(stack, target_ref)
        return self._merge_statuses(stack, statuses, target_ref)

    def _merge_statuses(self, stack: List[Commit], statuses: List[RemoteCommitStatus], target_ref: str) -> Outcome:
        index = last_mergeable_index(statuses)
        if index == -1:
            message = "No commits in your local stack are mergeable."
            logger.warning(message)
            return Outcome.warning(message)

        last_status = statuses[index]
        last_pr = ensure(last_status.pull_request, f"No pull request for {last_status.local_commit}")
        if last_pr.base_ref_name != target_ref:
            self.github.update_pull_request(replace(last_pr, base_ref_name=target_ref))

        prefix = self.config.remote_branch_prefix
        merged_keys = {(target_ref, commit.id) for commit in stack[:index + 1]}
        branches_to_delete = []
        for branch in self.git_cmd.get_remote_branches():
            parts = get_remote_ref_parts(branch.name, prefix)
            if parts is not None and (parts.target_ref, parts.commit_id) in merged_keys:
                branches_to_delete.append(RefSpec(FORCE_PUSH_PREFIX, branch.name))

        self.git_cmd.push([RefSpec(last_status.local_commit.hash, target_ref)] + branches_to_delete)
        logger.info(f"Merged {index + 1} ref(s) to {target_ref}")

        # The PR at index is closed by GitHub once its head lands on the target
        for status in statuses[:index]:
            if status.pull_request is not None:
                self.github.close_pull_request(status.pull_request)
        return Outcome.success(f"Merged {index + 1} ref(s) to {target_ref}")

    def auto_merge(
        self,
        ref_spec: Optional[RefSpec] = None,
        interval: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Outcome:
        """Poll until the whole stack is mergeable, then merge it.

        Setting ``cancel`` while waiting stops the loop before the next poll.
        """
        ref_spec = ref_spec or self.default_ref_spec()
        interval = self.config.auto_merge_interval if interval is None else interval
        remote_name = self.config.remote_name
        target_ref = ref_spec.remote_ref
        while True:
            self.git_cmd.fetch(remote_name)

            behind = self._check_not_behind(ref_spec)
            if behind is not None:
                return behind

            stack = self.get_local_commit_stack(ref_spec)
            if not stack:
                logger.warning("Stack is empty.")
                return Outcome.warning("Stack is empty.")

            statuses = self.get_remote_commit_statuses(stack, target_ref)
            if all(status.mergeable for status in statuses):
                return self._merge_statuses(stack, statuses, target_ref)

            self.output.write(render_status(statuses, 0, remote_name, target_ref))
            self.output.flush()
            logger.info(f"Delaying for {interval} seconds... (CTRL-C to cancel)")
            if cancel is not None:
                if cancel.wait(interval):
                    logger.warning("Auto-merge cancelled.")
                    return Outcome.warning("Auto-merge cancelled.")
            else:
                self.sleep(interval)

    def clean(self, dry_run: bool = True) -> List[str]:
        """Find, and unless dry_run delete, branches with no open pull request."""
        open_head_refs = {pr.head_ref_name for pr in self.github.get_pull_requests()}
        self.git_cmd.fetch(self.config.remote_name)

        prefix = self.config.remote_branch_prefix
        orphaned: List[str] = []
        for branch in self.git_cmd.get_remote_branches():
            parts = get_remote_ref_parts(branch.name, prefix)
            if parts is None:
                continue
            if build_remote_ref(parts.commit_id, parts.target_ref, prefix) not in open_head_refs:
                orphaned.append(branch.name)

        for name in orphaned:
            logger.info(f"{name} is orphaned")
        if not dry_run and orphaned:
            logger.info(f"Deleting {len(orphaned)} branch(es)")
            self.git_cmd.push([RefSpec(FORCE_PUSH_PREFIX, name) for name in orphaned])
        return orphaned


__all__ = [
    "StackedPR",
    "behind_message",
    "check_for_duplicate_commit_ids",
    "check_single_pull_request_per_commit",
    "last_mergeable_index",
]
