"""Tests for the GraphQL executor and GitHub client."""

from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from github.GithubException import GithubException

from pyjaspr.config.models import GitHubInfo, JasprConfig
from pyjaspr.github import (
    GitHubClient,
    approved_from_review_decision,
    checks_pass_from_rollup,
    find_github_token,
)
from pyjaspr.github.adapters import GraphQLExecutor
from pyjaspr.typing import Commit, CommitHash, CommitID, GitHubError, PullRequest

RATE_LIMITED = {"errors": [{"message": "was submitted too quickly"}]}


def pr_node(number: int, head: str, base: str = "main", review: Optional[str] = None,
            rollup: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": f"PR_{number}",
        "number": number,
        "title": f"title {number}",
        "body": "",
        "baseRefName": base,
        "headRefName": head,
        "reviewDecision": review,
        "permalink": f"https://github.com/o/r/pull/{number}",
        "isDraft": False,
        "commits": {"nodes": [{"commit": {
            "statusCheckRollup": {"state": rollup} if rollup else None,
            "checkSuites": {"nodes": [{"conclusion": "SUCCESS"}]},
        }}]},
    }


def pull_requests_page(nodes: List[Dict[str, Any]], has_next: bool = False,
                       cursor: Optional[str] = None) -> Dict[str, Any]:
    return {"data": {
        "rateLimit": {"limit": 5000, "cost": 1, "remaining": 4999, "resetAt": "2024-01-01T00:00:00Z"},
        "repository": {"pullRequests": {
            "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
            "nodes": nodes,
        }},
    }}


def make_client(*responses: Dict[str, Any]) -> GitHubClient:
    requester = MagicMock()
    requester.requestJsonAndCheck.side_effect = [({}, response) for response in responses]
    config = JasprConfig(github=GitHubInfo(owner="o", name="r"))
    return GitHubClient(config, GraphQLExecutor(requester, "https://api.github.com/graphql", sleep=lambda s: None))


def commit(commit_id: str) -> Commit:
    return Commit(CommitHash("a" * 40), commit_id, commit_id, id=CommitID(commit_id))


class TestGraphQLExecutor:
    """Tests for rate limit handling."""

    def test_retries_when_submitted_too_quickly(self) -> None:
        requester = MagicMock()
        requester.requestJsonAndCheck.side_effect = [({}, RATE_LIMITED), ({}, RATE_LIMITED), ({}, {"data": {}})]
        delays: List[float] = []
        executor = GraphQLExecutor(requester, "https://api.github.com/graphql", sleep=delays.append)

        response = executor.execute("query { viewer { login } }")

        assert response.errors is None
        assert delays == [60, 90]
        assert requester.requestJsonAndCheck.call_count == 3

    def test_gives_up_after_last_delay(self) -> None:
        requester = MagicMock()
        requester.requestJsonAndCheck.return_value = ({}, RATE_LIMITED)
        delays: List[float] = []
        executor = GraphQLExecutor(requester, "url", retry_delays=(0, 1, 2), sleep=delays.append)

        response = executor.execute("query")

        assert response.errors is not None
        assert delays == [1, 2]

    def test_http_error_becomes_github_error(self) -> None:
        requester = MagicMock()
        requester.requestJsonAndCheck.side_effect = GithubException(401, {"message": "Bad credentials"}, None)
        executor = GraphQLExecutor(requester, "url", sleep=lambda s: None)

        with pytest.raises(GitHubError, match="Bad credentials"):
            executor.execute("query")

    def test_sends_query_and_variables(self) -> None:
        requester = MagicMock()
        requester.requestJsonAndCheck.return_value = ({}, {"data": {}})
        executor = GraphQLExecutor(requester, "https://example.com/api/graphql")

        executor.execute("query Q", {"a": 1})

        requester.requestJsonAndCheck.assert_called_once_with(
            "POST", "https://example.com/api/graphql", input={"query": "query Q", "variables": {"a": 1}}
        )


class TestGitHubClient:
    """Tests for mapping GraphQL results to pull requests."""

    def test_get_pull_requests_follows_pages(self) -> None:
        client = make_client(
            pull_requests_page([pr_node(1, "jaspr/main/one")], has_next=True, cursor="c1"),
            pull_requests_page([pr_node(2, "jaspr/main/two"), pr_node(3, "feature")]),
        )

        prs = client.get_pull_requests()

        assert [pr.number for pr in prs] == [1, 2, 3]
        assert [pr.commit_id for pr in prs] == ["one", "two", None]
        second_call = client.executor._requester.requestJsonAndCheck.call_args_list[1]
        assert second_call.kwargs["input"]["variables"]["after"] == "c1"

    def test_get_pull_requests_filters_by_commit(self) -> None:
        client = make_client(pull_requests_page([
            pr_node(1, "jaspr/main/one", review="APPROVED", rollup="SUCCESS"),
            pr_node(2, "jaspr/main/two", review="CHANGES_REQUESTED", rollup="FAILURE"),
        ]))

        prs = client.get_pull_requests([commit("one")])

        assert len(prs) == 1
        assert prs[0].approved is True
        assert prs[0].checks_pass is True
        assert prs[0].check_conclusion_states == ("SUCCESS",)

    def test_filter_requires_commit_ids(self) -> None:
        client = make_client()
        with pytest.raises(ValueError):
            client.get_pull_requests([Commit(CommitHash("b" * 40), "no id", "no id")])

    def test_graphql_errors_raise(self) -> None:
        client = make_client({"errors": [{"message": "Could not resolve to a Repository"}]})
        with pytest.raises(GitHubError, match="Could not resolve"):
            client.get_pull_requests()

    def test_repository_id_is_fetched_once(self) -> None:
        client = make_client(
            {"data": {"repository": {"id": "R_1"}}},
            {"data": {"createPullRequest": {"pullRequest": pr_node(7, "jaspr/main/one")}}},
            {"data": {"createPullRequest": {"pullRequest": pr_node(8, "jaspr/main/two", "jaspr/main/one")}}},
        )
        new = PullRequest(None, CommitID("one"), None, "jaspr/main/one", "main", "one", "body")

        created = client.create_pull_request(new)
        client.create_pull_request(new)

        assert created.number == 7
        assert created.id == "PR_7"
        calls = client.executor._requester.requestJsonAndCheck.call_args_list
        assert len(calls) == 3
        assert calls[1].kwargs["input"]["variables"]["input"]["repositoryId"] == "R_1"

    def test_update_requires_id(self) -> None:
        client = make_client()
        with pytest.raises(ValueError):
            client.update_pull_request(PullRequest(None, None, None, "h", "b", "t", ""))

    def test_missing_repository_coordinates(self) -> None:
        with pytest.raises(GitHubError):
            GitHubClient(JasprConfig(), MagicMock())


class TestConversions:
    """Tests for review and check state conversion."""

    def test_checks(self) -> None:
        assert checks_pass_from_rollup("SUCCESS") is True
        assert checks_pass_from_rollup("FAILURE") is False
        assert checks_pass_from_rollup("ERROR") is False
        assert checks_pass_from_rollup("PENDING") is None
        assert checks_pass_from_rollup(None) is None

    def test_review_decision(self) -> None:
        assert approved_from_review_decision("APPROVED") is True
        assert approved_from_review_decision("CHANGES_REQUESTED") is False
        assert approved_from_review_decision("REVIEW_REQUIRED") is None


class TestFindGitHubToken:
    """Tests for token discovery order."""

    def test_config_token_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")
        assert find_github_token(JasprConfig(github_token="from-config")) == "from-config"

    def test_env_vars_in_order(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GIT_JASPR_TOKEN", "jaspr")
        monkeypatch.setenv("GITHUB_TOKEN", "github")
        assert find_github_token(JasprConfig()) == "jaspr"

    def test_gh_hosts_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
        monkeypatch.delenv("GIT_JASPR_TOKEN", raising=False)
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        hosts = tmp_path / ".config" / "gh" / "hosts.yml"
        hosts.parent.mkdir(parents=True)
        hosts.write_text("github.com:\n  oauth_token: from-gh\n  user: someone\n")

        assert find_github_token(JasprConfig()) == "from-gh"


class TestPullRequestMutations:
    """Tests for the mutation payloads."""

    def test_get_pull_requests_by_head_ref(self) -> None:
        client = make_client(pull_requests_page([pr_node(4, "jaspr/main/one")]))

        prs = client.get_pull_requests_by_head_ref("jaspr/main/one")

        assert [pr.number for pr in prs] == [4]
        variables = client.executor._requester.requestJsonAndCheck.call_args.kwargs["input"]["variables"]
        assert variables["headRefName"] == "jaspr/main/one"

    def test_update_close_and_approve(self) -> None:
        client = make_client({"data": {}}, {"data": {}}, {"data": {}})
        pr = PullRequest("PR_9", CommitID("one"), 9, "jaspr/main/one", "main", "title", "body")

        client.update_pull_request(pr)
        client.close_pull_request(pr)
        client.approve_pull_request(pr)

        calls = client.executor._requester.requestJsonAndCheck.call_args_list
        inputs = [call.kwargs["input"]["variables"]["input"] for call in calls]
        assert inputs[0] == {"pullRequestId": "PR_9", "baseRefName": "main", "title": "title", "body": "body"}
        assert inputs[1] == {"pullRequestId": "PR_9"}
        assert inputs[2] == {"pullRequestId": "PR_9", "event": "APPROVE"}
        assert "closePullRequest" in calls[1].kwargs["input"]["query"]
