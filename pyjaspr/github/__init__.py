"""GitHub interfaces and implementation."""

import os
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import yaml

from .adapters import GraphQLExecutor, create_graphql_executor
from .types import (
    CreatePullRequestData,
    GetPullRequestsData,
    GetRepositoryIdData,
    GraphQLResponse,
    PRNode,
    RateLimit,
    parse_graphql_data,
)
from ..config.models import JasprConfig
from ..git import get_commit_id_from_remote_ref
from ..typing import Commit, GitHubError, PullRequest

# Get module logger
logger = logging.getLogger(__name__)

TOKEN_ENV_VARS = ("GIT_JASPR_TOKEN", "GITHUB_TOKEN")

PULL_REQUEST_FIELDS = """
fragment PullRequestFields on PullRequest {
  id
  number
  title
  body
  baseRefName
  headRefName
  reviewDecision
  permalink
  isDraft
  commits(last: 1) {
    nodes {
      commit {
        statusCheckRollup {
          state
        }
        checkSuites(first: 20) {
          nodes {
            conclusion
          }
        }
      }
    }
  }
}
"""

RATE_LIMIT_FIELDS = """
  rateLimit {
    limit
    cost
    remaining
    resetAt
  }
"""

GET_PULL_REQUESTS_QUERY = """
query GetPullRequests($owner: String!, $name: String!, $after: String) {
%s
  repository(owner: $owner, name: $name) {
    pullRequests(first: 100, after: $after, states: [OPEN]) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        ...PullRequestFields
      }
    }
  }
}
%s""" % (RATE_LIMIT_FIELDS, PULL_REQUEST_FIELDS)

GET_PULL_REQUESTS_BY_HEAD_REF_QUERY = """
query GetPullRequestsByHeadRef($owner: String!, $name: String!, $headRefName: String!) {
%s
  repository(owner: $owner, name: $name) {
    pullRequests(first: 100, headRefName: $headRefName) {
      nodes {
        ...PullRequestFields
      }
    }
  }
}
%s""" % (RATE_LIMIT_FIELDS, PULL_REQUEST_FIELDS)

GET_REPOSITORY_ID_QUERY = """
query GetRepositoryId($owner: String!, $name: String!) {
%s
  repository(owner: $owner, name: $name) {
    id
  }
}
""" % RATE_LIMIT_FIELDS

CREATE_PULL_REQUEST_MUTATION = """
mutation CreatePullRequest($input: CreatePullRequestInput!) {
  createPullRequest(input: $input) {
    pullRequest {
      ...PullRequestFields
    }
  }
}
%s""" % PULL_REQUEST_FIELDS

UPDATE_PULL_REQUEST_MUTATION = """
mutation UpdatePullRequest($input: UpdatePullRequestInput!) {
  updatePullRequest(input: $input) {
    pullRequest {
      id
    }
  }
}
"""

CLOSE_PULL_REQUEST_MUTATION = """
mutation ClosePullRequest($input: ClosePullRequestInput!) {
  closePullRequest(input: $input) {
    pullRequest {
      id
    }
  }
}
"""

ADD_PULL_REQUEST_REVIEW_MUTATION = """
mutation AddPullRequestReview($input: AddPullRequestReviewInput!) {
  addPullRequestReview(input: $input) {
    pullRequestReview {
      id
    }
  }
}
"""


def checks_pass_from_rollup(state: Optional[str]) -> Optional[bool]:
    if state == "SUCCESS":
        return True
    if state in ("FAILURE", "ERROR"):
        return False
    return None


def approved_from_review_decision(decision: Optional[str]) -> Optional[bool]:
    if decision == "APPROVED":
        return True
    if decision == "CHANGES_REQUESTED":
        return False
    return None


def find_github_token(config: Optional[JasprConfig] = None) -> Optional[str]:
    """Find GitHub token from config, env vars or the gh CLI config."""
    if config is not None and config.github_token:
        return config.github_token

    for env_var in TOKEN_ENV_VARS:
        token = os.environ.get(env_var)
        if token:
            return token

    host = config.github.host if config is not None else "github.com"
    gh_config_path = Path.home() / ".config" / "gh" / "hosts.yml"
    if gh_config_path.exists():
        with open(gh_config_path, "r") as f:
            gh_config = yaml.safe_load(f)
        host_config = gh_config.get(host) if isinstance(gh_config, dict) else None
        if isinstance(host_config, dict):
            token = host_config.get("oauth_token")
            if isinstance(token, str) and token:
                return token
    return None


class GitHubClient:
    """GitHub client implementation on top of the GraphQL API."""

    def __init__(self, config: JasprConfig, executor: GraphQLExecutor):
        """Initialize with config and a GraphQL executor."""
        self.config = config
        self.executor = executor
        self._repository_id: Optional[str] = None
        github = config.github
        if not github.owner or not github.name:
            raise GitHubError("GitHub repository owner/name are not configured and could not be inferred")
        self.owner: str = github.owner
        self.name: str = github.name

    def _execute(self, query: str, variables: Dict[str, Any], action: str) -> GraphQLResponse:
        response = self.executor.execute(query, variables)
        if response.errors:
            for error in response.errors:
                logger.error(f"GitHub error while trying to {action}: {error.message}")
            raise GitHubError(response.errors[0].message)
        return response

    def _log_rate_limit(self, rate_limit: Optional[RateLimit]) -> None:
        if rate_limit is None:
            logger.debug("GitHub rate limit info unavailable")
        else:
            logger.debug(f"Rate limit info {rate_limit.model_dump()}")

    def _to_pull_request(self, node: PRNode) -> PullRequest:
        commit_nodes = [n for n in node.commits.nodes if n is not None]
        rollup = commit_nodes[-1].commit.statusCheckRollup if commit_nodes else None
        conclusion_states = [
            suite.conclusion
            for n in commit_nodes
            for suite in (n.commit.checkSuites.nodes if n.commit.checkSuites else [])
            if suite is not None and suite.conclusion is not None
        ]
        return PullRequest(
            id=node.id,
            commit_id=get_commit_id_from_remote_ref(node.headRefName, self.config.remote_branch_prefix),
            number=node.number,
            head_ref_name=node.headRefName,
            base_ref_name=node.baseRefName,
            title=node.title,
            body=node.body,
            checks_pass=checks_pass_from_rollup(rollup.state if rollup else None),
            approved=approved_from_review_decision(node.reviewDecision),
            check_conclusion_states=tuple(conclusion_states),
            permalink=node.permalink,
            is_draft=node.isDraft,
        )

    def get_pull_requests(self, commit_filter: Optional[List[Commit]] = None) -> List[PullRequest]:
        """Get open pull requests, optionally only those for the given commits."""
        ids: Optional[Set[str]] = None
        if commit_filter is not None:
            missing = [c for c in commit_filter if c.id is None]
            if missing:
                raise ValueError(f"Missing commit id, filter is {commit_filter}")
            ids = {str(c.id) for c in commit_filter}

        logger.info("> github fetch pull requests")
        pull_requests: List[PullRequest] = []
        after: Optional[str] = None
        while True:
            response = self._execute(
                GET_PULL_REQUESTS_QUERY,
                {"owner": self.owner, "name": self.name, "after": after},
                "fetch pull requests",
            )
            data = parse_graphql_data(GetPullRequestsData, response.data)
            self._log_rate_limit(data.rateLimit)
            if data.repository is None:
                raise GitHubError(f"Repository {self.owner}/{self.name} not found")
            connection = data.repository.pullRequests
            for node in connection.nodes:
                if node is None:
                    continue
                pr = self._to_pull_request(node)
                if ids is None or (pr.commit_id is not None and pr.commit_id in ids):
                    pull_requests.append(pr)
            if connection.pageInfo is None or not connection.pageInfo.hasNextPage:
                break
            after = connection.pageInfo.endCursor

        logger.debug(f"get_pull_requests: {len(pull_requests)} pull request(s)")
        return pull_requests

    def get_pull_requests_by_head_ref(self, head_ref_name: str) -> List[PullRequest]:
        logger.info(f"> github fetch pull requests for {head_ref_name}")
        response = self._execute(
            GET_PULL_REQUESTS_BY_HEAD_REF_QUERY,
            {"owner": self.owner, "name": self.name, "headRefName": head_ref_name},
            f"fetch pull requests for {head_ref_name}",
        )
        data = parse_graphql_data(GetPullRequestsData, response.data)
        self._log_rate_limit(data.rateLimit)
        if data.repository is None:
            return []
        return [self._to_pull_request(node) for node in data.repository.pullRequests.nodes if node is not None]

    def repository_id(self) -> str:
        """Node id of the repository, fetched once per client."""
        if self._repository_id is None:
            response = self._execute(
                GET_REPOSITORY_ID_QUERY, {"owner": self.owner, "name": self.name}, "fetch repository id"
            )
            data = parse_graphql_data(GetRepositoryIdData, response.data)
            self._log_rate_limit(data.rateLimit)
            if data.repository is None:
                raise GitHubError(f"Failed to fetch repository ID for {self.owner}/{self.name}")
            self._repository_id = data.repository.id
        return self._repository_id

    def create_pull_request(self, pull_request: PullRequest) -> PullRequest:
        if pull_request.id is not None:
            raise ValueError(f"Cannot create {pull_request} which already exists")
        logger.info(f"> github create {pull_request.head_ref_name} -> {pull_request.base_ref_name} : "
                    f"{pull_request.title}")
        response = self._execute(
            CREATE_PULL_REQUEST_MUTATION,
            {"input": {
                "repositoryId": self.repository_id(),
                "baseRefName": pull_request.base_ref_name,
                "headRefName": pull_request.head_ref_name,
                "title": pull_request.title,
                "body": pull_request.body,
                "draft": pull_request.is_draft,
            }},
            f"create {pull_request}",
        )
        data = parse_graphql_data(CreatePullRequestData, response.data)
        if data.createPullRequest is None or data.createPullRequest.pullRequest is None:
            raise GitHubError("createPullRequest returned a null result")
        return self._to_pull_request(data.createPullRequest.pullRequest)

    def update_pull_request(self, pull_request: PullRequest) -> None:
        if pull_request.id is None:
            raise ValueError(f"Cannot update {pull_request} without an ID")
        logger.info(f"> github update #{pull_request.number} base={pull_request.base_ref_name} : "
                    f"{pull_request.title}")
        self._execute(
            UPDATE_PULL_REQUEST_MUTATION,
            {"input": {
                "pullRequestId": pull_request.id,
                "baseRefName": pull_request.base_ref_name,
                "title": pull_request.title,
                "body": pull_request.body,
            }},
            f"update PR #{pull_request.number}",
        )

    def close_pull_request(self, pull_request: PullRequest) -> None:
        if pull_request.id is None:
            raise ValueError(f"Cannot close {pull_request} without an ID")
        logger.info(f"> github close #{pull_request.number}")
        self._execute(
            CLOSE_PULL_REQUEST_MUTATION,
            {"input": {"pullRequestId": pull_request.id}},
            f"close PR #{pull_request.number}",
        )

    def approve_pull_request(self, pull_request: PullRequest) -> None:
        if pull_request.id is None:
            raise ValueError(f"Cannot approve {pull_request} without an ID")
        logger.info(f"> github approve #{pull_request.number}")
        self._execute(
            ADD_PULL_REQUEST_REVIEW_MUTATION,
            {"input": {"pullRequestId": pull_request.id, "event": "APPROVE"}},
            f"approve PR #{pull_request.number}",
        )


def create_github_client(config: JasprConfig) -> GitHubClient:
    """Create a GitHubClient using the discovered token."""
    token = find_github_token(config)
    if not token:
        raise GitHubError(
            "No GitHub token found. Try one of:\n"
            "1. Set GIT_JASPR_TOKEN or GITHUB_TOKEN env var\n"
            "2. Log in with 'gh auth login'\n"
            "3. Set github_token in ~/.jaspr.yaml"
        )
    return GitHubClient(config, create_graphql_executor(token, config.github))
