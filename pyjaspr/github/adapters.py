"""Adapter around PyGithub's requester for GraphQL calls."""

import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence

from github import Auth, Github
from github.GithubException import GithubException

from .types import GitHubRequester, GraphQLResponse, parse_graphql_response
from ..config.models import GitHubInfo
from ..typing import GitHubError

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "was submitted too quickly"
# Seconds to wait before each attempt
RATE_LIMIT_RETRY_DELAYS: Sequence[int] = (0, 60, 90, 120)


def is_rate_limited(response: GraphQLResponse) -> bool:
    return any(RATE_LIMIT_MESSAGE in error.message for error in response.errors or [])


class GraphQLExecutor:
    """Runs GraphQL documents through a PyGithub requester.

    Retries when GitHub reports that content "was submitted too quickly".
    """

    def __init__(
        self,
        requester: GitHubRequester,
        url: str,
        retry_delays: Sequence[int] = RATE_LIMIT_RETRY_DELAYS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._requester = requester
        self.url = url
        self.retry_delays = list(retry_delays) or [0]
        self._sleep = sleep

    def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> GraphQLResponse:
        """Execute a query, returning the parsed response (which may carry errors)."""
        response = GraphQLResponse()
        for attempt, delay in enumerate(self.retry_delays, start=1):
            if delay:
                logger.warning(f"GitHub rate limit hit; retrying in {delay} seconds (attempt {attempt})")
                self._sleep(delay)
            try:
                _headers, data = self._requester.requestJsonAndCheck(
                    "POST",
                    self.url,
                    input={"query": query, "variables": variables or {}},
                )
            except GithubException as e:
                message = str(e.data.get("message", e)) if isinstance(e.data, dict) else str(e)
                if RATE_LIMIT_MESSAGE in message and attempt < len(self.retry_delays):
                    continue
                raise GitHubError(f"GitHub request failed ({e.status}): {message}")
            response = parse_graphql_response(data)
            if not is_rate_limited(response):
                return response
        return response


def create_pygithub(token: str, github_info: GitHubInfo) -> Github:
    """Create an authenticated PyGithub client for the configured host."""
    return Github(auth=Auth.Token(token), base_url=github_info.rest_base_url)


def create_graphql_executor(token: str, github_info: GitHubInfo) -> GraphQLExecutor:
    """Build an executor that talks to GitHub's GraphQL endpoint through PyGithub."""
    client = create_pygithub(token, github_info)
    # Access the private attribute from the real PyGithub object
    requester: GitHubRequester = getattr(client, '_Github__requester')
    return GraphQLExecutor(requester, github_info.graphql_url)
