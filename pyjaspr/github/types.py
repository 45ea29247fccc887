"""Type definitions for GitHub API responses."""

from typing import Any, Dict, List, Optional, Protocol, Tuple, Type, TypeVar, Union
from pydantic import BaseModel, ValidationError


# GraphQL response types with Pydantic models
class StatusCheckRollup(BaseModel):
    state: Optional[str] = None


class CheckSuite(BaseModel):
    conclusion: Optional[str] = None


class CheckSuites(BaseModel):
    nodes: List[Optional[CheckSuite]] = []


class PRCommit(BaseModel):
    statusCheckRollup: Optional[StatusCheckRollup] = None
    checkSuites: Optional[CheckSuites] = None


class PRCommitData(BaseModel):
    commit: PRCommit


class PRCommits(BaseModel):
    nodes: List[Optional[PRCommitData]] = []


class PRNode(BaseModel):
    id: str
    number: int
    title: str
    body: str = ""
    baseRefName: str
    headRefName: str
    reviewDecision: Optional[str] = None
    permalink: Optional[str] = None
    isDraft: bool = False
    commits: PRCommits = PRCommits()


class PageInfo(BaseModel):
    hasNextPage: bool
    endCursor: Optional[str] = None


class PRConnection(BaseModel):
    nodes: List[Optional[PRNode]] = []
    pageInfo: Optional[PageInfo] = None


class RepositoryPullRequests(BaseModel):
    pullRequests: PRConnection


class RepositoryId(BaseModel):
    id: str


class RateLimit(BaseModel):
    limit: Optional[int] = None
    cost: Optional[int] = None
    remaining: Optional[int] = None
    resetAt: Optional[str] = None


class GetPullRequestsData(BaseModel):
    rateLimit: Optional[RateLimit] = None
    repository: Optional[RepositoryPullRequests] = None


class GetRepositoryIdData(BaseModel):
    rateLimit: Optional[RateLimit] = None
    repository: Optional[RepositoryId] = None


class CreatedPullRequest(BaseModel):
    pullRequest: Optional[PRNode] = None


class CreatePullRequestData(BaseModel):
    createPullRequest: Optional[CreatedPullRequest] = None


class GraphQLErrorLocation(BaseModel):
    line: int
    column: int


class GraphQLError(BaseModel):
    message: str
    type: Optional[str] = None
    locations: Optional[List[GraphQLErrorLocation]] = None
    path: Optional[List[Union[str, int]]] = None
    extensions: Optional[Dict[str, object]] = None


class GraphQLResponse(BaseModel):
    data: Optional[Dict[str, Any]] = None
    errors: Optional[List[GraphQLError]] = None


# Type for PyGithub GraphQL response
# First element is headers dict, second is the response data
GraphQLResponseType = Tuple[Dict[str, object], Dict[str, object]]

M = TypeVar('M', bound=BaseModel)


def parse_graphql_response(response: Dict[str, object]) -> GraphQLResponse:
    """Parse GraphQL response into Pydantic model."""
    try:
        return GraphQLResponse.model_validate(response)
    except ValidationError as e:
        raise TypeError(f"Invalid GraphQL response: {e}")


def parse_graphql_data(model: Type[M], data: Optional[Dict[str, Any]]) -> M:
    """Validate the ``data`` member of a response against a query-specific model."""
    try:
        return model.model_validate(data or {})
    except ValidationError as e:
        raise TypeError(f"Invalid GraphQL data for {model.__name__}: {e}")


class GitHubRequester(Protocol):
    """Type for PyGithub requester to handle GraphQL calls.

    This types the internal _Github__requester that's needed for GraphQL.
    We use a Protocol since the requester is a private implementation detail.
    """
    def requestJsonAndCheck(
        self,
        verb: str,
        url: str,
        parameters: Optional[Dict[str, object]] = None,
        headers: Optional[Dict[str, str]] = None,
        input: Optional[Dict[str, object]] = None
    ) -> GraphQLResponseType:
        ...
