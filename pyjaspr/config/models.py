"""Pydantic models for config types."""

from typing import Optional
import logging
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_REMOTE_NAME = "origin"
DEFAULT_REMOTE_BRANCH_PREFIX = "jaspr"
DEFAULT_TARGET_REF = "main"
DEFAULT_LOCAL_OBJECT = "HEAD"
COMMIT_ID_LABEL = "commit-id"


class GitHubInfo(BaseModel):
    """GitHub repository coordinates."""
    host: str = "github.com"
    owner: Optional[str] = None
    name: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="allow")

    @property
    def is_complete(self) -> bool:
        return bool(self.owner and self.name)

    @property
    def graphql_url(self) -> str:
        if self.host == "github.com":
            return "https://api.github.com/graphql"
        return f"https://{self.host}/api/graphql"

    @property
    def rest_base_url(self) -> str:
        if self.host == "github.com":
            return "https://api.github.com"
        return f"https://{self.host}/api/v3"


class JasprConfig(BaseModel):
    """Full pyjaspr configuration."""
    working_directory: str = "."
    remote_name: str = DEFAULT_REMOTE_NAME
    remote_branch_prefix: str = DEFAULT_REMOTE_BRANCH_PREFIX
    default_target_ref: str = DEFAULT_TARGET_REF
    github: GitHubInfo = Field(default_factory=GitHubInfo)
    github_token: Optional[str] = Field(default=None, repr=False)
    log_level: str = "INFO"
    logs_directory: Optional[str] = None
    use_cli_git_client: bool = False
    auto_merge_interval: int = 10

    model_config = ConfigDict(frozen=True, extra="allow")

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, value: str) -> str:
        name = value.upper()
        if not isinstance(logging.getLevelName(name), int):
            raise ValueError(f"Unknown log level: {value}")
        return name
