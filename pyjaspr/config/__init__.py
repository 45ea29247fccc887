"""Config module."""

from .models import (
    COMMIT_ID_LABEL,
    DEFAULT_LOCAL_OBJECT,
    DEFAULT_REMOTE_BRANCH_PREFIX,
    DEFAULT_REMOTE_NAME,
    DEFAULT_TARGET_REF,
    GitHubInfo,
    JasprConfig,
)


def default_config() -> JasprConfig:
    """Get default config without reading any files."""
    return JasprConfig()


__all__ = [
    "COMMIT_ID_LABEL",
    "DEFAULT_LOCAL_OBJECT",
    "DEFAULT_REMOTE_BRANCH_PREFIX",
    "DEFAULT_REMOTE_NAME",
    "DEFAULT_TARGET_REF",
    "GitHubInfo",
    "JasprConfig",
    "default_config",
]
