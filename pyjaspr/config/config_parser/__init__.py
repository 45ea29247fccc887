"""Config parser logic."""

import re
from pathlib import Path
from typing import Any, Dict, Optional
import logging
import yaml

from ..models import GitHubInfo, JasprConfig
from ...typing import GitInterface

# Get module logger
logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".jaspr.yaml"

SSH_URI_PATTERN = re.compile(r'^git@([a-zA-Z0-9._-]+):([\w-]+)/([\w.-]+?)(?:\.git)?$')
HTTPS_URI_PATTERN = re.compile(r'^https://([a-zA-Z0-9._-]+)/([\w-]+)/([\w.-]+?)(?:\.git)?$')

ConfigDict = Dict[str, Any]  # Use Any since yaml can return various types


def extract_github_info_from_uri(uri: str) -> Optional[GitHubInfo]:
    """Get host/owner/name from an SSH or HTTPS remote URI."""
    for pattern in (SSH_URI_PATTERN, HTTPS_URI_PATTERN):
        match = pattern.match(uri.strip())
        if match:
            host, owner, name = match.groups()
            return GitHubInfo(host=host, owner=owner, name=name)
    return None


def load_config_file(path: Path) -> ConfigDict:
    """Load one YAML config file; a missing file yields an empty dict."""
    try:
        with open(path, 'r') as f:
            logger.debug(f"Found {path}, loading...")
            data = yaml.safe_load(f)
    except FileNotFoundError:
        logger.debug(f"No {path} found")
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def merge_config(base: ConfigDict, override: ConfigDict) -> ConfigDict:
    """Merge override into base. Nested dicts merge, None values are skipped."""
    merged = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def user_config_file_path() -> Path:
    """Get path to the user-level config file."""
    return Path.home() / CONFIG_FILE_NAME


def parse_config(
    working_directory: str,
    overrides: Optional[ConfigDict] = None,
    git_cmd: Optional[GitInterface] = None,
) -> JasprConfig:
    """Build the config from defaults, user file, repository file and overrides.

    When the GitHub owner/name are still unknown and a git backend is given,
    they are inferred from the configured remote's URI.
    """
    config: ConfigDict = {'working_directory': working_directory}
    config = merge_config(config, load_config_file(user_config_file_path()))
    config = merge_config(config, load_config_file(Path(working_directory) / CONFIG_FILE_NAME))
    config = merge_config(config, overrides or {})

    jaspr_config = JasprConfig.model_validate(config)

    if not jaspr_config.github.is_complete and git_cmd is not None:
        remote_uri = git_cmd.get_remote_uri_or_none(jaspr_config.remote_name)
        if remote_uri is None:
            logger.warning(f"Remote {jaspr_config.remote_name} has no URL; GitHub repository is unknown")
        else:
            inferred = extract_github_info_from_uri(remote_uri)
            if inferred is None:
                logger.warning(f"Could not determine GitHub repository from remote URI {remote_uri}")
            else:
                github = config.get('github') or {}
                info = inferred.model_copy(update={k: v for k, v in github.items() if v is not None})
                jaspr_config = jaspr_config.model_copy(update={'github': info})

    logger.debug(f"Config: {jaspr_config!r}")
    return jaspr_config
