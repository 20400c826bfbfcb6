"""Configuration loader with YAML parsing and environment variable substitution."""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from .schema import TriageConfig

# ${NAME} or ${NAME:-default}
ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def substitute_env_vars(text: str) -> str:
    """
    Replace ``${NAME}`` and ``${NAME:-default}`` with environment values.

    Raises:
        ValueError: If a variable without a default is not set
    """

    def replacer(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        value = os.environ.get(name, default)
        if value is None:
            raise ValueError(f"Environment variable {name} not found")
        return value

    return ENV_REFERENCE.sub(replacer, text)


def expand_env_vars(value: Any) -> Any:
    """Substitute environment references in every string of a parsed document."""
    if isinstance(value, str):
        return substitute_env_vars(value)
    if isinstance(value, dict):
        return {key: expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


def load_config(path: Path) -> TriageConfig:
    """
    Load configuration from a YAML file.

    Environment references are resolved after parsing, so references in
    comments are ignored. An empty file yields the defaults (no classifier,
    in-memory feed only).

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If environment variables are missing or config is invalid
        ValidationError: If config doesn't match schema
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with path.open() as f:
        document = yaml.safe_load(f) or {}

    if not isinstance(document, dict):
        raise ValueError(f"Configuration root must be a mapping: {path}")

    config = TriageConfig.model_validate(expand_env_vars(document))
    validate_config(config)
    return config


def validate_config(config: TriageConfig) -> None:
    """
    Check that the selected classifier provider has its section.

    Raises:
        ValueError: If provider-specific config is missing
    """
    classifier = config.classifier
    if classifier.provider == "backend" and classifier.backend is None:
        raise ValueError("Backend classifier selected but backend config missing")
    if classifier.provider == "completion" and classifier.completion is None:
        raise ValueError("Completion classifier selected but completion config missing")
