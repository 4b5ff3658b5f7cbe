"""
Configuration loader — reads podstack.yml into a StackConfig.

Lookup order:
    --config PATH  >  PODSTACK_CONFIG env var  >  podstack.yml walking up from cwd

A missing file is not an error: the defaults describe the standard stack.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from podstack.core.errors import PodstackError
from podstack.core.models.stack import StackConfig

logger = logging.getLogger(__name__)

# Default config filename
STACK_CONFIG_FILE = "podstack.yml"
CONFIG_ENV_VAR = "PODSTACK_CONFIG"


class ConfigError(PodstackError):
    """Raised when podstack.yml is unreadable or invalid."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for podstack.yml starting from the given directory, walking up.

    Returns:
        Path to podstack.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / STACK_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None) -> StackConfig:
    """Load and validate the stack configuration.

    Args:
        path: Explicit path to podstack.yml.  If None, consults
            PODSTACK_CONFIG and then searches upward.

    Returns:
        Validated StackConfig (defaults when no file exists).

    Raises:
        ConfigError: If an explicitly named file is missing, or any
            file found is not valid YAML or fails validation.
    """
    explicit = path is not None
    if path is None and os.environ.get(CONFIG_ENV_VAR):
        path = Path(os.environ[CONFIG_ENV_VAR])
        explicit = True
    if path is None:
        path = find_config_file()

    if path is None:
        logger.debug("No %s found, using defaults", STACK_CONFIG_FILE)
        return StackConfig()

    if not path.is_file():
        if explicit:
            raise ConfigError(
                f"Config file not found: {path}",
                hint=f"Check the --config path or unset {CONFIG_ENV_VAR}.",
            )
        return StackConfig()

    logger.debug("Loading stack config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = StackConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid stack configuration in {path}: {e}",
            hint="Compare the file against the keys documented in podstack.yml.example.",
        ) from e

    logger.info("Loaded stack config from %s (podman %s)", path, config.versions.podman)
    return config
