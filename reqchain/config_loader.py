"""Config Loader - loads Request builder defaults from YAML.

String values may reference environment variables:

    ${NAME}             value of NAME; an error if NAME is unset
    ${NAME:-fallback}   value of NAME, or "fallback" when NAME is unset or empty

References are expanded in values only. A reference inside a mapping key is
rejected, since header names and field names must be known up front.

Example file:

    user_agent: my-crawler/1.0
    redirect_limit: 3
    timeout: ${CRAWL_TIMEOUT:-30}
    headers:
      Authorization: Bearer ${API_TOKEN}
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from reqchain.errors import ReqchainError
from reqchain.models import ClientConfig

_ENV_REF = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}")


class ConfigError(ReqchainError):
    """Raised when configuration loading fails."""


def load_client_config(config_path: Path | str) -> ClientConfig:
    """Read ``config_path`` into a ClientConfig.

    An empty file yields the default configuration.

    Raises:
        ConfigError: File missing, invalid YAML, a key holding an environment
            reference, an unset variable without a default, or fields
            ClientConfig rejects.
    """
    path = Path(config_path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e

    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if document is None:
        return ClientConfig()
    if not isinstance(document, dict):
        raise ConfigError(f"{path}: top level must be a YAML mapping, got {type(document).__name__}")

    try:
        return ClientConfig.model_validate(expand_env(document))
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure in {path}: {e}") from e


def expand_env(node: Any, location: str = "") -> Any:
    """Return ``node`` with environment references in string values expanded.

    ``location`` is the dotted path of ``node`` in the document, used in
    error messages (``headers.Authorization``).
    """
    if isinstance(node, str):
        return _ENV_REF.sub(lambda m: _resolve(m, location), node)
    if isinstance(node, dict):
        expanded = {}
        for key, value in node.items():
            child = f"{location}.{key}" if location else str(key)
            if isinstance(key, str) and _ENV_REF.search(key):
                raise ConfigError(f"Environment reference not allowed in key '{child}'")
            expanded[key] = expand_env(value, child)
        return expanded
    if isinstance(node, list):
        return [expand_env(item, f"{location}[{i}]") for i, item in enumerate(node)]
    return node


def _resolve(match: re.Match[str], location: str) -> str:
    name, default = match.group("name"), match.group("default")
    value = os.environ.get(name)
    if default is not None:
        return value or default
    if value is None:
        raise ConfigError(f"Environment variable '{name}' is not set (referenced by '{location}')")
    return value
