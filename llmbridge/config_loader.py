"""YAML configuration for the gateway, with ``$VAR`` expansion from a sibling .env file."""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import dotenv_values

logger = logging.getLogger("llmbridge")

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"
CONFIG_ENV_VAR = "LLMBRIDGE_CONFIG"

# ${NAME} or $NAME
_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def default_config_path() -> str:
    return os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH


def resolve_config_path(path: str) -> Path:
    """Anchor a relative path at the project root."""
    candidate = Path(path)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def resolve_env_path(config_path: Path, env_path: str | None = None) -> Path:
    """Pick the .env file that belongs to ``config_path``.

    ``configs/config_prod.yaml`` pairs with ``configs/.env_prod``; any other
    file name pairs with a plain ``.env`` next to it.
    """
    if env_path:
        return resolve_config_path(env_path)
    prefix, _, suffix = config_path.stem.partition("config_")
    if not prefix and suffix:
        return config_path.with_name(f".env_{suffix}")
    return config_path.with_name(".env")


def read_env_file(env_path: Path) -> dict[str, str]:
    """Parse a .env file into a dict. ``os.environ`` is left alone."""
    if not env_path.is_file():
        return {}
    logger.info("Reading environment overrides from %s", env_path)
    return {
        name: value
        for name, value in dotenv_values(env_path).items()
        if value is not None
    }


def load_config(
    path: str | None = None,
    env_path: str | None = None,
    substitute_env: bool = True,
) -> dict:
    """Read the gateway configuration.

    Args:
        path: Config file. Falls back to ``$LLMBRIDGE_CONFIG`` and then to
            ``configs/config_default.yaml`` under the project root.
        env_path: Explicit .env file used for placeholder expansion.
        substitute_env: Expand ``${VAR}``/``$VAR`` placeholders when true.

    Raises:
        RuntimeError: The file is missing or its top level is not a mapping.
    """
    config_path = resolve_config_path(path or default_config_path())
    if not config_path.is_file():
        logger.error("Config file not found: %s", config_path)
        raise RuntimeError(f"Config file not found: {config_path}")

    logger.info("Loading configuration from %s", config_path)
    data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise RuntimeError(f"Config file must contain a mapping: {config_path}")

    if substitute_env:
        overrides = read_env_file(resolve_env_path(config_path, env_path))
        data = _substitute_env_vars(data, overrides)
    return data


def is_unresolved_placeholder(value: Any) -> bool:
    return isinstance(value, str) and _ENV_PATTERN.search(value) is not None


def _lookup(name: str, overrides: Mapping[str, str]) -> str | None:
    if name in overrides:
        return overrides[name]
    return os.environ.get(name)


def _expand(text: str, overrides: Mapping[str, str]) -> str:
    def replace(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        value = _lookup(name, overrides)
        if value is None:
            logger.warning(
                "Environment variable %s is not set; keeping the literal placeholder",
                name,
            )
            return match.group(0)
        return value

    return _ENV_PATTERN.sub(replace, text)


def _substitute_env_vars(obj: Any, env_values: Mapping[str, str] | None = None) -> Any:
    """Expand placeholders in every string nested inside ``obj``.

    Values from the .env file take precedence over the process environment.
    """
    overrides = env_values or {}
    if isinstance(obj, str):
        return _expand(obj, overrides)
    if isinstance(obj, dict):
        return {key: _substitute_env_vars(value, overrides) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, overrides) for item in obj]
    return obj
