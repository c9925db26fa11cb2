"""Configuration file loading and caching.

Handles:
- Config file locations (user, project)
- YAML file parsing
- Deep merging (later sources override earlier ones)
- Environment variable overrides
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any

import yaml

from acpsession.config.schema import (
    AgentConfig,
    Config,
    LoggingConfig,
    PermissionConfig,
    SessionConfig,
    ToolOutputConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("acpsession.config")

CONFIG_FILENAME = "config.yaml"
APP_DIR = ".acpsession"

_cached_config: Config | None = None


def get_user_config_path() -> Path:
    """User-level config: %APPDATA%/acpsession on Windows, ~/.acpsession elsewhere."""
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA")
        if app_data:
            return Path(app_data) / "acpsession" / CONFIG_FILENAME
    return Path.home() / APP_DIR / CONFIG_FILENAME


def get_project_config_path(project_path: str) -> Path:
    return Path(project_path) / APP_DIR / CONFIG_FILENAME


def get_config_paths(project_path: str | None = None) -> list[Path]:
    """Config paths in priority order, lowest first."""
    paths = [get_user_config_path()]
    if project_path:
        paths.append(get_project_config_path(project_path))
    return paths


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning an empty dict if missing or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``.

    Nested dicts merge recursively, lists and scalars are replaced, and
    ``None`` in the override leaves the base value alone.
    """
    result = base.copy()
    for key, value in override.items():
        if value is None:
            continue
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value
    return result


def env_overrides() -> dict[str, Any]:
    """Config values taken from the environment (highest priority)."""
    overrides: dict[str, Any] = {}

    log_path = os.environ.get("ACPS_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    agent_command = os.environ.get("ACPS_AGENT")
    if agent_command:
        overrides.setdefault("agent", {})["command"] = agent_command

    return overrides


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert a merged dict to the typed Config dataclass."""
    agent_data = data.get("agent") or {}
    defaults = AgentConfig()
    agent = AgentConfig(
        command=agent_data.get("command", defaults.command),
        client_name=agent_data.get("client_name", defaults.client_name),
        protocol_version=int(agent_data.get("protocol_version", defaults.protocol_version)),
    )

    session_data = data.get("session") or {}
    session = SessionConfig(
        baseline_mode=str(session_data.get("baseline_mode", SessionConfig.baseline_mode)),
        persist=bool(session_data.get("persist", SessionConfig.persist)),
    )

    perm_data = data.get("permissions") or {}
    permissions = PermissionConfig(
        response_timeout=float(
            perm_data.get("response_timeout", PermissionConfig.response_timeout)
        ),
        request_timeout=float(
            perm_data.get("request_timeout", PermissionConfig.request_timeout)
        ),
    )

    output_data = data.get("tool_output") or {}
    tool_output = ToolOutputConfig()
    if "default_limit" in output_data:
        tool_output.default_limit = int(output_data["default_limit"])
    limits = output_data.get("limits")
    if isinstance(limits, dict):
        tool_output.limits.update({str(k): int(v) for k, v in limits.items()})

    log_data = data.get("logging") or {}
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    known_keys = {"agent", "session", "permissions", "tool_output", "logging"}
    extra = {k: v for k, v in data.items() if k not in known_keys}

    return Config(
        agent=agent,
        session=session,
        permissions=permissions,
        tool_output=tool_output,
        logging=logging_config,
        extra=extra,
    )


def load_config(
    project_path: str | None = None,
    *,
    config_path: Path | None = None,
    reload: bool = False,
) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Explicit ``config_path``
    3. Project config (<project>/.acpsession/config.yaml)
    4. User config

    Only the global config (no project, no explicit path) is cached.
    """
    global _cached_config

    is_global = project_path is None and config_path is None
    if is_global and _cached_config is not None and not reload:
        return _cached_config

    merged: dict[str, Any] = {}
    paths = get_config_paths(project_path)
    if config_path is not None:
        paths.append(config_path)

    for path in paths:
        data = load_yaml_file(path)
        if data:
            _log.debug("Loaded config from %s", path)
            merged = deep_merge(merged, data)

    merged = deep_merge(merged, env_overrides())
    config = dict_to_config(merged)

    if is_global:
        _cached_config = config
    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Drop the cached config (used by tests)."""
    global _cached_config
    _cached_config = None
