"""Configuration management for acp-session.

YAML configuration merged from the user config (~/.acpsession/config.yaml),
the project config (<project>/.acpsession/config.yaml) and environment
overrides (ACPS_LOG, ACPS_AGENT).

Example usage:
    from acpsession.config import load_config

    config = load_config(project_path="/path/to/project")
    print(config.permissions.response_timeout)
"""

from acpsession.config.loader import (
    deep_merge,
    get_config,
    get_config_paths,
    load_config,
    reset_config,
)
from acpsession.config.schema import (
    AgentConfig,
    Config,
    LoggingConfig,
    PermissionConfig,
    SessionConfig,
    ToolOutputConfig,
)

__all__ = [
    "AgentConfig",
    "Config",
    "LoggingConfig",
    "PermissionConfig",
    "SessionConfig",
    "ToolOutputConfig",
    "deep_merge",
    "get_config",
    "get_config_paths",
    "load_config",
    "reset_config",
]
