"""Configuration management for PipePulse.

Loads configuration from environment variables and optional YAML file.
All secrets come from environment variables only.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any

import yaml


logger = logging.getLogger("pipepulse.config")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() == "true"


def resolve_env(value: Any) -> Any:
    """Substitute a ``${VAR}`` placeholder with the environment value."""
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        env_var = value[2:-1]
        return os.environ.get(env_var, value)
    return value


class ProjectBindings:
    """Maps GitLab project ids to the Slack channel receiving their pipelines.

    File format::

        {"projects": {"123": {"name": "web", "channel_id": "C0123"}}}
    """

    def __init__(self, bindings: Optional[Dict[str, Dict[str, Any]]] = None):
        """Initialize bindings.

        Args:
            bindings: Dict of project id -> {channel_id, name}
        """
        self._bindings = {
            str(project_id): binding
            for project_id, binding in (bindings or {}).items()
        }

    @classmethod
    def from_file(cls, path: Path) -> "ProjectBindings":
        """Load bindings from a JSON file.

        A missing file yields empty bindings.

        Raises:
            ValueError: If a channel id is an unsubstituted template
        """
        path = Path(path)
        if not path.exists():
            logger.warning(f"Project bindings file {path} not found, no channels bound")
            return cls()

        with open(path, 'r') as f:
            config = json.load(f)

        bindings = {}
        for project_id, binding in config.get('projects', {}).items():
            channel_id = resolve_env(binding.get('channel_id', ''))
            if isinstance(channel_id, str) and channel_id.startswith('${'):
                raise ValueError(
                    f"Channel ID for project {project_id} is an unsubstituted template: "
                    f"{channel_id}. Set the corresponding environment variable."
                )
            bindings[project_id] = {**binding, 'channel_id': channel_id}

        return cls(bindings)

    def channel_for(self, project_id) -> Optional[str]:
        """Get the Slack channel bound to a project, if any."""
        binding = self._bindings.get(str(project_id))
        if not binding:
            return None
        return binding.get('channel_id') or None

    def __len__(self) -> int:
        return len(self._bindings)


@dataclass
class SlackConfig:
    """Slack integration configuration."""

    bot_token: str = ""

    # Rate limiting
    min_update_interval_sec: float = 1.0
    max_retries: int = 3
    retry_backoff_sec: list = field(default_factory=lambda: [1, 2, 4])

    @classmethod
    def from_env(cls) -> "SlackConfig":
        """Load Slack configuration from environment variables."""
        return cls(
            bot_token=os.environ.get("SLACK_BOT_TOKEN", ""),
            min_update_interval_sec=float(
                os.environ.get("PIPEPULSE_MIN_UPDATE_INTERVAL_SEC", "1.0")
            ),
        )


@dataclass
class GitLabConfig:
    """GitLab API configuration."""

    base_url: str = "https://gitlab.com"
    token: str = ""
    timeout_sec: float = 10.0

    @classmethod
    def from_env(cls) -> "GitLabConfig":
        """Load GitLab configuration from environment variables."""
        return cls(
            base_url=os.environ.get("GITLAB_URL", "https://gitlab.com"),
            token=os.environ.get("GITLAB_TOKEN", ""),
            timeout_sec=float(os.environ.get("GITLAB_TIMEOUT_SEC", "10")),
        )


@dataclass
class WatcherConfig:
    """Log tailing watcher configuration."""

    interval_sec: float = 1.0
    lines_limit: int = 10
    # Keep polling while no job is running instead of stopping
    keep_alive_when_idle: bool = False

    @classmethod
    def from_env(cls) -> "WatcherConfig":
        """Load watcher configuration from environment variables."""
        return cls(
            interval_sec=float(os.environ.get("PIPEPULSE_WATCH_INTERVAL_SEC", "1.0")),
            lines_limit=int(os.environ.get("PIPEPULSE_LOG_LINES", "10")),
            keep_alive_when_idle=_env_bool("PIPEPULSE_WATCH_KEEP_ALIVE"),
        )


@dataclass
class APIConfig:
    """API server configuration."""

    host: str = "0.0.0.0"
    port: int = 18800
    debug: bool = False
    webhook_token: str = ""

    # Rate limiting
    rate_limit_webhook: str = "600 per minute"
    rate_limit_get: str = "100 per minute"

    @classmethod
    def from_env(cls) -> "APIConfig":
        """Load API configuration from environment variables."""
        return cls(
            host=os.environ.get("PIPEPULSE_HOST", "0.0.0.0"),
            port=int(os.environ.get("PIPEPULSE_PORT", "18800")),
            debug=_env_bool("PIPEPULSE_DEBUG"),
            webhook_token=os.environ.get("PIPEPULSE_WEBHOOK_TOKEN", ""),
        )


@dataclass
class BindingsConfig:
    """Project to channel binding configuration."""

    projects_file: Path = field(default_factory=lambda: Path("config/projects.json"))

    @classmethod
    def from_env(cls) -> "BindingsConfig":
        """Load bindings configuration from environment variables."""
        return cls(
            projects_file=Path(
                os.environ.get("PIPEPULSE_PROJECTS_FILE", "config/projects.json")
            ),
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Load logging configuration from environment variables."""
        return cls(
            level=os.environ.get("PIPEPULSE_LOG_LEVEL", "INFO"),
            file=os.environ.get("PIPEPULSE_LOG_FILE"),
        )


@dataclass
class Config:
    """Main configuration container."""

    api: APIConfig = field(default_factory=APIConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    gitlab: GitLabConfig = field(default_factory=GitLabConfig)
    watcher: WatcherConfig = field(default_factory=WatcherConfig)
    bindings: BindingsConfig = field(default_factory=BindingsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Runtime settings
    environment: str = "development"

    @classmethod
    def from_env(cls) -> "Config":
        """Load all configuration from environment variables."""
        return cls(
            api=APIConfig.from_env(),
            slack=SlackConfig.from_env(),
            gitlab=GitLabConfig.from_env(),
            watcher=WatcherConfig.from_env(),
            bindings=BindingsConfig.from_env(),
            logging=LoggingConfig.from_env(),
            environment=os.environ.get("PIPEPULSE_ENV", "development"),
        )

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        """Load configuration from YAML file on top of env-based config."""
        config_path = Path(path)

        if config_path.exists():
            with open(config_path, "r") as f:
                yaml_config = yaml.safe_load(f) or {}
        else:
            logger.warning(f"Config file {config_path} not found, using environment only")
            yaml_config = {}

        # Start with env-based config
        config = cls.from_env()

        if "api" in yaml_config:
            config.api.host = yaml_config["api"].get("host", config.api.host)
            config.api.port = yaml_config["api"].get("port", config.api.port)
            config.api.debug = yaml_config["api"].get("debug", config.api.debug)
            config.api.rate_limit_webhook = yaml_config["api"].get(
                "rate_limit_webhook", config.api.rate_limit_webhook
            )

        if "slack" in yaml_config:
            config.slack.min_update_interval_sec = yaml_config["slack"].get(
                "min_update_interval_sec", config.slack.min_update_interval_sec
            )
            config.slack.max_retries = yaml_config["slack"].get(
                "max_retries", config.slack.max_retries
            )

        if "gitlab" in yaml_config:
            config.gitlab.base_url = yaml_config["gitlab"].get(
                "base_url", config.gitlab.base_url
            )
            config.gitlab.timeout_sec = yaml_config["gitlab"].get(
                "timeout_sec", config.gitlab.timeout_sec
            )

        if "watcher" in yaml_config:
            config.watcher.interval_sec = yaml_config["watcher"].get(
                "interval_sec", config.watcher.interval_sec
            )
            config.watcher.lines_limit = yaml_config["watcher"].get(
                "lines_limit", config.watcher.lines_limit
            )
            config.watcher.keep_alive_when_idle = yaml_config["watcher"].get(
                "keep_alive_when_idle", config.watcher.keep_alive_when_idle
            )

        if "bindings" in yaml_config and "projects_file" in yaml_config["bindings"]:
            config.bindings.projects_file = Path(yaml_config["bindings"]["projects_file"])

        if "logging" in yaml_config:
            config.logging.level = yaml_config["logging"].get(
                "level", config.logging.level
            )

        return config

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.api.webhook_token:
            errors.append("PIPEPULSE_WEBHOOK_TOKEN is required")

        if not self.slack.bot_token:
            errors.append("SLACK_BOT_TOKEN is required")

        if not self.gitlab.token:
            errors.append("GITLAB_TOKEN is required")

        if self.watcher.interval_sec <= 0:
            errors.append("Watcher interval must be positive")

        return errors


def load_config() -> Config:
    """Load the service configuration.

    Environment first; when PIPEPULSE_CONFIG names a YAML file, its
    non-secret settings are applied on top.
    """
    path = os.environ.get("PIPEPULSE_CONFIG")
    if path:
        logger.info(f"Loading configuration overrides from {path}")
        return Config.from_yaml(path)
    return Config.from_env()
