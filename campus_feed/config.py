"""Configuration handling for the campus feed client."""

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from campus_feed.engine.ranking import RankStrategy


@dataclass
class RetryConfig:
    """Retry settings for backend fetches. Vote upserts are never retried."""

    max_retries: int = 3
    initial_backoff: float = 0.5
    max_backoff: float = 8.0
    backoff_factor: float = 2.0


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""

    enable_prometheus: bool = False
    prometheus_port: int = 8000


def _update_section(section: Any, values: Dict[str, Any]) -> None:
    """Copy known keys from a YAML mapping onto a config dataclass."""
    known = {f.name for f in fields(section)}
    for key, value in values.items():
        if key in known:
            setattr(section, key, value)


@dataclass
class Config:
    """Application configuration combining environment variables and YAML config."""

    # Backend credentials from environment
    supabase_url: str = ""
    supabase_anon_key: str = ""
    access_token: str = ""
    user_id: str = ""

    # YAML config values with defaults
    request_timeout_sec: float = 10.0
    max_reply_depth: int = 3
    default_strategy: str = RankStrategy.RECENT.value
    log_level: str = "INFO"
    retry: RetryConfig = field(default_factory=RetryConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_files(cls, config_path: str, env_path: Optional[str] = None) -> "Config":
        """
        Load configuration from YAML file and environment variables.

        Args:
            config_path: Path to YAML configuration file
            env_path: Optional path to .env file (defaults to .env in current directory)

        Returns:
            Config instance with merged configuration
        """
        if env_path:
            load_dotenv(env_path)
        else:
            load_dotenv()

        config = cls()
        config.supabase_url = os.getenv("SUPABASE_URL", "").rstrip("/")
        config.supabase_anon_key = os.getenv("SUPABASE_ANON_KEY", "")
        config.access_token = os.getenv("SUPABASE_ACCESS_TOKEN", "")
        config.user_id = os.getenv("FEED_USER_ID", "")

        if os.path.exists(config_path):
            with open(config_path, "r", encoding="utf-8") as file:
                yaml_config = yaml.safe_load(file)

            if yaml_config:
                for key, value in yaml_config.items():
                    if key in ("retry", "monitoring"):
                        continue
                    if hasattr(config, key):
                        setattr(config, key, value)

                if isinstance(yaml_config.get("retry"), dict):
                    _update_section(config.retry, yaml_config["retry"])

                if isinstance(yaml_config.get("monitoring"), dict):
                    _update_section(config.monitoring, yaml_config["monitoring"])

        return config

    def validate(self, require_backend: bool = True) -> List[str]:
        """
        Validate configuration and return a list of validation errors.

        Args:
            require_backend: Whether backend credentials must be present;
                offline snapshot tools pass False

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if require_backend and not self.supabase_url:
            errors.append("Missing SUPABASE_URL in environment")
        if require_backend and not self.supabase_anon_key:
            errors.append("Missing SUPABASE_ANON_KEY in environment")

        if self.request_timeout_sec <= 0:
            errors.append("request_timeout_sec must be greater than 0")
        if self.max_reply_depth < 1:
            errors.append("max_reply_depth must be at least 1")

        valid_strategies = [strategy.value for strategy in RankStrategy]
        if self.default_strategy not in valid_strategies:
            errors.append(f"default_strategy must be one of {', '.join(valid_strategies)}")

        if self.retry.max_retries < 0:
            errors.append("retry.max_retries must not be negative")
        if self.retry.initial_backoff <= 0 or self.retry.max_backoff < self.retry.initial_backoff:
            errors.append("retry backoff must be positive and max_backoff >= initial_backoff")

        if self.monitoring.enable_prometheus and self.monitoring.prometheus_port <= 0:
            errors.append("monitoring.prometheus_port must be a positive integer")

        return errors
