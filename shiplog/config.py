"""Configuration dataclasses and optional YAML loading."""

import logging
import os
from dataclasses import dataclass, field

import yaml

from shiplog.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_FILE = os.path.join("logs", "shiplog-queue.json")


@dataclass(frozen=True)
class RedactionConfig:
    enabled: bool | None = None        # defaults to safe_by_default
    safe_by_default: bool = True
    replacement: str = "[REDACTED]"
    rules: tuple = ()                  # (pattern, replacement|None) pairs or RedactionRule


@dataclass(frozen=True)
class RemoteConfig:
    url: str = ""
    headers: dict = field(default_factory=dict)
    timeout_ms: int | None = None


@dataclass(frozen=True)
class QueueConfig:
    enabled: bool = True
    file_path: str = DEFAULT_QUEUE_FILE
    flush_interval_ms: int = 5000
    max_batch_size: int = 50
    max_retries: int = 5
    backoff_ms: int = 1000
    max_backoff_ms: int = 30000
    flush_on_exit: bool = True


@dataclass(frozen=True)
class LoggerConfig:
    level: str = "info"
    service: str | None = None
    file_path: str | None = None
    redaction: RedactionConfig = field(default_factory=RedactionConfig)
    remote: RemoteConfig | None = None
    queue: QueueConfig = field(default_factory=QueueConfig)


def load_yaml_config(path: str | None) -> dict:
    """Read a YAML config file. Returns an empty dict if no path or file missing."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Top level of {path} must be a mapping")
    logger.info("Loaded YAML config from %s", path)
    return data


def load_config(path: str | None = None) -> LoggerConfig:
    """Build a LoggerConfig from defaults overlaid with an optional YAML file.

    Expected layout::

        level: warn
        service: auth-api
        file_path: logs/app.log
        redaction:
          replacement: "[REDACTED]"
          rules:
            - pattern: 'secret_\\w+'
              replacement: "[SECRET]"
        remote:
          url: http://localhost:4000/logs
          timeout_ms: 2000
        queue:
          max_retries: 3
    """
    data = load_yaml_config(path)

    try:
        redaction_data = dict(data.get("redaction") or {})
        rules = tuple(
            (r["pattern"], r.get("replacement"))
            for r in redaction_data.pop("rules", None) or []
        )
        redaction = RedactionConfig(rules=rules, **redaction_data)

        remote = None
        if data.get("remote"):
            remote_data = dict(data["remote"])
            remote = RemoteConfig(
                url=remote_data.get("url", ""),
                headers=dict(remote_data.get("headers") or {}),
                timeout_ms=remote_data.get("timeout_ms"),
            )

        queue = QueueConfig(**(data.get("queue") or {}))

        return LoggerConfig(
            level=data.get("level", LoggerConfig.level),
            service=data.get("service"),
            file_path=data.get("file_path"),
            redaction=redaction,
            remote=remote,
            queue=queue,
        )
    except (TypeError, KeyError) as e:
        raise ConfigurationError(f"Invalid config in {path}: {e}") from e
