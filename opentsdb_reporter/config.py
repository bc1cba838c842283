"""Configuration helpers for the OpenTSDB reporter.

Configuration can come from:
1. Constructor kwargs (highest priority)
2. YAML file (file-based)
3. Environment variables (deployment)
4. Built-in defaults (lowest priority)

Everything here is resolved once when a reporter is built and is
read-only afterwards.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

OPENTSDB_HOST_ENV = "OPENTSDB_HOST"
OPENTSDB_PORT_ENV = "OPENTSDB_PORT"
OPENTSDB_PREFIX_ENV = "OPENTSDB_PREFIX"
OPENTSDB_TAGS_ENV = "OPENTSDB_TAGS"
OPENTSDB_PERIOD_SECONDS_ENV = "OPENTSDB_PERIOD_SECONDS"
OPENTSDB_CONNECT_TIMEOUT_ENV = "OPENTSDB_CONNECT_TIMEOUT"
OPENTSDB_REPORT_RUNTIME_ENV = "OPENTSDB_REPORT_RUNTIME"

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 4242
DEFAULT_PERIOD_SECONDS = 60.0


@dataclass(frozen=True, slots=True)
class ReporterConfig:
    """Destination, naming and scheduling settings for one reporter."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    prefix: Optional[str] = None
    tags: str = ""
    period_seconds: float = DEFAULT_PERIOD_SECONDS
    connect_timeout: Optional[float] = None
    report_runtime: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.host, str) or not self.host.strip():
            raise ConfigurationError("host cannot be empty")
        try:
            port = int(self.port)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"port must be an integer, got {self.port!r}") from exc
        if not 0 < port < 65536:
            raise ConfigurationError(f"port must be in 1..65535, got {self.port}")
        try:
            period = float(self.period_seconds)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                f"period_seconds must be a number, got {self.period_seconds!r}"
            ) from exc
        if not math.isfinite(period) or period <= 0:
            raise ConfigurationError("period_seconds must be a positive number")
        if self.connect_timeout is not None:
            try:
                timeout = float(self.connect_timeout)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(
                    f"connect_timeout must be a number, got {self.connect_timeout!r}"
                ) from exc
            if not math.isfinite(timeout) or timeout <= 0:
                raise ConfigurationError("connect_timeout must be positive when set")
        object.__setattr__(self, "port", port)
        object.__setattr__(self, "period_seconds", period)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReporterConfig":
        """Build a ReporterConfig from a plain dictionary.

        Unknown keys are silently ignored. Values that cannot be coerced
        fall back to the defaults.

        Args:
            data: Dictionary of configuration values.

        Returns:
            ReporterConfig with values from the dictionary merged over defaults.
        """

        kwargs: dict[str, Any] = {}

        for key in ("host", "tags"):
            if key in data and data[key] is not None:
                kwargs[key] = str(data[key]).strip()
        if "host" in kwargs and not kwargs["host"]:
            del kwargs["host"]

        if "prefix" in data:
            kwargs["prefix"] = _normalize(None if data["prefix"] is None else str(data["prefix"]))

        if "port" in data:
            try:
                port = int(data["port"])
                if 0 < port < 65536:
                    kwargs["port"] = port
                else:
                    logger.warning("Out-of-range port=%r; using default=%s", data["port"], DEFAULT_PORT)
            except (TypeError, ValueError):
                pass

        for key in ("period_seconds", "connect_timeout"):
            if key in data and data[key] is not None:
                try:
                    value = float(data[key])
                    if math.isfinite(value) and value > 0:
                        kwargs[key] = value
                except (TypeError, ValueError):
                    pass

        if "report_runtime" in data:
            kwargs["report_runtime"] = _to_bool(data["report_runtime"])

        return cls(**kwargs)

    @classmethod
    def from_yaml(
        cls,
        yaml_path: Path,
        *,
        allow_env_override: bool = True,
    ) -> "ReporterConfig":
        """Build a ReporterConfig from a YAML file.

        The file may hold the settings at top level or under an
        ``opentsdb`` key. Environment variables that are set take
        precedence over file values unless disabled.

        Args:
            yaml_path: Path to the YAML file.
            allow_env_override: When True, environment variables
                take precedence over YAML values.

        Returns:
            ReporterConfig with merged YAML + env configuration.
        """

        path = Path(yaml_path)
        data: dict[str, Any] = {}
        if path.exists():
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
            if isinstance(raw, Mapping) and isinstance(raw.get("opentsdb"), Mapping):
                raw = raw["opentsdb"]
            if isinstance(raw, Mapping):
                data = dict(raw)
            else:
                logger.warning("Reporter YAML at %s is not a mapping; using defaults", path)
        else:
            logger.warning("Reporter YAML not found at %s; using defaults", path)

        if allow_env_override:
            env_instance = cls.from_env()
            for field_name, env_var in (
                ("host", OPENTSDB_HOST_ENV),
                ("port", OPENTSDB_PORT_ENV),
                ("prefix", OPENTSDB_PREFIX_ENV),
                ("tags", OPENTSDB_TAGS_ENV),
                ("period_seconds", OPENTSDB_PERIOD_SECONDS_ENV),
                ("connect_timeout", OPENTSDB_CONNECT_TIMEOUT_ENV),
                ("report_runtime", OPENTSDB_REPORT_RUNTIME_ENV),
            ):
                if _normalize(os.getenv(env_var)) is not None:
                    data[field_name] = getattr(env_instance, field_name)

        return cls.from_dict(data)

    @classmethod
    def from_env(cls) -> "ReporterConfig":
        """Build a ReporterConfig instance from environment variables."""

        host = _normalize(os.getenv(OPENTSDB_HOST_ENV)) or DEFAULT_HOST
        port = _parse_int(
            OPENTSDB_PORT_ENV,
            default=DEFAULT_PORT,
            min_value=1,
            max_value=65535,
        )
        prefix = _normalize(os.getenv(OPENTSDB_PREFIX_ENV))
        tags = _normalize(os.getenv(OPENTSDB_TAGS_ENV)) or ""
        period_seconds = _parse_float(
            OPENTSDB_PERIOD_SECONDS_ENV,
            default=DEFAULT_PERIOD_SECONDS,
            min_value=0.001,
        )
        connect_timeout = _parse_optional_float(OPENTSDB_CONNECT_TIMEOUT_ENV)
        report_runtime = _parse_bool(OPENTSDB_REPORT_RUNTIME_ENV, default=True)

        return cls(
            host=host,
            port=port,
            prefix=prefix,
            tags=tags,
            period_seconds=period_seconds,
            connect_timeout=connect_timeout,
            report_runtime=report_runtime,
        )


def get_reporter_config() -> ReporterConfig:
    """Return a ReporterConfig instance built from the current environment."""

    return ReporterConfig.from_env()


def _normalize(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    return text in {"1", "true", "yes", "on"}


def _parse_bool(env_name: str, *, default: bool) -> bool:
    raw = _normalize(os.getenv(env_name))
    if raw is None:
        return default
    value = raw.lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    logger.warning("Invalid %s=%r; using default=%s", env_name, raw, default)
    return default


def _parse_int(
    env_name: str,
    *,
    default: int,
    min_value: Optional[int] = None,
    max_value: Optional[int] = None,
) -> int:
    raw = _normalize(os.getenv(env_name))
    if raw is None:
        return default
    try:
        parsed = int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid %s=%r; using default=%s", env_name, raw, default)
        return default

    if min_value is not None and parsed < min_value:
        logger.warning("Out-of-range %s=%r; using default=%s", env_name, raw, default)
        return default
    if max_value is not None and parsed > max_value:
        logger.warning("Out-of-range %s=%r; using default=%s", env_name, raw, default)
        return default
    return parsed


def _parse_float(
    env_name: str,
    *,
    default: float,
    min_value: Optional[float] = None,
) -> float:
    raw = _normalize(os.getenv(env_name))
    if raw is None:
        return float(default)
    try:
        parsed = float(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid %s=%r; using default=%s", env_name, raw, default)
        return float(default)

    if not math.isfinite(parsed):
        logger.warning("Invalid %s=%r; using default=%s", env_name, raw, default)
        return float(default)

    if min_value is not None and parsed < min_value:
        logger.warning("Out-of-range %s=%r; using default=%s", env_name, raw, default)
        return float(default)
    return float(parsed)


def _parse_optional_float(env_name: str) -> Optional[float]:
    raw = _normalize(os.getenv(env_name))
    if raw is None:
        return None
    try:
        parsed = float(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid %s=%r; leaving unset", env_name, raw)
        return None
    if not math.isfinite(parsed) or parsed <= 0:
        logger.warning("Out-of-range %s=%r; leaving unset", env_name, raw)
        return None
    return parsed


__all__ = [
    "DEFAULT_HOST",
    "DEFAULT_PERIOD_SECONDS",
    "DEFAULT_PORT",
    "ReporterConfig",
    "get_reporter_config",
]
