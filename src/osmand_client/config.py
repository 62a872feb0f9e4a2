"""Configuration loading, environment-variable interpolation, and validation.

Resolution order for ``${VAR}`` placeholders:
    CLI overrides → environment variables → raw config value.

``${VAR}`` (no default) raises if unresolvable.
``${VAR:-default}`` falls back to *default*.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import orjson
import jsonschema

from osmand_client.models import DEFAULT_PORT, DEFAULT_TIMEOUT_MS, ClientSettings

logger = logging.getLogger(__name__)

_VAR_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-(.*?))?\}")

_SCHEMA_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "config.schema.json"

FORMATS = ("query", "form", "json")


@dataclass
class ServerConfig:
    """OsmAnd endpoint location."""

    host: str = ""
    port: Optional[int] = DEFAULT_PORT
    base_path: str = "/"
    timeout_ms: int = DEFAULT_TIMEOUT_MS


@dataclass
class DeviceConfig:
    """Identity reported to the server."""

    id: str = ""


@dataclass
class EncodingConfig:
    """Wire format preferences."""

    format: str = "query"
    speed_round_down: bool = False


@dataclass
class LogFileConfig:
    """Optional log file output settings.

    When ``enabled`` is True the application writes operational logs to a
    rotating file in addition to stderr.
    """

    enabled: bool = False
    path: str = "/var/log/osmand-client/app.log"
    max_size_bytes: int = 10485760   # 10 MB
    backup_count: int = 5


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "info"
    format: str = "json"
    file: LogFileConfig = field(default_factory=LogFileConfig)
    redact_patterns: list[str] = field(
        default_factory=lambda: ["*device_id*", "*password*", "*token*"]
    )


@dataclass
class AppConfig:
    """Top-level application configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    device: DeviceConfig = field(default_factory=DeviceConfig)
    encoding: EncodingConfig = field(default_factory=EncodingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    debug: bool = False

    def client_settings(self) -> ClientSettings:
        """Flatten into the :class:`ClientSettings` the encoder and client use."""
        return ClientSettings(
            device_id=self.device.id,
            host=self.server.host,
            port=self.server.port,
            base_path=self.server.base_path or "/",
            debug=self.debug,
            timeout_ms=self.server.timeout_ms,
            speed_round_down=self.encoding.speed_round_down,
        )


def _interpolate_value(value: str, overrides: dict[str, str] | None = None) -> str:
    """Replace ``${VAR}`` / ``${VAR:-default}`` in *value*."""

    def _replacer(match: re.Match) -> str:
        var_name = match.group(1)
        default = match.group(2)  # None when no ``:-`` present

        # 1. CLI overrides
        if overrides and var_name in overrides:
            return overrides[var_name]
        # 2. Environment variables
        env_val = os.environ.get(var_name)
        if env_val is not None:
            return env_val
        # 3. Default
        if default is not None:
            return default

        raise ValueError(
            f"Required variable ${{{var_name}}} is not set in environment "
            f"or CLI overrides"
        )

    return _VAR_RE.sub(_replacer, value)


def _walk_and_interpolate(obj: Any, overrides: dict[str, str] | None = None) -> Any:
    """Recursively interpolate all string values in a JSON-like structure."""
    if isinstance(obj, str):
        return _interpolate_value(obj, overrides)
    if isinstance(obj, dict):
        return {k: _walk_and_interpolate(v, overrides) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_interpolate(item, overrides) for item in obj]
    return obj


def _pick(cls, raw: dict[str, Any]):
    """Build dataclass *cls* from the keys of *raw* it knows about."""
    return cls(**{k: raw[k] for k in raw if k in cls.__dataclass_fields__})


def _dict_to_config(raw: dict[str, Any]) -> AppConfig:
    """Convert a raw dict into a typed :class:`AppConfig`."""
    logging_raw = dict(raw.get("logging", {}))
    log_file_raw = logging_raw.pop("file", {})

    return AppConfig(
        server=_pick(ServerConfig, raw.get("server", {})),
        device=_pick(DeviceConfig, raw.get("device", {})),
        encoding=_pick(EncodingConfig, raw.get("encoding", {})),
        logging=LoggingConfig(
            level=logging_raw.get("level", "info"),
            format=logging_raw.get("format", "json"),
            file=_pick(LogFileConfig, log_file_raw),
            redact_patterns=logging_raw.get(
                "redact_patterns",
                ["*device_id*", "*password*", "*token*"],
            ),
        ),
        debug=bool(raw.get("debug", False)),
    )


def _coerce_server_numbers(raw: dict[str, Any]) -> None:
    """Interpolated ``port`` and ``timeout_ms`` arrive as strings; make them ints."""
    server = raw.get("server")
    if isinstance(server, dict):
        for key in ("port", "timeout_ms"):
            value = server.get(key)
            if isinstance(value, str) and value.strip().isdigit():
                server[key] = int(value)


def load_config(
    path: str | Path,
    overrides: dict[str, str] | None = None,
    schema_path: str | Path | None = None,
) -> AppConfig:
    """Load, interpolate, validate, and return the application config.

    Parameters
    ----------
    path:
        Filesystem path to ``config.json``.
    overrides:
        CLI-supplied variable overrides.
    schema_path:
        Path to the JSON Schema file.  Defaults to
        ``config/config.schema.json`` relative to the project root.

    Returns
    -------
    AppConfig
        Fully resolved and validated configuration.

    Raises
    ------
    ValueError
        If a required ``${VAR}`` cannot be resolved.
    jsonschema.ValidationError
        If the config fails schema validation.
    """
    raw_bytes = Path(path).read_bytes()
    raw: dict[str, Any] = orjson.loads(raw_bytes)

    interpolated = _walk_and_interpolate(raw, overrides=overrides)
    _coerce_server_numbers(interpolated)

    # --- schema validation ---
    sp = Path(schema_path) if schema_path else _SCHEMA_PATH
    if sp.exists():
        schema = orjson.loads(sp.read_bytes())
        jsonschema.validate(instance=interpolated, schema=schema)
        logger.debug("Config passed schema validation")
    else:
        logger.warning("Schema file not found at %s, skipping validation", sp)

    return _dict_to_config(interpolated)
