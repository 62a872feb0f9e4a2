"""Click CLI for the OsmAnd client.

Entry point registered in ``pyproject.toml`` as ``osmand-client``.

Subcommands::

    osmand-client --validate-config             # check the config file and exit
    osmand-client encode --lat 52.5 --lon 13.4  # print the payload
    osmand-client send --lat 52.5 --lon 13.4    # send one position report
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Callable, Optional

import click
import orjson

from osmand_client import __version__
from osmand_client.client import OsmAndClient
from osmand_client.config import FORMATS, AppConfig, LogFileConfig, load_config
from osmand_client.encoding import build_form_body, build_json_body, build_query_url
from osmand_client.fields import wall_clock_ms
from osmand_client.models import PositionReport
from osmand_client.redactor import SecretRedactingFilter, collect_secret_values

logger = logging.getLogger("osmand_client")

DEFAULT_CONFIG = "/etc/osmand-client/config.json"

_BUILDERS: dict[str, Callable[..., str]] = {
    "query": build_query_url,
    "form": build_form_body,
    "json": build_json_body,
}


# ── structured JSON log formatter ───────────────────────────────────


class _JsonFormatter(logging.Formatter):
    """Emit log records as single-line JSON to stderr."""

    def format(self, record: logging.LogRecord) -> str:
        obj = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            obj["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(obj).decode()


def _setup_logging(
    level: str,
    fmt: str = "json",
    secret_values: list[str] | None = None,
    log_file_config: Optional[LogFileConfig] = None,
    identifiers: list[str] | None = None,
) -> None:
    """Configure the root logger with stderr output + optional file + redaction."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    formatter = (
        _JsonFormatter()
        if fmt == "json"
        else logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    redactor = SecretRedactingFilter(secret_values, identifiers)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if log_file_config and log_file_config.enabled:
        from logging.handlers import RotatingFileHandler

        log_dir = Path(log_file_config.path).parent
        log_dir.mkdir(parents=True, exist_ok=True)

        handlers.append(RotatingFileHandler(
            filename=log_file_config.path,
            maxBytes=log_file_config.max_size_bytes,
            backupCount=log_file_config.backup_count,
        ))

    # Replace handlers from an earlier call in the same process.
    for old in list(root.handlers):
        if getattr(old, "_osmand_client", False):
            root.removeHandler(old)
            old.close()

    # Handler-level filters also see records propagated from module loggers.
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(redactor)
        handler._osmand_client = True
        root.addHandler(handler)


# ── report options ──────────────────────────────────────────────────


_REPORT_OPTIONS = [
    click.option("--lat", "latitude", type=float, default=None, help="Latitude in degrees."),
    click.option("--lon", "longitude", type=float, default=None, help="Longitude in degrees."),
    click.option("--altitude", "altitude_meters", type=float, default=None, help="Altitude in meters."),
    click.option("--speed", "speed_kmh", type=float, default=None, help="Speed in km/h."),
    click.option("--heading", "heading_deg", type=float, default=None, help="Heading 0-360."),
    click.option("--hdop", type=float, default=None, help="Horizontal dilution of precision."),
    click.option("--accuracy", "accuracy_meters", type=float, default=None, help="Accuracy in meters."),
    click.option("--timestamp", "timestamp_ms", type=click.IntRange(min=0), default=None,
                 help="Epoch milliseconds (default: now)."),
    click.option("--battery", "battery_percent", type=click.IntRange(0, 100), default=None,
                 help="Battery level in percent."),
    click.option("--charging", is_flag=True, default=False, help="Device is charging."),
    click.option("--valid", type=click.Choice(["true", "false"]), default=None,
                 help="Fix validity flag."),
    click.option("--driver", "driver_unique_id", default=None, help="Driver unique id."),
    click.option("--cell", default=None, help="mcc,mnc,lac,cellId[,signalStrength]"),
    click.option("--wifi", default=None, help="mac,rssi pairs separated by ';'."),
    click.option("--event", "event_name", default=None, help="Event name, e.g. motionchange."),
    click.option("--activity", "activity_type", default=None, help="Activity, e.g. walking."),
    click.option("--odometer", type=float, default=None, help="Odometer in meters."),
    click.option("-f", "--format", "fmt", type=click.Choice(FORMATS), default=None,
                 help="Wire format (default: from config)."),
]


def report_options(func):
    for option in reversed(_REPORT_OPTIONS):
        func = option(func)
    return func


def _report_from_options(options: dict) -> PositionReport:
    fields = PositionReport.__dataclass_fields__
    if options.get("valid") is not None:
        options = {**options, "valid": options["valid"] == "true"}
    return PositionReport(**{k: v for k, v in options.items() if k in fields})


# ── main CLI group ──────────────────────────────────────────────────


@click.group(invoke_without_command=True)
@click.option("-c", "--config", "config_path", default=None, help="Config file path.")
@click.option("--log-level", default=None,
              type=click.Choice(["debug", "info", "warn", "error"]),
              help="Log verbosity.")
@click.option("--validate-config", "validate_only", is_flag=True,
              help="Validate config and exit.")
@click.option("--device-id", default=None, help="Override device id.")
@click.option("--host", default=None, help="Override server host (with scheme).")
@click.option("--debug", is_flag=True, default=False, help="Log URLs and payloads.")
@click.version_option(__version__)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Optional[str],
    log_level: Optional[str],
    validate_only: bool,
    device_id: Optional[str],
    host: Optional[str],
    debug: bool,
) -> None:
    """OsmAnd client: encode and send position reports to a Traccar server."""
    # --- build overrides ---
    overrides: dict[str, str] = {}
    if device_id:
        overrides["OSMAND_DEVICE_ID"] = device_id
    if host:
        overrides["OSMAND_HOST"] = host

    # --- load + validate config ---
    cfg_path = config_path or os.environ.get("OSMAND_CONFIG")
    if cfg_path is None and Path(DEFAULT_CONFIG).exists():
        cfg_path = DEFAULT_CONFIG

    try:
        cfg = load_config(cfg_path, overrides=overrides) if cfg_path else AppConfig()
    except Exception as exc:
        click.echo(f"Config error: {exc}", err=True)
        raise SystemExit(1) from exc

    # Explicit flags win over whatever the file interpolated.
    if device_id:
        cfg.device.id = device_id
    if host:
        cfg.server.host = host
    if debug:
        cfg.debug = True

    effective_level = (
        log_level
        or os.environ.get("OSMAND_LOG_LEVEL")
        or ("debug" if cfg.debug else cfg.logging.level)
    )

    # --- setup logging with secret redaction ---
    settings = cfg.client_settings()
    secret_values = collect_secret_values(
        {"settings": asdict(settings), "config": asdict(cfg)},
        cfg.logging.redact_patterns,
    )
    _setup_logging(
        effective_level,
        cfg.logging.format,
        secret_values,
        cfg.logging.file,
        identifiers=[settings.device_id],
    )

    if validate_only:
        click.echo("Configuration is valid.", err=True)
        raise SystemExit(0)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        return

    ctx.obj = cfg


@main.command("encode")
@report_options
@click.option("--no-clock", is_flag=True, default=False,
              help="Do not fill a missing timestamp from the system clock.")
@click.pass_obj
def encode(cfg: AppConfig, fmt: Optional[str], no_clock: bool, **options) -> None:
    """Print the encoded payload for one position report."""
    fmt = fmt or cfg.encoding.format
    report = _report_from_options(options)
    clock = None if no_clock else wall_clock_ms
    click.echo(_BUILDERS[fmt](cfg.client_settings(), report, clock=clock))


@main.command("send")
@report_options
@click.pass_obj
def send(cfg: AppConfig, fmt: Optional[str], **options) -> None:
    """Send one position report; exit status 0 only on HTTP 200."""
    fmt = fmt or cfg.encoding.format
    report = _report_from_options(options)
    client = OsmAndClient(cfg.client_settings())

    logger.info("Sending %s report to %s", fmt, cfg.server.host or "<unset>")
    result = asyncio.run(client.send(report, fmt))

    click.echo(f"HTTP {result.status}" if result.status else "No response")
    if not result.ok:
        raise SystemExit(1)
