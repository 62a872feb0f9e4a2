"""Ordered OsmAnd field table shared by every encoder.

Each :class:`Field` knows how to pull its value out of a
:class:`~osmand_client.models.PositionReport` (returning ``None`` when the
value is absent) and how to render it either as URL text or as a JSON
value.  The renderers in :mod:`osmand_client.encoding` walk the same table,
so field selection and numeric formatting cannot drift between targets.

Key order::

    lat lon altitude hdop speed valid timestamp accuracy heading
    batt charge driverUniqueId cell wifi event activity odometer
"""

from __future__ import annotations

import dataclasses
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import orjson

from osmand_client.models import ClientSettings, PositionReport

KMH_PER_KNOT = 1.852

# An RTC that reads earlier than this has never been set.
MIN_PLAUSIBLE_EPOCH_S = 100000

MS_PER_DAY = 86_400_000

Clock = Callable[[], Optional[int]]


def wall_clock_ms() -> Optional[int]:
    """Current epoch milliseconds, or ``None`` if the system clock is unset."""
    now = time.time()
    if now > MIN_PLAUSIBLE_EPOCH_S:
        return int(now * 1000)
    return None


def _timestamp(value: Optional[int]) -> Optional[int]:
    if value is None or value <= 0:
        return None
    return int(value)


def resolve_timestamp(report: PositionReport, clock: Optional[Clock]) -> PositionReport:
    """Return *report* with an unset timestamp filled from *clock* when possible.

    Zero and negative timestamps count as unset.
    """
    if _timestamp(report.timestamp_ms) is not None:
        return report
    now = clock() if clock is not None else None
    return dataclasses.replace(report, timestamp_ms=_timestamp(now))


def _civil_from_days(days: int) -> tuple[int, int, int]:
    """Proleptic Gregorian ``(year, month, day)`` for days since 1970-01-01."""
    z = days + 719468
    era = z // 146097
    doe = z - era * 146097
    yoe = (doe - doe // 1460 + doe // 36524 - doe // 146096) // 365
    doy = doe - (365 * yoe + yoe // 4 - yoe // 100)
    mp = (5 * doy + 2) // 153
    day = doy - (153 * mp + 2) // 5 + 1
    month = mp + 3 if mp < 10 else mp - 9
    year = yoe + era * 400 + (1 if month <= 2 else 0)
    return year, month, day


def format_iso8601(epoch_ms: int) -> str:
    """``YYYY-MM-DDTHH:MM:SS.mmmZ`` for *epoch_ms* in UTC.

    Pure integer arithmetic, so any unsigned 64-bit value formats; years
    past 9999 simply get more digits.
    """
    days, ms_of_day = divmod(epoch_ms, MS_PER_DAY)
    year, month, day = _civil_from_days(days)
    seconds, ms = divmod(ms_of_day, 1000)
    hour, rem = divmod(seconds, 3600)
    minute, second = divmod(rem, 60)
    return (
        f"{year:04d}-{month:02d}-{day:02d}"
        f"T{hour:02d}:{minute:02d}:{second:02d}.{ms:03d}Z"
    )


def kmh_to_knots(speed_kmh: float, round_down: bool = False) -> int:
    """Convert km/h to whole knots, floored or rounded half away from zero."""
    knots = speed_kmh / KMH_PER_KNOT
    if round_down:
        return math.floor(knots)
    return int(math.copysign(math.floor(abs(knots) + 0.5), knots))


# ── presence rules ──────────────────────────────────────────────────


def _number(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return value


def _text(value: Optional[str]) -> Optional[str]:
    return value or None


def _battery(report: PositionReport) -> Optional[int]:
    if report.battery_percent is None or report.battery_percent < 0:
        return None
    return int(report.battery_percent)


# ── formatters ──────────────────────────────────────────────────────


def _fixed(places: int) -> Callable[[float], str]:
    def fmt(value: float) -> str:
        return f"{value:.{places}f}"

    return fmt


def _fixed_json(places: int) -> Callable[[float], orjson.Fragment]:
    fmt = _fixed(places)

    def to_json(value: float) -> orjson.Fragment:
        return orjson.Fragment(fmt(value))

    return to_json


def _bool_text(value: bool) -> str:
    return "true" if value else "false"


def _identity(value: Any) -> Any:
    return value


def _always(value: Any) -> bool:
    return True


@dataclass(frozen=True)
class Field:
    """One OsmAnd parameter.

    Parameters
    ----------
    key:
        Wire name of the parameter.
    extract:
        ``(report, settings) -> value``; ``None`` means the field is absent.
    to_text:
        Renders the value for a query string or form body (before
        percent-encoding).
    to_json:
        Renders the value for the JSON body.
    free_text:
        Value is caller-supplied text and must be percent-encoded.
    in_json:
        Extra predicate deciding whether a present value is written to JSON.
    """

    key: str
    extract: Callable[[PositionReport, ClientSettings], Any]
    to_text: Callable[[Any], str] = str
    to_json: Callable[[Any], Any] = _identity
    free_text: bool = False
    in_json: Callable[[Any], bool] = _always


def _number_field(key: str, attr: str, places: int) -> Field:
    return Field(
        key=key,
        extract=lambda r, s: _number(getattr(r, attr)),
        to_text=_fixed(places),
        to_json=_fixed_json(places),
    )


def _text_field(key: str, attr: str) -> Field:
    return Field(
        key=key,
        extract=lambda r, s: _text(getattr(r, attr)),
        free_text=True,
    )


def _speed(report: PositionReport, settings: ClientSettings) -> Optional[int]:
    speed = _number(report.speed_kmh)
    if speed is None:
        return None
    return kmh_to_knots(speed, round_down=settings.speed_round_down)


def _charge(report: PositionReport, settings: ClientSettings) -> Optional[bool]:
    if _battery(report) is None:
        return None
    return bool(report.charging)


FIELDS: tuple[Field, ...] = (
    _number_field("lat", "latitude", 7),
    _number_field("lon", "longitude", 7),
    _number_field("altitude", "altitude_meters", 1),
    _number_field("hdop", "hdop", 2),
    Field(key="speed", extract=_speed),
    Field(
        key="valid",
        extract=lambda r, s: None if r.valid is None else bool(r.valid),
        to_text=_bool_text,
    ),
    Field(
        key="timestamp",
        extract=lambda r, s: _timestamp(r.timestamp_ms),
        to_json=format_iso8601,
    ),
    _number_field("accuracy", "accuracy_meters", 1),
    _number_field("heading", "heading_deg", 1),
    Field(key="batt", extract=lambda r, s: _battery(r)),
    # JSON only carries charge when true; query/form always pair it with batt.
    Field(key="charge", extract=_charge, to_text=_bool_text, in_json=bool),
    _text_field("driverUniqueId", "driver_unique_id"),
    _text_field("cell", "cell"),
    _text_field("wifi", "wifi"),
    _text_field("event", "event_name"),
    _text_field("activity", "activity_type"),
    _number_field("odometer", "odometer", 1),
)


def present_fields(
    report: PositionReport,
    settings: ClientSettings,
) -> list[tuple[Field, Any]]:
    """Return ``(field, value)`` for every field present in *report*, in table order.

    The timestamp must already be resolved (see :func:`resolve_timestamp`).
    """
    selected = []
    for f in FIELDS:
        value = f.extract(report, settings)
        if value is not None:
            selected.append((f, value))
    return selected
