"""Encode a position report into the three OsmAnd wire representations.

Targets::

    build_query_url   GET     http://host:5055/?id=dev&lat=..&lon=..
    build_form_body   POST    id=dev&lat=..&lon=..      (x-www-form-urlencoded)
    build_json_body   POST    {"id":"dev","lat":..}     (application/json)

All three walk :data:`osmand_client.fields.FIELDS`, so a field absent from
the report is absent from every output.  Encoding is pure: the only input
besides the arguments is the optional *clock* used to fill an unset
timestamp.

The ``*_into`` variants write into a caller-owned ``bytearray`` and never
write past its end.  They always leave a NUL terminator and return the full
encoded length, so ``required >= len(buf)`` signals truncation.
"""

from __future__ import annotations

from typing import Callable, Optional

import orjson

from osmand_client.fields import Clock, present_fields, resolve_timestamp, wall_clock_ms
from osmand_client.models import ClientSettings, PositionReport

_UNRESERVED = frozenset(
    b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"
)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"


def percent_encode(text: str) -> str:
    """Percent-encode *text* octet by octet (UTF-8), space as ``%20``."""
    out = []
    for byte in text.encode("utf-8"):
        if byte in _UNRESERVED:
            out.append(chr(byte))
        else:
            out.append(f"%{byte:02X}")
    return "".join(out)


def build_base_url(settings: ClientSettings) -> str:
    """``host[:port]/base/path/`` with exactly one trailing slash.

    >>> build_base_url(ClientSettings(host="http://h", port=5055, base_path="/x"))
    'http://h:5055/x/'
    """
    base = (settings.host or "").rstrip("/")
    if settings.port:
        base += f":{settings.port}"
    path = (settings.base_path or "").strip("/")
    if path:
        base += "/" + path
    return base + "/"


def _pairs(settings: ClientSettings, report: PositionReport, clock: Optional[Clock]) -> str:
    report = resolve_timestamp(report, clock)
    parts = [f"id={percent_encode(settings.device_id or '')}"]
    for field, value in present_fields(report, settings):
        text = field.to_text(value)
        if field.free_text:
            text = percent_encode(text)
        parts.append(f"{field.key}={text}")
    return "&".join(parts)


def build_query_url(
    settings: ClientSettings,
    report: PositionReport,
    *,
    clock: Optional[Clock] = wall_clock_ms,
) -> str:
    """Full GET URL: base URL, ``?``, then the percent-encoded pairs."""
    return f"{build_base_url(settings)}?{_pairs(settings, report, clock)}"


def build_form_body(
    settings: ClientSettings,
    report: PositionReport,
    *,
    clock: Optional[Clock] = wall_clock_ms,
) -> str:
    """``application/x-www-form-urlencoded`` body; same pairs as the query string."""
    return _pairs(settings, report, clock)


def build_json_body(
    settings: ClientSettings,
    report: PositionReport,
    *,
    clock: Optional[Clock] = wall_clock_ms,
) -> str:
    """Flat JSON object with fixed-precision numbers and escaped strings."""
    report = resolve_timestamp(report, clock)
    body: dict = {"id": settings.device_id or ""}
    for field, value in present_fields(report, settings):
        if field.in_json(value):
            body[field.key] = field.to_json(value)
    return orjson.dumps(body).decode()


# ── bounded-buffer variants ─────────────────────────────────────────


def write_bounded(encoded: str, buf: bytearray) -> int:
    """Copy UTF-8 *encoded* into *buf*, truncating and NUL-terminating.

    Returns the full encoded length in bytes (terminator excluded).
    Nothing is written when *buf* is empty.
    """
    data = encoded.encode("utf-8")
    if len(buf) == 0:
        return len(data)
    n = min(len(data), len(buf) - 1)
    buf[:n] = data[:n]
    buf[n] = 0
    return len(data)


def _bounded(build: Callable[..., str]) -> Callable[..., int]:
    def build_into(
        settings: ClientSettings,
        report: PositionReport,
        buf: bytearray,
        *,
        clock: Optional[Clock] = wall_clock_ms,
    ) -> int:
        return write_bounded(build(settings, report, clock=clock), buf)

    build_into.__name__ = f"{build.__name__}_into"
    build_into.__doc__ = f"Bounded-buffer form of :func:`{build.__name__}`."
    return build_into


build_query_url_into = _bounded(build_query_url)
build_form_body_into = _bounded(build_form_body)
build_json_body_into = _bounded(build_json_body)


def encoded_length(
    build: Callable[..., str],
    settings: ClientSettings,
    report: PositionReport,
    *,
    clock: Optional[Clock] = wall_clock_ms,
) -> int:
    """Bytes a ``*_into`` call needs, excluding the NUL terminator."""
    return len(build(settings, report, clock=clock).encode("utf-8"))
