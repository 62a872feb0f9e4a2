"""Dataclass models for OsmAnd position reports and client settings.

Absent values are ``None``.  The legacy sentinel values used by embedded
firmware (``NaN`` for floats, ``-1`` for battery, ``0`` for timestamp) are
also treated as absent so reports ported from that convention encode the
same way.
"""

from dataclasses import dataclass
from typing import Optional

DEFAULT_PORT = 5055
DEFAULT_TIMEOUT_MS = 4000


@dataclass(frozen=True)
class PositionReport:
    """One observed GPS/telemetry sample."""

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude_meters: Optional[float] = None
    speed_kmh: Optional[float] = None
    heading_deg: Optional[float] = None
    hdop: Optional[float] = None
    accuracy_meters: Optional[float] = None
    timestamp_ms: Optional[int] = None
    battery_percent: Optional[int] = None
    charging: bool = False
    valid: Optional[bool] = None
    driver_unique_id: Optional[str] = None
    cell: Optional[str] = None      # "mcc,mnc,lac,cellId[,signalStrength]"
    wifi: Optional[str] = None      # "mac,-70", several joined with ';'
    event_name: Optional[str] = None
    activity_type: Optional[str] = None
    odometer: Optional[float] = None  # meters


@dataclass(frozen=True)
class ClientSettings:
    """Connection-independent client configuration.

    ``host`` includes the scheme, e.g. ``"http://demo.traccar.org"``.
    ``port`` of ``None`` or ``0`` leaves the port out of the URL.
    """

    device_id: str = ""
    host: str = ""
    port: Optional[int] = DEFAULT_PORT
    base_path: str = "/"
    debug: bool = False
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    speed_round_down: bool = False


@dataclass(frozen=True)
class SendResult:
    """Outcome of a send: ``ok`` only for HTTP 200, ``status`` 0 when no response."""

    ok: bool = False
    status: int = 0
