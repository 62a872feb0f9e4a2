"""Encode and send GPS position reports over the OsmAnd protocol."""

from osmand_client.encoding import (
    build_base_url,
    build_form_body,
    build_form_body_into,
    build_json_body,
    build_json_body_into,
    build_query_url,
    build_query_url_into,
    encoded_length,
    percent_encode,
)
from osmand_client.models import ClientSettings, PositionReport, SendResult

__version__ = "0.1.0"

__all__ = [
    "ClientSettings",
    "PositionReport",
    "SendResult",
    "build_base_url",
    "build_form_body",
    "build_form_body_into",
    "build_json_body",
    "build_json_body_into",
    "build_query_url",
    "build_query_url_into",
    "encoded_length",
    "percent_encode",
]
