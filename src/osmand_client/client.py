"""Async HTTP transport for OsmAnd position reports.

Each send encodes the report, performs exactly one HTTP request, and
returns a :class:`~osmand_client.models.SendResult`::

    send_osmand   GET  <base>?id=..&lat=..
    send_form     POST <base>   application/x-www-form-urlencoded
    send_json     POST <base>   application/json

HTTP 200 is the only success.  Nothing is retried: a missing device id or
host short-circuits with ``SendResult(False, 0)`` before any network
activity, and connection failures or timeouts also yield status ``0``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from osmand_client.encoding import (
    FORM_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    build_base_url,
    build_form_body,
    build_json_body,
    build_query_url,
)
from osmand_client.fields import Clock, wall_clock_ms
from osmand_client.models import ClientSettings, PositionReport, SendResult

logger = logging.getLogger(__name__)


class OsmAndClient:
    """Sends position reports to a Traccar-compatible OsmAnd endpoint.

    Parameters
    ----------
    settings:
        Device id, server location, timeout and encoding preferences.
    session:
        Optional shared :class:`aiohttp.ClientSession`.  When omitted a
        session is opened and closed around every send.
    clock:
        Time source for reports without a timestamp.
    """

    def __init__(
        self,
        settings: ClientSettings,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[Clock] = wall_clock_ms,
    ) -> None:
        self._settings = settings
        self._session = session
        self._clock = clock

    async def send_osmand(self, report: PositionReport) -> SendResult:
        """Send *report* as an OsmAnd GET query string."""
        if not self._configured():
            return SendResult(False, 0)
        url = build_query_url(self._settings, report, clock=self._clock)
        return await self._request("GET", url)

    async def send_form(self, report: PositionReport) -> SendResult:
        """POST *report* as a URL-form-encoded body."""
        if not self._configured():
            return SendResult(False, 0)
        body = build_form_body(self._settings, report, clock=self._clock)
        return await self._request(
            "POST", build_base_url(self._settings), body, FORM_CONTENT_TYPE
        )

    async def send_json(self, report: PositionReport) -> SendResult:
        """POST *report* as a JSON body."""
        if not self._configured():
            return SendResult(False, 0)
        body = build_json_body(self._settings, report, clock=self._clock)
        return await self._request(
            "POST", build_base_url(self._settings), body, JSON_CONTENT_TYPE
        )

    async def send(self, report: PositionReport, fmt: str = "query") -> SendResult:
        """Dispatch to the sender for *fmt* (``query``, ``form`` or ``json``)."""
        senders = {
            "query": self.send_osmand,
            "form": self.send_form,
            "json": self.send_json,
        }
        try:
            sender = senders[fmt]
        except KeyError:
            raise ValueError(f"Unknown OsmAnd format: {fmt!r}") from None
        return await sender(report)

    # ── internal ────────────────────────────────────────────────────

    def _configured(self) -> bool:
        if not self._settings.device_id:
            logger.warning("Refusing to send: device id is not set")
            return False
        if not self._settings.host:
            logger.warning("Refusing to send: host is not set")
            return False
        return True

    async def _request(
        self,
        method: str,
        url: str,
        body: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> SendResult:
        headers = {"Content-Type": content_type} if content_type else None
        timeout = aiohttp.ClientTimeout(total=self._settings.timeout_ms / 1000.0)

        if self._settings.debug:
            logger.info("%s %s", method, url)
            if body is not None:
                logger.info("Body: %s", body)

        session = self._session
        owns_session = session is None
        if owns_session:
            session = aiohttp.ClientSession(timeout=timeout)

        try:
            async with session.request(
                method,
                url,
                data=body.encode("utf-8") if body is not None else None,
                headers=headers,
                timeout=timeout,
            ) as response:
                status = response.status
        except (asyncio.TimeoutError, TimeoutError):
            logger.warning("Timeout after %d ms sending to %s", self._settings.timeout_ms, url)
            return SendResult(False, 0)
        except aiohttp.ClientError as exc:
            logger.warning("Connection error sending to %s: %s", url, exc)
            return SendResult(False, 0)
        finally:
            if owns_session:
                await session.close()

        if self._settings.debug:
            logger.info("%s %d", method, status)
        if status != 200:
            logger.warning("Server rejected position (HTTP %d)", status)
        return SendResult(status == 200, status)
