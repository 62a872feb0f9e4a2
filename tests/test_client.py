"""Tests for the HTTP transport (OsmAndClient)."""

import asyncio
import logging
from unittest.mock import patch

import aiohttp
import pytest

from osmand_client.client import OsmAndClient
from osmand_client.models import ClientSettings, PositionReport, SendResult


SETTINGS = ClientSettings(device_id="car 1", host="http://h", port=5055, base_path="/x")
REPORT = PositionReport(latitude=45.1234567, longitude=7.5, battery_percent=80)


def _fixed_clock():
    return 1700000000000


class _FakeResponse:
    def __init__(self, status: int) -> None:
        self.status = status

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class _FakeSession:
    """Records requests and answers with a fixed status or raises *exc*."""

    def __init__(self, status: int = 200, exc: Exception | None = None) -> None:
        self.status = status
        self.exc = exc
        self.calls: list[dict] = []
        self.closed = False

    def request(self, method, url, data=None, headers=None, timeout=None):
        self.calls.append(
            {"method": method, "url": url, "data": data, "headers": headers, "timeout": timeout}
        )
        if self.exc is not None:
            raise self.exc
        return _FakeResponse(self.status)

    async def close(self) -> None:
        self.closed = True


def _client(session: _FakeSession, settings: ClientSettings = SETTINGS) -> OsmAndClient:
    return OsmAndClient(settings, session=session, clock=_fixed_clock)


class TestSendTargets:
    """Each sender issues the right request."""

    def test_send_osmand_get(self) -> None:
        session = _FakeSession(200)
        result = asyncio.run(_client(session).send_osmand(REPORT))

        assert result == SendResult(True, 200)
        call = session.calls[0]
        assert call["method"] == "GET"
        assert call["url"] == (
            "http://h:5055/x/?id=car%201&lat=45.1234567&lon=7.5000000"
            "&timestamp=1700000000000&batt=80&charge=false"
        )
        assert call["data"] is None
        assert call["headers"] is None

    def test_send_form_post(self) -> None:
        session = _FakeSession(200)
        result = asyncio.run(_client(session).send_form(REPORT))

        assert result.ok is True
        call = session.calls[0]
        assert call["method"] == "POST"
        assert call["url"] == "http://h:5055/x/"
        assert call["headers"] == {"Content-Type": "application/x-www-form-urlencoded"}
        assert call["data"] == (
            b"id=car%201&lat=45.1234567&lon=7.5000000"
            b"&timestamp=1700000000000&batt=80&charge=false"
        )

    def test_send_json_post(self) -> None:
        session = _FakeSession(200)
        result = asyncio.run(_client(session).send_json(REPORT))

        assert result.ok is True
        call = session.calls[0]
        assert call["method"] == "POST"
        assert call["url"] == "http://h:5055/x/"
        assert call["headers"] == {"Content-Type": "application/json"}
        assert call["data"] == (
            b'{"id":"car 1","lat":45.1234567,"lon":7.5000000,'
            b'"timestamp":"2023-11-14T22:13:20.000Z","batt":80}'
        )

    def test_timeout_applied(self) -> None:
        session = _FakeSession(200)
        settings = ClientSettings(device_id="d", host="http://h", timeout_ms=1500)
        asyncio.run(_client(session, settings).send_osmand(REPORT))
        assert session.calls[0]["timeout"].total == 1.5

    @pytest.mark.parametrize("fmt, method", [("query", "GET"), ("form", "POST"), ("json", "POST")])
    def test_send_dispatch(self, fmt: str, method: str) -> None:
        session = _FakeSession(200)
        asyncio.run(_client(session).send(REPORT, fmt))
        assert session.calls[0]["method"] == method

    def test_send_unknown_format(self) -> None:
        with pytest.raises(ValueError):
            asyncio.run(_client(_FakeSession()).send(REPORT, "xml"))


class TestFailures:
    """Failures come back as values and are never retried."""

    @pytest.mark.parametrize(
        "settings",
        [
            ClientSettings(device_id="", host="http://h"),
            ClientSettings(device_id="d", host=""),
        ],
    )
    def test_missing_configuration_skips_network(self, settings: ClientSettings) -> None:
        session = _FakeSession(200)
        client = _client(session, settings)
        for send in (client.send_osmand, client.send_form, client.send_json):
            assert asyncio.run(send(REPORT)) == SendResult(False, 0)
        assert session.calls == []

    def test_non_200_is_failure(self) -> None:
        session = _FakeSession(404)
        assert asyncio.run(_client(session).send_osmand(REPORT)) == SendResult(False, 404)
        assert len(session.calls) == 1

    def test_201_is_not_success(self) -> None:
        session = _FakeSession(201)
        assert asyncio.run(_client(session).send_json(REPORT)) == SendResult(False, 201)

    def test_connection_error(self) -> None:
        session = _FakeSession(exc=aiohttp.ClientConnectionError("refused"))
        assert asyncio.run(_client(session).send_form(REPORT)) == SendResult(False, 0)
        assert len(session.calls) == 1

    def test_timeout(self) -> None:
        session = _FakeSession(exc=asyncio.TimeoutError())
        assert asyncio.run(_client(session).send_json(REPORT)) == SendResult(False, 0)
        assert len(session.calls) == 1


class TestSessionLifecycle:
    """Session ownership."""

    def test_shared_session_left_open(self) -> None:
        session = _FakeSession(200)
        asyncio.run(_client(session).send_osmand(REPORT))
        assert session.closed is False

    def test_own_session_closed(self) -> None:
        session = _FakeSession(200)
        with patch("osmand_client.client.aiohttp.ClientSession", return_value=session):
            client = OsmAndClient(SETTINGS, clock=_fixed_clock)
            assert asyncio.run(client.send_osmand(REPORT)).ok is True
        assert session.closed is True

    def test_own_session_closed_on_error(self) -> None:
        session = _FakeSession(exc=aiohttp.ClientConnectionError("refused"))
        with patch("osmand_client.client.aiohttp.ClientSession", return_value=session):
            client = OsmAndClient(SETTINGS, clock=_fixed_clock)
            assert asyncio.run(client.send_osmand(REPORT)).ok is False
        assert session.closed is True


def test_debug_logs_payload(caplog: pytest.LogCaptureFixture) -> None:
    """With ``debug`` set the URL and body are logged."""
    settings = ClientSettings(device_id="d", host="http://h", debug=True)
    with caplog.at_level(logging.INFO, logger="osmand_client.client"):
        asyncio.run(_client(_FakeSession(200), settings).send_json(REPORT))
    messages = [r.getMessage() for r in caplog.records]
    assert "POST http://h:5055/" in messages
    assert any(m.startswith('Body: {"id":"d"') for m in messages)
    assert "POST 200" in messages
