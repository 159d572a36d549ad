"""Tests for the EODHD REST client using a fake aiohttp session."""
import aiohttp
import pytest

from marketcore.services.base import UpstreamUnavailableError, ValidationError
from marketcore.services.data_ingestion.eodhd_adapter import EODHDClient


class FakeResponse:
    def __init__(self, status=200, payload=None, text="", bad_json=False):
        self.status = status
        self._payload = payload
        self._text = text
        self._bad_json = bad_json

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        if self._bad_json:
            raise ValueError("Expecting value")
        return self._payload

    async def text(self):
        return self._text


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse()
        self.error = error
        self.closed = False
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        if self.error is not None:
            raise self.error
        return self.response

    async def close(self):
        self.closed = True


def make_client(session, token="demo"):
    return EODHDClient(
        api_token=token,
        base_url="https://eodhd.test/api/",
        ws_url="wss://ws.eodhd.test/ws",
        session=session,
    )


class TestRequests:
    async def test_intraday_request_shape(self):
        session = FakeSession(FakeResponse(payload=[{"timestamp": 1, "close": 1}]))
        rows = await make_client(session).get_intraday("XAUUSD.FOREX", "5m", 100, 200)
        assert rows == [{"timestamp": 1, "close": 1}]
        url, params = session.calls[0]
        assert url == "https://eodhd.test/api/intraday/XAUUSD.FOREX"
        assert params == {"interval": "5m", "from": 100, "to": 200, "api_token": "demo", "fmt": "json"}

    async def test_non_list_history_is_empty(self):
        session = FakeSession(FakeResponse(payload={"error": "not found"}))
        assert await make_client(session).get_eod("AAPL.US", "d", "2024-01-01", "2024-02-01") == []

    async def test_technical_unwraps_envelope(self):
        session = FakeSession(FakeResponse(payload={"technical": [{"date": "2024-01-01", "rsi": 55}]}))
        rows = await make_client(session).get_technical("AAPL.US", "rsi", "2024-01-01", "2024-02-01", period=14)
        assert rows == [{"date": "2024-01-01", "rsi": 55}]
        _, params = session.calls[0]
        assert params["function"] == "rsi"
        assert params["order"] == "a"
        assert params["period"] == 14

    async def test_real_time_requires_object(self):
        session = FakeSession(FakeResponse(payload=[]))
        assert await make_client(session).get_real_time("EURUSD.FOREX") is None

    async def test_search_parsing(self):
        payload = [
            {"Code": "AAPL", "Exchange": "US", "isPrimary": True, "Name": "Apple Inc", "Type": "Common Stock"},
            {"Exchange": "LSE"},
            "garbage",
        ]
        session = FakeSession(FakeResponse(payload=payload))
        matches = await make_client(session).search("AAPL", asset_type="stock")
        assert len(matches) == 1
        assert matches[0].code == "AAPL"
        assert matches[0].is_primary
        _, params = session.calls[0]
        assert "exchange" not in params
        assert params["type"] == "stock"


class TestFailures:
    async def test_non_200_is_upstream_error(self):
        session = FakeSession(FakeResponse(status=404, text="Ticker Not Found"))
        with pytest.raises(UpstreamUnavailableError) as exc:
            await make_client(session).get_intraday("NOPE", "1h", 0, 1)
        assert exc.value.details["status"] == 404

    async def test_invalid_json(self):
        session = FakeSession(FakeResponse(bad_json=True))
        with pytest.raises(UpstreamUnavailableError):
            await make_client(session).get_real_time("EURUSD.FOREX")

    async def test_transport_error(self):
        session = FakeSession(error=aiohttp.ClientConnectionError("refused"))
        with pytest.raises(UpstreamUnavailableError):
            await make_client(session).get_real_time("EURUSD.FOREX")

    async def test_missing_token(self):
        session = FakeSession()
        with pytest.raises(ValidationError):
            await make_client(session, token="").get_real_time("EURUSD.FOREX")
        assert session.calls == []

    async def test_bad_eod_period(self):
        with pytest.raises(ValidationError):
            await make_client(FakeSession()).get_eod("AAPL.US", "h", "2024-01-01", "2024-02-01")


async def test_injected_session_is_not_closed():
    session = FakeSession()
    await make_client(session).close()
    assert not session.closed
