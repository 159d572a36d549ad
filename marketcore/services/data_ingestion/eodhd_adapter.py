"""
EODHD API Data Adapter

Thin aiohttp wrapper around the EOD Historical Data REST and WebSocket APIs.
Returns raw JSON payloads; normalization happens downstream.

API Documentation: https://eodhd.com/financial-apis/
"""

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from marketcore.core.config import settings
from marketcore.schemas.market import SymbolMatch
from marketcore.services.base import UpstreamUnavailableError, ValidationError

logger = logging.getLogger(__name__)

SERVICE_NAME = "EODHDClient"


class EODHDClient:
    """
    EODHD API client.

    A session may be injected (tests, shared connection pools); otherwise one
    is created lazily and owned by the client.
    """

    def __init__(
        self,
        api_token: Optional[str] = None,
        base_url: Optional[str] = None,
        ws_url: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_token = api_token if api_token is not None else settings.eodhd_api_token
        self.base_url = (base_url or settings.eodhd_base_url).rstrip("/")
        self.ws_url = (ws_url or settings.eodhd_ws_url).rstrip("/")
        self._session = session
        self._owns_session = session is None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure we have an active HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "User-Agent": settings.user_agent,
                    "Accept": "application/json",
                }
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    def _require_token(self) -> str:
        if not self.api_token:
            raise ValidationError(SERVICE_NAME, "EODHD API token is not configured")
        return self.api_token

    async def _get_json(self, path: str, params: dict, timeout: float) -> Any:
        """GET a JSON payload, mapping every transport failure to UpstreamUnavailableError."""
        params = {**params, "api_token": self._require_token(), "fmt": "json"}
        url = f"{self.base_url}{path}"
        session = await self._ensure_session()

        try:
            async with session.get(
                url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise UpstreamUnavailableError(
                        SERVICE_NAME,
                        f"HTTP {resp.status} from {path}",
                        {"status": resp.status, "body": body[:200]},
                    )
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise UpstreamUnavailableError(
                        SERVICE_NAME, f"Invalid JSON from {path}: {e}"
                    ) from e

        except asyncio.TimeoutError as e:
            raise UpstreamUnavailableError(
                SERVICE_NAME, f"Timeout after {timeout}s on {path}"
            ) from e
        except aiohttp.ClientError as e:
            raise UpstreamUnavailableError(SERVICE_NAME, f"Request to {path} failed: {e}") from e

    @staticmethod
    def _as_list(payload: Any) -> list:
        return payload if isinstance(payload, list) else []

    # ============ Historical ============

    async def get_intraday(
        self, symbol: str, interval: str, from_ts: int, to_ts: int
    ) -> list[dict]:
        """Intraday bars (interval 1m, 5m or 1h) for a unix-seconds window."""
        payload = await self._get_json(
            f"/intraday/{quote(symbol, safe='')}",
            {"interval": interval, "from": int(from_ts), "to": int(to_ts)},
            settings.historical_timeout,
        )
        return self._as_list(payload)

    async def get_eod(
        self, symbol: str, period: str, from_date: str, to_date: str
    ) -> list[dict]:
        """End-of-day bars; period is d, w or m."""
        if period not in ("d", "w", "m"):
            raise ValidationError(SERVICE_NAME, f"Invalid EOD period: {period!r}")
        payload = await self._get_json(
            f"/eod/{quote(symbol, safe='')}",
            {"from": from_date, "to": to_date, "period": period},
            settings.historical_timeout,
        )
        return self._as_list(payload)

    # ============ Quotes / Indicators / Search ============

    async def get_real_time(self, symbol: str) -> Optional[dict]:
        """Snapshot quote payload, or None when the provider returns nothing usable."""
        payload = await self._get_json(
            f"/real-time/{quote(symbol, safe='')}",
            {},
            settings.quote_timeout,
        )
        return payload if isinstance(payload, dict) else None

    async def get_technical(
        self,
        symbol: str,
        function: str,
        from_date: str,
        to_date: str,
        **params: Any,
    ) -> Any:
        """Pre-computed indicator series (rsi, sma, ema, macd)."""
        payload = await self._get_json(
            f"/technical/{quote(symbol, safe='')}",
            {"function": function, "from": from_date, "to": to_date, "order": "a", **params},
            settings.indicator_timeout,
        )
        if isinstance(payload, dict) and isinstance(payload.get("technical"), list):
            return payload["technical"]
        return payload

    async def search(
        self,
        query: str,
        asset_type: str = "all",
        exchange: str = "",
        limit: int = 5,
    ) -> list[SymbolMatch]:
        """Search the provider's symbol directory."""
        params: dict[str, Any] = {"limit": limit, "type": asset_type}
        if exchange:
            params["exchange"] = exchange
        payload = await self._get_json(
            f"/search/{quote(query, safe='')}",
            params,
            settings.search_timeout,
        )

        matches = []
        for row in self._as_list(payload):
            if not isinstance(row, dict) or not row.get("Code"):
                continue
            matches.append(
                SymbolMatch(
                    code=str(row.get("Code")),
                    exchange=str(row.get("Exchange") or ""),
                    is_primary=bool(row.get("isPrimary")),
                    name=row.get("Name"),
                    asset_type=row.get("Type"),
                )
            )
        return matches

    # ============ WebSocket Streaming ============

    async def connect_stream(self, feed: str) -> aiohttp.ClientWebSocketResponse:
        """Open a WebSocket on one of the real-time feeds (us, forex, crypto)."""
        token = self._require_token()
        session = await self._ensure_session()
        url = f"{self.ws_url}/{feed}"
        try:
            ws = await asyncio.wait_for(
                session.ws_connect(url, params={"api_token": token}, heartbeat=30.0),
                timeout=settings.quote_timeout,
            )
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            raise UpstreamUnavailableError(SERVICE_NAME, f"WebSocket connect failed: {e}") from e
        logger.info(f"EODHD WebSocket connected ({feed})")
        return ws


# Singleton client
_eodhd_client: Optional[EODHDClient] = None


def get_eodhd_client() -> EODHDClient:
    """Get or create EODHD client singleton."""
    global _eodhd_client
    if _eodhd_client is None:
        _eodhd_client = EODHDClient()
    return _eodhd_client
