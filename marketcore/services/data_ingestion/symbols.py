"""
Symbol Normalization and Resolution

Maps user-facing tickers (XAUUSD, BTC, US30, AAPL) to the provider's
canonical codes and classifies them for precision and risk thresholds.
"""

import logging
import re
from typing import Optional

from marketcore.schemas.market import SymbolMatch
from marketcore.services.base import ServiceError, ValidationError

logger = logging.getLogger(__name__)


# Well-known aliases that the search endpoint resolves poorly
SYMBOL_ALIAS_MAP = {
    # Metals / FX
    "XAUUSD": "XAUUSD.FOREX",
    "XAGUSD": "XAGUSD.FOREX",
    "EURUSD": "EURUSD.FOREX",
    "GBPUSD": "GBPUSD.FOREX",
    "USDJPY": "USDJPY.FOREX",
    "USDCHF": "USDCHF.FOREX",
    "AUDUSD": "AUDUSD.FOREX",
    "USDCAD": "USDCAD.FOREX",
    "NZDUSD": "NZDUSD.FOREX",
    # Crypto
    "BTC": "BTC-USD.CC",
    "BTCUSD": "BTC-USD.CC",
    "ETH": "ETH-USD.CC",
    "ETHUSD": "ETH-USD.CC",
    "XRP": "XRP-USD.CC",
    "XRPUSD": "XRP-USD.CC",
    # Indices
    "US30": "DJI.INDX",
    "DJI": "DJI.INDX",
    "NAS100": "NDX.INDX",
    "NDX": "NDX.INDX",
    "SPX500": "GSPC.INDX",
    "US500": "GSPC.INDX",
    "DAX": "GDAXI.INDX",
    "GER40": "GDAXI.INDX",
    "UK100": "FTSE.INDX",
    "FTSE": "FTSE.INDX",
    "JP225": "N225.INDX",
    "NIKKEI": "N225.INDX",
    "DXY": "DXY.INDX",
    # Commodities
    "USOIL": "CL.F",
    "UKOIL": "BRN.F",
    "COFFEE": "KC.F",
}

CRYPTO_BASES = {"LTC", "ADA", "DOT", "SOL", "DOGE", "BNB", "XLM", "LINK"}

INDEX_CODES = re.compile(r"^(GSPC|NDX|DJI|GDAXI|FTSE|N225|DXY)$")

US_EXCHANGES = {
    "NYSE", "NASDAQ", "BATS", "OTCQB", "OTCQX", "PINK", "OTCMKTS", "NMFQS", "NYSE MKT", "US",
}

JPY_PAIRS = re.compile(r"(USDJPY|EURJPY|GBPJPY|AUDJPY|CADJPY|NZDJPY)$")

GOLD_CLASS = ("XAUUSD", "XAGUSD")


def has_exchange_suffix(symbol: str) -> bool:
    return "." in symbol or symbol.endswith("-USD.CC")


def normalize_symbol(raw: Optional[str]) -> Optional[str]:
    """Best-effort local mapping of a ticker to the provider's code."""
    if not raw:
        return None
    s = str(raw).strip().upper()
    if not s:
        return None
    if has_exchange_suffix(s):
        return s
    if s in SYMBOL_ALIAS_MAP:
        return SYMBOL_ALIAS_MAP[s]
    if re.fullmatch(r"[A-Z]{6}", s) and s.endswith("USD"):
        return f"{s}.FOREX"
    if s in CRYPTO_BASES:
        return f"{s}-USD.CC"
    return s


def search_hints(symbol: str) -> tuple[str, str]:
    """(asset_type, exchange) hints for the search endpoint."""
    if re.fullmatch(r"[A-Z]{6}", symbol):
        return "all", "FOREX"
    if INDEX_CODES.match(symbol):
        return "index", ""
    if symbol.endswith("-USD"):
        return "crypto", ""
    return "stock", ""


def pick_best_match(symbol: str, matches: list[SymbolMatch]) -> Optional[SymbolMatch]:
    """Exact code match first, then the primary listing, then the first row."""
    if not matches:
        return None
    for match in matches:
        if match.code.upper() == symbol:
            return match
    for match in matches:
        if match.is_primary:
            return match
    return matches[0]


def canonical_from_match(match: SymbolMatch, asset_type: str) -> Optional[str]:
    if not match.code or not match.exchange:
        return None
    exchange = match.exchange.upper()
    if asset_type == "stock" and exchange in US_EXCHANGES:
        exchange = "US"
    return f"{match.code.upper()}.{exchange}"


# =============================================================================
# CLASSIFICATION
# =============================================================================


def is_fx(symbol: str) -> bool:
    return ".FOREX" in str(symbol or "").upper()


def is_jpy_pair(symbol: str) -> bool:
    s = str(symbol or "").upper()
    return s.endswith("JPY.FOREX") or bool(JPY_PAIRS.search(s))


def is_gold_class(symbol: str) -> bool:
    s = str(symbol or "").upper()
    return any(code in s for code in GOLD_CLASS)


def price_decimals(symbol: str) -> int:
    """JPY pairs 3, other FX 5, metals / indices / crypto / stocks 2."""
    if is_gold_class(symbol):
        return 2
    if is_jpy_pair(symbol):
        return 3
    if is_fx(symbol):
        return 5
    return 2


def round_price(symbol: str, value: float) -> float:
    return round(float(value), price_decimals(symbol))


def min_risk_reward(symbol: str) -> float:
    """Minimum reward:risk a setup must clear for this symbol class."""
    if is_gold_class(symbol):
        return 2.0
    if is_fx(symbol):
        return 1.5
    return 2.0


def stream_feed(symbol: str) -> str:
    """WebSocket feed that carries this symbol."""
    s = str(symbol or "").upper()
    if s.endswith(".CC"):
        return "crypto"
    if is_fx(s):
        return "forex"
    if s.endswith(".US"):
        return "us"
    return "forex"


def stream_code(symbol: str) -> str:
    """Code used in the WebSocket subscribe message (no exchange suffix)."""
    s = str(symbol or "").upper()
    if s.endswith(".CC"):
        return s[: -len(".CC")]
    return s.split(".", 1)[0]


# =============================================================================
# RESOLVER
# =============================================================================


class SymbolResolver:
    """
    Resolves tickers to canonical codes via the provider's search endpoint.

    Any failure falls back to the local mapping. Results are memoized for
    the lifetime of the resolver, so a session sees one canonical symbol.
    """

    def __init__(self, client=None):
        self._client = client
        self._cache: dict[str, str] = {}

    @property
    def client(self):
        if self._client is None:
            from marketcore.services.data_ingestion.eodhd_adapter import get_eodhd_client
            self._client = get_eodhd_client()
        return self._client

    async def resolve(self, raw: Optional[str]) -> str:
        local = normalize_symbol(raw)
        if not local:
            raise ValidationError("SymbolResolver", "Symbol is required")

        if local in self._cache:
            return self._cache[local]

        canonical = local
        if not has_exchange_suffix(local):
            remote = await self._search(local)
            if remote:
                canonical = remote

        self._cache[local] = canonical
        return canonical

    async def _search(self, symbol: str) -> Optional[str]:
        asset_type, exchange = search_hints(symbol)
        try:
            matches = await self.client.search(symbol, asset_type=asset_type, exchange=exchange)
        except ServiceError as e:
            logger.warning(f"Symbol search failed for {symbol}, using local mapping: {e}")
            return None

        best = pick_best_match(symbol, matches)
        if best is None:
            logger.info(f"No search match for {symbol}, using local mapping")
            return None

        canonical = canonical_from_match(best, asset_type)
        if canonical:
            logger.info(f"Resolved {symbol} -> {canonical}")
        return canonical
