"""
Data Ingestion Service

CONTRACT:
    Input:  HistoricalRequest
    Output: HistoricalBars

RESPONSIBILITIES:
    - Resolve user tickers to canonical provider symbols
    - Fetch intraday / EOD bars from the EODHD API
    - Normalize loosely-typed records into canonical bars
    - Roll fine bars up into timeframes the provider does not serve
    - Gate real-time quotes against the last bar

NO INDICATOR MATH - Pure data fetching and transformation.
"""

from marketcore.services.data_ingestion.interface import HistoricalDataServiceInterface
from marketcore.services.data_ingestion.service import (
    HistoricalDataService,
    get_historical_data_service,
    lookback_window,
)
from marketcore.services.data_ingestion.eodhd_adapter import EODHDClient, get_eodhd_client
from marketcore.services.data_ingestion.normalization import (
    bucket_start,
    merge_candle,
    merge_tick,
    normalize_bars,
    rollup,
)
from marketcore.services.data_ingestion.quotes import (
    extract_realtime_price,
    is_quote_aligned,
    select_current_price,
)
from marketcore.services.data_ingestion.symbols import SymbolResolver, normalize_symbol

__all__ = [
    "HistoricalDataServiceInterface",
    "HistoricalDataService",
    "get_historical_data_service",
    "lookback_window",
    "EODHDClient",
    "get_eodhd_client",
    "bucket_start",
    "merge_candle",
    "merge_tick",
    "normalize_bars",
    "rollup",
    "extract_realtime_price",
    "is_quote_aligned",
    "select_current_price",
    "SymbolResolver",
    "normalize_symbol",
]
