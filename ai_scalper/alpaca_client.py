"""
Alpaca REST client with endpoint routing, auth headers and backoff.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from ai_scalper.models import Bar, BracketOrder, Position, Quote
from ai_scalper.rate_limiter import BackoffPolicy

PAPER_BASE_URL = "https://paper-api.alpaca.markets"
DATA_BASE_URL = "https://data.alpaca.markets"

# Endpoints served by the market data API rather than the trading API
DATA_ENDPOINT_PREFIXES = ("/v1beta1/", "/v2/stocks")


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


class AlpacaClient:
    """
    Thin wrapper over the Alpaca trading and market data REST APIs.

    Errors are not swallowed here: AuthFailure and ApiError propagate so
    that callers decide whether to skip a symbol, abort a cycle or stop.
    """

    def __init__(
        self,
        key_id: str,
        secret_key: str,
        base_url: str = PAPER_BASE_URL,
        data_url: str = DATA_BASE_URL,
        data_feed: str = "iex",
        timeout: float = 30.0,
        backoff: Optional[BackoffPolicy] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Initialize Alpaca client.

        Args:
            key_id: API key ID
            secret_key: API secret key
            base_url: Trading API base URL (paper or live)
            data_url: Market data API base URL
            data_feed: Data feed type ("iex" or "sip")
            timeout: HTTP timeout per attempt (seconds)
            backoff: Retry policy shared by every call
            transport: Optional httpx transport (tests)
        """
        self.key_id = key_id
        self.secret_key = secret_key
        self.base_url = base_url.rstrip('/')
        self.data_url = data_url.rstrip('/')
        self.data_feed = data_feed
        self.backoff = backoff or BackoffPolicy()
        self.http = httpx.Client(timeout=timeout, transport=transport)

        logger.info(f"Alpaca client initialized: {self.base_url}")

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(DATA_ENDPOINT_PREFIXES):
            return f"{self.data_url}{endpoint}"
        return f"{self.base_url}{endpoint}"

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None
    ) -> Any:
        url = self._url(endpoint)
        headers = {
            'APCA-API-KEY-ID': self.key_id,
            'APCA-API-SECRET-KEY': self.secret_key,
        }
        if body is not None:
            headers['Content-Type'] = 'application/json'

        def send() -> httpx.Response:
            return self.http.request(method, url, params=params, json=body, headers=headers)

        return self.backoff.execute(send, description=f"{method} {endpoint}")

    def get_most_actives(self, top: int = 10) -> List[str]:
        """
        Get the day's most active symbols.

        Args:
            top: Number of symbols

        Returns:
            List of symbols ordered as returned by the screener
        """
        data = self._request('GET', '/v1beta1/screener/stocks/most-actives', params={'top': top})
        return [item['symbol'] for item in (data or {}).get('most_actives') or []]

    def get_news(self, limit: int = 50) -> List[str]:
        """
        Get recent news headlines, newest first.

        Args:
            limit: Maximum number of headlines

        Returns:
            List of headlines
        """
        data = self._request('GET', '/v1beta1/news', params={'limit': limit, 'sort': 'desc'})
        return [item['headline'] for item in (data or {}).get('news') or [] if item.get('headline')]

    def get_bars(
        self,
        symbol: str,
        timeframe: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 1000
    ) -> List[Bar]:
        """
        Get historical bars.

        Args:
            symbol: Stock symbol
            timeframe: Timeframe ("1Min", "5Min", ...)
            start: Start of the window
            end: End of the window
            limit: Maximum number of bars

        Returns:
            List of Bar objects, oldest first
        """
        params: Dict[str, Any] = {
            'timeframe': timeframe,
            'limit': limit,
            'adjustment': 'raw',
            'feed': self.data_feed,
        }
        if start is not None:
            params['start'] = start.isoformat()
        if end is not None:
            params['end'] = end.isoformat()

        data = self._request('GET', f'/v2/stocks/{symbol}/bars', params=params)

        bars = []
        for raw in (data or {}).get('bars') or []:
            bars.append(Bar(
                symbol=symbol,
                timestamp=raw['t'],
                open=float(raw['o']),
                high=float(raw['h']),
                low=float(raw['l']),
                close=float(raw['c']),
                volume=int(raw['v']) if raw.get('v') is not None else None
            ))
        return bars

    def get_latest_quote(self, symbol: str) -> Quote:
        """Get the latest ask/bid for a symbol."""
        data = self._request('GET', f'/v2/stocks/{symbol}/quotes/latest')
        quote = (data or {}).get('quote') or {}
        return Quote(
            symbol=symbol,
            ask_price=_to_float(quote.get('ap')),
            bid_price=_to_float(quote.get('bp'))
        )

    def get_account(self) -> Dict[str, Any]:
        """Get account information."""
        return self._request('GET', '/v2/account')

    def get_equity(self) -> float:
        """Get current account equity."""
        return float(self.get_account()['equity'])

    def get_positions(self) -> List[Position]:
        """
        Get current open positions.

        Returns:
            List of Position objects
        """
        positions = []
        for pos in self._request('GET', '/v2/positions') or []:
            stop_loss = pos.get('stop_loss') or {}
            positions.append(Position(
                symbol=pos['symbol'],
                qty=float(pos['qty']),
                avg_entry_price=float(pos['avg_entry_price']),
                current_price=float(pos['current_price']),
                unrealized_pl=float(pos['unrealized_pl']),
                unrealized_plpc=float(pos['unrealized_plpc']),
                stop_price=_to_float(stop_loss.get('stop_price'))
            ))
        return positions

    def submit_bracket_order(self, order: BracketOrder) -> Dict[str, Any]:
        """
        Submit a bracket order (entry + stop loss + take profit).

        Args:
            order: Bracket order to submit

        Returns:
            Order object returned by the API
        """
        result = self._request('POST', '/v2/orders', body=order.to_payload())
        logger.info(
            f"ORDER | {order.side.value.upper()} {order.qty} {order.symbol} @ {order.limit_price:.2f} | "
            f"SL: {order.stop_price:.2f}, TP: {order.take_profit_price:.2f} | "
            f"Order ID: {(result or {}).get('id')}"
        )
        return result

    def close_position(self, symbol: str) -> Optional[Dict[str, Any]]:
        """Submit a market close for the whole position in symbol."""
        result = self._request('DELETE', f'/v2/positions/{symbol}')
        logger.info(f"Position close submitted: {symbol}")
        return result

    def get_clock(self) -> Dict[str, Any]:
        """Get market clock information."""
        return self._request('GET', '/v2/clock')

    def is_market_open(self, now: Optional[datetime] = None) -> bool:
        """
        Ask the broker whether the market is open (covers exchange holidays).

        Args:
            now: Unused; matches the scheduler's market check signature
        """
        clock = self.get_clock() or {}
        return bool(clock.get('is_open'))

    def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        self.http.close()
