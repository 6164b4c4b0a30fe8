"""
Historical bar feed that turns raw bars into per-symbol indicator snapshots.
"""
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from loguru import logger

from ai_scalper.models import Bar, IndicatorSet
from ai_scalper.utils import atr, macd, rsi, utc_now


class InsufficientData(Exception):
    """Not enough bars to compute indicators. A normal skip, not a failure."""

    def __init__(self, symbol: str, timeframe: str, count: int, required: int):
        self.symbol = symbol
        self.timeframe = timeframe
        self.count = count
        self.required = required
        super().__init__(
            f"Insufficient {timeframe} bar data for {symbol}: {count} < {required}"
        )


class IndicatorFeed:
    """
    Fetches 1-minute and 5-minute bars and derives the IndicatorSet used by
    the watchlist builder and the entry strategy.
    """

    def __init__(
        self,
        alpaca_client,
        min_bars: int = 50,
        lookback: timedelta = timedelta(days=2),
        bar_limit: int = 1000,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize indicator feed.

        Args:
            alpaca_client: AlpacaClient instance
            min_bars: Minimum bars required on each timeframe
            lookback: Bar window ending now
            bar_limit: Maximum bars per request
            clock: Returns the current time (injected in tests)
        """
        self.client = alpaca_client
        self.min_bars = min_bars
        self.lookback = lookback
        self.bar_limit = bar_limit
        self.clock = clock

    def _fetch(self, symbol: str, timeframe: str, start: datetime, end: datetime) -> List[Bar]:
        bars = self.client.get_bars(symbol, timeframe, start=start, end=end, limit=self.bar_limit)
        if len(bars) < self.min_bars:
            raise InsufficientData(symbol, timeframe, len(bars), self.min_bars)
        return bars

    def get_indicators(self, symbol: str, now: Optional[datetime] = None) -> IndicatorSet:
        """
        Compute the indicator snapshot for a symbol.

        Args:
            symbol: Stock symbol
            now: End of the bar window (defaults to clock())

        Returns:
            IndicatorSet

        Raises:
            InsufficientData: Fewer than min_bars on either timeframe
        """
        end = now or self.clock()
        start = end - self.lookback

        bars_1m = self._fetch(symbol, '1Min', start, end)
        bars_5m = self._fetch(symbol, '5Min', start, end)

        prices_1m = [b.close for b in bars_1m]
        prices_5m = [b.close for b in bars_5m]

        indicators = IndicatorSet(
            symbol=symbol,
            current_price=prices_1m[-1],
            rsi_1m=rsi(prices_1m),
            rsi_5m=rsi(prices_5m),
            atr=atr(bars_5m),
            macd=macd(prices_5m)
        )

        logger.debug(
            f"Indicators | {symbol} | price={indicators.current_price:.2f} | "
            f"rsi1m={indicators.rsi_1m:.2f} | rsi5m={indicators.rsi_5m:.2f} | "
            f"atr={indicators.atr:.4f} | hist={indicators.macd.histogram:.4f}"
        )
        return indicators
