"""
Technical indicators and market calendar helpers.
"""
from datetime import datetime, time
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd
import pytz

from ai_scalper.models import Bar, MACDResult

NEW_YORK = pytz.timezone('America/New_York')
MARKET_OPEN = time(9, 30)
MARKET_CLOSE = time(16, 0)

PriceSeries = Union[Sequence[float], np.ndarray, pd.Series]


def ema(values: PriceSeries, period: int) -> pd.Series:
    """
    Calculate Exponential Moving Average (EMA).

    The first value seeds the average and each following value is blended in
    with k = 2 / (period + 1).

    Args:
        values: Input series
        period: EMA span/period

    Returns:
        EMA series
    """
    series = values if isinstance(values, pd.Series) else pd.Series(values, dtype=float)
    return series.ewm(span=period, adjust=False).mean()


def rsi(prices: PriceSeries, period: int = 14) -> float:
    """
    Calculate Wilder's Relative Strength Index (RSI) of the latest price.

    Args:
        prices: Closing prices, oldest first
        period: RSI period

    Returns:
        RSI value (0-100), 50 when there is not enough data
    """
    values = np.asarray(prices, dtype=float)
    if len(values) < period + 1:
        return 50.0

    deltas = np.diff(values)
    seed = deltas[:period]
    avg_gain = seed[seed >= 0].sum() / period
    avg_loss = -seed[seed < 0].sum() / period

    for delta in deltas[period:]:
        gain = delta if delta >= 0 else 0.0
        loss = -delta if delta < 0 else 0.0
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return float(100.0 - (100.0 / (1.0 + rs)))


def atr(bars: Sequence[Bar], period: int = 14) -> float:
    """
    Calculate Average True Range (ATR) as a simple average of true ranges.

    Args:
        bars: Bars, oldest first
        period: Period for ATR calculation

    Returns:
        ATR value, 0 when fewer than `period` bars are available
    """
    if len(bars) < period:
        return 0.0

    high = pd.Series([b.high for b in bars], dtype=float)
    low = pd.Series([b.low for b in bars], dtype=float)
    close = pd.Series([b.close for b in bars], dtype=float)
    prev_close = close.shift(1)

    true_range = pd.concat(
        [high - low, (high - prev_close).abs(), (low - prev_close).abs()],
        axis=1
    ).max(axis=1).iloc[1:]

    return float(true_range.tail(period).sum() / period)


def macd(
    prices: PriceSeries,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9
) -> MACDResult:
    """
    Calculate MACD (Moving Average Convergence Divergence) of the latest price.

    Args:
        prices: Closing prices, oldest first
        fast: Fast EMA period
        slow: Slow EMA period
        signal: Signal line period

    Returns:
        MACDResult with macd, signal and histogram (all zero on short history)
    """
    series = pd.Series(prices, dtype=float)
    if len(series) < slow:
        return MACDResult()

    # Drop the slow EMA warm-up before building the signal line
    macd_line = (ema(series, fast) - ema(series, slow)).iloc[slow - 1:].reset_index(drop=True)
    if len(macd_line) < signal:
        return MACDResult()

    signal_line = ema(macd_line, signal)
    macd_value = float(macd_line.iloc[-1])
    signal_value = float(signal_line.iloc[-1])
    return MACDResult(
        macd=macd_value,
        signal=signal_value,
        histogram=macd_value - signal_value
    )


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


def to_exchange_time(now: Optional[datetime] = None) -> datetime:
    """
    Convert a timestamp to New York time. Naive datetimes are treated as UTC.
    """
    if now is None:
        now = datetime.now(pytz.utc)
    elif now.tzinfo is None:
        now = pytz.utc.localize(now)
    return now.astimezone(NEW_YORK)


def is_market_open(now: Optional[datetime] = None) -> bool:
    """
    Check if the US regular session (09:30-16:00 ET, Mon-Fri) is open.

    Args:
        now: Timestamp to check (defaults to current time)

    Returns:
        True if market is open
    """
    est = to_exchange_time(now)
    if est.weekday() >= 5:
        return False
    return MARKET_OPEN <= est.time() < MARKET_CLOSE


def trading_date_key(now: Optional[datetime] = None) -> str:
    """
    Calendar date of the exchange (ISO format) used for daily resets.
    """
    return to_exchange_time(now).date().isoformat()
