from datetime import datetime, timedelta

import pytest
import pytz

from ai_scalper.models import (
    Bar,
    Decision,
    IndicatorSet,
    MACDResult,
    Position,
    Quote,
    Recommendation,
    WatchlistEntry,
)
from ai_scalper.notifier import Notifier


def make_indicators(symbol="AAPL", price=100.0, rsi_1m=40.0, rsi_5m=55.0, atr=0.5, histogram=0.1):
    return IndicatorSet(
        symbol=symbol,
        current_price=price,
        rsi_1m=rsi_1m,
        rsi_5m=rsi_5m,
        atr=atr,
        macd=MACDResult(macd=histogram + 0.2, signal=0.2, histogram=histogram),
    )


def make_entry(symbol="AAPL", confidence=8, decision=Decision.BUY, **indicator_kwargs):
    return WatchlistEntry(
        recommendation=Recommendation(
            ticker=symbol, decision=decision, confidence=confidence, reasoning="test"
        ),
        indicators=make_indicators(symbol, **indicator_kwargs),
    )


def make_position(symbol="AAPL", qty=10.0, price=100.0):
    return Position(
        symbol=symbol,
        qty=qty,
        avg_entry_price=price,
        current_price=price,
        unrealized_pl=0.0,
        unrealized_plpc=0.0,
    )


def make_bars(closes, symbol="AAPL", spread=0.5, start=None):
    start = start or datetime(2024, 3, 4, 14, 30, tzinfo=pytz.utc)
    return [
        Bar(
            symbol=symbol,
            timestamp=start + timedelta(minutes=i),
            open=close,
            high=close + spread,
            low=close - spread,
            close=close,
            volume=1000,
        )
        for i, close in enumerate(closes)
    ]


class FakeBroker:
    """In-memory stand-in for AlpacaClient."""

    def __init__(self, quotes=None, equity=10_000.0, positions=None):
        self.quotes = quotes or {}
        self.equity = equity
        self.positions = positions or []
        self.submitted = []
        self.closed = []
        self.quote_errors = {}
        self.submit_errors = {}

    def get_latest_quote(self, symbol):
        if symbol in self.quote_errors:
            raise self.quote_errors[symbol]
        return self.quotes.get(symbol, Quote(symbol=symbol, ask_price=50.0, bid_price=49.9))

    def submit_bracket_order(self, order):
        if order.symbol in self.submit_errors:
            raise self.submit_errors[order.symbol]
        self.submitted.append(order)
        return {'id': f"order-{len(self.submitted)}"}

    def get_equity(self):
        return self.equity

    def get_positions(self):
        return list(self.positions)

    def close_position(self, symbol):
        self.closed.append(symbol)
        return None


@pytest.fixture
def events():
    return []


@pytest.fixture
def notifier(events):
    notifier = Notifier()
    notifier.subscribe(lambda event, payload: events.append((event, payload)))
    return notifier


@pytest.fixture
def broker():
    return FakeBroker()
