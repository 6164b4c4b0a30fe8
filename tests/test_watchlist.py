import pytest

from ai_scalper.data_feed import InsufficientData
from ai_scalper.models import Decision, Recommendation
from ai_scalper.rate_limiter import ApiError, AuthFailure
from ai_scalper.watchlist import WatchlistBuilder, qualifies, rank_watchlist
from conftest import make_entry, make_indicators


class FakeMarket:
    def __init__(self, movers, headlines=("Stocks open higher",)):
        self.movers = list(movers)
        self.headlines = list(headlines)

    def get_most_actives(self, top=10):
        return self.movers[:top]

    def get_news(self, limit=50):
        return self.headlines[:limit]


class FakeFeed:
    def __init__(self, failures=None):
        self.failures = failures or {}

    def get_indicators(self, symbol):
        if symbol in self.failures:
            raise self.failures[symbol]
        return make_indicators(symbol)


class FakeAI:
    def __init__(self, calls):
        self.calls = calls
        self.headlines = []

    def get_recommendation(self, headlines, indicators):
        self.headlines.append(headlines)
        call = self.calls.get(indicators.symbol)
        if call is None:
            return None
        decision, confidence = call
        return Recommendation(ticker=indicators.symbol, decision=decision, confidence=confidence)


def _builder(notifier, movers, calls, failures=None, **kwargs):
    ai = FakeAI(calls)
    builder = WatchlistBuilder(FakeMarket(movers), FakeFeed(failures), ai, notifier, **kwargs)
    return builder, ai


def test_qualifies_requires_buy_and_confidence():
    assert qualifies(make_entry(confidence=7))
    assert not qualifies(make_entry(confidence=6))
    assert not qualifies(make_entry(confidence=10, decision=Decision.HOLD))


def test_rank_is_stable_for_equal_confidence():
    entries = [make_entry("A", 8), make_entry("B", 9), make_entry("C", 8), make_entry("D", 10)]
    assert [e.ticker for e in rank_watchlist(entries)] == ["D", "B", "A", "C"]


@pytest.mark.parametrize("max_workers", [1, 4])
def test_build_keeps_qualifying_buys_ranked(notifier, max_workers):
    calls = {
        "AAPL": (Decision.BUY, 8),
        "TSLA": (Decision.HOLD, 9),
        "NVDA": (Decision.BUY, 9),
        "AMD": (Decision.BUY, 6),
        "MSFT": (Decision.BUY, 8),
    }
    builder, ai = _builder(notifier, list(calls), calls, max_workers=max_workers)

    watchlist = builder.build()

    assert [entry.ticker for entry in watchlist] == ["NVDA", "AAPL", "MSFT"]
    assert watchlist[0].indicators.symbol == "NVDA"
    assert ai.headlines[0] == "Stocks open higher"


def test_build_returns_none_when_nothing_qualifies(notifier, events):
    builder, _ = _builder(notifier, ["AAPL"], {"AAPL": (Decision.HOLD, 9)})

    assert builder.build() is None
    messages = [payload['message'] for event, payload in events if event == "log"]
    assert any("did not yield" in message for message in messages)


def test_build_returns_none_without_movers(notifier):
    builder, ai = _builder(notifier, [], {})
    assert builder.build() is None
    assert ai.headlines == []


def test_candidate_failures_are_skipped(notifier):
    calls = {"AAPL": (Decision.BUY, 8), "TSLA": (Decision.BUY, 9), "NVDA": (Decision.BUY, 7)}
    failures = {
        "TSLA": InsufficientData("TSLA", "1Min", 10, 50),
        "NVDA": ApiError(500, "boom"),
    }
    builder, _ = _builder(notifier, list(calls), calls, failures)

    watchlist = builder.build()

    assert [entry.ticker for entry in watchlist] == ["AAPL"]


def test_auth_failure_aborts_the_build(notifier):
    builder, _ = _builder(notifier, ["AAPL"], {}, {"AAPL": AuthFailure()})

    with pytest.raises(AuthFailure):
        builder.build()


def test_movers_failure_propagates(notifier):
    class BrokenMarket(FakeMarket):
        def get_most_actives(self, top=10):
            raise ApiError(503, "unavailable")

    builder = WatchlistBuilder(BrokenMarket([]), FakeFeed(), FakeAI({}), notifier)

    with pytest.raises(ApiError):
        builder.build()
