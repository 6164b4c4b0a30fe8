import pytest

from ai_scalper.execution_engine import ExecutionEngine, calculate_position_size
from ai_scalper.models import Quote, RiskSettings
from ai_scalper.rate_limiter import ApiError, AuthFailure
from conftest import make_entry


def test_position_size_example():
    qty, stop_distance = calculate_position_size(10_000, 1.0, 0.5)
    assert qty == 100
    assert stop_distance == pytest.approx(1.0)


def test_position_size_floors():
    assert calculate_position_size(10_000, 1.0, 0.7)[0] == 71


@pytest.mark.parametrize("equity,atr", [(10_000, 0.0), (0, 0.5), (10, 500.0)])
def test_position_size_zero_cases(equity, atr):
    assert calculate_position_size(equity, 1.0, atr)[0] == 0


def test_execute_trade_places_bracket_order(broker, notifier, events):
    broker.quotes["AAPL"] = Quote(symbol="AAPL", ask_price=50.0, bid_price=49.9)
    engine = ExecutionEngine(broker, notifier)

    order = engine.execute_trade(make_entry("AAPL", atr=0.5), 10_000, RiskSettings())

    assert broker.submitted == [order]
    assert order.qty == 100
    assert order.stop_price == pytest.approx(49.0)
    assert order.take_profit_price == pytest.approx(51.5)
    assert order.limit_price == pytest.approx(49.92)
    assert ("toast", {'message': "Order placed for AAPL", 'severity': "success"}) in events


def test_execute_trade_skips_invalid_quote(broker, notifier, events):
    broker.quotes["AAPL"] = Quote(symbol="AAPL", ask_price=None, bid_price=49.9)
    engine = ExecutionEngine(broker, notifier)

    assert engine.execute_trade(make_entry("AAPL"), 10_000, RiskSettings()) is None
    assert broker.submitted == []
    errors = [p['message'] for e, p in events if e == "log" and p['severity'] == "error"]
    assert errors == ["Could not execute trade for AAPL: Invalid quote received from API."]


def test_execute_trade_skips_zero_size(broker, notifier):
    engine = ExecutionEngine(broker, notifier)
    assert engine.execute_trade(make_entry("AAPL", atr=0.0), 10_000, RiskSettings()) is None
    assert broker.submitted == []


def test_execute_trade_logs_rejected_order(broker, notifier, events):
    broker.submit_errors["AAPL"] = ApiError(403, "insufficient buying power")
    engine = ExecutionEngine(broker, notifier)

    assert engine.execute_trade(make_entry("AAPL"), 10_000, RiskSettings()) is None
    assert ("toast", {'message': "Order for AAPL failed", 'severity': "error"}) in events


def test_execute_trade_propagates_auth_failure(broker, notifier):
    broker.quote_errors["AAPL"] = AuthFailure()
    engine = ExecutionEngine(broker, notifier)

    with pytest.raises(AuthFailure):
        engine.execute_trade(make_entry("AAPL"), 10_000, RiskSettings())


def test_execute_trade_contains_malformed_quote(broker, notifier, events):
    broker.quote_errors["AAPL"] = ValueError("could not convert string to float: 'n/a'")
    engine = ExecutionEngine(broker, notifier)

    assert engine.execute_trade(make_entry("AAPL"), 10_000, RiskSettings()) is None
    assert broker.submitted == []
    errors = [p['message'] for e, p in events if e == "log" and p['severity'] == "error"]
    assert errors == ["Could not execute trade for AAPL: could not convert string to float: 'n/a'"]


def test_execute_trade_contains_unexpected_submit_error(broker, notifier, events):
    broker.submit_errors["AAPL"] = KeyError('id')
    engine = ExecutionEngine(broker, notifier)

    assert engine.execute_trade(make_entry("AAPL"), 10_000, RiskSettings()) is None
    assert ("toast", {'message': "Order for AAPL failed", 'severity': "error"}) in events
