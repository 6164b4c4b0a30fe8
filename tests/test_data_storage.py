import json
from datetime import datetime

import pytest
import pytz

from ai_scalper.data_storage import SettingsStore, StateStore, blob_to_patches, state_to_blob
from ai_scalper.models import Credentials, DailyState, PerformancePoint, Portfolio, RiskSettings
from ai_scalper.state import TradingState, apply_all


def _state():
    return TradingState(
        settings=RiskSettings(risk_per_trade=0.5, max_concurrent_scalps=3),
        portfolio=Portfolio(equity=10_300, last_equity=10_100, initial_equity=10_000),
        performance=(
            PerformancePoint(x=datetime(2024, 3, 4, 20, 0, tzinfo=pytz.utc), y=10_100),
            PerformancePoint(x=datetime(2024, 3, 5, 20, 0, tzinfo=pytz.utc), y=10_300),
        ),
        daily=DailyState(last_trade_date="2024-03-05", first_trade_made_today=True),
    )


def test_blob_uses_persisted_key_names():
    blob = state_to_blob(_state())

    assert set(blob) == {
        'performanceData', 'initialEquity', 'settings',
        'isFirstTradeMadeToday', 'lastTradeDate', 'lastUpdated',
    }
    assert blob['settings'] == {
        'riskPerTrade': 0.5, 'maxConcurrentScalps': 3,
        'limitOrderOffset': 0.05, 'aiAnalysisFreq': 30,
    }


def test_restore_takes_equity_from_last_performance_point(tmp_path):
    store = StateStore(tmp_path)
    assert store.save(_state())

    restored = apply_all(TradingState(), store.restore(TradingState()))

    assert restored.portfolio == Portfolio(equity=10_300, last_equity=10_300, initial_equity=10_000)
    assert restored.settings.max_concurrent_scalps == 3
    assert restored.daily == DailyState(last_trade_date="2024-03-05", first_trade_made_today=True)
    assert [p.y for p in restored.performance] == [10_100, 10_300]


def test_blob_without_performance_keeps_portfolio_empty():
    blob = {'settings': {'aiAnalysisFreq': 15}, 'isFirstTradeMadeToday': False}
    state = apply_all(TradingState(), blob_to_patches(blob, TradingState()))

    assert state.portfolio == Portfolio()
    assert state.settings.ai_analysis_freq == 15
    assert state.settings.risk_per_trade == 1.0


def test_missing_or_corrupt_file_restores_nothing(tmp_path):
    store = StateStore(tmp_path)
    assert store.restore(TradingState()) == []

    store.path.write_text("{not json")
    assert store.load() is None
    assert store.restore(TradingState()) == []


def test_export_import_and_clear(tmp_path):
    store = StateStore(tmp_path / "data")
    assert store.export_data(tmp_path / "out.json") is None

    store.save(_state())
    exported = store.export_data(tmp_path / "out.json")
    assert json.loads(exported.read_text())['initialEquity'] == 10_000

    assert store.clear_data() is True
    assert not store.path.exists()
    assert store.clear_data() is False

    store.import_data(exported)
    assert store.load()['lastTradeDate'] == "2024-03-05"


def test_import_rejects_invalid_json(tmp_path):
    store = StateStore(tmp_path)
    store.save(_state())
    bad = tmp_path / "bad.json"
    bad.write_text("definitely not json")

    with pytest.raises(ValueError):
        store.import_data(bad)
    assert store.load()['initialEquity'] == 10_000


def test_settings_store_remembers_user_and_settings(tmp_path):
    store = SettingsStore(tmp_path)
    user_id = store.user_id()

    assert user_id.startswith("user_")
    assert len(user_id.split("_")[2]) == 9
    assert SettingsStore(tmp_path).user_id() == user_id
    assert store.load(user_id) == (None, None)

    credentials = Credentials(alpaca_key="k", alpaca_secret="s", gemini_key="g")
    store.save(user_id, credentials, RiskSettings(limit_order_offset=0.1))

    loaded_credentials, loaded_settings = store.load(user_id)
    assert loaded_credentials == credentials
    assert loaded_settings['limitOrderOffset'] == 0.1
    assert (tmp_path / f"tradingBotSettings_{user_id}.json").exists()
