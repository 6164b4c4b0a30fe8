import json

import pytest
from loguru import logger

from ai_scalper.main import TradingBot, build_parser, main


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "storage:\n"
        f"  data_dir: \"{tmp_path / 'data'}\"\n"
        f"  logs_dir: \"{tmp_path / 'logs'}\"\n"
        "risk:\n"
        "  max_concurrent_scalps: 3\n"
    )
    yield path
    logger.remove()


def test_parser_commands():
    parser = build_parser()
    assert parser.parse_args(['close', 'aapl']).symbol == "aapl"
    assert parser.parse_args(['export']).destination is None
    assert parser.parse_args(['--config', 'x.yaml', 'clear']).config == "x.yaml"


def test_bot_refuses_to_start_without_credentials(config_path):
    bot = TradingBot(str(config_path), setup_logs=False)

    assert bot.start(block=False) is False
    assert bot.scheduler is None
    assert bot.shared_state.snapshot().settings.max_concurrent_scalps == 3


def test_bot_restores_persisted_state(config_path, tmp_path):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / "trading_bot_data.json").write_text(json.dumps({
        'performanceData': [{'x': '2024-03-05T20:00:00+00:00', 'y': 10_500}],
        'initialEquity': 10_000,
        'settings': {'riskPerTrade': 2, 'maxConcurrentScalps': 8},
        'isFirstTradeMadeToday': True,
        'lastTradeDate': '2024-03-05',
    }))

    state = TradingBot(str(config_path), setup_logs=False).shared_state.snapshot()

    assert state.portfolio.equity == 10_500
    assert state.settings.risk_per_trade == 2
    # explicit YAML value wins over the persisted one
    assert state.settings.max_concurrent_scalps == 3
    assert state.daily.first_trade_made_today is True


def test_export_import_clear_commands(config_path, tmp_path):
    source = tmp_path / "backup.json"
    source.write_text(json.dumps({'initialEquity': 1, 'lastTradeDate': '2024-03-05'}))
    data_file = tmp_path / "data" / "trading_bot_data.json"

    main(['--config', str(config_path), 'import', str(source)])
    assert json.loads(data_file.read_text())['lastTradeDate'] == "2024-03-05"

    main(['--config', str(config_path), 'export', str(tmp_path / "out.json")])
    assert (tmp_path / "out.json").exists()

    main(['--config', str(config_path), 'clear'])
    assert not data_file.exists()


def test_run_without_credentials_exits_with_error(config_path):
    with pytest.raises(SystemExit) as exc_info:
        main(['--config', str(config_path), 'run'])
    assert exc_info.value.code == 1


def test_components_use_broker_clock_for_market_hours(config_path):
    with open(config_path, "a") as f:
        f.write(
            "alpaca:\n"
            "  key_id: key\n"
            "  secret_key: secret\n"
            "gemini:\n"
            "  api_key: gem\n"
        )
    bot = TradingBot(str(config_path), setup_logs=False)

    bot._build_components()
    try:
        assert bot.scheduler.market_open == bot.client.is_market_open
        assert not bot.scheduler.is_running
    finally:
        bot.client.close()
        bot.ai_client.close()
