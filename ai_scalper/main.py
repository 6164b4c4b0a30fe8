"""
Trading bot wiring and command line entry point.
"""
import argparse
import signal
import sys
import time
from typing import Any, Dict, Optional

from loguru import logger

from ai_scalper.ai_client import AIClient
from ai_scalper.alpaca_client import DATA_BASE_URL, PAPER_BASE_URL, AlpacaClient
from ai_scalper.config import (
    build_credentials,
    build_risk_settings,
    get_config_value,
    load_config,
    validate_config,
)
from ai_scalper.data_feed import IndicatorFeed
from ai_scalper.data_storage import SettingsStore, StateStore
from ai_scalper.execution_engine import ExecutionEngine
from ai_scalper.logging_utils import setup_logging
from ai_scalper.notifier import Notifier
from ai_scalper.portfolio import PortfolioTracker
from ai_scalper.rate_limiter import BackoffPolicy, GatewayError
from ai_scalper.scheduler import CycleScheduler
from ai_scalper.state import SettingsPatch, SharedState
from ai_scalper.strategies import AIScalpingStrategy
from ai_scalper.watchlist import WatchlistBuilder


class TradingBot:
    """
    Main trading bot orchestrator.
    """

    def __init__(self, config_path: str, setup_logs: bool = True):
        """
        Initialize trading bot.

        Args:
            config_path: Path to configuration file
            setup_logs: Configure loguru sinks from the config
        """
        self.config = load_config(config_path)
        validate_config(self.config)

        if setup_logs:
            logging_config = self.config.get('logging', {})
            setup_logging(
                logs_dir=get_config_value(self.config, 'storage.logs_dir', 'logs'),
                level=logging_config.get('level', 'INFO'),
                rotation=logging_config.get('rotation', '1 day'),
                retention=logging_config.get('retention', '30 days'),
                format_type=logging_config.get('format', 'text')
            )

        data_dir = get_config_value(self.config, 'storage.data_dir', 'data')
        self.store = StateStore(data_dir)
        self.settings_store = SettingsStore(data_dir)
        self.notifier = Notifier()

        self.shared_state = SharedState()
        restored = self.store.restore(self.shared_state.snapshot())
        if restored:
            self.shared_state.commit(*restored)

        self.user_id = self.settings_store.user_id()
        stored_credentials, stored_settings = self.settings_store.load(self.user_id)
        settings = build_risk_settings(
            self.config, stored_settings, self.shared_state.snapshot().settings
        )
        self.shared_state.commit(SettingsPatch(settings=settings))
        self.credentials = build_credentials(self.config, stored_credentials)

        self.client: Optional[AlpacaClient] = None
        self.ai_client: Optional[AIClient] = None
        self.scheduler: Optional[CycleScheduler] = None
        self.portfolio: Optional[PortfolioTracker] = None

    def _build_components(self) -> None:
        """Create the gateways and cycle components from the credentials."""
        alpaca_config = self.config.get('alpaca', {})
        backoff = BackoffPolicy(
            max_retries=get_config_value(self.config, 'retry.max_retries', 3),
            initial_delay=get_config_value(self.config, 'retry.initial_delay', 2.0)
        )

        self.client = AlpacaClient(
            key_id=self.credentials.alpaca_key,
            secret_key=self.credentials.alpaca_secret,
            base_url=alpaca_config.get('base_url') or PAPER_BASE_URL,
            data_url=alpaca_config.get('data_url') or DATA_BASE_URL,
            data_feed=alpaca_config.get('data_feed', 'iex'),
            backoff=backoff
        )
        self.ai_client = AIClient(self.config, self.credentials.gemini_key, backoff=backoff)

        strategy_config: Dict[str, Any] = get_config_value(self.config, 'strategies.ai_scalping', {}) or {}
        watchlist_config: Dict[str, Any] = self.config.get('watchlist', {}) or {}

        self.portfolio = PortfolioTracker(self.client, self.shared_state, self.notifier)
        execution_engine = ExecutionEngine(
            self.client,
            self.notifier,
            stop_atr_multiplier=strategy_config.get('stop_atr_multiplier', 2.0),
            reward_risk_ratio=strategy_config.get('reward_risk_ratio', 1.5)
        )
        strategy = AIScalpingStrategy(strategy_config, execution_engine, self.notifier)
        watchlist_builder = WatchlistBuilder(
            self.client,
            IndicatorFeed(self.client, min_bars=watchlist_config.get('min_bars', 50)),
            self.ai_client,
            self.notifier,
            top_n=watchlist_config.get('top_n', 10),
            news_limit=watchlist_config.get('news_limit', 50),
            min_confidence=watchlist_config.get('min_confidence', 7),
            max_workers=watchlist_config.get('max_workers', 1)
        )
        self.scheduler = CycleScheduler(
            self.shared_state,
            self.portfolio,
            strategy,
            watchlist_builder,
            self.store,
            self.notifier,
            trade_interval_seconds=get_config_value(self.config, 'scheduler.trade_interval_seconds', 30),
            market_open=self.client.is_market_open
        )

    def _require_credentials(self) -> bool:
        if self.credentials.is_complete():
            return True
        logger.error("Please provide Alpaca key/secret and a Gemini API key before starting.")
        self.notifier.toast("Missing API keys.", "error")
        return False

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully."""
        logger.warning(f"Received signal {signum} - initiating graceful shutdown...")
        self.stop()

    def start(self, block: bool = True) -> bool:
        """
        Start both cycles.

        Args:
            block: Wait until the scheduler stops

        Returns:
            False if the bot could not start
        """
        if not self._require_credentials():
            return False

        logger.info("=" * 80)
        logger.info("AI Scalper Starting...")
        logger.info(f"User: {self.user_id}")
        logger.info("=" * 80)

        self.settings_store.save(self.user_id, self.credentials, self.shared_state.snapshot().settings)
        self._build_components()

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        self.scheduler.start()

        if block:
            while self.scheduler.is_running:
                time.sleep(1)
            self._shutdown()
        return True

    def stop(self) -> None:
        """Stop the scheduler and persist state."""
        if self.scheduler is not None:
            self.scheduler.stop()

    def _shutdown(self) -> None:
        if self.portfolio is not None:
            self.portfolio.log_summary()
        for client in (self.client, self.ai_client):
            if client is not None:
                client.close()
        logger.info("=" * 80)
        logger.info("AI Scalper Stopped")
        logger.info("=" * 80)

    def close_position(self, symbol: str) -> bool:
        """
        Close one position by symbol and persist the refreshed state.

        Returns:
            True if the close order was accepted
        """
        if not self._require_credentials():
            return False
        self._build_components()
        try:
            closed = self.portfolio.close_position(symbol.upper())
        except GatewayError as e:
            logger.error(f"Close failed for {symbol}: {e}")
            closed = False
        self.store.save(self.shared_state.snapshot())
        self._shutdown()
        return closed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="AI Scalping Bot")
    parser.add_argument(
        '--config',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file'
    )
    subparsers = parser.add_subparsers(dest='command')

    subparsers.add_parser('run', help='Start the trade and AI cycles')

    close_parser = subparsers.add_parser('close', help='Close an open position')
    close_parser.add_argument('symbol', help='Symbol to close')

    export_parser = subparsers.add_parser('export', help='Export persisted data to a JSON file')
    export_parser.add_argument('destination', nargs='?', default=None, help='Output file')

    import_parser = subparsers.add_parser('import', help='Replace persisted data from a JSON file')
    import_parser.add_argument('source', help='JSON file to import')

    subparsers.add_parser('clear', help='Delete persisted data')
    return parser


def main(argv=None):
    """Main entry point."""
    args = build_parser().parse_args(argv)
    command = args.command or 'run'

    try:
        bot = TradingBot(args.config)

        if command == 'run':
            if not bot.start():
                sys.exit(1)
        elif command == 'close':
            if not bot.close_position(args.symbol):
                sys.exit(1)
        elif command == 'export':
            if bot.store.export_data(args.destination) is None:
                sys.exit(1)
        elif command == 'import':
            bot.store.import_data(args.source)
        elif command == 'clear':
            bot.store.clear_data()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except (OSError, ValueError) as e:
        logger.error(f"{command} failed: {e}")
        sys.exit(1)
    except Exception as e:
        logger.opt(exception=e).critical(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
