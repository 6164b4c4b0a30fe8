"""
AI scalping strategy: trades the AI watchlist on the fast trade cycle.

Entry rules:
- First trade of the day: the top-ranked watchlist symbol, on AI conviction alone
- Afterwards: 5-min MACD histogram > 0 (uptrend) and 1-min RSI below the
  pullback threshold (oversold dip inside the trend)

Risk:
- Stop 2 ATR below the ask, target 1.5x the stop distance above it
- At most `max_concurrent_scalps` open positions
"""
from typing import Dict, List

from ai_scalper.execution_engine import ExecutionEngine
from ai_scalper.logging_utils import log_signal
from ai_scalper.models import BracketOrder, Severity, WatchlistEntry
from ai_scalper.notifier import Notifier
from ai_scalper.state import TradingState
from ai_scalper.strategies.base import ScanResult, Strategy


def is_entry_signal(entry: WatchlistEntry, rsi_threshold: float = 45.0) -> bool:
    indicators = entry.indicators
    return indicators.macd.histogram > 0 and indicators.rsi_1m < rsi_threshold


class AIScalpingStrategy(Strategy):
    """
    Entry strategy over the AI-ranked watchlist.
    """

    name = "ai_scalping"

    def __init__(self, config: Dict, execution_engine: ExecutionEngine, notifier: Notifier):
        """
        Initialize strategy.

        Args:
            config: Strategy configuration
            execution_engine: Sizes and submits the orders
            notifier: Presentation notifier
        """
        super().__init__(config)
        self.execution_engine = execution_engine
        self.notifier = notifier
        self.rsi_pullback_threshold = config.get('rsi_pullback_threshold', 45.0)

    def scan(self, state: TradingState) -> ScanResult:
        self.notifier.log("Executing scalping scan.", Severity.SIGNAL)

        watchlist = state.watchlist
        settings = state.settings
        if not watchlist:
            return ScanResult(skipped_reason="empty watchlist")

        max_positions = settings.max_concurrent_scalps
        if len(state.positions) >= max_positions:
            self.notifier.log("Max concurrent positions reached.", Severity.ACTION)
            return ScanResult(skipped_reason="max positions")

        held = {position.symbol for position in state.positions}
        equity = state.portfolio.equity

        if not state.daily.first_trade_made_today:
            self.notifier.log("Attempting first trade of the day based on pure AI conviction.", Severity.SIGNAL)
            top = watchlist[0]
            if top.ticker not in held:
                order = self.execution_engine.execute_trade(top, equity, settings)
                return ScanResult(
                    attempted=(top.ticker,),
                    orders=(order,) if order else (),
                    first_trade_taken=True
                )
            # Top pick is already held: fall through to the technical scan

        self.notifier.log("Scanning for entries based on technical analysis.", Severity.ACTION)
        attempted: List[str] = []
        orders: List[BracketOrder] = []
        open_count = len(state.positions)

        for entry in watchlist:
            if entry.ticker in held:
                continue
            if open_count >= max_positions:
                break
            if not is_entry_signal(entry, self.rsi_pullback_threshold):
                continue

            rsi_1m = entry.indicators.rsi_1m
            log_signal(
                self.name, entry.ticker, "MACD bullish + RSI pullback",
                histogram=f"{entry.indicators.macd.histogram:.4f}", rsi_1m=f"{rsi_1m:.2f}"
            )
            self.notifier.log(
                f"Entry signal for {entry.ticker}: 5m MACD is bullish and 1m RSI is "
                f"{rsi_1m:.2f} (below {self.rsi_pullback_threshold:g})",
                Severity.BUY
            )

            attempted.append(entry.ticker)
            order = self.execution_engine.execute_trade(entry, equity, settings)
            if order is not None:
                orders.append(order)
                held.add(entry.ticker)
                open_count += 1

        return ScanResult(attempted=tuple(attempted), orders=tuple(orders))
