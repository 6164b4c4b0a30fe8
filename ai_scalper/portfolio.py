"""
Portfolio and position tracking against the broker account.
"""
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

import pytz
from loguru import logger

from ai_scalper.models import PerformancePoint, Portfolio, Position, Severity
from ai_scalper.notifier import Notifier
from ai_scalper.rate_limiter import ApiError
from ai_scalper.state import (
    PerformancePatch,
    PortfolioPatch,
    PositionsPatch,
    SharedState,
    StatePatch,
    TradingState,
)
from ai_scalper.utils import utc_now


def record_equity(
    performance: Sequence[PerformancePoint],
    equity: float,
    now: datetime
) -> List[PerformancePoint]:
    """
    Add today's equity to the performance series (one point per UTC day).

    Args:
        performance: Existing series
        equity: Latest equity
        now: Observation time

    Returns:
        New series where today's point is replaced or appended
    """
    if now.tzinfo is None:
        now = pytz.utc.localize(now)
    today = now.astimezone(pytz.utc).date()

    points = list(performance)
    for i, point in enumerate(points):
        x = point.x if point.x.tzinfo else pytz.utc.localize(point.x)
        if x.astimezone(pytz.utc).date() == today:
            points[i] = PerformancePoint(x=point.x, y=equity)
            return points

    points.append(PerformancePoint(x=now, y=equity))
    return points


def build_refresh_patches(
    state: TradingState,
    equity: float,
    positions: Sequence[Position],
    now: datetime
) -> List[StatePatch]:
    """
    Patches for one portfolio refresh.

    initial_equity and last_equity are only filled the first time a non-zero
    equity is seen; positions are replaced wholesale.
    """
    current = state.portfolio
    portfolio = PortfolioPatch(
        equity=equity,
        initial_equity=equity if current.initial_equity == 0 and equity != 0 else None,
        last_equity=equity if current.last_equity == 0 and equity != 0 else None
    )
    return [
        portfolio,
        PositionsPatch(positions=tuple(positions)),
        PerformancePatch(performance=tuple(record_equity(state.performance, equity, now))),
    ]


def pnl_summary(portfolio: Portfolio) -> Dict[str, float]:
    """
    Today's and total P&L derived from the portfolio equity marks.
    """
    total = portfolio.equity - portfolio.initial_equity if portfolio.initial_equity > 0 else 0.0
    return {
        'equity': portfolio.equity,
        'today_pl': portfolio.equity - portfolio.last_equity,
        'total_pl': total,
    }


class PortfolioTracker:
    """
    Refreshes account equity and open positions into the shared state.
    """

    def __init__(
        self,
        alpaca_client,
        shared_state: SharedState,
        notifier: Notifier,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize portfolio tracker.

        Args:
            alpaca_client: AlpacaClient instance
            shared_state: Engine state holder
            notifier: Presentation notifier
            clock: Returns the current time
            sleep: Sleep function (injected in tests)
        """
        self.client = alpaca_client
        self.shared_state = shared_state
        self.notifier = notifier
        self.clock = clock
        self.sleep = sleep

    def refresh(self, now: Optional[datetime] = None) -> TradingState:
        """
        Fetch equity and positions and merge them into the shared state.

        Raises:
            AuthFailure: Credentials rejected
            ApiError: Account or positions request failed
        """
        now = now or self.clock()
        equity = self.client.get_equity()
        positions = self.client.get_positions()

        state = self.shared_state.update(
            lambda current: build_refresh_patches(current, equity, positions, now)
        )

        self.notifier.push("portfolio", pnl_summary(state.portfolio))
        self.notifier.push("positions", state.positions)
        self.notifier.push("chart", state.performance)
        return state

    def close_position(self, symbol: str, settle_seconds: float = 2.0) -> bool:
        """
        Manually close a position, then refresh once the order had time to settle.

        Args:
            symbol: Stock symbol
            settle_seconds: Wait before refreshing

        Returns:
            True if the close order was accepted
        """
        self.notifier.log(f"User initiated close for {symbol}...", Severity.ACTION)
        closed = False
        try:
            self.client.close_position(symbol)
            self.notifier.log(f"Market close order submitted for {symbol}.", Severity.SELL)
            self.notifier.toast(f"Closing position in {symbol}.", "success")
            closed = True
        except ApiError as e:
            self.notifier.log(f"Failed to close position for {symbol}: {e}", Severity.ERROR)
            self.notifier.toast(f"Failed to close {symbol}.", "error")

        self.sleep(settle_seconds)
        try:
            self.refresh()
        except ApiError as e:
            self.notifier.log(f"Failed to update portfolio: {e}", Severity.ERROR)
        return closed

    def log_summary(self) -> None:
        """Log portfolio summary."""
        state = self.shared_state.snapshot()
        summary = pnl_summary(state.portfolio)
        logger.info(
            f"Portfolio | Equity: ${summary['equity']:,.2f} | "
            f"Today P&L: ${summary['today_pl']:,.2f} | "
            f"Total P&L: ${summary['total_pl']:,.2f} | "
            f"Positions: {len(state.positions)}"
        )
