"""
Order execution with risk-based position sizing and bracket orders.
"""
import math
from typing import Optional, Tuple

from loguru import logger

from ai_scalper.logging_utils import log_error_with_context, log_trade
from ai_scalper.models import BracketOrder, OrderSide, Quote, RiskSettings, Severity, WatchlistEntry
from ai_scalper.notifier import Notifier
from ai_scalper.rate_limiter import AuthFailure


def calculate_position_size(
    equity: float,
    risk_per_trade_pct: float,
    atr: float,
    stop_atr_multiplier: float = 2.0
) -> Tuple[int, float]:
    """
    Calculate position size from the capital at risk and an ATR stop.

    Args:
        equity: Current equity
        risk_per_trade_pct: Risk per trade as percentage of equity
        atr: Average True Range
        stop_atr_multiplier: Stop distance in ATRs

    Returns:
        Tuple of (shares, stop distance)
    """
    risk_amount = equity * (risk_per_trade_pct / 100.0)
    stop_distance = stop_atr_multiplier * atr

    if risk_amount <= 0 or stop_distance <= 0:
        return 0, stop_distance

    return math.floor(risk_amount / stop_distance), stop_distance


class ExecutionEngine:
    """
    Turns a watchlist entry into a sized bracket order and submits it.
    """

    def __init__(
        self,
        client,
        notifier: Notifier,
        stop_atr_multiplier: float = 2.0,
        reward_risk_ratio: float = 1.5,
        time_in_force: str = "day"
    ):
        """
        Initialize execution engine.

        Args:
            client: AlpacaClient instance
            notifier: Presentation notifier
            stop_atr_multiplier: Stop distance in ATRs
            reward_risk_ratio: Take-profit distance as a multiple of the stop distance
            time_in_force: Time in force of the entry order
        """
        self.client = client
        self.notifier = notifier
        self.stop_atr_multiplier = stop_atr_multiplier
        self.reward_risk_ratio = reward_risk_ratio
        self.time_in_force = time_in_force

    def create_bracket_order(
        self,
        symbol: str,
        quote: Quote,
        atr: float,
        equity: float,
        settings: RiskSettings
    ) -> Optional[BracketOrder]:
        """
        Size a long bracket order off the latest quote.

        Stop and target are measured from the ask; the entry limit sits
        `limit_order_offset` percent above the bid.

        Returns:
            BracketOrder, or None when the size rounds down to zero
        """
        qty, stop_distance = calculate_position_size(
            equity, settings.risk_per_trade, atr, self.stop_atr_multiplier
        )

        if qty <= 0:
            self.notifier.log(
                f"Trade size for {symbol} is zero due to risk parameters. Skipping.",
                Severity.ACTION
            )
            return None

        ask = quote.ask_price
        stop_price = round(ask - stop_distance, 2)
        take_profit_price = round(ask + stop_distance * self.reward_risk_ratio, 2)
        limit_price = round(quote.bid_price * (1 + settings.limit_order_offset / 100.0), 2)

        if stop_price <= 0:
            self.notifier.log(
                f"Stop price for {symbol} would be {stop_price:.2f}. Skipping.",
                Severity.ACTION
            )
            return None

        return BracketOrder(
            symbol=symbol,
            qty=qty,
            side=OrderSide.BUY,
            limit_price=limit_price,
            stop_price=stop_price,
            take_profit_price=take_profit_price,
            time_in_force=self.time_in_force
        )

    def execute_trade(
        self,
        entry: WatchlistEntry,
        equity: float,
        settings: RiskSettings
    ) -> Optional[BracketOrder]:
        """
        Quote, size and submit a bracket order for one watchlist entry.

        Failures are logged and reported as None; only AuthFailure propagates.

        Args:
            entry: Watchlist entry to trade
            equity: Current account equity
            settings: Risk settings

        Returns:
            The submitted order, or None
        """
        symbol = entry.ticker

        try:
            quote = self.client.get_latest_quote(symbol)
        except AuthFailure:
            raise
        except Exception as e:
            log_error_with_context(e, "Latest quote", symbol=symbol)
            self.notifier.log(f"Could not execute trade for {symbol}: {e}", Severity.ERROR)
            return None

        if not quote.ask_price or not quote.bid_price:
            self.notifier.log(
                f"Could not execute trade for {symbol}: Invalid quote received from API.",
                Severity.ERROR
            )
            return None

        order = self.create_bracket_order(symbol, quote, entry.indicators.atr, equity, settings)
        if order is None:
            return None

        self.notifier.log(
            f"Sizing trade for {symbol}: {order.qty} shares, "
            f"SL @ ${order.stop_price:.2f}, TP @ ${order.take_profit_price:.2f}",
            Severity.ACTION
        )

        try:
            self.client.submit_bracket_order(order)
        except AuthFailure:
            raise
        except Exception as e:
            log_error_with_context(e, "Order submission", symbol=symbol)
            self.notifier.log(f"Order for {symbol} failed: {e}", Severity.ERROR)
            self.notifier.toast(f"Order for {symbol} failed", "error")
            return None

        log_trade(
            order.side.value.upper(), symbol, order.qty, order.limit_price,
            stop=order.stop_price, take_profit=order.take_profit_price
        )
        self.notifier.log(
            f"[{order.side.value.upper()}] Placed bracket order for {order.qty} {symbol} "
            f"@ {order.limit_price:.2f}. SL: {order.stop_price:.2f}, TP: {order.take_profit_price:.2f}",
            Severity.BUY
        )
        self.notifier.toast(f"Order placed for {symbol}", "success")
        logger.debug(f"Order payload | {order.to_payload()}")
        return order
