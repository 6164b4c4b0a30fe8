"""
Data models shared across the trading engine.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Decision(str, Enum):
    """AI recommendation decision."""
    BUY = "BUY"
    HOLD = "HOLD"


class OrderSide(str, Enum):
    """Order side."""
    BUY = "buy"
    SELL = "sell"


class Severity(str, Enum):
    """Event log severities understood by the presentation layer."""
    BUY = "buy"
    SELL = "sell"
    SIGNAL = "signal"
    ACTION = "action"
    ERROR = "error"
    WARNING = "warning"


class Bar(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: Optional[int] = None


class MACDResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    macd: float = 0.0
    signal: float = 0.0
    histogram: float = 0.0


class IndicatorSet(BaseModel):
    """Technical snapshot of one symbol for a single scan."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    current_price: float
    rsi_1m: float
    rsi_5m: float
    atr: float
    macd: MACDResult


class Recommendation(BaseModel):
    """Structured decision returned by the AI service."""
    model_config = ConfigDict(frozen=True)

    ticker: str
    decision: Decision
    confidence: int = Field(ge=1, le=10)
    reasoning: str = ""


class WatchlistEntry(BaseModel):
    """Recommendation merged with the indicators it was produced from."""
    model_config = ConfigDict(frozen=True)

    recommendation: Recommendation
    indicators: IndicatorSet

    @property
    def ticker(self) -> str:
        return self.recommendation.ticker

    @property
    def confidence(self) -> int:
        return self.recommendation.confidence

    @classmethod
    def combine(cls, recommendation: Recommendation, indicators: IndicatorSet) -> "WatchlistEntry":
        return cls(recommendation=recommendation, indicators=indicators)


class Quote(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    ask_price: Optional[float] = None
    bid_price: Optional[float] = None


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    qty: float
    avg_entry_price: float
    current_price: float
    unrealized_pl: float
    unrealized_plpc: float
    stop_price: Optional[float] = None


class Portfolio(BaseModel):
    model_config = ConfigDict(frozen=True)

    equity: float = 0.0
    last_equity: float = 0.0
    initial_equity: float = 0.0


class PerformancePoint(BaseModel):
    """Equity observation used for the performance chart."""
    model_config = ConfigDict(frozen=True)

    x: datetime
    y: float


class DailyState(BaseModel):
    model_config = ConfigDict(frozen=True)

    last_trade_date: Optional[str] = None
    first_trade_made_today: bool = False


class RiskSettings(BaseModel):
    """Operator supplied risk parameters (percentages are in percent units)."""
    model_config = ConfigDict(frozen=True)

    risk_per_trade: float = Field(default=1.0, gt=0)
    max_concurrent_scalps: int = Field(default=5, ge=1)
    limit_order_offset: float = Field(default=0.05, ge=0)
    ai_analysis_freq: int = Field(default=30, ge=1)


class Credentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    alpaca_key: str = ""
    alpaca_secret: str = ""
    gemini_key: str = ""

    def is_complete(self) -> bool:
        return bool(self.alpaca_key and self.alpaca_secret and self.gemini_key)


class BracketOrder(BaseModel):
    """Entry limit order with dependent stop-loss and take-profit legs."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    qty: int = Field(gt=0)
    side: OrderSide = OrderSide.BUY
    limit_price: float
    stop_price: float
    take_profit_price: float
    time_in_force: str = "day"

    def to_payload(self) -> dict:
        """Alpaca order request body."""
        return {
            'symbol': self.symbol,
            'qty': self.qty,
            'side': self.side.value,
            'type': 'limit',
            'time_in_force': self.time_in_force,
            'limit_price': f"{self.limit_price:.2f}",
            'order_class': 'bracket',
            'stop_loss': {'stop_price': f"{self.stop_price:.2f}"},
            'take_profit': {'limit_price': f"{self.take_profit_price:.2f}"},
        }
