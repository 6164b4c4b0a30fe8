"""
Base strategy interface for trade-cycle strategies.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict

from ai_scalper.models import BracketOrder
from ai_scalper.state import DailyPatch, StatePatch, TradingState


class ScanResult(BaseModel):
    """
    Outcome of one strategy scan. Strategies never touch shared state; the
    scheduler turns this into state patches.
    """
    model_config = ConfigDict(frozen=True)

    attempted: Tuple[str, ...] = ()
    orders: Tuple[BracketOrder, ...] = ()
    first_trade_taken: bool = False
    skipped_reason: Optional[str] = None

    def patches(self) -> List[StatePatch]:
        if self.first_trade_taken:
            return [DailyPatch(first_trade_made_today=True)]
        return []


class Strategy(ABC):
    """
    Abstract base class for all trading strategies.
    """

    name: str = "base_strategy"

    def __init__(self, config: Dict):
        """
        Initialize strategy.

        Args:
            config: Strategy configuration dictionary
        """
        self.config = config
        self.enabled = config.get('enabled', True)

        logger.info(f"Strategy '{self.name}' initialized | Enabled: {self.enabled}")

    @abstractmethod
    def scan(self, state: TradingState) -> ScanResult:
        """
        Evaluate the current state and place any warranted orders.

        Args:
            state: Snapshot of the engine state

        Returns:
            ScanResult
        """
        pass

    def is_enabled(self) -> bool:
        return self.enabled

    def enable(self) -> None:
        """Enable the strategy."""
        self.enabled = True
        logger.info(f"Strategy '{self.name}' enabled")

    def disable(self) -> None:
        """Disable the strategy."""
        self.enabled = False
        logger.info(f"Strategy '{self.name}' disabled")
