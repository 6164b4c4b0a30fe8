"""
Engine state and its transition function.

State is immutable. Every change is expressed as a typed patch and applied
with apply(state, patch), which returns a new state. Record-like groups
(portfolio, daily) are merged field by field; collections (positions,
watchlist, performance) and settings are replaced wholesale.
"""
import threading
from functools import reduce
from typing import Callable, Iterable, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict

from ai_scalper.models import (
    DailyState,
    PerformancePoint,
    Portfolio,
    Position,
    RiskSettings,
    WatchlistEntry,
)


class TradingState(BaseModel):
    model_config = ConfigDict(frozen=True)

    settings: RiskSettings = RiskSettings()
    portfolio: Portfolio = Portfolio()
    positions: Tuple[Position, ...] = ()
    watchlist: Tuple[WatchlistEntry, ...] = ()
    performance: Tuple[PerformancePoint, ...] = ()
    daily: DailyState = DailyState()


class PortfolioPatch(BaseModel):
    """Merge: fields left as None keep their current value."""
    model_config = ConfigDict(frozen=True)

    equity: Optional[float] = None
    last_equity: Optional[float] = None
    initial_equity: Optional[float] = None


class DailyPatch(BaseModel):
    """Merge: fields left as None keep their current value."""
    model_config = ConfigDict(frozen=True)

    last_trade_date: Optional[str] = None
    first_trade_made_today: Optional[bool] = None


class PositionsPatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    positions: Tuple[Position, ...]


class WatchlistPatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    watchlist: Tuple[WatchlistEntry, ...]


class PerformancePatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    performance: Tuple[PerformancePoint, ...]


class SettingsPatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    settings: RiskSettings


StatePatch = Union[
    PortfolioPatch,
    DailyPatch,
    PositionsPatch,
    WatchlistPatch,
    PerformancePatch,
    SettingsPatch,
]


def apply(state: TradingState, patch: StatePatch) -> TradingState:
    """
    Apply one patch to a state.

    Args:
        state: Current state (left untouched)
        patch: Change to apply

    Returns:
        New state
    """
    if isinstance(patch, PortfolioPatch):
        changes = patch.model_dump(exclude_none=True)
        return state.model_copy(update={'portfolio': state.portfolio.model_copy(update=changes)})

    if isinstance(patch, DailyPatch):
        changes = patch.model_dump(exclude_none=True)
        return state.model_copy(update={'daily': state.daily.model_copy(update=changes)})

    if isinstance(patch, PositionsPatch):
        return state.model_copy(update={'positions': patch.positions})

    if isinstance(patch, WatchlistPatch):
        return state.model_copy(update={'watchlist': patch.watchlist})

    if isinstance(patch, PerformancePatch):
        return state.model_copy(update={'performance': patch.performance})

    if isinstance(patch, SettingsPatch):
        return state.model_copy(update={'settings': patch.settings})

    raise TypeError(f"Unsupported state patch: {type(patch).__name__}")


def apply_all(state: TradingState, patches: Iterable[StatePatch]) -> TradingState:
    return reduce(apply, patches, state)


class SharedState:
    """
    Holder of the current TradingState.

    All patches of one commit are applied under a single lock, so readers
    never observe a partially applied cycle.
    """

    def __init__(self, initial: Optional[TradingState] = None):
        self._state = initial or TradingState()
        self._lock = threading.Lock()

    def snapshot(self) -> TradingState:
        with self._lock:
            return self._state

    def commit(self, *patches: StatePatch) -> TradingState:
        with self._lock:
            self._state = apply_all(self._state, patches)
            return self._state

    def update(self, build: Callable[[TradingState], Sequence[StatePatch]]) -> TradingState:
        """
        Atomic read-modify-write.

        Args:
            build: Receives the current state and returns the patches to apply

        Returns:
            New state
        """
        with self._lock:
            self._state = apply_all(self._state, build(self._state))
            return self._state
