"""
Dual-cadence cycle scheduler.

- Trade cycle (every 30 s): daily rollover, portfolio refresh, strategy scan
  while the market is open, persistence
- AI cycle (every `ai_analysis_freq` minutes): rebuild the AI watchlist

Both cycles run on APScheduler worker threads and fire once immediately on
start. A cycle that is still running when its next tick arrives is skipped.
"""
import threading
from datetime import datetime
from typing import Callable, Optional

import pytz
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from ai_scalper.data_storage import StateStore
from ai_scalper.logging_utils import log_error_with_context
from ai_scalper.models import Severity
from ai_scalper.notifier import Notifier
from ai_scalper.portfolio import PortfolioTracker
from ai_scalper.rate_limiter import AuthFailure, GatewayError
from ai_scalper.state import DailyPatch, SharedState, WatchlistPatch
from ai_scalper.strategies.base import Strategy
from ai_scalper.utils import is_market_open, trading_date_key, utc_now
from ai_scalper.watchlist import WatchlistBuilder

TRADE_JOB_ID = "trade_cycle"
AI_JOB_ID = "ai_cycle"


class CycleScheduler:
    """
    Owns the daily state machine and drives the trade and AI cycles.
    """

    def __init__(
        self,
        shared_state: SharedState,
        portfolio: PortfolioTracker,
        strategy: Strategy,
        watchlist_builder: WatchlistBuilder,
        store: StateStore,
        notifier: Notifier,
        trade_interval_seconds: float = 30,
        clock: Callable[[], datetime] = utc_now,
        market_open: Callable[[datetime], bool] = is_market_open,
        scheduler: Optional[BackgroundScheduler] = None
    ):
        """
        Initialize cycle scheduler.

        Args:
            shared_state: Engine state holder
            portfolio: Portfolio tracker
            strategy: Entry strategy run on the trade cycle
            watchlist_builder: AI watchlist builder run on the AI cycle
            store: State persistence
            notifier: Presentation notifier
            trade_interval_seconds: Trade cycle interval
            clock: Returns the current time
            market_open: Market hours check (local session hours are used if it fails)
            scheduler: APScheduler instance (created when omitted)
        """
        self.shared_state = shared_state
        self.portfolio = portfolio
        self.strategy = strategy
        self.watchlist_builder = watchlist_builder
        self.store = store
        self.notifier = notifier
        self.trade_interval_seconds = trade_interval_seconds
        self.clock = clock
        self.market_open = market_open
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or BackgroundScheduler(timezone=pytz.utc)

        self._trade_busy = threading.Lock()
        self._ai_busy = threading.Lock()
        self._stop_event = threading.Event()
        self._stop_event.set()
        self._state_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return not self._stop_event.is_set()

    def start(self) -> None:
        """Schedule both cycles and start the scheduler."""
        with self._state_lock:
            if self.is_running:
                logger.warning("Scheduler already running")
                return
            self._stop_event.clear()

        settings = self.shared_state.snapshot().settings
        now = self.clock()

        self.scheduler.add_job(
            func=self.run_trade_cycle,
            trigger=IntervalTrigger(seconds=self.trade_interval_seconds),
            id=TRADE_JOB_ID,
            name='Trade Cycle',
            next_run_time=now,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self.scheduler.add_job(
            func=self.run_ai_cycle,
            trigger=IntervalTrigger(minutes=settings.ai_analysis_freq),
            id=AI_JOB_ID,
            name='AI Analysis Cycle',
            next_run_time=now,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        if not self.scheduler.running:
            self.scheduler.start()

        self.notifier.log("Bot started.", Severity.ACTION)
        logger.info(
            f"Scheduler started | Trade cycle: {self.trade_interval_seconds}s, "
            f"AI cycle: {settings.ai_analysis_freq}min"
        )

    def stop(self, reason: str = "Bot stopped by user.") -> None:
        """
        Stop both cycles and persist once. Cycles already in flight finish
        their current HTTP call but start no further work.
        """
        with self._state_lock:
            if not self.is_running:
                return
            self._stop_event.set()

        for job_id in (TRADE_JOB_ID, AI_JOB_ID):
            if self.scheduler.get_job(job_id) is not None:
                self.scheduler.remove_job(job_id)
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        if self._owns_scheduler:
            # fresh instance for the next start()
            self.scheduler = BackgroundScheduler(timezone=pytz.utc)

        self.notifier.log(reason, Severity.ACTION)
        self.persist(force=True)

    def persist(self, force: bool = False) -> bool:
        """
        Save the state blob (only while running unless forced).
        """
        if not force and not self.is_running:
            return False
        return self.store.save(self.shared_state.snapshot())

    def check_daily_reset(self, now: Optional[datetime] = None) -> bool:
        """
        Reset the first-trade flag when the exchange date changes.

        Returns:
            True if a new trading day started
        """
        today = trading_date_key(now or self.clock())
        if self.shared_state.snapshot().daily.last_trade_date == today:
            return False

        self.shared_state.commit(DailyPatch(last_trade_date=today, first_trade_made_today=False))
        self.notifier.log(f"New trading day {today}. Resetting daily flags.", Severity.ACTION)
        return True

    def run_trade_cycle(self) -> None:
        """One trade cycle. Skipped if the previous one is still running."""
        if not self._trade_busy.acquire(blocking=False):
            logger.debug("Trade cycle still running, skipping tick")
            return
        try:
            if self._stop_event.is_set():
                return
            self._trade_cycle()
        except AuthFailure as e:
            self.notifier.log(f"Authentication failed: {e}", Severity.ERROR)
            self.stop("Bot stopped: authentication failed.")
        except Exception as e:
            log_error_with_context(e, "Trade cycle")
            self.notifier.log(f"Error during trade cycle: {e}", Severity.ERROR)
        finally:
            self._trade_busy.release()

    def _trade_cycle(self) -> None:
        now = self.clock()
        self.check_daily_reset(now)

        try:
            self.portfolio.refresh(now)
        except AuthFailure:
            raise
        except Exception as e:
            log_error_with_context(e, "Portfolio refresh")
            self.notifier.log(f"Failed to update portfolio: {e}", Severity.ERROR)
            return

        if self._stop_event.is_set():
            return

        if self._is_market_open(now):
            if self.strategy.is_enabled():
                self._scan()
        else:
            self.notifier.log("Market is closed. Skipping trade execution.", Severity.WARNING)

        self.persist()

    def _is_market_open(self, now: datetime) -> bool:
        try:
            return self.market_open(now)
        except AuthFailure:
            raise
        except GatewayError as e:
            log_error_with_context(e, "Market clock")
            return is_market_open(now)

    def _scan(self) -> None:
        try:
            result = self.strategy.scan(self.shared_state.snapshot())
        except AuthFailure:
            raise
        except Exception as e:
            log_error_with_context(e, "Strategy scan", strategy=self.strategy.name)
            self.notifier.log(f"Error during {self.strategy.name} scan: {e}", Severity.ERROR)
            return

        patches = result.patches()
        if patches:
            self.shared_state.commit(*patches)

    def run_ai_cycle(self) -> None:
        """One AI cycle. Skipped if the previous one is still running."""
        if not self._ai_busy.acquire(blocking=False):
            logger.debug("AI cycle still running, skipping tick")
            return
        try:
            if self._stop_event.is_set():
                return
            self._ai_cycle()
        except AuthFailure as e:
            self.notifier.log(f"Authentication failed: {e}", Severity.ERROR)
            self.stop("Bot stopped: authentication failed.")
        except Exception as e:
            log_error_with_context(e, "AI analysis cycle")
            self.notifier.log(f"Error during AI analysis cycle: {e}", Severity.ERROR)
        finally:
            self._ai_busy.release()

    def _ai_cycle(self) -> None:
        watchlist = self.watchlist_builder.build()
        if watchlist is None or self._stop_event.is_set():
            return

        state = self.shared_state.commit(WatchlistPatch(watchlist=watchlist))
        self.notifier.push("watchlist", state.watchlist)
