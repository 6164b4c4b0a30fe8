"""
AI-ranked watchlist builder (runs on the slow AI cycle).

Candidates are the day's most active symbols. Each one gets an indicator
snapshot and an AI recommendation; high-conviction BUYs become the new
watchlist, ranked by confidence.
"""
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple

from ai_scalper.data_feed import IndicatorFeed, InsufficientData
from ai_scalper.logging_utils import log_error_with_context
from ai_scalper.models import Decision, Severity, WatchlistEntry
from ai_scalper.notifier import Notifier
from ai_scalper.rate_limiter import AuthFailure


def qualifies(entry: WatchlistEntry, min_confidence: int = 7) -> bool:
    return (
        entry.recommendation.decision == Decision.BUY
        and entry.confidence >= min_confidence
    )


def rank_watchlist(entries: Sequence[WatchlistEntry]) -> List[WatchlistEntry]:
    """Sort by confidence, highest first. Equal confidence keeps scan order."""
    return sorted(entries, key=lambda entry: entry.confidence, reverse=True)


class WatchlistBuilder:
    """
    Builds a new watchlist from market movers, headlines and AI scoring.
    """

    def __init__(
        self,
        alpaca_client,
        indicator_feed: IndicatorFeed,
        ai_client,
        notifier: Notifier,
        top_n: int = 10,
        news_limit: int = 50,
        min_confidence: int = 7,
        max_workers: int = 1
    ):
        """
        Initialize watchlist builder.

        Args:
            alpaca_client: AlpacaClient instance
            indicator_feed: IndicatorFeed instance
            ai_client: AIClient instance
            notifier: Presentation notifier
            top_n: Number of most-active candidates
            news_limit: Number of headlines given to the AI
            min_confidence: Minimum AI confidence for a BUY to qualify
            max_workers: Candidates analysed in parallel (1 = sequential)
        """
        self.client = alpaca_client
        self.indicator_feed = indicator_feed
        self.ai_client = ai_client
        self.notifier = notifier
        self.top_n = top_n
        self.news_limit = news_limit
        self.min_confidence = min_confidence
        self.max_workers = max_workers

    def _analyze(self, symbol: str, headlines: str) -> Optional[WatchlistEntry]:
        self.notifier.log(f"AI analyzing candidate: {symbol}", Severity.ACTION)
        try:
            indicators = self.indicator_feed.get_indicators(symbol)
            recommendation = self.ai_client.get_recommendation(headlines, indicators)
        except InsufficientData:
            self.notifier.log(f"Insufficient technical data for {symbol}. Skipping.", Severity.ACTION)
            return None
        except AuthFailure:
            raise
        except Exception as e:
            log_error_with_context(e, "Candidate analysis", symbol=symbol)
            self.notifier.log(f"Error analyzing {symbol}: {e}", Severity.ERROR)
            return None

        if recommendation is None:
            return None
        return WatchlistEntry.combine(recommendation, indicators)

    def build(self) -> Optional[Tuple[WatchlistEntry, ...]]:
        """
        Run one AI analysis pass.

        Returns:
            The new ranked watchlist, or None when the current one should be kept

        Raises:
            AuthFailure: Broker credentials rejected
            ApiError: Screener or news request failed
        """
        self.notifier.log("Executing periodic AI market analysis.", Severity.SIGNAL)

        candidates = self.client.get_most_actives(top=self.top_n)
        if not candidates:
            self.notifier.log("Could not identify any market movers. AI analysis paused.", Severity.ACTION)
            return None

        headlines = "\n".join(self.client.get_news(limit=self.news_limit))
        if not headlines:
            self.notifier.log("No recent headlines found. AI will rely on technicals only.", Severity.ACTION)

        if self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="ai-scan") as pool:
                # map() yields in submission order regardless of completion order
                results = list(pool.map(lambda symbol: self._analyze(symbol, headlines), candidates))
        else:
            results = [self._analyze(symbol, headlines) for symbol in candidates]

        qualifying = [
            entry for entry in results
            if entry is not None and qualifies(entry, self.min_confidence)
        ]

        if not qualifying:
            self.notifier.log(
                "AI analysis did not yield any new high-confidence recommendations.",
                Severity.ACTION
            )
            return None

        ranked = rank_watchlist(qualifying)
        tickers = ", ".join(f"{entry.ticker} (Conf: {entry.confidence})" for entry in ranked)
        self.notifier.log(f"AI analysis complete. New watchlist: {tickers}", Severity.SIGNAL)
        return tuple(ranked)
