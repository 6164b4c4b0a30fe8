"""
Presentation notifier: event log lines, toasts and view refresh pushes.
"""
from typing import Any, Callable, List, Union

from loguru import logger

from ai_scalper.models import Severity

Subscriber = Callable[[str, Any], None]

# loguru level used for each event-log severity
SEVERITY_LEVELS = {
    Severity.BUY: "SUCCESS",
    Severity.SELL: "SUCCESS",
    Severity.SIGNAL: "INFO",
    Severity.ACTION: "INFO",
    Severity.WARNING: "WARNING",
    Severity.ERROR: "ERROR",
}


class Notifier:
    """
    Fire-and-forget fan-out to whatever renders the bot (console, UI, tests).

    Every call is written to the loguru log and then dispatched to the
    registered subscribers as (event, payload). A subscriber that raises is
    logged and ignored; the engine never waits on or reacts to the
    presentation layer.
    """

    def __init__(self):
        self.subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> None:
        """
        Register a subscriber.

        Args:
            callback: Called with (event, payload) where event is "log",
                "toast" or "refresh:<view>"
        """
        self.subscribers.append(callback)

    def _dispatch(self, event: str, payload: Any) -> None:
        for callback in self.subscribers:
            try:
                callback(event, payload)
            except Exception as e:
                logger.warning(f"Notifier subscriber failed on {event}: {e}")

    def log(self, message: str, severity: Union[Severity, str] = Severity.ACTION) -> None:
        """Add a line to the event log."""
        severity = Severity(severity)
        logger.opt(depth=1).log(SEVERITY_LEVELS[severity], f"[{severity.value.upper()}] {message}")
        self._dispatch("log", {'message': message, 'severity': severity.value})

    def toast(self, message: str, severity: str = "info") -> None:
        """Show a transient notification."""
        logger.debug(f"Toast ({severity}): {message}")
        self._dispatch("toast", {'message': message, 'severity': severity})

    def push(self, view: str, payload: Any = None) -> None:
        """
        Ask the presentation layer to refresh a view.

        Args:
            view: "portfolio", "positions", "watchlist" or "chart"
            payload: Current data for the view
        """
        self._dispatch(f"refresh:{view}", payload)
