"""
Logging setup and structured log helpers (loguru).
"""
import os
import sys
from pathlib import Path

from loguru import logger

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{module}</cyan>:<cyan>{function}</cyan> | "
    "<level>{message}</level>"
)


def setup_logging(
    logs_dir: str,
    level: str = "INFO",
    rotation: str = "1 day",
    retention: str = "30 days",
    format_type: str = "text",
    enable_console: bool = True
) -> None:
    """
    Set up logging with rotation and multiple outputs.

    Args:
        logs_dir: Directory for log files
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        rotation: When to rotate logs (e.g., "1 day", "500 MB")
        retention: How long to keep logs (e.g., "30 days")
        format_type: "json" (serialized records) or "text"
        enable_console: Whether to log to console
    """
    Path(logs_dir).mkdir(parents=True, exist_ok=True)
    logger.remove()

    serialize = format_type == "json"

    if enable_console:
        logger.add(
            sys.stdout,
            format=TEXT_FORMAT,
            level=level,
            colorize=not serialize,
            serialize=serialize,
            enqueue=True
        )

    # Runtime log (everything at the configured level)
    logger.add(
        os.path.join(logs_dir, "runtime.log"),
        level=level,
        rotation=rotation,
        retention=retention,
        compression="zip",
        enqueue=True,
        serialize=serialize
    )

    # Errors are kept longer
    logger.add(
        os.path.join(logs_dir, "errors.log"),
        level="ERROR",
        rotation=rotation,
        retention="60 days",
        compression="zip",
        enqueue=True,
        serialize=serialize
    )

    # Trade audit trail
    logger.add(
        os.path.join(logs_dir, "trades.log"),
        level="INFO",
        rotation=rotation,
        retention="90 days",
        compression="zip",
        enqueue=True,
        serialize=serialize,
        filter=lambda record: "TRADE" in record["message"] or "ORDER" in record["message"]
    )

    logger.info(f"Logging initialized: level={level}, dir={logs_dir}, format={format_type}")


def log_trade(action: str, symbol: str, qty: int, price: float, **kwargs) -> None:
    """
    Log a trade event with structured data.

    Args:
        action: Trade action (e.g., "BUY", "SELL")
        symbol: Stock symbol
        qty: Quantity
        price: Trade price
        **kwargs: Additional trade metadata
    """
    extra_info = " | ".join([f"{k}={v}" for k, v in kwargs.items()])
    msg = f"TRADE | {action} | {symbol} | qty={qty} | price={price:.2f}"
    if extra_info:
        msg += f" | {extra_info}"
    logger.info(msg)


def log_signal(strategy: str, symbol: str, reason: str, **kwargs) -> None:
    """
    Log an entry signal.

    Args:
        strategy: Strategy name
        symbol: Stock symbol
        reason: Signal reasoning
        **kwargs: Indicator values behind the signal
    """
    extra_info = " | ".join([f"{k}={v}" for k, v in kwargs.items()])
    msg = f"SIGNAL | {strategy} | {symbol} | {reason}"
    if extra_info:
        msg += f" | {extra_info}"
    logger.info(msg)


def log_error_with_context(error: Exception, context: str, **kwargs) -> None:
    """
    Log an error with additional context and its traceback.

    Args:
        error: Exception object
        context: Operation that failed
        **kwargs: Additional context metadata (symbol, ...)
    """
    extra_info = " | ".join([f"{k}={v}" for k, v in kwargs.items()])
    msg = f"ERROR | {context} | {type(error).__name__}: {error}"
    if extra_info:
        msg += f" | {extra_info}"
    logger.opt(exception=error).error(msg)
