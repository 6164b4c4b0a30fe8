"""
Retry with exponential backoff for outbound HTTP calls.
Every broker and AI request goes through BackoffPolicy.execute().
"""
import time
from typing import Any, Callable, List, Optional

import httpx
from loguru import logger


class GatewayError(Exception):
    """Base class for remote call failures."""
    pass


class AuthFailure(GatewayError):
    """Credentials were rejected (HTTP 401). Never retried."""

    def __init__(self, message: str = "Authentication Failed (401). Please check your API keys."):
        super().__init__(message)


class ApiError(GatewayError):
    """Remote call failed after retries were exhausted."""

    def __init__(self, status_code: Optional[int], body: str, message: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        if message is None:
            message = f"API Error ({status_code}): {body}"
        super().__init__(message)


class BackoffPolicy:
    """
    Bounded retry loop with exponentially growing delays.

    With the defaults a failing call is attempted 4 times, sleeping
    2s, 4s and 8s in between.
    """

    def __init__(
        self,
        max_retries: int = 3,
        initial_delay: float = 2.0,
        multiplier: float = 2.0,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize backoff policy.

        Args:
            max_retries: Retries after the first attempt
            initial_delay: Delay before the first retry (seconds)
            multiplier: Delay growth factor
            sleep: Sleep function (injected in tests)
        """
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.multiplier = multiplier
        self.sleep = sleep

    def delays(self) -> List[float]:
        """Delays slept between attempts, in order."""
        return [self.initial_delay * (self.multiplier ** i) for i in range(self.max_retries)]

    def execute(self, send: Callable[[], httpx.Response], description: str = "request") -> Any:
        """
        Send a request, retrying every failure except a rejected credential.

        Args:
            send: Callable performing one HTTP request
            description: Label used in log messages

        Returns:
            Decoded JSON payload, or None for 204 No Content

        Raises:
            AuthFailure: On HTTP 401 (first occurrence, no retry)
            ApiError: On any other failure once retries are exhausted
        """
        delays = self.delays()

        for attempt in range(self.max_retries + 1):
            can_retry = attempt < self.max_retries

            try:
                response = send()
            except httpx.HTTPError as e:
                if can_retry:
                    logger.warning(
                        f"Network error on {description} "
                        f"(attempt {attempt + 1}/{self.max_retries + 1}): {e} | "
                        f"retrying in {delays[attempt]:.0f}s"
                    )
                    self.sleep(delays[attempt])
                    continue
                raise ApiError(None, str(e), f"Network error on {description}: {e}") from e

            status = response.status_code

            if status == 401:
                raise AuthFailure()

            if status == 204:
                return None

            if response.is_success:
                try:
                    return response.json()
                except ValueError as e:
                    raise ApiError(status, response.text, f"Invalid JSON from {description}") from e

            if can_retry:
                reason = "Rate limit hit" if status == 429 else f"HTTP {status}"
                logger.warning(
                    f"{reason} on {description}. Retrying in {delays[attempt]:.0f}s..."
                )
                self.sleep(delays[attempt])
                continue

            raise ApiError(status, response.text)

        # Unreachable: the last attempt either returns or raises
        raise ApiError(None, "", f"Retries exhausted for {description}")
