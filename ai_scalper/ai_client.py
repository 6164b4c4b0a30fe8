"""
AI Client - asks a Gemini model for a BUY/HOLD call on one candidate.
"""
import json
import re
from typing import Any, Dict, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from ai_scalper.models import IndicatorSet, Recommendation
from ai_scalper.rate_limiter import BackoffPolicy, GatewayError

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-1.5-flash-latest"

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


class ParseFailure(Exception):
    """AI response could not be turned into a Recommendation."""
    pass


def strip_markdown_json(text: str) -> str:
    """
    Remove Markdown fences and any prose around the JSON object.

    Args:
        text: Raw model output

    Returns:
        The text between the first '{' and the last '}' (or the cleaned text)
    """
    cleaned = _FENCE_RE.sub("", text or "").strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        return cleaned[start:end + 1]
    return cleaned


def parse_recommendation(text: str, symbol: str) -> Recommendation:
    """
    Parse model output into a Recommendation.

    Args:
        text: Raw model output
        symbol: Symbol the prompt was about (used when ticker is missing)

    Returns:
        Recommendation

    Raises:
        ParseFailure: If the payload is not valid JSON or fails validation
    """
    try:
        payload = json.loads(strip_markdown_json(text))
    except json.JSONDecodeError as e:
        raise ParseFailure(f"Invalid JSON for {symbol}: {e}") from e

    if not isinstance(payload, dict):
        raise ParseFailure(f"Expected a JSON object for {symbol}, got {type(payload).__name__}")

    ticker = payload.get('ticker')
    if ticker is not None and str(ticker).strip().upper() != symbol.upper():
        raise ParseFailure(f"Recommendation for {symbol} names a different ticker: {ticker}")
    # the indicators belong to the prompted symbol
    payload['ticker'] = symbol

    if isinstance(payload.get('decision'), str):
        payload['decision'] = payload['decision'].strip().upper()

    try:
        return Recommendation.model_validate(payload)
    except ValidationError as e:
        raise ParseFailure(f"Invalid recommendation for {symbol}: {e}") from e


class AIClient:
    """
    Client for the Gemini generateContent API.
    Provides per-symbol recommendations for the watchlist builder.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        api_key: str,
        backoff: Optional[BackoffPolicy] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Initialize AI client.

        Args:
            config: Configuration dictionary with the `ai` section
            api_key: Gemini API key
            backoff: Retry policy (shared with the broker client)
            transport: Optional httpx transport (tests)
        """
        ai_config = config.get('ai', {})
        self.base_url = ai_config.get('base_url', GEMINI_BASE_URL).rstrip('/')
        self.model = ai_config.get('model', DEFAULT_MODEL)
        self.temperature = ai_config.get('temperature', 0.2)
        self.api_key = api_key
        self.backoff = backoff or BackoffPolicy()
        self.http = httpx.Client(timeout=ai_config.get('timeout', 30), transport=transport)

        logger.info(f"AI Client initialized - Model: {self.model}")

    def build_prompt(self, headlines: str, indicators: IndicatorSet) -> str:
        """
        Build the analyst prompt for one candidate.

        Args:
            headlines: Newline separated market headlines (may be empty)
            indicators: Technical snapshot of the candidate

        Returns:
            Prompt text
        """
        symbol = indicators.symbol
        return f"""You are a senior hedge fund analyst. Decide 'BUY' or 'HOLD' for an intraday scalping strategy.
Weigh general market news and the stock's quantitative data equally.
'BUY' only when technicals are strong (bullish MACD, enough ATR volatility) and the news is supportive.
'HOLD' when the data is mixed, neutral or negative. Never answer 'SELL'.

Reply with this JSON object only:
{{
    "ticker": "{symbol}",
    "decision": "BUY" or "HOLD",
    "confidence": integer from 1 (low) to 10 (high),
    "reasoning": "one or two sentences combining the data points"
}}

--- DATA ---
General market news:
{headlines or "(no recent headlines)"}

{symbol} specifics:
- Price: {indicators.current_price}, 5-min RSI: {indicators.rsi_5m:.2f}, 5-min ATR: {indicators.atr:.4f}
- 5-min MACD: {indicators.macd.macd:.4f}, 5-min MACD signal: {indicators.macd.signal:.4f}
--- END DATA ---"""

    def generate(self, prompt: str) -> str:
        """
        Send a prompt and return the first candidate's text.

        Raises:
            GatewayError: Request failed
            ParseFailure: Response has no candidate text
        """
        url = f"{self.base_url}/models/{self.model}:generateContent"
        body = {
            'contents': [{'parts': [{'text': prompt}]}],
            'generationConfig': {'temperature': self.temperature},
        }

        def send() -> httpx.Response:
            return self.http.post(url, params={'key': self.api_key}, json=body)

        data = self.backoff.execute(send, description="AI generateContent")

        try:
            return data['candidates'][0]['content']['parts'][0]['text']
        except (KeyError, IndexError, TypeError) as e:
            raise ParseFailure(f"Unexpected AI response shape: {e}") from e

    def get_recommendation(
        self,
        headlines: str,
        indicators: IndicatorSet
    ) -> Optional[Recommendation]:
        """
        Ask the model for a recommendation on one candidate.

        Failures are logged and reported as no recommendation so that one
        symbol never aborts the batch.

        Args:
            headlines: Newline separated headlines
            indicators: Technical snapshot

        Returns:
            Recommendation or None
        """
        symbol = indicators.symbol
        try:
            text = self.generate(self.build_prompt(headlines, indicators))
            recommendation = parse_recommendation(text, symbol)
        except ParseFailure as e:
            logger.error(f"AI parsing failed for {symbol}: {e}")
            return None
        except GatewayError as e:
            logger.error(f"AI request failed for {symbol}: {e}")
            return None

        logger.info(
            f"AI | {symbol} | {recommendation.decision.value} | "
            f"confidence={recommendation.confidence} | {recommendation.reasoning}"
        )
        return recommendation

    def close(self) -> None:
        self.http.close()
