import json

import httpx
import pytest

from ai_scalper.ai_client import AIClient, ParseFailure, parse_recommendation, strip_markdown_json
from ai_scalper.models import Decision
from ai_scalper.rate_limiter import BackoffPolicy
from conftest import make_indicators


def _gemini_reply(text):
    return {'candidates': [{'content': {'parts': [{'text': text}]}}]}


def _client(handler):
    config = {'ai': {'base_url': 'https://ai.test/v1beta', 'model': 'test-model'}}
    return AIClient(
        config,
        api_key="gem-key",
        backoff=BackoffPolicy(sleep=lambda _: None),
        transport=httpx.MockTransport(handler),
    )


def test_strip_markdown_json_removes_fences_and_prose():
    raw = 'Sure, here it is:\n```json\n{"ticker": "AAPL", "decision": "BUY"}\n```\nGood luck!'
    assert strip_markdown_json(raw) == '{"ticker": "AAPL", "decision": "BUY"}'


def test_parse_recommendation_normalises_decision_and_ticker():
    rec = parse_recommendation('{"decision": "buy", "confidence": 9, "reasoning": "strong"}', "NVDA")

    assert rec.ticker == "NVDA"
    assert rec.decision is Decision.BUY
    assert rec.confidence == 9


@pytest.mark.parametrize("text", [
    "not json at all",
    '{"ticker": "AAPL", "decision": "SELL", "confidence": 5}',
    '{"ticker": "AAPL", "decision": "BUY", "confidence": 11}',
    '{"ticker": "MSFT", "decision": "BUY", "confidence": 8}',
    '["BUY"]',
])
def test_parse_recommendation_rejects_bad_payloads(text):
    with pytest.raises(ParseFailure):
        parse_recommendation(text, "AAPL")


def test_parse_recommendation_keeps_prompted_symbol():
    rec = parse_recommendation('{"ticker": " nvda ", "decision": "BUY", "confidence": 8}', "NVDA")
    assert rec.ticker == "NVDA"


def test_prompt_contains_headlines_and_indicators():
    client = _client(lambda request: httpx.Response(500))
    prompt = client.build_prompt("Chip stocks rally", make_indicators("AMD", rsi_5m=61.25))

    assert "Chip stocks rally" in prompt
    assert '"ticker": "AMD"' in prompt
    assert "61.25" in prompt


def test_get_recommendation_sends_key_and_parses_fenced_reply():
    captured = {}

    def handler(request):
        captured['path'] = request.url.path
        captured['key'] = request.url.params['key']
        captured['body'] = json.loads(request.content)
        text = '```json\n{"ticker": "AAPL", "decision": "BUY", "confidence": 8, "reasoning": "ok"}\n```'
        return httpx.Response(200, json=_gemini_reply(text))

    rec = _client(handler).get_recommendation("headline", make_indicators("AAPL"))

    assert rec.decision is Decision.BUY
    assert rec.confidence == 8
    assert captured['path'] == "/v1beta/models/test-model:generateContent"
    assert captured['key'] == "gem-key"
    assert captured['body']['contents'][0]['parts'][0]['text'].startswith("You are a senior")


def test_get_recommendation_returns_none_on_garbage():
    client = _client(lambda request: httpx.Response(200, json=_gemini_reply("I cannot help")))
    assert client.get_recommendation("", make_indicators()) is None


def test_get_recommendation_returns_none_on_missing_candidates():
    client = _client(lambda request: httpx.Response(200, json={'candidates': []}))
    assert client.get_recommendation("", make_indicators()) is None


def test_get_recommendation_returns_none_on_api_error():
    client = _client(lambda request: httpx.Response(400, text="bad request"))
    assert client.get_recommendation("", make_indicators()) is None
