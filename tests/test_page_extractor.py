"""Test page image extraction and provider fallback."""
import json
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from execution.retry_handler import RetryHandler
from ingestion.models import ExtractionResult
from ingestion.page_extractor import (
    AnthropicVisionProvider,
    ExtractionProvider,
    PageExtractor,
    extract_json_payload,
    fallback_confidence,
    parse_extraction_response,
    primary_confidence,
)
from utils.errors import ExtractionFailure, TimeoutFailure

PAGE_TEXT = "الغاز المثالي هو غاز افتراضي تتحرك جسيماته بحرية تامة ويتبع قانون بويل."


class FakeExtraction(ExtractionProvider):
    def __init__(self, name, text=PAGE_TEXT, error=None):
        self.name = name
        self.text = text
        self.error = error
        self.calls = 0

    def extract(self, image_url, language="ar"):
        self.calls += 1
        if self.error:
            raise self.error
        return ExtractionResult(text=self.text, confidence=0.9, provider=self.name)


class FakeMessages:
    def __init__(self, reply):
        self.reply = reply
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if isinstance(self.reply, Exception):
            raise self.reply
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.reply)])


def _image_client():
    def handler(request):
        return httpx.Response(200, content=b"\x89PNG fake", headers={"content-type": "image/png"})
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_parse_columns_in_reading_order():
    """Test that columns are joined by their order field."""
    reply = json.dumps({
        "columns": [{"order": 2, "text": "الثاني"}, {"order": 1, "text": "الأول"}],
        "sections": {"مقدمة": "نص"},
        "visual_elements": [
            {"type": "table", "number": "2-1", "title": "جدول 2-1", "rows": [["1", "2"]]},
            {"type": "graph", "number": 3, "points": [{"x": 1, "y": 2}, {"x": "bad"}]},
        ],
    }, ensure_ascii=False)

    parsed = parse_extraction_response(f"```json\n{reply}\n```")

    assert parsed["text"] == "الأول\n\nالثاني"
    assert parsed["sections"] == {"مقدمة": "نص"}
    table, graph = parsed["visual_elements"]
    assert table.citation_key == "table:2-1"
    assert graph.number == "3"
    assert len(graph.points) == 1


def test_parse_plain_text_reply():
    """Test that non-JSON replies are kept as text."""
    parsed = parse_extraction_response("  نص عادي بدون JSON  ")

    assert parsed["text"] == "نص عادي بدون JSON"
    assert parsed["visual_elements"] == []


def test_extract_json_payload_from_prose():
    """Test recovery of JSON surrounded by prose."""
    assert extract_json_payload('Here it is: {"text": "x"} done') == {"text": "x"}
    assert extract_json_payload("no json at all") is None


def test_confidences():
    """Test the primary and fallback confidence heuristics."""
    assert primary_confidence("قصير") == 0.85
    assert primary_confidence(PAGE_TEXT * 10) == 0.95
    assert fallback_confidence(PAGE_TEXT) <= 0.7
    assert fallback_confidence("@@") < fallback_confidence(PAGE_TEXT)


def test_vision_provider_downloads_and_parses():
    """Test a full provider call with a fake client."""
    messages = FakeMessages(json.dumps({"columns": [{"order": 1, "text": PAGE_TEXT}]}, ensure_ascii=False))
    provider = AnthropicVisionProvider(
        SimpleNamespace(messages=messages), http_client=_image_client()
    )

    result = provider.extract("https://example.org/book/1.png")

    assert result.text == PAGE_TEXT
    assert result.provider == "anthropic-vision"
    assert 0.85 <= result.confidence <= 0.95
    image_block = messages.kwargs["messages"][0]["content"][0]
    assert image_block["source"]["media_type"] == "image/png"


def test_vision_provider_fallback_confidence_is_capped():
    """Test the reduced-capability ceiling."""
    messages = FakeMessages(PAGE_TEXT)
    provider = AnthropicVisionProvider(
        SimpleNamespace(messages=messages),
        name="fallback",
        confidence_ceiling=0.7,
        http_client=_image_client(),
    )

    assert provider.extract("https://example.org/book/1.png").confidence <= 0.7


def test_vision_provider_timeout():
    """Test that an SDK timeout becomes TimeoutFailure."""
    error = anthropic.APITimeoutError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
    provider = AnthropicVisionProvider(
        SimpleNamespace(messages=FakeMessages(error)),
        http_client=_image_client(),
        retry_handler=RetryHandler(max_retries=0),
    )

    with pytest.raises(TimeoutFailure):
        provider.extract("https://example.org/book/1.png")


def test_vision_provider_image_download_failure():
    """Test a missing page image."""
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    provider = AnthropicVisionProvider(SimpleNamespace(messages=FakeMessages("x")), http_client=client)

    with pytest.raises(ExtractionFailure):
        provider.extract("https://example.org/book/404.png")


def test_extractor_falls_back_to_next_provider():
    """Test fallback on failure and on unusable text."""
    failing = FakeExtraction("primary", error=ExtractionFailure("bad"))
    short = FakeExtraction("second", text="ab")
    working = FakeExtraction("third")

    result = PageExtractor([failing, short, working]).extract("url")

    assert result.provider == "third"
    assert failing.calls == short.calls == working.calls == 1


def test_extractor_all_timeouts():
    """Test that timeouts on every provider stay timeouts."""
    extractor = PageExtractor([
        FakeExtraction("a", error=TimeoutFailure("a")),
        FakeExtraction("b", error=TimeoutFailure("b")),
    ])

    with pytest.raises(TimeoutFailure):
        extractor.extract("url")


def test_extractor_all_failed():
    """Test the generic failure."""
    extractor = PageExtractor([FakeExtraction("a", text=""), FakeExtraction("b", error=TimeoutFailure("b"))])

    with pytest.raises(ExtractionFailure):
        extractor.extract("url")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
