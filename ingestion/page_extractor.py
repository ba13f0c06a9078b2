"""Page image text extraction through vision-capable models."""
import abc
import base64
import json
import re
from typing import Any, Dict, List, Optional

import httpx
from anthropic import Anthropic

from execution.retry_handler import RetryHandler
from ingestion.models import DataPoint, ExtractionResult, VisualElement
from utils.errors import (
    ExtractionFailure,
    PipelineError,
    RateLimitFailure,
    TimeoutFailure,
    translate_provider_error,
)
from utils.logger import setup_logger
import config

logger = setup_logger(__name__)

ARABIC_CHARS = re.compile(r"[؀-ۿݐ-ݿ]")

EXTRACTION_PROMPT = """Analyze this textbook page image and extract all text with high accuracy.
The page is in {language_name} and may have multiple columns.

Return a JSON object with this structure:
{{
  "columns": [
    {{"order": 1, "text": "content of the first column to read"}}
  ],
  "sections": {{"heading": "text under that heading"}},
  "visual_elements": [
    {{
      "type": "table | graph | figure",
      "number": "2-1",
      "title": "caption as printed",
      "description": "what the element shows",
      "headers": ["column headers for tables"],
      "rows": [["cell", "cell"]],
      "points": [{{"x": 1, "y": 2}}]
    }}
  ]
}}

Instructions:
1. Read columns in the correct reading order ({direction}); the first column read has order 1
2. Preserve mathematical formulas, equations and symbols exactly as they appear
3. Keep problem numbers (13., 14., 15., ...) and their sequence
4. Keep units (mL, L, atm, %, ...) exactly as written
5. Ignore headers, footers, page numbers and navigation elements
6. Keep paragraph breaks within each column
7. Transcribe every table row and every labelled data point of graphs
8. DO NOT summarize or modify the content; extract exactly as written

Return ONLY the JSON object."""


def extract_json_payload(response_text: str) -> Optional[Any]:
    """Parse JSON out of a model response, tolerating code fences and prose.

    Returns:
        Parsed value, or None when no JSON could be recovered
    """
    try:
        return json.loads(response_text)
    except json.JSONDecodeError:
        pass

    extracted = None
    if "```json" in response_text:
        extracted = response_text.split("```json")[1].split("```")[0].strip()
    elif "```" in response_text:
        parts = response_text.split("```")
        if len(parts) >= 3:
            extracted = parts[1].strip()

    if extracted:
        try:
            return json.loads(extracted)
        except json.JSONDecodeError:
            pass

    # Last resort: first opening bracket to the matching last closing one
    start_arr = response_text.find("[")
    start_obj = response_text.find("{")
    if start_arr == -1 and start_obj == -1:
        return None
    if start_arr == -1 or (start_obj != -1 and start_obj < start_arr):
        start, end_char = start_obj, "}"
    else:
        start, end_char = start_arr, "]"

    end = response_text.rfind(end_char)
    if end == -1:
        return None
    try:
        return json.loads(response_text[start:end + 1])
    except json.JSONDecodeError:
        return None


def _parse_visual_elements(raw: Any) -> List[VisualElement]:
    elements = []
    if not isinstance(raw, list):
        return elements

    for item in raw:
        if not isinstance(item, dict):
            continue
        kind = str(item.get("type", "figure")).lower()
        if kind not in ("table", "graph", "figure"):
            kind = "figure"
        points = []
        for point in item.get("points") or []:
            try:
                points.append(DataPoint(x=float(point["x"]), y=float(point["y"])))
            except (KeyError, TypeError, ValueError):
                continue
        number = item.get("number")
        elements.append(VisualElement(
            type=kind,
            number=str(number) if number is not None else None,
            title=str(item.get("title") or f"{kind} {number or ''}".strip()),
            description=str(item.get("description") or ""),
            headers=[str(h) for h in item.get("headers") or []],
            rows=[[str(c) for c in row] for row in item.get("rows") or [] if isinstance(row, list)],
            points=points,
        ))
    return elements


def parse_extraction_response(response_text: str) -> Dict[str, Any]:
    """Turn a raw provider reply into text, sections and visual elements.

    Replies that are not JSON are taken as plain text.
    """
    payload = extract_json_payload(response_text)
    if not isinstance(payload, dict):
        return {"text": response_text.strip(), "sections": {}, "visual_elements": []}

    columns = payload.get("columns")
    if isinstance(columns, list) and columns:
        ordered = sorted(
            (c for c in columns if isinstance(c, dict)),
            key=lambda c: c.get("order", 0)
        )
        text = "\n\n".join(str(c.get("text", "")) for c in ordered)
    else:
        text = str(payload.get("text") or "")

    sections = payload.get("sections") or {}
    if not isinstance(sections, dict):
        sections = {}

    return {
        "text": text.strip(),
        "sections": {str(k): str(v) for k, v in sections.items()},
        "visual_elements": _parse_visual_elements(payload.get("visual_elements")),
    }


def primary_confidence(text: str) -> float:
    """Confidence for the full-capability model, capped at 0.95."""
    confidence = 0.85
    if len(text) > 100:
        confidence += 0.05
    if len(text) > 500:
        confidence += 0.05
    if len(ARABIC_CHARS.findall(text)) > 10:
        confidence += 0.05
    return min(confidence, 0.95)


def fallback_confidence(text: str, ceiling: float = config.FALLBACK_CONFIDENCE_CEILING) -> float:
    """Heuristic text-quality confidence for the reduced-capability model."""
    special = re.findall(r"[^a-zA-Z؀-ۿݐ-ݿ0-9\s.,!?؟،]", text)
    score = 0.5
    if len(text) > 20:
        score += 0.2
    if re.search(r"\s", text):
        score += 0.15
    if re.search(r"[a-zA-Z؀-ۿݐ-ݿ]", text):
        score += 0.1
    if len(special) < len(text) * 0.3:
        score += 0.1
    if "\n" in text or "." in text:
        score += 0.05
    return min(score, ceiling)


class ExtractionProvider(abc.ABC):
    """One model able to read a page image."""

    name: str = "provider"

    @abc.abstractmethod
    def extract(self, image_url: str, language: str = "ar") -> ExtractionResult:
        """Extract text from the page image.

        Raises:
            PipelineError: On timeout, throttling or unusable output
        """
        pass


class AnthropicVisionProvider(ExtractionProvider):
    """Extraction through an Anthropic vision model."""

    def __init__(
        self,
        client: Anthropic,
        model: str = config.VISION_MODEL,
        name: str = "anthropic-vision",
        confidence_ceiling: Optional[float] = None,
        http_client: Optional[httpx.Client] = None,
        retry_handler: Optional[RetryHandler] = None,
        max_tokens: int = config.EXTRACTION_MAX_TOKENS,
    ):
        """Initialize provider.

        Args:
            client: Anthropic API client
            model: Vision model name
            name: Provider name used in logs and records
            confidence_ceiling: Cap applied to fallback-style confidence; None
                means full-capability confidence
            http_client: Client used to download the page image
            retry_handler: Policy for throttled calls
            max_tokens: Output token bound
        """
        self.client = client
        self.model = model
        self.name = name
        self.confidence_ceiling = confidence_ceiling
        self.http_client = http_client or httpx.Client(timeout=config.PROVIDER_TIMEOUT_SECONDS)
        self.retry_handler = retry_handler or RetryHandler()
        self.max_tokens = max_tokens

    def _fetch_image(self, image_url: str) -> Dict[str, str]:
        try:
            response = self.http_client.get(image_url, follow_redirects=True)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise TimeoutFailure(f"{self.name}: image download timed out: {e}")
        except httpx.HTTPError as e:
            raise ExtractionFailure(f"{self.name}: could not download page image: {e}")

        media_type = response.headers.get("content-type", "image/jpeg").split(";")[0].strip()
        return {
            "type": "base64",
            "media_type": media_type,
            "data": base64.standard_b64encode(response.content).decode("utf-8"),
        }

    def _create(self, image_source: Dict[str, str], prompt: str) -> str:
        try:
            message = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=config.LLM_TEMPERATURE,
                timeout=config.PROVIDER_TIMEOUT_SECONDS,
                messages=[{
                    "role": "user",
                    "content": [
                        {"type": "image", "source": image_source},
                        {"type": "text", "text": prompt},
                    ],
                }],
            )
        except Exception as e:
            raise translate_provider_error(e, self.name, default=ExtractionFailure) from e

        return "".join(
            block.text for block in message.content if getattr(block, "type", "") == "text"
        )

    def extract(self, image_url: str, language: str = "ar") -> ExtractionResult:
        image_source = self._fetch_image(image_url)
        prompt = EXTRACTION_PROMPT.format(
            language_name="Arabic" if language == "ar" else "English",
            direction="right-to-left" if language == "ar" else "left-to-right",
        )

        response_text = self.retry_handler.execute_with_retry(self._create, image_source, prompt)
        parsed = parse_extraction_response(response_text)

        if self.confidence_ceiling is None:
            confidence = primary_confidence(parsed["text"])
        else:
            confidence = fallback_confidence(parsed["text"], self.confidence_ceiling)

        return ExtractionResult(
            text=parsed["text"],
            confidence=confidence,
            provider=self.name,
            structured_sections=parsed["sections"],
            visual_elements=parsed["visual_elements"],
        )


class PageExtractor:
    """Tries extraction providers in order until one returns usable text."""

    def __init__(self, providers: List[ExtractionProvider], min_chars: int = config.MIN_EXTRACTED_CHARS):
        if not providers:
            raise ValueError("At least one extraction provider is required")
        self.providers = providers
        self.min_chars = min_chars

    def extract(self, image_url: str, language: str = "ar") -> ExtractionResult:
        """Extract page text, falling back to the next provider on failure.

        Args:
            image_url: URL of the page image
            language: Language hint ("ar" or "en")

        Returns:
            ExtractionResult from the first provider that succeeded

        Raises:
            TimeoutFailure: Every provider timed out
            RateLimitFailure: Every provider was throttled
            ExtractionFailure: Otherwise, when no provider produced usable text
        """
        failures: List[PipelineError] = []

        for provider in self.providers:
            try:
                result = provider.extract(image_url, language)
            except PipelineError as e:
                logger.warning(f"Extraction with {provider.name} failed: {e}")
                failures.append(e)
                continue

            if len(result.text.strip()) < self.min_chars:
                logger.warning(
                    f"Extraction with {provider.name} returned only {len(result.text.strip())} chars"
                )
                failures.append(ExtractionFailure(f"{provider.name}: unusable text"))
                continue

            logger.info(
                f"Extracted {len(result.text)} chars with {provider.name} "
                f"(confidence {result.confidence:.2f})"
            )
            return result

        transient = (TimeoutFailure, RateLimitFailure)
        if failures and all(isinstance(f, transient) for f in failures):
            raise failures[-1]
        details = "; ".join(str(f) for f in failures)
        raise ExtractionFailure(f"All extraction providers failed: {details}")


def build_default_extractor(client: Optional[Anthropic] = None) -> PageExtractor:
    """Primary vision model followed by the reduced-capability fallback."""
    client = client or Anthropic(api_key=config.ANTHROPIC_API_KEY, max_retries=0)
    http_client = httpx.Client(timeout=config.PROVIDER_TIMEOUT_SECONDS)
    return PageExtractor([
        AnthropicVisionProvider(client, config.VISION_MODEL, name="anthropic-vision", http_client=http_client),
        AnthropicVisionProvider(
            client,
            config.VISION_FALLBACK_MODEL,
            name="anthropic-vision-fallback",
            confidence_ceiling=config.FALLBACK_CONFIDENCE_CEILING,
            http_client=http_client,
        ),
    ])
