"""
Gemini Client — hosted model for covenant extraction and risk scoring.

Implements three collaborator contracts:
- ExtractionService:    contract text → covenant candidates
- RiskNarrativeService: covenant + borrower context → risk assessment
- EventRiskService:     adverse event + borrower context → event risk score

Every failure (missing key, transport error, non-2xx, empty candidates,
unparseable JSON) surfaces as ExternalServiceError. Callers decide the
fallback; this client never invents a default answer.
"""

import json
import math
import time
from typing import Any, Optional

import httpx
import structlog

from covenantwatch.config import settings
from covenantwatch.exceptions import ExternalServiceError
from covenantwatch.schemas.covenants import (
    BorrowerContext,
    CovenantRiskContext,
    RiskAssessment,
)
from covenantwatch.schemas.events import AdverseEventInput, EventRiskScore
from covenantwatch.schemas.extraction import ExtractedCovenant, ExtractionResult
from covenantwatch.services.resilience import CircuitBreaker, retry_with_backoff

logger = structlog.get_logger(__name__)

SERVICE_NAME = "gemini"

SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


# ── Prompts ────────────────────────────────────────────────────────────


def build_extraction_prompt(contract_text: str) -> str:
    return f"""
You are an expert financial analyst specializing in loan covenant extraction. Analyze the following contract text and extract all financial and operational covenants.

For each covenant found, provide:
1. covenant_name: A clear, descriptive name
2. covenant_type: One of "financial", "operational", "reporting", "other"
3. metric_name: The specific financial metric (e.g., "debt_to_ebitda", "current_ratio")
4. operator: The comparison operator ("<", "<=", ">", ">=", "=", "!=")
5. threshold_value: The numeric threshold (extract number only)
6. threshold_unit: The unit if applicable (e.g., "ratio", "dollars", "percent")
7. check_frequency: One of "monthly", "quarterly", "annually", "on_demand"
8. covenant_clause: The exact text from the contract
9. confidence_score: Your confidence in the extraction (0.0 to 1.0)

Contract Text:
{contract_text}

Respond with valid JSON in this exact format:
{{
  "covenants": [
    {{
      "covenant_name": "string",
      "covenant_type": "financial|operational|reporting|other",
      "metric_name": "string",
      "operator": "<|<=|>|>=|=|!=",
      "threshold_value": number,
      "threshold_unit": "string",
      "check_frequency": "monthly|quarterly|annually|on_demand",
      "covenant_clause": "string",
      "confidence_score": number
    }}
  ],
  "summary": "Brief summary of extraction results"
}}

Focus on measurable, quantifiable covenants. If a covenant is unclear or ambiguous, set confidence_score below 0.7.
"""


def _fmt(value: Optional[float]) -> str:
    return "N/A" if value is None else f"{value}"


def build_risk_prompt(covenant: CovenantRiskContext, borrower: BorrowerContext) -> str:
    return f"""
You are a senior credit risk analyst. Analyze the following covenant situation and provide a comprehensive risk assessment.

Covenant Information:
- Name: {covenant.covenant_name}
- Current Value: {_fmt(covenant.current_value)}
- Threshold: {_fmt(covenant.threshold_value)}
- Trend: {covenant.trend.value}
- Buffer: {_fmt(covenant.buffer_percentage)}%

Borrower: {borrower.borrower_name}
Industry: {borrower.industry or "Unknown"}
Recent Metrics: {json.dumps(borrower.recent_metrics)}

Provide your analysis in this JSON format:
{{
  "risk_score": number (1-10, where 10 is highest risk),
  "risk_factors": ["factor1", "factor2", ...],
  "recommended_actions": ["action1", "action2", ...],
  "assessment_summary": "Detailed narrative assessment",
  "confidence_level": number (0.0-1.0)
}}

Consider:
- Proximity to covenant breach
- Trend direction and velocity
- Industry context and market conditions
- Buffer adequacy
- Historical performance patterns
"""


def build_event_prompt(event: AdverseEventInput, borrower: BorrowerContext) -> str:
    return f"""
You are a credit risk analyst evaluating the impact of adverse events on loan covenants.

Event Details:
- Headline: {event.headline}
- Description: {event.description or "N/A"}
- Event Type: {event.event_type.value}

Borrower Context:
- Company: {borrower.borrower_name}
- Industry: {borrower.industry or "Unknown"}
- Active Covenants: {json.dumps(borrower.active_covenants)}

Analyze the potential impact and respond in JSON format:
{{
  "risk_score": number (1-10),
  "impact_assessment": "Detailed impact analysis",
  "affected_covenants": ["covenant1", "covenant2", ...],
  "recommended_actions": ["action1", "action2", ...]
}}

Consider:
- Direct financial impact on covenant metrics
- Indirect effects on business operations
- Market perception and credit rating implications
- Timeline of potential covenant impacts
"""


# ── Response parsing ───────────────────────────────────────────────────


def _number(value: Any, default: float) -> float:
    """Coerce a model-supplied number; falsy or unparseable → default."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number == 0 or math.isnan(number):
        return default
    return number


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value else None


def extract_response_text(body: Any) -> str:
    """candidates[0].content.parts[0].text of a generateContent response."""
    if not isinstance(body, dict):
        raise ExternalServiceError(SERVICE_NAME, "Malformed Gemini response")
    candidates = body.get("candidates") or []
    if not candidates:
        raise ExternalServiceError(SERVICE_NAME, "No response from Gemini API")
    try:
        text = candidates[0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ExternalServiceError(SERVICE_NAME, "Malformed Gemini response") from exc
    if not isinstance(text, str):
        raise ExternalServiceError(SERVICE_NAME, "Malformed Gemini response")
    return text


def parse_json_payload(text: str) -> dict[str, Any]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ExternalServiceError(SERVICE_NAME, "Failed to parse AI response") from exc
    if not isinstance(parsed, dict):
        raise ExternalServiceError(SERVICE_NAME, "AI response is not a JSON object")
    return parsed


def _threshold(value: Any) -> float:
    # An absent threshold is 0; one the model mangled is NaN so that
    # candidate validation rejects it.
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def parse_extraction(parsed: dict[str, Any]) -> tuple[list[ExtractedCovenant], str]:
    raw = parsed.get("covenants")
    if not isinstance(raw, list):
        raise ExternalServiceError(
            SERVICE_NAME, "Invalid response format: missing covenants array"
        )

    covenants = [
        ExtractedCovenant(
            covenant_name=str(c.get("covenant_name") or "Unknown Covenant"),
            covenant_type=str(c.get("covenant_type") or "other"),
            metric_name=_optional_str(c.get("metric_name")),
            operator=str(c.get("operator") or ">="),
            threshold_value=_threshold(c.get("threshold_value")),
            threshold_unit=_optional_str(c.get("threshold_unit")),
            check_frequency=str(c.get("check_frequency") or "quarterly"),
            covenant_clause=_optional_str(c.get("covenant_clause")),
            confidence_score=_clamp(_number(c.get("confidence_score"), 0.5), 0.0, 1.0),
        )
        for c in raw
        if isinstance(c, dict)
    ]
    summary = str(parsed.get("summary") or "Covenant extraction completed")
    return covenants, summary


def parse_risk_assessment(parsed: dict[str, Any]) -> RiskAssessment:
    return RiskAssessment(
        risk_score=_clamp(_number(parsed.get("risk_score"), 5.0), 1.0, 10.0),
        risk_factors=_string_list(parsed.get("risk_factors")),
        recommended_actions=_string_list(parsed.get("recommended_actions")),
        summary=str(parsed.get("assessment_summary") or "Risk analysis completed"),
        confidence=_clamp(_number(parsed.get("confidence_level"), 0.5), 0.0, 1.0),
    )


def parse_event_risk(parsed: dict[str, Any]) -> EventRiskScore:
    return EventRiskScore(
        risk_score=_clamp(_number(parsed.get("risk_score"), 5.0), 1.0, 10.0),
        impact_assessment=str(parsed.get("impact_assessment") or "Impact analysis completed"),
        affected_covenants=_string_list(parsed.get("affected_covenants")),
        recommended_actions=_string_list(parsed.get("recommended_actions")),
    )


# ── Client ─────────────────────────────────────────────────────────────


class GeminiClient:
    """Gateway for the Gemini generateContent API (JSON mode, non-streaming)."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        retry_attempts: int | None = None,
        retry_base_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.timeout = timeout or settings.gemini_timeout_seconds
        self.retry_attempts = (
            retry_attempts if retry_attempts is not None else settings.gemini_retry_attempts
        )
        self.retry_base_delay = retry_base_delay
        self._transport = transport
        self.breaker = breaker or CircuitBreaker(
            name=SERVICE_NAME, failure_threshold=3, recovery_timeout=60.0
        )
        if not self.api_key:
            logger.warning("gemini_api_key_missing", msg="AI features will be unavailable")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        async with self._client() as client:
            response = await client.post(url, params={"key": self.api_key}, json=payload)
            response.raise_for_status()
            return response.json()

    async def generate_json(
        self,
        prompt: str,
        temperature: float = 0.1,
        max_output_tokens: int = 2048,
    ) -> dict[str, Any]:
        """Run one prompt and return the model's JSON object."""
        if not self.configured:
            raise ExternalServiceError(SERVICE_NAME, "Gemini API key not configured")

        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": max_output_tokens,
                "responseMimeType": "application/json",
            },
            "safetySettings": [
                {"category": c, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
                for c in SAFETY_CATEGORIES
            ],
        }

        try:
            body = await retry_with_backoff(
                lambda: self.breaker.call(self._post, payload),
                max_retries=self.retry_attempts,
                base_delay=self.retry_base_delay,
                retry_on=(httpx.TransportError,),
                operation_name="gemini_generate",
            )
        except httpx.HTTPStatusError as exc:
            logger.error(
                "gemini_api_error",
                status=exc.response.status_code,
                body=exc.response.text[:500],
            )
            raise ExternalServiceError(
                SERVICE_NAME,
                f"Gemini API error: {exc.response.status_code}",
                details={"status": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("gemini_transport_error", error=str(exc))
            raise ExternalServiceError(SERVICE_NAME, f"Gemini unreachable: {exc}") from exc
        except ValueError as exc:
            raise ExternalServiceError(SERVICE_NAME, "Gemini returned invalid JSON") from exc

        return parse_json_payload(extract_response_text(body))

    # ── Collaborator contracts ─────────────────────────────────────────

    async def extract_covenants(self, contract_text: str) -> ExtractionResult:
        started = time.monotonic()
        parsed = await self.generate_json(
            build_extraction_prompt(contract_text),
            temperature=0.1,
            max_output_tokens=4096,
        )
        covenants, summary = parse_extraction(parsed)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "gemini_covenants_extracted",
            candidates=len(covenants),
            processing_time_ms=elapsed_ms,
        )
        return ExtractionResult(
            covenants=covenants, summary=summary, processing_time_ms=elapsed_ms
        )

    async def assess_covenant_risk(
        self, covenant: CovenantRiskContext, borrower: BorrowerContext
    ) -> RiskAssessment:
        parsed = await self.generate_json(
            build_risk_prompt(covenant, borrower),
            temperature=0.3,
            max_output_tokens=2048,
        )
        return parse_risk_assessment(parsed)

    async def score_adverse_event(
        self, event: AdverseEventInput, borrower: BorrowerContext
    ) -> EventRiskScore:
        parsed = await self.generate_json(
            build_event_prompt(event, borrower),
            temperature=0.2,
            max_output_tokens=1536,
        )
        return parse_event_risk(parsed)

    async def health_check(self) -> bool:
        if not self.configured:
            return False
        try:
            await self.generate_json("Respond with {\"ok\": true}", max_output_tokens=10)
        except ExternalServiceError:
            return False
        return True
