from __future__ import annotations

import json
import re
import time
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx
import openai
from openai import OpenAI

from src.backend.config import settings
from src.backend.domain.models.call_analysis import AnalysisProvider, CallAnalysisResult

# HTTP statuses that mean "provider is down or throttling us, try elsewhere".
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}
# Bad input or bad credentials; another attempt would fail the same way.
NON_RETRYABLE_STATUS_CODES = {400, 401, 403, 404, 422}
_RETRYABLE_MARKERS = ("overloaded", "unavailable", "resource_exhausted", "quota", "rate limit", "timeout")

ANALYSIS_INSTRUCTIONS = (
    "You are an expert sales coach for Think ABC. Analyze the sales call and respond ONLY with a "
    "compact JSON object with these keys:\n"
    "- score: overall performance score, integer 0-100\n"
    "- summary: brief executive summary, at most 2 sentences\n"
    "- strengths: array of exactly 3 short strings\n"
    "- improvements: array of exactly 3 short strings\n"
    "- tone: the sales rep's tone (e.g. confident, hesitant, enthusiastic, pushy, professional)\n"
    "- emotional_intelligence: integer 0-100, how well the rep read and responded to the prospect's emotions\n"
)

AUDIO_INSTRUCTIONS = ANALYSIS_INSTRUCTIONS + (
    "- transcript: the full transcript of the recording with speaker labels (Sales Rep: and Prospect:)\n"
)


class ProviderError(Exception):
    """A provider call that did not produce a usable analysis.

    ``retryable`` marks transient conditions (throttling, overload, quota,
    timeouts, garbled output) that justify trying the next provider.
    """

    def __init__(self, message: str, *, retryable: bool, provider: str) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.provider = provider


def is_retryable_failure(status_code: Optional[int], message: str = "") -> bool:
    """Classify a provider failure from its HTTP status and error text."""

    if status_code in RETRYABLE_STATUS_CODES:
        return True
    if status_code in NON_RETRYABLE_STATUS_CODES:
        return False
    lower = message.lower()
    return any(marker in lower for marker in _RETRYABLE_MARKERS)


class CallAnalysisBackend(Protocol):
    """Protocol for AI providers that score sales calls.

    Implementations return the model's decoded JSON object; shape checks
    happen in :func:`normalize_analysis`. Every failure must be raised as
    :class:`ProviderError`.
    """

    name: str
    supports_audio: bool

    def analyze_transcript(self, transcript: str) -> Dict[str, Any]:  # pragma: no cover - interface
        raise NotImplementedError

    def analyze_audio(self, audio_base64: str, mime_type: str) -> Dict[str, Any]:  # pragma: no cover - interface
        raise NotImplementedError


class GeminiCallAnalysisBackend:
    """Gemini ``generateContent`` over REST.

    Handles both transcripts and inline base64 audio in a single request.
    A preconfigured ``httpx.Client`` can be injected (tests use
    ``httpx.MockTransport``).
    """

    name = "gemini"
    supports_audio = True

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.gemini_api_key
        self._model = model or settings.gemini_model
        self._api_base = (api_base or settings.gemini_api_base).rstrip("/")
        self._timeout = timeout or settings.analysis_provider_timeout_seconds
        self._client = client or httpx.Client(timeout=self._timeout)

    def analyze_transcript(self, transcript: str) -> Dict[str, Any]:
        parts = [{"text": f"{ANALYSIS_INSTRUCTIONS}\nTranscript:\n{transcript}"}]
        return self._generate(parts)

    def analyze_audio(self, audio_base64: str, mime_type: str) -> Dict[str, Any]:
        parts = [
            {"text": f"{AUDIO_INSTRUCTIONS}\nListen to this sales call recording and analyze it."},
            {"inlineData": {"mimeType": mime_type, "data": audio_base64}},
        ]
        return self._generate(parts)

    def _generate(self, parts: List[Dict[str, Any]]) -> Dict[str, Any]:
        if not self._api_key:
            raise ProviderError("GEMINI_API_KEY is not set", retryable=False, provider=self.name)

        body = {
            "contents": [{"parts": parts}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        try:
            status_code, content = self._post(f"{self._api_base}/models/{self._model}:generateContent", body)
        except httpx.TimeoutException as exc:
            raise ProviderError("Gemini request timed out", retryable=True, provider=self.name) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Gemini request failed: {exc!r}", retryable=True, provider=self.name) from exc

        if status_code >= 400:
            error_text = content.decode("utf-8", errors="replace")
            raise ProviderError(
                f"Gemini API error {status_code}: {error_text[:300]}",
                retryable=is_retryable_failure(status_code, error_text),
                provider=self.name,
            )

        try:
            text = json.loads(content)["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ProviderError("Gemini returned no content", retryable=True, provider=self.name) from exc
        return _decode_json_object(text, provider=self.name)

    def _post(self, url: str, body: Dict[str, Any]) -> Tuple[int, bytes]:
        """POST ``body`` and read the reply within one overall deadline.

        httpx timeouts bound each connect/read step separately, so a reply
        that trickles in slowly is cut off here once the deadline passes.
        """

        deadline = time.monotonic() + self._timeout
        chunks: List[bytes] = []
        with self._client.stream("POST", url, headers={"x-goog-api-key": self._api_key}, json=body) as response:
            for chunk in response.iter_bytes():
                chunks.append(chunk)
                if time.monotonic() > deadline:
                    raise ProviderError(
                        f"Gemini response took longer than {self._timeout:g}s",
                        retryable=True,
                        provider=self.name,
                    )
            return response.status_code, b"".join(chunks)


class OpenAICallAnalysisBackend:
    """OpenAI chat completions in JSON mode. Transcripts only."""

    name = "openai"
    supports_audio = False

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[OpenAI] = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.openai_api_key
        self._model = model or settings.openai_model
        self._timeout = timeout or settings.analysis_provider_timeout_seconds
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is None:
            # The router owns fallback; the SDK's own retries would only
            # stretch the time spent on a failing provider. The SDK applies
            # the timeout per request phase, not to the call as a whole.
            self._client = OpenAI(api_key=self._api_key, timeout=self._timeout, max_retries=0)
        return self._client

    def analyze_transcript(self, transcript: str) -> Dict[str, Any]:
        if not self._api_key:
            raise ProviderError("OPENAI_API_KEY is not set", retryable=False, provider=self.name)

        try:
            completion = self._get_client().chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": ANALYSIS_INSTRUCTIONS},
                    {"role": "user", "content": f"Transcript:\n{transcript}"},
                ],
                response_format={"type": "json_object"},
                temperature=0.7,
            )
        except openai.APIConnectionError as exc:
            # Includes APITimeoutError.
            raise ProviderError(f"OpenAI unreachable: {exc}", retryable=True, provider=self.name) from exc
        except openai.APIStatusError as exc:
            raise ProviderError(
                f"OpenAI API error {exc.status_code}: {exc.message}",
                retryable=is_retryable_failure(exc.status_code, exc.message),
                provider=self.name,
            ) from exc
        except openai.OpenAIError as exc:
            # Anything else the SDK raises, e.g. a reply it could not parse.
            raise ProviderError(f"OpenAI request failed: {exc!r}", retryable=True, provider=self.name) from exc

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise ProviderError("OpenAI returned no content", retryable=True, provider=self.name)
        return _decode_json_object(content, provider=self.name)

    def analyze_audio(self, audio_base64: str, mime_type: str) -> Dict[str, Any]:
        raise ProviderError("OpenAI backend does not analyze audio", retryable=False, provider=self.name)


def _decode_json_object(text: str, *, provider: str) -> Dict[str, Any]:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ProviderError("Provider returned invalid JSON", retryable=True, provider=provider) from exc
    if not isinstance(data, dict):
        raise ProviderError("Provider returned a non-object JSON value", retryable=True, provider=provider)
    return data


def _coerce_percentage(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return None
    if isinstance(value, (int, float)):
        return max(0, min(100, int(round(value))))
    return None


def _coerce_three(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    if len(items) < 3:
        return None
    return items[:3]


def normalize_analysis(
    raw: Dict[str, Any],
    *,
    transcript: str,
    provider: AnalysisProvider,
    source: str,
) -> CallAnalysisResult:
    """Turn a provider's JSON object into a :class:`CallAnalysisResult`.

    ``score`` and both three-item lists are mandatory; a response missing
    them is treated as a retryable provider failure. Scores are rounded and
    clamped to 0-100, longer lists are cut to three entries.
    """

    score = _coerce_percentage(raw.get("score"))
    strengths = _coerce_three(raw.get("strengths"))
    improvements = _coerce_three(raw.get("improvements"))
    if score is None or strengths is None or improvements is None:
        raise ProviderError("Provider response is missing required fields", retryable=True, provider=source)

    emotional = raw.get("emotional_intelligence", raw.get("emotionalIntelligence"))
    emotional_score = _coerce_percentage(emotional)
    summary = raw.get("summary")
    tone = raw.get("tone")

    return CallAnalysisResult(
        score=score,
        summary=summary.strip() if isinstance(summary, str) and summary.strip() else "Analysis completed.",
        strengths=strengths,
        improvements=improvements,
        tone=tone.strip() if isinstance(tone, str) and tone.strip() else "Professional",
        emotional_intelligence=emotional_score if emotional_score is not None else 70,
        transcript=transcript,
        provider=provider,
    )


GREETING_PATTERN = re.compile(r"\b(hello|hi|hey|good morning|good afternoon)\b", re.IGNORECASE)
CLOSING_PATTERN = re.compile(r"\b(thank you|thanks|appreciate\w*|follow[- ]up)\b", re.IGNORECASE)


class HeuristicCallAnalyzer:
    """Deterministic offline stand-in used when no AI provider can answer.

    Scores from a base of 70: +10 for a greeting, +10 for a closing or
    thanks, +5 for more than 100 words, capped at 95. The feedback text is
    fixed, so the same transcript always yields the same result.
    """

    BASE_SCORE = 70
    MAX_SCORE = 95

    def analyze(self, transcript: str) -> CallAnalysisResult:
        score = self.BASE_SCORE
        if GREETING_PATTERN.search(transcript):
            score += 10
        if CLOSING_PATTERN.search(transcript):
            score += 10
        if len(transcript.split()) > 100:
            score += 5

        return CallAnalysisResult(
            score=min(score, self.MAX_SCORE),
            summary=(
                "This is a demo analysis generated without an AI provider. The call shows basic "
                "sales structure with room for improvement."
            ),
            strengths=[
                "Clear communication throughout the conversation",
                "Maintained professional tone",
                "Attempted to address customer needs",
            ],
            improvements=[
                "Could ask more discovery questions to understand pain points",
                "Consider stronger value proposition presentation",
                "Work on handling objections more confidently",
            ],
            tone="Professional and courteous",
            emotional_intelligence=72,
            transcript=transcript,
            provider=AnalysisProvider.MOCK,
        )


heuristic_analyzer = HeuristicCallAnalyzer()


def get_primary_backend_from_env() -> Optional[CallAnalysisBackend]:
    """Gemini when GEMINI_API_KEY is set, otherwise no primary provider."""

    if settings.gemini_api_key:
        return GeminiCallAnalysisBackend()
    return None


def get_secondary_backend_from_env() -> Optional[CallAnalysisBackend]:
    """OpenAI when OPENAI_API_KEY is set, otherwise no secondary provider."""

    if settings.openai_api_key:
        return OpenAICallAnalysisBackend()
    return None
