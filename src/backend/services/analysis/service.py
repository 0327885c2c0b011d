from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from src.backend.domain.errors import ProviderUnavailable
from src.backend.domain.models.call_analysis import AnalysisProvider, CallAnalysisOutcome
from src.backend.services.analysis.backends import (
    CallAnalysisBackend,
    HeuristicCallAnalyzer,
    ProviderError,
    get_primary_backend_from_env,
    get_secondary_backend_from_env,
    heuristic_analyzer,
    normalize_analysis,
)

logger = logging.getLogger(__name__)


def _call_backend(backend: CallAnalysisBackend, method: Callable[..., Dict[str, Any]], *args: Any) -> Dict[str, Any]:
    """Invoke a backend method, reporting any unexpected error as a retryable ProviderError."""

    try:
        return method(*args)
    except ProviderError:
        raise
    except Exception as exc:
        logger.exception("Unexpected error from %s during call analysis", backend.name)
        raise ProviderError(f"Unexpected {type(exc).__name__}", retryable=True, provider=backend.name) from exc


class CallAnalysisService:
    """Routes a call analysis across AI providers.

    Transcripts go to the primary provider, then to the secondary one when
    the primary failed in a retryable way, and finally to the offline
    heuristic, which always succeeds. Audio is only understood by the
    primary provider and has no heuristic fallback: a made-up transcript
    would be misleading, so failures are reported instead.

    Calls are sequential; each backend applies its own timeout.
    """

    def __init__(
        self,
        *,
        primary: Optional[CallAnalysisBackend] = None,
        secondary: Optional[CallAnalysisBackend] = None,
        fallback: Optional[HeuristicCallAnalyzer] = None,
    ) -> None:
        self._primary = primary
        self._secondary = secondary
        self._fallback = fallback or heuristic_analyzer

    @classmethod
    def from_env(cls) -> "CallAnalysisService":
        return cls(primary=get_primary_backend_from_env(), secondary=get_secondary_backend_from_env())

    def analyze_transcript(self, transcript: str) -> CallAnalysisOutcome:
        chain: List[Tuple[AnalysisProvider, CallAnalysisBackend]] = [
            (tag, backend)
            for tag, backend in ((AnalysisProvider.PRIMARY, self._primary), (AnalysisProvider.SECONDARY, self._secondary))
            if backend is not None
        ]

        last_error: Optional[ProviderError] = None
        for tag, backend in chain:
            try:
                raw = _call_backend(backend, backend.analyze_transcript, transcript)
                result = normalize_analysis(raw, transcript=transcript, provider=tag, source=backend.name)
            except ProviderError as exc:
                last_error = exc
                logger.warning(
                    "Call analysis via %s failed (%s): %s",
                    backend.name,
                    "retryable" if exc.retryable else "non-retryable",
                    exc,
                )
                if not exc.retryable:
                    break
                continue
            return CallAnalysisOutcome(result=result, provider=tag)

        if last_error is None:
            warning = "No AI provider is configured. Showing a demo analysis."
        else:
            warning = "AI analysis is unavailable right now. Showing a demo analysis."
        return CallAnalysisOutcome(
            result=self._fallback.analyze(transcript),
            provider=AnalysisProvider.MOCK,
            warning=warning,
        )

    def analyze_audio(self, audio_base64: str, mime_type: str) -> CallAnalysisOutcome:
        backend = self._primary
        if backend is None or not backend.supports_audio:
            raise ProviderUnavailable("Audio analysis is not configured. Try pasting the transcript instead.")

        try:
            raw = _call_backend(backend, backend.analyze_audio, audio_base64, mime_type)
            transcript = raw.get("transcript")
            if not isinstance(transcript, str) or not transcript.strip():
                raise ProviderError("Provider returned no transcript", retryable=True, provider=backend.name)
            result = normalize_analysis(
                raw,
                transcript=transcript,
                provider=AnalysisProvider.PRIMARY,
                source=backend.name,
            )
        except ProviderError as exc:
            logger.warning("Audio analysis via %s failed: %s", backend.name, exc)
            if exc.retryable:
                raise ProviderUnavailable(
                    "Audio analysis is temporarily unavailable. Try again shortly or paste the transcript instead."
                ) from exc
            raise ProviderUnavailable(
                "Audio analysis failed for this recording. Try pasting the transcript instead."
            ) from exc

        return CallAnalysisOutcome(result=result, provider=AnalysisProvider.PRIMARY)


call_analysis_service = CallAnalysisService.from_env()
