from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, Field
from starlette.concurrency import run_in_threadpool

from src.backend.config import settings
from src.backend.domain.errors import PayloadTooLarge, ValidationError
from src.backend.domain.models.call_analysis import CallAnalysisOutcome
from src.backend.domain.models.wire import WireModel
from src.backend.security import get_optional_claim
from src.backend.services.analysis import service as analysis_service_module
from src.backend.services.audit.service import audit_service

router = APIRouter(prefix="/analysis", tags=["analysis"])


class AnalyzeCallRequest(WireModel):
    transcript: Optional[str] = None
    # Base64-encoded recording, without a data: URL prefix. Older clients
    # send it as audioBase64.
    audio_data: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("audioData", "audioBase64", "audio_data"),
    )
    audio_mime_type: Optional[str] = None


@router.post("/call", response_model=CallAnalysisOutcome, dependencies=[Depends(get_optional_claim)])
async def analyze_call(request: AnalyzeCallRequest) -> CallAnalysisOutcome:
    """Score a sales call from a transcript or an audio recording.

    Transcripts always get a result: when every AI provider fails, a
    deterministic demo analysis is returned with a ``warning``. Audio has no
    such fallback and answers 503 with a hint to paste the transcript.
    When both inputs are sent, the audio is analysed.
    """

    service = analysis_service_module.call_analysis_service

    if request.audio_data:
        if len(request.audio_data) > settings.max_audio_base64_bytes:
            raise PayloadTooLarge()
        outcome = await run_in_threadpool(
            service.analyze_audio,
            request.audio_data,
            request.audio_mime_type or "audio/mpeg",
        )
        input_kind = "audio"
    elif request.transcript and request.transcript.strip():
        outcome = await run_in_threadpool(service.analyze_transcript, request.transcript)
        input_kind = "transcript"
    else:
        raise ValidationError("Either a transcript or an audio recording is required.")

    audit_service.log_event(
        action="analyze_call",
        resource_type="call_analysis",
        extra={
            "input": input_kind,
            "provider": outcome.provider.value,
            "score": outcome.result.score,
            "word_count": len(outcome.result.transcript.split()),
        },
    )
    return outcome
