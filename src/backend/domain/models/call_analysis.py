from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import ConfigDict, Field

from src.backend.domain.models.wire import WireModel


class AnalysisProvider(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    MOCK = "mock"


class CallAnalysisResult(WireModel):
    """Coaching feedback for a single sales call."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=0, le=100)
    summary: str
    strengths: List[str] = Field(min_length=3, max_length=3)
    improvements: List[str] = Field(min_length=3, max_length=3)
    tone: str
    emotional_intelligence: int = Field(ge=0, le=100)
    # The analysed text exactly as received (or as transcribed from audio).
    transcript: str
    provider: AnalysisProvider


class CallAnalysisOutcome(WireModel):
    result: CallAnalysisResult
    provider: AnalysisProvider
    # Set when the offline heuristic stood in for the AI providers.
    warning: Optional[str] = None
