"""AI-assisted stress analysis with a deterministic local fallback."""

from emotion_guard.analysis.models import (
    AIAnalysisDegraded,
    AIAnalysisResult,
    AIAnalysisSuccess,
    AnalysisOutcome,
    BiometricPattern,
    CognitiveProfile,
)
from emotion_guard.analysis.service import AIScoringService

__all__ = [
    "AIAnalysisDegraded",
    "AIAnalysisResult",
    "AIAnalysisSuccess",
    "AIScoringService",
    "AnalysisOutcome",
    "BiometricPattern",
    "CognitiveProfile",
]
