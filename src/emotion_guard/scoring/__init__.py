"""Risk scoring: multi-modal stress assessment for a pending trade.

Architecture
------------
1. **Baseline comparison** (`baseline.py`)
   - z-score deviation against a personalised baseline
   - Population thresholds when no baseline exists
   - EWMA baseline calibration

2. **Modality analyzers** (`analyzers.py`)
   - Cognitive, behavioral, self-report, voice, facial, contextual
   - Each returns a capped sub-score, a confidence and boolean flags

3. **Aggregation & verdict** (`aggregator.py`, `verdict.py`)
   - Versioned weight/cap table (`profile.py`)
   - Bounded 0-100 risk score, go/hold/block verdict, reason tags

4. **Engine** (`engine.py`)
   - Runs the enabled analyzers for a policy and aggregates them
"""

from emotion_guard.scoring.models import (
    Deviation,
    DeviationBand,
    Modality,
    ModalityResult,
    PopulationThresholds,
    RiskAssessmentResult,
    RiskDirection,
)

__all__ = [
    "Deviation",
    "DeviationBand",
    "Modality",
    "ModalityResult",
    "PopulationThresholds",
    "RiskAssessmentResult",
    "RiskDirection",
]
