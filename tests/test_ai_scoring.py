"""Tests for AI-assisted scoring and its local fallback."""

from __future__ import annotations

import json

import httpx
import pytest
from pydantic import TypeAdapter, ValidationError

from conftest import make_trials
from emotion_guard.analysis.external import ExternalAnalyzer
from emotion_guard.analysis.fallback import fallback_analysis
from emotion_guard.analysis.models import (
    AIAnalysisDegraded,
    AIAnalysisResult,
    AIAnalysisSuccess,
    AnalysisOutcome,
)
from emotion_guard.analysis.primitives import (
    cognitive_profile,
    keystroke_rhythm_score,
    micro_tremors,
    mouse_stability_cv,
    velocity_variance,
)
from emotion_guard.analysis.service import AIScoringService, build_context
from emotion_guard.errors import ExternalAnalysisError
from emotion_guard.models import AssessmentSignals, FaceMetrics, OrderContext, Verdict

TREMOR_MOVEMENTS = [0.0, 10.0] * 10


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _analyzer(client: httpx.AsyncClient) -> ExternalAnalyzer:
    return ExternalAnalyzer("sk-test", model="gpt-4o", url="https://ai.test/v1/chat/completions", client=client)


# ── Primitives ────────────────────────────────────────────────


class TestPrimitives:
    def test_short_inputs_are_neutral(self):
        assert mouse_stability_cv([1.0, 2.0]) == 0.5
        assert keystroke_rhythm_score([100.0]) == 0.5
        assert velocity_variance([1.0]) == 0.5
        assert micro_tremors([1.0] * 5) == 0.0

    def test_steady_input(self):
        assert mouse_stability_cv([50.0] * 6) == 1.0
        assert keystroke_rhythm_score([120.0] * 4) == 1.0
        assert velocity_variance([float(i) for i in range(10)]) == 0.0

    def test_micro_tremors(self):
        assert micro_tremors(TREMOR_MOVEMENTS) == 1.0
        assert micro_tremors([float(i) for i in range(20)]) == 0.0

    def test_cognitive_profile(self):
        profile = cognitive_profile(AssessmentSignals(cognitive_trials=make_trials([500.0] * 10)))
        assert profile.reaction_speed == 1.0
        assert profile.accuracy == 1.0
        assert profile.consistency == 1.0
        assert profile.attention_stability == pytest.approx(1.0)

    def test_cognitive_profile_without_trials(self):
        assert cognitive_profile(AssessmentSignals()).accuracy == 0.5


# ── Fallback heuristic ────────────────────────────────────────


class TestFallback:
    def test_calm_trader_goes(self, calm_signals):
        result = fallback_analysis(build_context(calm_signals))
        assert result.verdict == Verdict.GO
        assert result.stress_level == 0.0
        assert result.confidence == pytest.approx(0.95)
        assert result.reasoning.startswith("Stress analysis: 0.0/10 based on 0 indicators.")

    def test_micro_tremors_block(self, calm_signals):
        signals = calm_signals.model_copy(update={"mouse_movements": TREMOR_MOVEMENTS})
        result = fallback_analysis(build_context(signals))
        assert result.verdict == Verdict.BLOCK
        assert "Micro-tremors detected" in result.primary_indicators
        assert "Unusual tremor patterns" in result.anomalies

    def test_high_self_report_holds(self):
        signals = AssessmentSignals(stress_level=10, cognitive_trials=make_trials([500.0] * 10, correct=6))
        result = fallback_analysis(build_context(signals))
        assert result.stress_level == pytest.approx(6.0)
        assert result.verdict == Verdict.HOLD

    def test_stress_blocks(self):
        signals = AssessmentSignals(stress_level=10, cognitive_trials=make_trials([500.0] * 10, correct=3))
        result = fallback_analysis(build_context(signals))
        assert result.stress_level >= 7.5
        assert result.verdict == Verdict.BLOCK

    def test_facial_and_leverage_indicators(self, calm_signals):
        face = FaceMetrics(is_present=True, blink_rate=30, brow_furrow=0.7, gaze_stability=0.5)
        signals = calm_signals.model_copy(update={"facial_metrics": face})
        result = fallback_analysis(build_context(signals, order_context=OrderContext(leverage=20)))
        assert result.stress_level == pytest.approx(4.0)
        assert "High leverage trading" in result.risk_factors
        assert "Brow furrowing detected" in result.primary_indicators

    def test_no_measurements_never_go(self):
        result = fallback_analysis(build_context(AssessmentSignals()), measured=False)
        assert result.verdict != Verdict.GO
        assert "No measured signals" in result.anomalies


# ── Result model ──────────────────────────────────────────────


class TestAIAnalysisResult:
    def test_camel_case_and_clamping(self):
        result = AIAnalysisResult.model_validate(
            {"stressLevel": 12, "confidence": 1.5, "verdict": "hold", "primaryIndicators": ["tremor"]}
        )
        assert result.stress_level == 10.0
        assert result.confidence == 1.0
        assert result.primary_indicators == ["tremor"]
        assert result.risk_factors == []

    @pytest.mark.parametrize(
        "payload",
        [
            {"verdict": "go"},
            {"stressLevel": "high", "verdict": "go"},
            {"stressLevel": float("nan"), "verdict": "go"},
            {"stressLevel": 3, "verdict": "maybe"},
            {"stressLevel": 3, "verdict": "go", "anomalies": "none"},
        ],
    )
    def test_invalid(self, payload):
        with pytest.raises(ValidationError):
            AIAnalysisResult.model_validate(payload)

    def test_outcome_union(self):
        adapter = TypeAdapter(AnalysisOutcome)
        outcome = adapter.validate_python(
            {"source": "fallback", "reason": "timeout", "result": {"stress_level": 2, "verdict": "go"}}
        )
        assert isinstance(outcome, AIAnalysisDegraded)
        outcome = adapter.validate_python({"source": "external", "result": {"stress_level": 2, "verdict": "go"}})
        assert isinstance(outcome, AIAnalysisSuccess)


# ── Service ───────────────────────────────────────────────────


@pytest.mark.asyncio
class TestAIScoringService:
    async def test_external_success(self, calm_signals):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            reply = {"stressLevel": 12, "confidence": 0.8, "verdict": "hold", "reasoning": "elevated"}
            return httpx.Response(200, json=_completion(json.dumps(reply)))

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            outcome = await AIScoringService(_analyzer(client)).analyze(calm_signals)

        assert isinstance(outcome, AIAnalysisSuccess)
        assert outcome.source == "external"
        assert outcome.result.stress_level == 10.0
        assert outcome.result.verdict == Verdict.HOLD
        assert outcome.model == "gpt-4o"

        request = seen[0]
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "gpt-4o"
        assert body["response_format"] == {"type": "json_object"}

    @pytest.mark.parametrize(
        ("status", "body", "reason"),
        [
            (500, {"error": "upstream"}, "request failed"),
            (200, {"choices": []}, "malformed reply"),
            (200, _completion("not json"), "malformed reply"),
            (200, _completion(json.dumps({"stressLevel": 4, "verdict": "maybe"})), "invalid result"),
            (200, _completion(json.dumps({"verdict": "go"})), "invalid result"),
        ],
    )
    async def test_unusable_reply_degrades(self, calm_signals, status, body, reason):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json=body)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            outcome = await AIScoringService(_analyzer(client)).analyze(calm_signals)

        assert isinstance(outcome, AIAnalysisDegraded)
        assert outcome.source == "fallback"
        assert outcome.reason.startswith(reason)
        assert outcome.result.verdict in set(Verdict)
        assert isinstance(outcome.result.primary_indicators, list)
        assert isinstance(outcome.result.risk_factors, list)

    async def test_network_error_degrades(self, calm_signals):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            outcome = await AIScoringService(_analyzer(client)).analyze(calm_signals)

        assert isinstance(outcome, AIAnalysisDegraded)
        assert outcome.result.verdict == Verdict.GO

    async def test_unexpected_error_degrades(self, calm_signals):
        def handler(request: httpx.Request) -> httpx.Response:
            raise RuntimeError("boom")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            outcome = await AIScoringService(_analyzer(client)).analyze(calm_signals)

        assert isinstance(outcome, AIAnalysisDegraded)
        assert outcome.reason == "unexpected error: boom"
        assert outcome.result.verdict == Verdict.GO

    async def test_closed_client_degrades(self, calm_signals):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        await client.aclose()

        outcome = await AIScoringService(_analyzer(client)).analyze(calm_signals)

        assert isinstance(outcome, AIAnalysisDegraded)
        assert outcome.reason.startswith("unexpected error")

    async def test_not_configured(self):
        outcome = await AIScoringService().analyze(AssessmentSignals())
        assert isinstance(outcome, AIAnalysisDegraded)
        assert outcome.reason == "external analyzer not configured"
        assert outcome.result.verdict == Verdict.HOLD

    async def test_unconfigured_analyzer_raises_directly(self, calm_signals):
        analyzer = ExternalAnalyzer("")
        assert not analyzer.configured
        with pytest.raises(ExternalAnalysisError):
            await analyzer.analyze(build_context(calm_signals))
