"""External AI analyzer over an OpenAI-compatible chat-completions API."""

from __future__ import annotations

import json
import time

import httpx
import structlog
from pydantic import ValidationError

from emotion_guard.analysis.models import AIAnalysisResult, AnalysisContext
from emotion_guard.config import Settings
from emotion_guard.errors import ExternalAnalysisError

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = """\
You are an expert stress analyst for financial trading platforms. Analyze \
the provided biometric, cognitive, and contextual signals to determine \
trader stress levels.

Consider biometric stability (mouse, keyboard, micro-tremors), cognitive \
performance (reaction time, accuracy, consistency), self-reported stress, \
facial indicators, order context and the user's baseline.

Reply with a JSON object containing:
- stressLevel: 0-10 (0 = calm, 10 = extreme stress)
- confidence: 0-1
- verdict: "go", "hold" or "block"
- primaryIndicators: list of main stress signals detected
- riskFactors: list of concerning patterns
- reasoning: brief explanation of the decision
- anomalies: list of unusual patterns

Be conservative: err on the side of trader safety.
"""


class ExternalAnalyzer:
    """Post an :class:`AnalysisContext` to a chat-completions endpoint.

    Any transport error, non-2xx status or reply that does not validate
    as :class:`AIAnalysisResult` raises :class:`ExternalAnalysisError`.

    Parameters
    ----------
    client : httpx.AsyncClient | None
        Shared client to use.  When omitted a short-lived client is
        opened per request.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gpt-4o",
        url: str = "https://api.openai.com/v1/chat/completions",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self._url = url
        self._timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, *, client: httpx.AsyncClient | None = None) -> ExternalAnalyzer:
        return cls(
            settings.openai_api_key,
            model=settings.openai_model,
            url=settings.ai_analysis_url,
            timeout=settings.ai_request_timeout,
            client=client,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _payload(self, context: AnalysisContext) -> dict:
        summary = context.model_dump(mode="json", by_alias=False)
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": f"Analyze this trader assessment data: {json.dumps(summary, indent=2)}",
                },
            ],
            "temperature": 0.1,
            "max_tokens": 500,
            "response_format": {"type": "json_object"},
        }

    async def _post(self, payload: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        if self._client is not None:
            return await self._client.post(self._url, json=payload, headers=headers, timeout=self._timeout)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(self._url, json=payload, headers=headers)

    async def analyze(self, context: AnalysisContext) -> AIAnalysisResult:
        if not self.configured:
            raise ExternalAnalysisError("External analyzer is not configured")

        started = time.perf_counter()
        try:
            resp = await self._post(self._payload(context))
            resp.raise_for_status()
            content = resp.json()["choices"][0]["message"]["content"]
            result = AIAnalysisResult.model_validate(json.loads(content))
        except httpx.HTTPError as exc:
            raise ExternalAnalysisError(f"request failed: {exc}") from exc
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            # ValidationError and JSONDecodeError are ValueErrors
            kind = "invalid result" if isinstance(exc, ValidationError) else "malformed reply"
            raise ExternalAnalysisError(f"{kind}: {exc}") from exc

        logger.info(
            "ai_scoring.external_complete",
            model=self.model,
            verdict=result.verdict.value,
            stress_level=result.stress_level,
            latency_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return result
