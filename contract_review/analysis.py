"""
Contract analysis collaborator.

The engine calls ``Analyzer.analyze`` once per upload, outside any store
transaction, and stores the returned report unchanged.

Configuration via environment variables:
  CRL_ANALYZER          = mock | llm                 (default: mock)
  LLM_MODEL             = gpt-4o-mini                (primary model)
  LLM_FALLBACK_MODEL    = gpt-3.5-turbo              (fallback on primary failure)
  LLM_TEMPERATURE       = 0.1
  OPENAI_API_KEY        = sk-...
  OPENAI_BASE_URL       = https://api.openai.com/v1  (or any OpenAI-compatible endpoint)
  LLM_MAX_DOCUMENT_CHARS = 24000
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field, ValidationError

from contract_review.errors import AnalysisUnavailable

logger = logging.getLogger(__name__)

Severity = Literal["Low", "Medium", "High", "Critical"]


class AnalysisReport(BaseModel):
    summary_points: list[str] = Field(default_factory=list)
    sanitized_summary_points: list[str] = Field(default_factory=list)
    risk_points: list[str] = Field(default_factory=list)
    missing_clause_points: list[str] = Field(default_factory=list)
    recommendation_points: list[str] = Field(default_factory=list)
    risk_score: int = Field(ge=0, le=100)
    ai_confidence_score: int = Field(ge=0, le=100)
    severity: Severity
    contract_type: str = Field(min_length=1)


class Analyzer(Protocol):
    def analyze(self, document: bytes, *, file_name: str) -> AnalysisReport: ...


def severity_for_score(risk_score: int) -> Severity:
    if risk_score >= 80:
        return "Critical"
    if risk_score >= 60:
        return "High"
    if risk_score >= 35:
        return "Medium"
    return "Low"


def _deterministic_int(seed: str, min_val: int, max_val: int) -> int:
    h = hashlib.sha256(seed.encode()).hexdigest()
    val = int(h[:8], 16) / 0xFFFFFFFF
    return min_val + round(val * (max_val - min_val))


_MOCK_CONTRACT_TYPES = (
    "Rental Agreement",
    "Employment Contract",
    "Non-Disclosure Agreement (NDA)",
    "Service Agreement",
    "Sales Contract",
)

_MOCK_MISSING_CLAUSES = (
    "Dispute resolution and governing law",
    "Limitation of liability",
    "Termination for convenience",
    "Force majeure",
    "Confidentiality survival period",
)


class MockAnalyzer:
    """Deterministic analyzer: the same document always yields the same report."""

    def analyze(self, document: bytes, *, file_name: str) -> AnalysisReport:
        digest = hashlib.sha256(document).hexdigest()
        risk_score = _deterministic_int(f"{digest}:risk", 5, 95)
        confidence = _deterministic_int(f"{digest}:confidence", 60, 98)
        contract_type = _MOCK_CONTRACT_TYPES[_deterministic_int(f"{digest}:type", 0, len(_MOCK_CONTRACT_TYPES) - 1)]
        missing_count = _deterministic_int(f"{digest}:missing", 0, 3)
        return AnalysisReport(
            summary_points=[
                f"{contract_type} uploaded as {file_name} ({len(document)} bytes).",
                f"Document fingerprint {digest[:12]}.",
            ],
            sanitized_summary_points=[f"{contract_type} between two parties; identifying details redacted."],
            risk_points=[f"Overall risk estimated at {risk_score}/100."],
            missing_clause_points=list(_MOCK_MISSING_CLAUSES[:missing_count]),
            recommendation_points=["Have a qualified auditor confirm the payment and termination terms."],
            risk_score=risk_score,
            ai_confidence_score=confidence,
            severity=severity_for_score(risk_score),
            contract_type=contract_type,
        )


class FailingAnalyzer:
    """Analyzer that always fails; used to exercise the unavailable path."""

    def __init__(self, reason: str = "analysis backend offline") -> None:
        self.reason = reason

    def analyze(self, document: bytes, *, file_name: str) -> AnalysisReport:
        raise AnalysisUnavailable(self.reason)


@dataclass
class ProviderConfig:
    model: str = "gpt-4o-mini"
    fallback_model: str = ""
    api_key: str = ""
    base_url: str = ""
    temperature: float = 0.1
    max_tokens: int = 2048
    max_document_chars: int = 24000

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ProviderConfig:
        env = os.environ if environ is None else environ
        return cls(
            model=env.get("LLM_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini",
            fallback_model=env.get("LLM_FALLBACK_MODEL", "").strip(),
            api_key=env.get("OPENAI_API_KEY", "").strip(),
            base_url=env.get("OPENAI_BASE_URL", "").strip(),
            temperature=float(env.get("LLM_TEMPERATURE", "0.1").strip() or "0.1"),
            max_document_chars=int(env.get("LLM_MAX_DOCUMENT_CHARS", "24000").strip() or "24000"),
        )


def _create_client(config: ProviderConfig):
    try:
        import openai
    except ImportError:
        raise RuntimeError("openai package is required. Install with: pip install 'contract-review-ledger[openai]'")

    kwargs: dict[str, Any] = {}
    if config.api_key:
        kwargs["api_key"] = config.api_key
    if config.base_url:
        kwargs["base_url"] = config.base_url
    return openai.OpenAI(**kwargs)


_SYSTEM_PROMPT = """You are an expert legal analyst specializing in contract review.
Answer in a formal, point-by-point style and return a single JSON object."""

_USER_TEMPLATE = """File name: {file_name}

Analyze the contract below and return JSON with exactly these keys:
{{
  "contract_type": "<string, e.g. Rental Agreement, Employment Contract, NDA>",
  "summary_points": ["<key terms of the contract>"],
  "sanitized_summary_points": ["<the summary with names, addresses, PII and monetary values redacted>"],
  "risk_points": ["<potential risks>"],
  "missing_clause_points": ["<important clauses that appear to be missing>"],
  "recommendation_points": ["<actionable recommendations for the client>"],
  "risk_score": <int 0-100, 100 is extremely high risk>,
  "ai_confidence_score": <int 0-100>,
  "severity": "<Low | Medium | High | Critical>"
}}

Contract:
{document_text}"""


def _call_chat(*, client, model: str, config: ProviderConfig, messages: list[dict[str, str]]) -> str:
    response = client.chat.completions.create(
        model=model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        messages=messages,
        response_format={"type": "json_object"},
    )
    return response.choices[0].message.content or ""


class LLMAnalyzer:
    """OpenAI-compatible chat completion analyzer with primary -> fallback degradation."""

    def __init__(self, config: ProviderConfig | None = None, *, client=None) -> None:
        self.config = config or ProviderConfig.from_env()
        self._client = client

    def _messages(self, document: bytes, file_name: str) -> list[dict[str, str]]:
        text = document.decode("utf-8", errors="replace")[: self.config.max_document_chars]
        return [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": _USER_TEMPLATE.format(file_name=file_name, document_text=text)},
        ]

    def _complete(self, messages: list[dict[str, str]]) -> str:
        client = self._client or _create_client(self.config)
        try:
            return _call_chat(client=client, model=self.config.model, config=self.config, messages=messages)
        except Exception as primary_exc:
            if not self.config.fallback_model:
                raise
            logger.warning(
                "Primary model %s failed (%s), degrading to %s",
                self.config.model,
                type(primary_exc).__name__,
                self.config.fallback_model,
            )
            return _call_chat(
                client=client,
                model=self.config.fallback_model,
                config=self.config,
                messages=messages,
            )

    def analyze(self, document: bytes, *, file_name: str) -> AnalysisReport:
        if not document:
            raise AnalysisUnavailable("document is empty")
        try:
            content = self._complete(self._messages(document, file_name))
        except Exception as exc:
            logger.warning("analysis_call_failed file_name=%s error=%s", file_name, type(exc).__name__)
            raise AnalysisUnavailable(f"analysis call failed: {type(exc).__name__}") from exc
        try:
            payload = json.loads(content)
            return AnalysisReport.model_validate(payload)
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("analysis_output_invalid file_name=%s error=%s", file_name, type(exc).__name__)
            raise AnalysisUnavailable("analysis returned an invalid report") from exc


def create_analyzer_from_env(environ: Mapping[str, str] | None = None) -> Analyzer:
    env = os.environ if environ is None else environ
    kind = env.get("CRL_ANALYZER", "mock").strip().lower() or "mock"
    if kind == "mock":
        return MockAnalyzer()
    if kind == "llm":
        return LLMAnalyzer(ProviderConfig.from_env(env))
    raise ValueError(f"unsupported CRL_ANALYZER: {kind}")
