from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from contract_review.analysis import (
    AnalysisReport,
    LLMAnalyzer,
    MockAnalyzer,
    ProviderConfig,
    create_analyzer_from_env,
    severity_for_score,
)
from contract_review.errors import ApiError

VALID_REPORT = {
    "contract_type": "Rental Agreement",
    "summary_points": ["Monthly rent of 1200 EUR paid to J. Smith."],
    "sanitized_summary_points": ["Monthly rent paid to the landlord."],
    "risk_points": ["No cap on deposit deductions."],
    "missing_clause_points": ["Termination notice period"],
    "recommendation_points": ["Add a notice period."],
    "risk_score": 64,
    "ai_confidence_score": 81,
    "severity": "High",
}


class FakeCompletions:
    def __init__(self, outcomes: dict[str, object]) -> None:
        self._outcomes = outcomes
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self._outcomes[kwargs["model"]]
        if isinstance(outcome, Exception):
            raise outcome
        message = SimpleNamespace(content=outcome)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(outcomes: dict[str, object]) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(outcomes)))


@pytest.mark.parametrize(
    ("score", "severity"),
    [(0, "Low"), (34, "Low"), (35, "Medium"), (59, "Medium"), (60, "High"), (79, "High"), (80, "Critical")],
)
def test_severity_bands(score, severity):
    assert severity_for_score(score) == severity


def test_mock_analyzer_is_deterministic_and_bounded():
    analyzer = MockAnalyzer()
    first = analyzer.analyze(b"The tenant shall pay rent monthly.", file_name="lease.txt")
    second = analyzer.analyze(b"The tenant shall pay rent monthly.", file_name="lease.txt")
    other = analyzer.analyze(b"Employee agrees to a twelve month non-compete.", file_name="job.txt")

    assert first == second
    assert first != other
    assert 0 <= first.risk_score <= 100
    assert first.severity == severity_for_score(first.risk_score)
    assert first.sanitized_summary_points


def test_llm_analyzer_parses_json_report():
    client = _client({"primary": json.dumps(VALID_REPORT)})
    analyzer = LLMAnalyzer(ProviderConfig(model="primary"), client=client)

    report = analyzer.analyze(b"lease text", file_name="lease.txt")

    assert isinstance(report, AnalysisReport)
    assert report.risk_score == 64
    call = client.chat.completions.calls[0]
    assert call["response_format"] == {"type": "json_object"}
    assert "lease text" in call["messages"][1]["content"]


def test_llm_analyzer_degrades_to_fallback_model():
    client = _client({"primary": RuntimeError("rate limited"), "backup": json.dumps(VALID_REPORT)})
    analyzer = LLMAnalyzer(ProviderConfig(model="primary", fallback_model="backup"), client=client)

    report = analyzer.analyze(b"lease text", file_name="lease.txt")

    assert report.contract_type == "Rental Agreement"
    assert [call["model"] for call in client.chat.completions.calls] == ["primary", "backup"]


def test_llm_analyzer_without_fallback_reports_unavailable():
    client = _client({"primary": RuntimeError("down")})
    analyzer = LLMAnalyzer(ProviderConfig(model="primary"), client=client)

    with pytest.raises(ApiError) as exc:
        analyzer.analyze(b"lease text", file_name="lease.txt")
    assert exc.value.code == "ANALYSIS_UNAVAILABLE"


@pytest.mark.parametrize(
    "content",
    [
        "not json at all",
        json.dumps({**VALID_REPORT, "risk_score": 140}),
        json.dumps({**VALID_REPORT, "severity": "Extreme"}),
    ],
)
def test_llm_analyzer_rejects_invalid_reports(content):
    analyzer = LLMAnalyzer(ProviderConfig(model="primary"), client=_client({"primary": content}))
    with pytest.raises(ApiError) as exc:
        analyzer.analyze(b"lease text", file_name="lease.txt")
    assert exc.value.code == "ANALYSIS_UNAVAILABLE"


def test_llm_analyzer_truncates_long_documents():
    client = _client({"primary": json.dumps(VALID_REPORT)})
    analyzer = LLMAnalyzer(ProviderConfig(model="primary", max_document_chars=10), client=client)

    analyzer.analyze(b"0123456789ABCDEFGHIJ", file_name="long.txt")

    content = client.chat.completions.calls[0]["messages"][1]["content"]
    assert "0123456789" in content
    assert "ABCDEFGHIJ" not in content


def test_create_analyzer_from_env():
    assert isinstance(create_analyzer_from_env({}), MockAnalyzer)
    llm = create_analyzer_from_env({"CRL_ANALYZER": "llm", "LLM_MODEL": "gpt-test", "LLM_FALLBACK_MODEL": "gpt-b"})
    assert isinstance(llm, LLMAnalyzer)
    assert llm.config.model == "gpt-test"
    assert llm.config.fallback_model == "gpt-b"
    with pytest.raises(ValueError, match="unsupported CRL_ANALYZER"):
        create_analyzer_from_env({"CRL_ANALYZER": "oracle"})
