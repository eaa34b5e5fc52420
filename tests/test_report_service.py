"""Tests for narrative report generation (fake Claude client, no network)."""

import json
from types import SimpleNamespace

import pytest

import report_service
from conftest import make_page
from scoring import ScoreInput, calculate_score
from vocabulary import Locale

VALID_REPORT = {
    "overview_summary": "관련성과 색인 신호가 양호합니다.",
    "overview_clinicai": "Clinic.ai로 더 많은 환자에게 도달하세요.",
    "overview_priorities": ["FAQ 스키마 추가", "canonical 정비", "의료진 소개 보강", "extra"],
    "card_overviews": {
        "relevance": "좋음",
        "structure": "보통",
        "indexing": "좋음",
        "trust": "보강 필요",
    },
}


class FakeMessages:
    def __init__(self, outcomes: list):
        self.outcomes = list(outcomes)
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        # the last outcome repeats for any further calls
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(content=[SimpleNamespace(text=outcome)], stop_reason="end_turn")


class FakeClient:
    def __init__(self, *outcomes):
        self.messages = FakeMessages(outcomes)


@pytest.fixture
def pages():
    return [make_page(url=f"https://clinic.example/{i}", title=f"서울미소치과 {i}") for i in range(4)]


@pytest.fixture
def score(pages):
    return calculate_score(pages, ScoreInput("서울미소치과", ["임플란트"], Locale.KO))


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch):
    monkeypatch.setattr(report_service.time, "sleep", lambda _: None)


class TestGenerateReport:
    def test_missing_key_returns_fallback(self, monkeypatch, score, pages):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        result = report_service.generate_report(score, pages, "서울미소치과", "", ["임플란트"], Locale.KO)
        assert result["meta"]["status"] == "missing_key"
        assert result["report"] == report_service.fallback_report(Locale.KO)

    def test_ok_response_is_normalized(self, score, pages):
        client = FakeClient("```json\n" + json.dumps(VALID_REPORT, ensure_ascii=False) + "\n```")
        result = report_service.generate_report(score, pages, "서울미소치과", "서울", ["임플란트"], "ko", client=client)
        assert result["meta"] == {"status": "ok"}
        report = result["report"]
        assert report["overview_priorities"] == ["FAQ 스키마 추가", "canonical 정비", "의료진 소개 보강"]
        assert report["card_overviews"]["trust"] == "보강 필요"
        # missing card filled from the fallback
        assert report["card_overviews"]["faq_schema"] == (
            report_service.FALLBACK_REPORTS[Locale.KO]["card_overviews"]["faq_schema"]
        )

    def test_prompt_carries_scores_and_findings(self, score, pages):
        client = FakeClient(json.dumps(VALID_REPORT))
        report_service.generate_report(score, pages, "서울미소치과", "서울", ["임플란트"], Locale.JA, client=client)
        call = client.messages.calls[0]
        assert "Japanese" in call["system"]
        payload = json.loads(call["messages"][0]["content"].split("Input JSON:\n", 1)[1])
        assert payload["scores"]["total_score"] == score["total"]
        assert payload["user_input"]["hospital_name"] == "서울미소치과"
        assert len(payload["top_findings"]) == 4
        assert "meta_description" not in payload["top_findings"][0]

    def test_missing_fields_fall_back_with_error(self, score, pages):
        client = FakeClient(json.dumps({"overview_summary": "only"}))
        result = report_service.generate_report(score, pages, "x", "", [], Locale.KO, client=client)
        assert result["meta"]["status"] == "error"
        assert "Missing fields" in result["meta"]["message"]
        assert result["report"] == report_service.fallback_report(Locale.KO)

    def test_api_failure_falls_back(self, score, pages):
        client = FakeClient(RuntimeError("invalid api key"))
        result = report_service.generate_report(score, pages, "x", "", [], Locale.KO, client=client)
        assert result["meta"] == {"status": "error", "message": "invalid api key"}

    def test_retryable_errors_are_retried(self, score, pages, monkeypatch):
        monkeypatch.setattr(report_service.config, "CLAUDE_MAX_RETRIES", 3)
        client = FakeClient(RuntimeError("529 overloaded"), json.dumps(VALID_REPORT))
        result = report_service.generate_report(score, pages, "x", "", [], Locale.KO, client=client)
        assert result["meta"]["status"] == "ok"
        assert len(client.messages.calls) == 2

    def test_sparse_crawl_gets_conservative_note(self, score, pages):
        client = FakeClient(json.dumps(VALID_REPORT))
        result = report_service.generate_report(score, pages[:2], "x", "", [], Locale.KO, client=client)
        note = report_service.CONSERVATIVE_NOTES[Locale.KO]
        assert result["report"]["overview_summary"].endswith(note)

    def test_sparse_fallback_gets_conservative_note(self, monkeypatch, score, pages):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        result = report_service.generate_report(score, pages[:1], "x", "", [], Locale.JA)
        assert report_service.CONSERVATIVE_NOTES[Locale.JA] in result["report"]["overview_summary"]


class TestHelpers:
    def test_conservative_note_is_idempotent(self):
        report = report_service.fallback_report(Locale.KO)
        report_service.ensure_conservative_note(report, Locale.KO)
        once = report["overview_summary"]
        report_service.ensure_conservative_note(report, Locale.KO)
        assert report["overview_summary"] == once

    def test_fallback_report_is_a_copy(self):
        report = report_service.fallback_report(Locale.KO)
        report["overview_priorities"].append("mutated")
        assert "mutated" not in report_service.FALLBACK_REPORTS[Locale.KO]["overview_priorities"]

    def test_extract_json_repairs_inner_quotes(self):
        raw = 'Here: {"overview_summary": "the "best" site", "n": 1}'
        assert report_service._extract_json(raw) == {"overview_summary": 'the "best" site', "n": 1}

    def test_extract_json_rejects_garbage(self):
        assert report_service._extract_json("no braces here") is None
        assert report_service._extract_json("") is None

    def test_snippet_prefers_keyword_window(self):
        text = "가" * 1000 + " 임플란트 설명 " + "나" * 1000
        snippet = report_service.build_text_snippet(text, ["임플란트"])
        assert "임플란트" in snippet
        assert len(snippet) == 700

    def test_snippet_short_text_returned_whole(self):
        assert report_service.build_text_snippet("  짧은   글 ", []) == "짧은 글"

    def test_snippet_defaults_to_page_top(self):
        text = "x" * 1500
        assert report_service.build_text_snippet(text, []) == "x" * 700
