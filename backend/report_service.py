"""Narrative report generation with Claude.

Feeds the score breakdown and page snippets to the model and returns a
structured report. On a missing key, API failure, or unparsable output a
locale fallback report is returned instead. Never raises.
"""

import json
import logging
import random
import time
from typing import Sequence

from anthropic import Anthropic

import config
from models import CATEGORY_KEYS, PageRecord, Report, ReportResult, ScoreResult, normalize_text
from vocabulary import Locale

logger = logging.getLogger(__name__)

MODEL_CANDIDATES = [
    config.CLAUDE_MODEL,
    "claude-3-5-haiku-latest",
    "claude-3-haiku-20240307",
]
MODEL_CANDIDATES = list(dict.fromkeys(m for m in MODEL_CANDIDATES if m))
TEMPERATURE = 0.4
MAX_PAGES_IN_PROMPT = 6
SNIPPET_MIN_LEN = 400
SNIPPET_MAX_LEN = 700
SNIPPET_LEAD = 120
SECTION_HINTS = ("faq", "q.", "question", "질문", "진료", "치료", "예약", "비용", "料金", "診療", "治療", "予約")
REQUIRED_FIELDS = ("overview_summary", "overview_clinicai", "overview_priorities", "card_overviews")

SYSTEM_TEMPLATE = """You are a professional web auditor for Clinic.ai. You analyze hospital websites to improve their patient acquisition efficiency.
- Tone: Professional, Constructive, "Consulting Report" style. No medical advice.
- Goal: Highlight opportunities for improvement rather than just criticizing faults.
- Output: ONLY JSON. No markdown.
- No hallucination: Use ONLY the provided Input JSON (snippets/scores/signals). If evidence is insufficient, explicitly say so.
- Language: {language}."""

LANGUAGES = {
    Locale.KO: "Korean (Professional/Polite)",
    Locale.JA: "Japanese (Business Keigo/Teineigo)",
}

INSTRUCTIONS = """1. overview_summary (2~3 sentences): Summarize the site health based on 5 categories (Relevance, Structure, Indexing, Trust, FAQ). Focus on "opportunities to gain" if fixed.
   - Make it feel like you actually read the site by reflecting 1~2 concrete cues from text_snippet(s) or page titles/H1.
   - Do NOT invent facts beyond snippet/signals/scores.
2. overview_clinicai (1 sentence): A persuasive sentence referencing Clinic.ai, emphasizing improved patient reach or lower costs.
3. overview_priorities (Array of 3 strings): 3 most impactful actions. Each 30-55 chars. Imperative/Action-oriented. Sorted by impact.
4. card_overviews (Object with 5 keys: relevance, structure, indexing, trust, faq_schema): Brief 1-sentence assessment for each category."""

CONSERVATIVE_NOTES = {
    Locale.KO: "일부 페이지는 사이트 제한으로 수집되지 않아 결과는 보수적으로 산정되었습니다.",
    Locale.JA: "一部ページはサイト側の制限により取得できず、結果は保守的に算出しています。",
}

FALLBACK_REPORTS: dict[Locale, Report] = {
    Locale.KO: {
        "overview_summary": (
            "AI 요약 생성이 제한되어 규칙 기반 점검 결과를 중심으로 요약합니다. "
            "관련성/색인/신뢰 요소를 우선 보강하면 환자 유치 효율을 개선할 수 있습니다."
        ),
        "overview_clinicai": (
            "Clinic.ai와 함께 사이트 구조와 SEO 신호를 정비하면 더 많은 잠재 환자에게 도달하고 비용을 절감할 수 있습니다."
        ),
        "overview_priorities": [
            "메인 페이지의 Title/H1에 진료과·지역 키워드를 반영하세요.",
            "진료과별 상세 페이지에 FAQ 섹션과 스키마를 추가하세요.",
            "색인(robots/sitemap/canonical) 신호를 점검하고 보완하세요.",
        ],
        "card_overviews": {
            "relevance": "핵심 키워드(진료과/지역)와 페이지 주제 일치도를 높일 여지가 있습니다.",
            "structure": "헤딩(H1-H2) 계층과 내부 링크 구조를 정리하면 탐색성과 이해도가 개선됩니다.",
            "indexing": "메타/캐노니컬/사이트맵 등 색인 신호를 점검하면 노출 기회를 늘릴 수 있습니다.",
            "trust": "의료진·진료시간·연락처 등 신뢰 정보를 더 명확히 제시할 필요가 있습니다.",
            "faq_schema": "FAQ 콘텐츠와 구조화 데이터(FAQPage 등)를 보강하면 검색 가시성이 좋아집니다.",
        },
    },
    Locale.JA: {
        "overview_summary": (
            "AI要約の生成が制限されているため、ルールベースの点検結果を中心に要約します。"
            "関連性・インデックス・信頼性の要素を優先して強化すると、集患効率の改善が期待できます。"
        ),
        "overview_clinicai": (
            "Clinic.aiとともにサイト構造とSEOシグナルを整備することで、より多くの潜在患者に届き、コストの最適化につながります。"
        ),
        "overview_priorities": [
            "トップのTitle/H1に診療科・地域キーワードを反映してください。",
            "診療科別ページにFAQとスキーマ(FAQPage)を追加してください。",
            "インデックス(robots/sitemap/canonical)信号を点検してください。",
        ],
        "card_overviews": {
            "relevance": "診療科・地域キーワードとページ主題の整合性を高める余地があります。",
            "structure": "見出し(H1-H2)の階層と内部リンクを整理すると理解しやすくなります。",
            "indexing": "メタ情報やcanonical・サイトマップなどの信号を点検すると露出機会が増えます。",
            "trust": "医師/診療時間/連絡先などの信頼情報をより明確に提示する必要があります。",
            "faq_schema": "FAQコンテンツと構造化データ(FAQPage等)の強化が有効です。",
        },
    },
}


class ReportParseError(ValueError):
    """Model output could not be turned into a Report."""


def fallback_report(locale: Locale | str) -> Report:
    """Return a fresh copy of the rule-based report for `locale`."""
    return json.loads(json.dumps(FALLBACK_REPORTS[Locale(locale)]))


def ensure_conservative_note(report: Report, locale: Locale | str) -> Report:
    note = CONSERVATIVE_NOTES[Locale(locale)]
    if note not in report["overview_summary"]:
        report["overview_summary"] = f"{report['overview_summary'].strip()} {note}".strip()
    return report


def build_text_snippet(text: str, keywords: Sequence[str]) -> str:
    """Pick a 400-700 char window likely to carry explanatory content."""
    normalized = normalize_text(text)
    if not normalized:
        return ""
    hay = normalized.lower()
    max_start = max(0, len(normalized) - SNIPPET_MIN_LEN)

    candidates: list[tuple[int, int]] = []

    def push(start: int, score: int) -> None:
        candidates.append((max(0, min(start, max_start)), score))

    for hint in SECTION_HINTS:
        idx = hay.find(hint.lower())
        if idx >= 0:
            push(idx - SNIPPET_LEAD, 3)
    for keyword in (k.strip() for k in keywords):
        if not keyword:
            continue
        idx = hay.find(keyword.lower())
        if idx >= 0:
            push(idx - SNIPPET_LEAD, 5)
    push(0, 1)

    start = max(candidates, key=lambda c: c[1])[0]
    snippet = normalized[start : start + SNIPPET_MAX_LEN]
    if len(snippet) >= SNIPPET_MIN_LEN:
        return snippet
    return normalized[:SNIPPET_MAX_LEN]


def _build_user_message(
    score: ScoreResult,
    pages: Sequence[PageRecord],
    hospital_name: str,
    address: str,
    keywords: Sequence[str],
) -> str:
    top_findings = []
    for page in pages[:MAX_PAGES_IN_PROMPT]:
        finding = {
            "title": page.title,
            "h1": list(page.h1[:2]),
            "h2": list(page.h2[:3]),
            "text_snippet": build_text_snippet(page.body_text, keywords),
        }
        if page.description:
            finding["meta_description"] = page.description
        top_findings.append(finding)

    input_json = json.dumps(
        {
            "user_input": {"hospital_name": hospital_name, "address": address, "keywords": list(keywords)},
            "analysis_meta": {"analyzed_pages_count": len(pages), "max_pages": config.CRAWL_MAX_PAGES},
            "signals": score["details"]["signals"],
            "scores": {"total_score": score["total"], "category_scores": score["categories"]},
            "top_findings": top_findings,
        },
        ensure_ascii=False,
    )
    return f"{INSTRUCTIONS}\n\nInput JSON:\n{input_json}"


def _extract_json(text: str) -> dict | None:
    if not text:
        return None

    text = text.strip()
    if text.startswith("```"):
        text = text.replace("```json", "").replace("```", "").strip()

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1:
        return None

    json_str = (
        text[start : end + 1]
        .replace("“", '"')
        .replace("”", '"')
        .replace("‘", "'")
        .replace("’", "'")
    )

    try:
        parsed = json.loads(json_str)
    except ValueError:
        try:
            parsed = json.loads(_escape_inner_quotes(json_str))
        except ValueError:
            logger.warning("Report JSON parse error: %s", json_str[:500])
            return None
    return parsed if isinstance(parsed, dict) else None


def _escape_inner_quotes(value: str) -> str:
    """
    Escape likely unescaped quotes inside JSON strings.
    Keeps closing quotes intact by checking the next non-space token.
    """
    out: list[str] = []
    in_string = False
    escaped = False
    length = len(value)

    for i, ch in enumerate(value):
        if escaped:
            out.append(ch)
            escaped = False
            continue
        if ch == "\\":
            out.append(ch)
            escaped = True
            continue
        if ch != '"':
            out.append(ch)
            continue
        if not in_string:
            in_string = True
            out.append(ch)
            continue

        j = i + 1
        while j < length and value[j].isspace():
            j += 1
        next_char = value[j] if j < length else ""
        if next_char in {":", ",", "}", "]"}:
            in_string = False
            out.append(ch)
        else:
            out.append('\\"')

    return "".join(out)


def _normalize_report(raw: dict, locale: Locale) -> Report:
    missing = [name for name in REQUIRED_FIELDS if not raw.get(name)]
    if missing or not isinstance(raw.get("overview_priorities"), list):
        raise ReportParseError(f"Missing fields in AI report: {', '.join(missing) or 'overview_priorities'}")

    fallback_cards = FALLBACK_REPORTS[locale]["card_overviews"]
    cards = raw["card_overviews"] if isinstance(raw["card_overviews"], dict) else {}
    return {
        "overview_summary": str(raw["overview_summary"]).strip(),
        "overview_clinicai": str(raw["overview_clinicai"]).strip(),
        "overview_priorities": [str(x).strip() for x in raw["overview_priorities"] if str(x).strip()][:3],
        "card_overviews": {
            key: str(cards.get(key) or fallback_cards[key]).strip() for key in CATEGORY_KEYS
        },
    }


def _extract_response_text(response: object) -> str:
    content = ""
    for block in getattr(response, "content", []) or []:
        text = getattr(block, "text", None)
        if text:
            content += text
    return content.strip()


def _is_retryable_error(exc: Exception) -> bool:
    msg = str(exc).lower()
    retry_tokens = (
        "overloaded",
        "529",
        "rate limit",
        "rate_limit",
        "429",
        "500",
        "502",
        "503",
        "504",
        "timeout",
    )
    return any(token in msg for token in retry_tokens)


def _call_claude(client: Anthropic, system_message: str, user_message: str) -> str:
    last_error: Exception | None = None

    for model in MODEL_CANDIDATES:
        for attempt in range(config.CLAUDE_MAX_RETRIES):
            try:
                response = client.messages.create(
                    model=model,
                    max_tokens=config.CLAUDE_MAX_TOKENS,
                    system=system_message,
                    messages=[{"role": "user", "content": user_message}],
                    temperature=TEMPERATURE,
                )
                content = _extract_response_text(response)
                if getattr(response, "stop_reason", None) == "max_tokens":
                    logger.warning("Report output hit max_tokens for model=%s", model)
                if content:
                    return content

                last_error = RuntimeError("Empty Claude response content.")
                if attempt < config.CLAUDE_MAX_RETRIES - 1:
                    delay = config.CLAUDE_RETRY_BASE_SECONDS * (2 ** attempt) + random.uniform(0, 0.35)
                    logger.info("Claude retry: model=%s empty-content wait=%.2fs", model, delay)
                    time.sleep(delay)
                    continue
            except Exception as e:
                last_error = e
                if _is_retryable_error(e) and attempt < config.CLAUDE_MAX_RETRIES - 1:
                    delay = config.CLAUDE_RETRY_BASE_SECONDS * (2 ** attempt) + random.uniform(0, 0.35)
                    logger.info("Claude retry: model=%s attempt=%d wait=%.2fs", model, attempt + 1, delay)
                    time.sleep(delay)
                    continue
            break

    if last_error is not None:
        raise last_error
    return ""


def generate_report(
    score: ScoreResult,
    pages: Sequence[PageRecord],
    hospital_name: str,
    address: str,
    keywords: Sequence[str],
    locale: Locale | str,
    client: Anthropic | None = None,
) -> ReportResult:
    """
    Generate the narrative report for a scored site.
    Falls back to a rule-based report on missing key or any failure.
    """
    locale = Locale(locale)
    sparse = len(pages) < 3

    def _fallback(status: str, message: str) -> ReportResult:
        report = fallback_report(locale)
        if sparse:
            ensure_conservative_note(report, locale)
        return {"report": report, "meta": {"status": status, "message": message}}

    if client is None:
        api_key = config.get_anthropic_api_key()
        if not api_key:
            logger.warning("ANTHROPIC_API_KEY missing, returning fallback report.")
            return _fallback("missing_key", "ANTHROPIC_API_KEY is not set")
        client = Anthropic(api_key=api_key)

    try:
        content = _call_claude(
            client,
            SYSTEM_TEMPLATE.format(language=LANGUAGES[locale]),
            _build_user_message(score, pages, hospital_name, address, keywords),
        )
        parsed = _extract_json(content)
        if parsed is None:
            raise ReportParseError("Invalid JSON in AI report")
        report = _normalize_report(parsed, locale)
    except Exception as e:
        logger.error("AI report generation failed: %s", e)
        return _fallback("error", str(e) or "AI generation failed")

    if sparse:
        ensure_conservative_note(report, locale)
    return {"report": report, "meta": {"status": "ok"}}
