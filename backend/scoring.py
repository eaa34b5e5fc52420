"""Coverage scoring engine.

Turns per-page signals into five 0-20 category scores and a 0-100 total.

Pipeline:
1. valid pages (body >= 400 chars) are the only pages whose signals count;
   the coverage denominator is every analyzed page.
2. strong-signal pages (>= 2 deep-content terms) add half a page of weight
   to any signal they carry, capped at the number of analyzed pages.
3. coverage maps to points through a step function, optionally gated.
4. categories are clamped, capped when site-wide evidence is missing,
   scaled by a confidence factor derived from the valid-page ratio, and
   finally rescaled if a total cap applies.

Every check also yields a CheckCandidate; four per category are surfaced
to the user (most impactful failures, then strongest passes).
"""

import math
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Sequence

from models import (
    CATEGORY_KEYS,
    CheckItem,
    PageRecord,
    ScoreCaps,
    ScoreCategory,
    ScoreResult,
    normalize_text,
)
from vocabulary import Locale, Vocabulary, contains_any, get_vocabulary

VALID_PAGE_MIN_CHARS = 400
STRONG_PAGE_MIN_HITS = 2
STRONG_PAGE_BONUS = 0.5
BODY_TOP_CHARS = 320
CATEGORY_MAX = 20
TOTAL_MAX = 100
CHECKS_PER_CATEGORY = 4

INDEXING_CAP = 14
TRUST_CAP = 14
TOTAL_CAP = 80
MIN_FAQ_ITEMS_FOR_UNCAPPED_TOTAL = 3

CONFIDENCE_FLOOR = 0.65

PHONE_PATTERN = re.compile(r"(\+?\d{1,3}[\s-]?)?(\d{2,3}[\s-]?)?\d{3,4}[\s-]?\d{4}")
SITEMAP_PATTERN = re.compile(r"sitemap", re.IGNORECASE)
FAQ_SCHEMA_PATTERN = re.compile(r"faq", re.IGNORECASE)
MEDICAL_SCHEMA_PATTERN = re.compile(
    r"(MedicalClinic|MedicalOrganization|Hospital|Physician|LocalBusiness|Organization)",
    re.IGNORECASE,
)

PagePredicate = Callable[[PageRecord], bool]


@dataclass(frozen=True)
class ScoreInput:
    hospital_name: str
    keywords: Sequence[str] = ()
    locale: Locale | str = Locale.KO


@dataclass(frozen=True)
class Observation:
    """How many valid pages, and how many strong pages, satisfy a predicate."""

    observed: int
    strong_observed: int = 0


@dataclass(frozen=True)
class CheckSpec:
    """Scoring parameters of one check.

    `min_coverage` gates the points; `ok_min_coverage` decides pass/fail of
    the surfaced check item. A check without `weight` scores silently.
    """

    key: str
    base_points: float
    min_coverage: float | None = None
    weight: int | None = None
    ok_min_coverage: float | None = None
    signal: str | None = None
    log_signal: bool = True


@dataclass(frozen=True)
class CheckCandidate:
    key: str
    label: str
    weight: int
    coverage: float
    ok: bool


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(n: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, n))


def is_valid_page(page: PageRecord) -> bool:
    return len(normalize_text(page.body_text)) >= VALID_PAGE_MIN_CHARS


def is_strong_signal_page(page: PageRecord, vocab: Vocabulary) -> bool:
    hay = "\n".join((page.title, " ".join(page.h1), " ".join(page.h2), page.body_text)).lower()
    hits = sum(1 for term in vocab.deep_content if term.lower() in hay)
    return hits >= STRONG_PAGE_MIN_HITS


def observe(
    valid_pages: Sequence[PageRecord],
    strong_pages: Sequence[PageRecord],
    predicate: PagePredicate,
) -> Observation:
    return Observation(
        observed=sum(1 for p in valid_pages if predicate(p)),
        strong_observed=sum(1 for p in strong_pages if predicate(p)),
    )


def weighted_coverage(pages_analyzed: int, observed: int, strong_observed: int = 0) -> float:
    if pages_analyzed <= 0:
        return 0.0
    weighted = min(pages_analyzed, observed + strong_observed * STRONG_PAGE_BONUS)
    return weighted / pages_analyzed


def coverage_factor(coverage: float) -> float:
    if coverage >= 0.5:
        return 1.0
    if coverage >= 0.3:
        return 0.7
    if coverage >= 0.1:
        return 0.4
    return 0.0


def score_by_coverage(
    pages_analyzed: int,
    observation: Observation,
    base_points: float,
    min_coverage: float | None = None,
) -> float:
    if pages_analyzed <= 0:
        return 0.0
    coverage = weighted_coverage(pages_analyzed, observation.observed, observation.strong_observed)
    if min_coverage is not None and coverage < min_coverage:
        return 0.0
    return base_points * coverage_factor(coverage)


def make_check_candidate(
    key: str,
    label: str,
    pages_analyzed: int,
    observation: Observation,
    weight: int,
    ok_min_coverage: float | None = None,
) -> CheckCandidate:
    coverage = weighted_coverage(pages_analyzed, observation.observed, observation.strong_observed)
    if ok_min_coverage is None:
        ok = observation.observed > 0
    else:
        ok = coverage >= ok_min_coverage
    return CheckCandidate(key=key, label=label, weight=weight, coverage=coverage, ok=ok)


def pick_checks(candidates: Iterable[CheckCandidate], limit: int = CHECKS_PER_CATEGORY) -> list[CheckItem]:
    """Select up to `limit` checks: two worst failures, then two best passes.

    Failures sort by (weight desc, coverage asc), passes by (weight desc,
    coverage desc). Short selections are backfilled fail-first without
    repeating a key. Sorting is stable so ties keep evaluation order.
    """
    candidates = list(candidates)
    fails = sorted((c for c in candidates if not c.ok), key=lambda c: (-c.weight, c.coverage))
    passes = sorted((c for c in candidates if c.ok), key=lambda c: (-c.weight, -c.coverage))

    half = limit // 2
    chosen: list[CheckCandidate] = []
    for candidate in fails[:half] + passes[:half] + fails[half:] + passes[half:]:
        if len(chosen) >= limit:
            break
        if all(c.key != candidate.key for c in chosen):
            chosen.append(candidate)

    return [{"key": c.key, "label": c.label, "ok": c.ok} for c in chosen[:limit]]


@dataclass
class _CategoryTally:
    pages_analyzed: int
    labels: Mapping[str, str]
    signals: list[str]
    points: float = 0.0
    candidates: list[CheckCandidate] = field(default_factory=list)

    def add(self, check: CheckSpec, observation: Observation) -> None:
        if check.log_signal and observation.observed > 0:
            self.signals.append(check.signal or check.key)
        self.points += score_by_coverage(
            self.pages_analyzed, observation, check.base_points, check.min_coverage
        )
        if check.weight is not None:
            self.candidates.append(
                make_check_candidate(
                    check.key,
                    self.labels[check.key],
                    self.pages_analyzed,
                    observation,
                    check.weight,
                    check.ok_min_coverage,
                )
            )

    def total(self) -> float:
        return clamp(self.points, 0, CATEGORY_MAX)


RELEVANCE_CHECKS = {
    "title_has_hospital": CheckSpec("title_has_hospital", 6, weight=2, ok_min_coverage=0.1),
    "title_has_keyword": CheckSpec("title_has_keyword", 4, weight=3, ok_min_coverage=0.3),
    "h1_matches_keyword": CheckSpec("h1_matches_keyword", 4, weight=3, ok_min_coverage=0.3),
    "body_top_keyword": CheckSpec("body_top_keyword", 3, min_coverage=0.3),
    "has_service_page": CheckSpec("has_service_page", 3, weight=4, ok_min_coverage=0.1),
    "has_location_info": CheckSpec(
        "has_location_info", 2, min_coverage=0.5, weight=1, ok_min_coverage=0.5
    ),
}

STRUCTURE_CHECKS = {
    "good_h1_structure": CheckSpec("good_h1_structure", 5, min_coverage=0.3, weight=3, ok_min_coverage=0.3),
    "rich_h2_structure": CheckSpec("rich_h2_structure", 4, min_coverage=0.3, weight=2, ok_min_coverage=0.3),
    "sufficient_content_length": CheckSpec(
        "sufficient_content_length", 6, min_coverage=0.3, weight=4, ok_min_coverage=0.3
    ),
    "internal_linking_ok": CheckSpec(
        "internal_linking_ok", 3, min_coverage=0.5, weight=1, ok_min_coverage=0.5
    ),
    # scored and surfaced, never logged as a signal
    "heading_hierarchy_ok": CheckSpec(
        "heading_hierarchy_ok", 2, min_coverage=0.3, weight=2, ok_min_coverage=0.3, log_signal=False
    ),
}

INDEXING_CHECKS = {
    "has_meta_description": CheckSpec(
        "has_meta_description", 5, min_coverage=0.3, weight=2, ok_min_coverage=0.3
    ),
    "has_canonical": CheckSpec("has_canonical", 7, min_coverage=0.3, weight=4, ok_min_coverage=0.3),
    "has_sitemap": CheckSpec("has_sitemap", 4, weight=3, ok_min_coverage=0.01),
    "og_ok": CheckSpec("og_ok", 2, min_coverage=0.5, weight=1, ok_min_coverage=0.5),
    "viewport_ok": CheckSpec("viewport_ok", 2, min_coverage=0.5, weight=1, ok_min_coverage=0.5),
}

TRUST_CHECKS = {
    "has_doctor_page": CheckSpec("has_doctor_page", 6, min_coverage=0.3, weight=3, ok_min_coverage=0.3),
    "has_contact_hours_phone": CheckSpec(
        "has_contact_hours_phone", 3, min_coverage=0.5, weight=1, ok_min_coverage=0.5
    ),
    "has_risk_info": CheckSpec("has_risk_info", 7, weight=5, ok_min_coverage=0.1),
    "semantic_flow_ok": CheckSpec(
        "semantic_flow_ok", 4, weight=4, ok_min_coverage=0.1, signal="has_cause_symptom_treatment_flow"
    ),
}

FAQ_SCHEMA_CHECKS = {
    "has_faq_schema": CheckSpec("has_faq_schema", 8, weight=5, ok_min_coverage=0.01),
    "has_medical_schema": CheckSpec("has_medical_schema", 6, weight=4, ok_min_coverage=0.01),
    "faq_count_5plus": CheckSpec("faq_count_5plus", 4, weight=3, ok_min_coverage=0.1, signal="rich_faq_5plus"),
    "faq_count_3plus": CheckSpec("faq_count_3plus", 2, weight=2, ok_min_coverage=0.1, signal="faq_3plus"),
}


def _empty_result() -> ScoreResult:
    return {
        "total": 0,
        "categories": {key: 0 for key in CATEGORY_KEYS},
        "details": {
            "signals": ["No pages analyzed"],
            "metrics": {"pagesAnalyzed": 0, "validPages": 0, "validRatio": 0, "strongPages": 0},
            "checks": {key: [] for key in CATEGORY_KEYS},
            "caps": {},
        },
    }


def confidence_factor(valid_ratio: float) -> float:
    return CONFIDENCE_FLOOR + (1 - CONFIDENCE_FLOOR) * valid_ratio


def scale_categories(raw: dict[str, float], factor: float) -> dict[str, int]:
    return {key: int(clamp(round_half_up(raw[key] * factor), 0, CATEGORY_MAX)) for key in CATEGORY_KEYS}


def _enforce_total_cap(categories: dict[str, int], total_cap: int) -> dict[str, int]:
    total = sum(categories.values())
    if total <= total_cap:
        return categories
    capped = scale_categories(categories, total_cap / total)
    # per-category rounding can overshoot; trim the largest category first
    while sum(capped.values()) > total_cap:
        largest = max(CATEGORY_KEYS, key=lambda k: capped[k])
        capped[largest] -= 1
    return capped


class _PageSignals:
    """Per-page predicates bound to one locale and one request."""

    def __init__(self, vocab: Vocabulary, hospital_name: str, keywords: Sequence[str]):
        self.vocab = vocab
        self.hospital_name = hospital_name.strip()
        self.keywords = [k.strip() for k in keywords if k and k.strip()]

    def title_has_hospital(self, page: PageRecord) -> bool:
        return bool(self.hospital_name) and contains_any(page.title, (self.hospital_name,))

    def title_has_keyword(self, page: PageRecord) -> bool:
        return contains_any(page.title, self.keywords)

    def h1_has_keyword(self, page: PageRecord) -> bool:
        return contains_any(" ".join(page.h1), self.keywords)

    def body_top_has_keyword(self, page: PageRecord) -> bool:
        return contains_any(normalize_text(page.body_text)[:BODY_TOP_CHARS], self.keywords)

    def has_any_keyword(self, page: PageRecord) -> bool:
        combined = "\n".join(
            (page.title, " ".join(page.h1), " ".join(page.h2), page.url, page.body_text)
        )
        return contains_any(combined, self.keywords)

    def has_contact_info(self, page: PageRecord) -> bool:
        body = normalize_text(page.body_text)
        return bool(PHONE_PATTERN.search(body)) or contains_any(body, self.vocab.address_cues)

    def has_risk_info(self, page: PageRecord) -> bool:
        return contains_any(normalize_text(page.body_text), self.vocab.risk)

    def has_doctor_info(self, page: PageRecord) -> bool:
        combined = "\n".join((page.title, " ".join(page.h1), page.body_text))
        return contains_any(combined, self.vocab.doctor)

    def has_flow(self, page: PageRecord) -> bool:
        text = " ".join((" ".join(page.h1), " ".join(page.h2), normalize_text(page.body_text)))
        return (
            contains_any(text, self.vocab.cause)
            and contains_any(text, self.vocab.symptom)
            and contains_any(text, self.vocab.treatment)
        )

    @staticmethod
    def has_faq_schema(page: PageRecord) -> bool:
        return any(FAQ_SCHEMA_PATTERN.search(t) for t in page.schema_types)

    @staticmethod
    def has_medical_schema(page: PageRecord) -> bool:
        return any(MEDICAL_SCHEMA_PATTERN.search(t) for t in page.schema_types)


def has_sitemap_proxy(pages: Sequence[PageRecord]) -> bool:
    """Site-wide stand-in for a sitemap fetch: any URL or link mentioning sitemap."""
    return any(SITEMAP_PATTERN.search(p.url) for p in pages) or any(
        SITEMAP_PATTERN.search(link) for p in pages for link in p.internal_links
    )


def calculate_score(pages: Sequence[PageRecord], score_input: ScoreInput) -> ScoreResult:
    """Score `pages`. Pure and deterministic; returns a zero result for no pages."""
    pages = list(pages)
    pages_analyzed = len(pages)
    if pages_analyzed == 0:
        return _empty_result()

    vocab = get_vocabulary(score_input.locale)
    labels = vocab.check_labels
    page_signals = _PageSignals(vocab, score_input.hospital_name or "", score_input.keywords)

    valid_pages = [p for p in pages if is_valid_page(p)]
    valid_count = len(valid_pages)
    valid_ratio = valid_count / pages_analyzed
    strong_pages = [p for p in valid_pages if is_strong_signal_page(p, vocab)]

    def seen(predicate: PagePredicate) -> Observation:
        return observe(valid_pages, strong_pages, predicate)

    signals = [
        f"pages_analyzed:{pages_analyzed}",
        f"valid_pages:{valid_count}",
        f"valid_ratio:{valid_ratio:.2f}",
        f"strong_pages:{len(strong_pages)}",
    ]

    def tally() -> _CategoryTally:
        return _CategoryTally(pages_analyzed=pages_analyzed, labels=labels, signals=signals)

    relevance = tally()
    relevance.add(RELEVANCE_CHECKS["title_has_hospital"], seen(page_signals.title_has_hospital))
    relevance.add(RELEVANCE_CHECKS["title_has_keyword"], seen(page_signals.title_has_keyword))
    relevance.add(RELEVANCE_CHECKS["h1_matches_keyword"], seen(page_signals.h1_has_keyword))
    relevance.add(RELEVANCE_CHECKS["body_top_keyword"], seen(page_signals.body_top_has_keyword))
    relevance.add(RELEVANCE_CHECKS["has_service_page"], seen(page_signals.has_any_keyword))
    relevance.add(RELEVANCE_CHECKS["has_location_info"], seen(page_signals.has_contact_info))

    structure = tally()
    structure.add(STRUCTURE_CHECKS["good_h1_structure"], seen(lambda p: len(p.h1) == 1))
    structure.add(STRUCTURE_CHECKS["rich_h2_structure"], seen(lambda p: len(p.h2) >= 3))
    structure.add(
        STRUCTURE_CHECKS["sufficient_content_length"],
        seen(lambda p: len(normalize_text(p.body_text)) >= 900),
    )
    structure.add(STRUCTURE_CHECKS["internal_linking_ok"], seen(lambda p: len(p.internal_links) >= 6))
    structure.add(
        STRUCTURE_CHECKS["heading_hierarchy_ok"],
        seen(lambda p: len(p.h1) >= 1 and len(p.h2) >= 1),
    )

    sitemap_found = has_sitemap_proxy(pages)
    canonical_found = any(p.has_canonical for p in valid_pages)
    indexing = tally()
    indexing.add(
        INDEXING_CHECKS["has_meta_description"],
        seen(lambda p: len(normalize_text(p.description)) >= 30),
    )
    indexing.add(INDEXING_CHECKS["has_canonical"], seen(lambda p: p.has_canonical))
    indexing.add(INDEXING_CHECKS["has_sitemap"], Observation(observed=1 if sitemap_found else 0))
    indexing.add(INDEXING_CHECKS["og_ok"], seen(lambda p: p.has_og_tags))
    indexing.add(INDEXING_CHECKS["viewport_ok"], seen(lambda p: p.has_viewport))

    risk_observation = seen(page_signals.has_risk_info)
    trust = tally()
    trust.add(TRUST_CHECKS["has_doctor_page"], seen(page_signals.has_doctor_info))
    trust.add(TRUST_CHECKS["has_contact_hours_phone"], seen(page_signals.has_contact_info))
    trust.add(TRUST_CHECKS["has_risk_info"], risk_observation)
    flow = seen(page_signals.has_flow)
    trust.add(TRUST_CHECKS["semantic_flow_ok"], flow)
    if flow.observed > 0:
        signals.append("semantic_flow_ok")

    total_faq = sum(p.faq_count for p in valid_pages)
    faq_schema_found = any(page_signals.has_faq_schema(p) for p in valid_pages)
    medical_schema_found = any(page_signals.has_medical_schema(p) for p in valid_pages)
    faq_schema = tally()
    faq_schema.add(FAQ_SCHEMA_CHECKS["has_faq_schema"], seen(page_signals.has_faq_schema))
    faq_schema.add(FAQ_SCHEMA_CHECKS["has_medical_schema"], seen(page_signals.has_medical_schema))
    faq_schema.add(FAQ_SCHEMA_CHECKS["faq_count_5plus"], seen(lambda p: p.faq_count >= 5))
    faq_schema.add(FAQ_SCHEMA_CHECKS["faq_count_3plus"], seen(lambda p: p.faq_count >= 3))

    tallies = {
        "relevance": relevance,
        "structure": structure,
        "indexing": indexing,
        "trust": trust,
        "faq_schema": faq_schema,
    }
    raw = {key: tallies[key].total() for key in CATEGORY_KEYS}

    caps: ScoreCaps = {}
    if not sitemap_found and not canonical_found:
        caps["indexingCap"] = INDEXING_CAP
        raw["indexing"] = min(raw["indexing"], INDEXING_CAP)
        signals.append(f"indexing_cap:{INDEXING_CAP}")
    if risk_observation.observed == 0:
        caps["trustCap"] = TRUST_CAP
        raw["trust"] = min(raw["trust"], TRUST_CAP)
        signals.append(f"trust_cap:{TRUST_CAP}")
    if total_faq < MIN_FAQ_ITEMS_FOR_UNCAPPED_TOTAL and not faq_schema_found:
        caps["totalCap"] = TOTAL_CAP
        signals.append(f"total_cap:{TOTAL_CAP}")

    scaled = scale_categories(raw, confidence_factor(valid_ratio))
    if "indexingCap" in caps:
        scaled["indexing"] = min(scaled["indexing"], caps["indexingCap"])
    if "trustCap" in caps:
        scaled["trust"] = min(scaled["trust"], caps["trustCap"])
    if "totalCap" in caps:
        scaled = _enforce_total_cap(scaled, caps["totalCap"])

    total = int(clamp(sum(scaled.values()), 0, TOTAL_MAX))

    if faq_schema_found:
        signals.append("cap_guard_faq_schema_ok")
    if medical_schema_found:
        signals.append("schema_medical_present")
    if sitemap_found:
        signals.append("sitemap_present")

    categories: ScoreCategory = {key: scaled[key] for key in CATEGORY_KEYS}
    return {
        "total": total,
        "categories": categories,
        "details": {
            "signals": signals,
            "metrics": {
                "pagesAnalyzed": pages_analyzed,
                "validPages": valid_count,
                "validRatio": round(valid_ratio, 3),
                "strongPages": len(strong_pages),
            },
            "checks": {key: pick_checks(tallies[key].candidates) for key in CATEGORY_KEYS},
            "caps": caps,
        },
    }
