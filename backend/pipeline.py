"""Analysis orchestration: crawl -> classify -> score -> report.

The classification level decides what the client gets:
- yes: scores as computed, narrative report generated
- uncertain: scores dampened, narrative report generated
- no: scores as computed, no report
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable

import config
import crawler
import report_service
from models import CATEGORY_KEYS, AnalysisResult, ScoreResult
from scoring import ScoreInput, calculate_score
from site_classifier import classify_site
from vocabulary import Locale

logger = logging.getLogger(__name__)

UNCERTAIN_DAMPENING = 0.85

EventCallback = Callable[[dict], None]


class AnalysisError(Exception):
    """Raised when an analysis cannot produce a result (e.g. nothing crawled)."""


@dataclass(frozen=True)
class AnalysisRequest:
    url: str
    hospital_name: str
    address: str = ""
    keywords: tuple[str, ...] = field(default_factory=tuple)
    locale: Locale = Locale.KO


def dampen_score(score: ScoreResult, factor: float = UNCERTAIN_DAMPENING) -> ScoreResult:
    """Return a copy with each category scaled by `factor`, floored; total is the new sum."""
    categories = {key: int(math.floor(score["categories"][key] * factor)) for key in CATEGORY_KEYS}
    return {
        "total": sum(categories.values()),
        "categories": categories,
        "details": score["details"],
    }


def run_analysis(request: AnalysisRequest, emit: EventCallback | None = None) -> AnalysisResult:
    """Run the full analysis, reporting progress through `emit`."""
    emit = emit or (lambda event: None)

    emit({"type": "progress", "value": 10, "step": "Crawling"})
    logger.info("Crawling %s", request.url)
    pages = crawler.crawl_site(request.url, config.CRAWL_MAX_PAGES)
    if not pages:
        raise AnalysisError("No pages found")

    emit({"type": "progress", "value": 40, "step": "Classifying", "pagesCount": len(pages)})
    classification = classify_site(pages, request.locale)
    logger.info(
        "Site classification for %s: level=%s evidence=%d",
        request.url,
        classification["level"],
        classification["evidenceScore"],
    )

    emit({"type": "progress", "value": 50, "step": "Scoring", "pagesCount": len(pages)})
    score = calculate_score(
        pages,
        ScoreInput(hospital_name=request.hospital_name, keywords=request.keywords, locale=request.locale),
    )
    if classification["level"] == "uncertain":
        score = dampen_score(score)

    if classification["level"] == "no":
        logger.info("Skipping report for %s: not a hospital site", request.url)
        ai = None
        ai_meta = {"status": "skipped", "message": "Site not classified as a hospital/clinic"}
    else:
        emit({"type": "progress", "value": 70, "step": "AI Analysis"})
        generated = report_service.generate_report(
            score, pages, request.hospital_name, request.address, request.keywords, request.locale
        )
        ai, ai_meta = generated["report"], generated["meta"]

    emit({"type": "progress", "value": 90, "step": "Finalizing"})
    return {
        "score": score,
        "ai": ai,
        "aiMeta": ai_meta,
        "pagesAnalyzed": len(pages),
        "siteClassification": classification,
    }
