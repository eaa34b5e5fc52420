"""Decide whether crawled pages belong to a hospital or clinic site.

Evidence is shallow: keyword coverage across pages, medical structured
data, and a penalty for corporate/e-commerce vocabulary. The resulting
level gates report generation and dampens the score downstream.
"""

import re
from typing import Iterable

from models import PageRecord, SiteClassification, normalize_text
from vocabulary import Locale, contains_any, get_vocabulary

MEDICAL_SCHEMA_TYPES = ("MedicalClinic", "Physician", "Dentist", "Hospital", "MedicalBusiness")
GENERIC_ORG_SCHEMA = re.compile(r"(LocalBusiness|Organization)", re.IGNORECASE)

MIN_VALID_PAGES = 3


def is_valid_page_for_classification(page: PageRecord) -> bool:
    has_title = bool(normalize_text(page.title))
    if len(normalize_text(page.body_text)) >= 300:
        return True
    if has_title and (page.h1 or page.h2):
        return True
    return bool(page.h1)


def _combined_text(page: PageRecord) -> str:
    return "\n".join(
        (page.title, " ".join(page.h1), " ".join(page.h2), normalize_text(page.body_text))
    ).strip()


def _clamp(n: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, n))


def classify_site(pages: Iterable[PageRecord], locale: Locale | str) -> SiteClassification:
    """Return the hospital-site classification for `pages`. Pure, never raises."""
    vocab = get_vocabulary(locale)
    valid_pages = [p for p in pages if is_valid_page_for_classification(p)]
    texts = [_combined_text(p) for p in valid_pages]

    medical_coverage = sum(1 for t in texts if contains_any(t, vocab.medical))
    structure_coverage = sum(1 for t in texts if contains_any(t, vocab.structural))
    non_hospital_coverage = sum(1 for t in texts if contains_any(t, vocab.non_hospital))

    score = 0

    if medical_coverage >= 5:
        score += 6
    elif medical_coverage >= 3:
        score += 4
    elif medical_coverage >= 1:
        score += 2

    if structure_coverage >= 3:
        score += 2
    elif structure_coverage >= 1:
        score += 1

    schema_hit = any(
        medical in schema_type
        for page in valid_pages
        for schema_type in page.schema_types
        for medical in MEDICAL_SCHEMA_TYPES
    )
    org_with_medical = any(
        any(GENERIC_ORG_SCHEMA.search(t) for t in page.schema_types) and contains_any(text, vocab.medical)
        for page, text in zip(valid_pages, texts)
    )
    if schema_hit or org_with_medical:
        score += 3

    # repetition bonus, stacks with the coverage step above
    if medical_coverage >= 3:
        score += 1

    penalty = -2 if non_hospital_coverage >= 2 else 0
    score = _clamp(score + penalty, 0, 10)

    if score >= 6:
        level = "yes"
    elif score >= 4:
        level = "uncertain"
    else:
        level = "no"
    # too few readable pages to reject with confidence
    if len(valid_pages) < MIN_VALID_PAGES and level == "no":
        level = "uncertain"

    evidence = [
        f"medical_keyword_coverage={medical_coverage}",
        f"structure_keyword_coverage={structure_coverage}",
        f"schema_medical={str(schema_hit or org_with_medical).lower()}",
        f"non_hospital_penalty={penalty}",
        f"validPages={len(valid_pages)}",
    ]

    return {
        "isHospital": level == "yes",
        "level": level,
        "evidenceScore": score,
        "evidence": evidence,
        "validPages": len(valid_pages),
    }
