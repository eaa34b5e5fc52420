"""Data models and types used across the backend.

PageRecord is the crawler's output and the input of every scoring step.
Result shapes returned to the API and report generator are TypedDicts.
"""

from typing import Literal, NotRequired, TypedDict

from pydantic import BaseModel, ConfigDict, Field, field_validator

CATEGORY_KEYS: tuple[str, ...] = ("relevance", "structure", "indexing", "trust", "faq_schema")


def normalize_text(text: str | None) -> str:
    """Collapse whitespace runs to a single space and strip."""
    return " ".join((text or "").split())


class PageRecord(BaseModel):
    """Extractable signals of one crawled page. Immutable once built.

    Missing or null fields take their zero value, so records assembled from
    partial crawler output never raise downstream.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str = ""
    title: str = ""
    description: str = ""
    h1: tuple[str, ...] = ()
    h2: tuple[str, ...] = ()
    body_text: str = Field(default="", alias="bodyText")
    has_canonical: bool = Field(default=False, alias="hasCanonical")
    has_viewport: bool = Field(default=False, alias="hasViewport")
    has_og_tags: bool = Field(default=False, alias="hasOgTags")
    has_schema: bool = Field(default=False, alias="hasSchema")
    schema_types: tuple[str, ...] = Field(default=(), alias="schemaTypes")
    internal_links: tuple[str, ...] = Field(default=(), alias="internalLinks")
    faq_count: int = Field(default=0, alias="faqCount")

    @field_validator("url", "title", "description", "body_text", mode="before")
    @classmethod
    def normalize_str_fields(cls, value: object) -> str:
        return "" if value is None else str(value)

    @field_validator("h1", "h2", "schema_types", "internal_links", mode="before")
    @classmethod
    def normalize_seq_fields(cls, value: object) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return tuple(str(item) for item in value if item is not None)

    @field_validator("has_canonical", "has_viewport", "has_og_tags", "has_schema", mode="before")
    @classmethod
    def normalize_bool_fields(cls, value: object) -> bool:
        return bool(value)

    @field_validator("faq_count", mode="before")
    @classmethod
    def normalize_faq_count(cls, value: object) -> int:
        try:
            return max(0, int(value or 0))
        except (TypeError, ValueError):
            return 0


class ScoreCategory(TypedDict):
    relevance: int
    structure: int
    indexing: int
    trust: int
    faq_schema: int


class CheckItem(TypedDict):
    """One pass/fail signal surfaced to the end user."""

    key: str
    label: str
    ok: bool


class ScoreMetrics(TypedDict):
    pagesAnalyzed: int
    validPages: int
    validRatio: float
    strongPages: int


class ScoreCaps(TypedDict, total=False):
    indexingCap: int
    trustCap: int
    totalCap: int


class ScoreDetails(TypedDict):
    signals: list[str]
    metrics: ScoreMetrics
    checks: dict[str, list[CheckItem]]
    caps: ScoreCaps


class ScoreResult(TypedDict):
    """Composite 0-100 score with its explainable breakdown."""

    total: int
    categories: ScoreCategory
    details: ScoreDetails


class SiteClassification(TypedDict):
    isHospital: bool
    level: Literal["yes", "uncertain", "no"]
    evidenceScore: int
    evidence: list[str]
    validPages: int


class CardOverviews(TypedDict):
    relevance: str
    structure: str
    indexing: str
    trust: str
    faq_schema: str


class Report(TypedDict):
    """Narrative report produced by the report generator."""

    overview_summary: str
    overview_clinicai: str
    overview_priorities: list[str]
    card_overviews: CardOverviews


class ReportMeta(TypedDict):
    status: Literal["ok", "missing_key", "error", "skipped"]
    message: NotRequired[str]


class ReportResult(TypedDict):
    report: Report
    meta: ReportMeta


class AnalysisResult(TypedDict):
    """Final payload streamed to the client."""

    score: ScoreResult
    ai: Report | None
    aiMeta: ReportMeta
    pagesAnalyzed: int
    siteClassification: SiteClassification
