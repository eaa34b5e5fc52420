"""Pydantic schemas for API request/response."""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vocabulary import Locale

MAX_KEYWORDS = 15


class AnalyzeRequest(BaseModel):
    """Request body for POST /analyze and POST /jobs."""

    model_config = ConfigDict(populate_by_name=True)

    url: str
    hospital_name: str = Field(alias="hospitalName")
    address: str = ""
    keywords: list[str] = Field(default_factory=list)
    locale: Locale = Locale.KO

    @field_validator("url", "hospital_name", "address", mode="before")
    @classmethod
    def normalize_text_fields(cls, value: object) -> str:
        return str(value or "").strip()

    @field_validator("url", "hospital_name")
    @classmethod
    def require_non_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("Field is required")
        return value

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        if not re.match(r"^https?://[^\s/]+", value, re.IGNORECASE):
            raise ValueError("Invalid URL")
        return value

    @field_validator("keywords", mode="before")
    @classmethod
    def normalize_keywords(cls, value: object) -> list[str]:
        if value is None:
            return []

        if isinstance(value, str):
            raw_items = value.split(",")
        elif isinstance(value, list):
            raw_items = value
        else:
            return []

        cleaned: list[str] = []
        for item in raw_items:
            text = str(item or "").strip()
            if text:
                cleaned.append(text)

        return cleaned[:MAX_KEYWORDS]


class JobCreatedResponse(BaseModel):
    """Response for POST /jobs."""

    id: str


class JobResponse(BaseModel):
    """Job snapshot returned by GET /status."""

    id: str
    status: str
    progress: int
    createdAt: int
    result: dict | None = None
    error: str | None = None
