"""Shared test fixtures."""

import pytest

import jobs
from models import PageRecord

FILLER_KO = "본 페이지는 일반 안내문입니다. " * 40  # ~ 720 chars, no scoring vocabulary


def make_page(**overrides) -> PageRecord:
    """Build a valid (body >= 400 chars) page with no optional signals set."""
    fields = {
        "url": "https://clinic.example/page",
        "title": "",
        "description": "",
        "h1": [],
        "h2": [],
        "body_text": FILLER_KO,
        "has_canonical": False,
        "has_viewport": False,
        "has_og_tags": False,
        "has_schema": False,
        "schema_types": [],
        "internal_links": [],
        "faq_count": 0,
    }
    fields.update(overrides)
    return PageRecord(**fields)


@pytest.fixture
def page_factory():
    return make_page


@pytest.fixture(autouse=True)
def _reset_jobs():
    jobs.clear_jobs()
    yield
    jobs.clear_jobs()
