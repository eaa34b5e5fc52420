"""Tests for page extraction and same-origin crawling (no network)."""

import requests

import crawler

HOME_HTML = """
<html>
<head>
  <title> 서울미소치과 | 임플란트 </title>
  <meta name="description" content="서울미소치과 임플란트 안내">
  <meta name="viewport" content="width=device-width">
  <meta property="og:title" content="서울미소치과">
  <meta property="og:description" content="임플란트">
  <link rel="canonical" href="https://clinic.example/">
  <script type="application/ld+json">{"@context": "https://schema.org", "@type": "MedicalClinic"}</script>
  <script type="application/ld+json">{"@graph": [{"@type": "FAQPage"}, {"@type": ["Organization", "LocalBusiness"]}]}</script>
  <script type="application/ld+json">{not json</script>
  <style>.x { color: red; }</style>
</head>
<body>
  <h1>임플란트 치료</h1>
  <h2>원인</h2><h2>증상</h2>
  <dl><dt>Q. 아픈가요?</dt><dd>아니요</dd><dt>Q. 기간은?</dt><dd>3개월</dd></dl>
  <a href="/about">소개</a>
  <a href="https://clinic.example/faq?x=1#top">FAQ</a>
  <a href="https://other.example/">외부</a>
  <script>var hidden = "should not appear";</script>
</body>
</html>
"""

ABOUT_HTML = """
<html><head><title>소개</title></head>
<body><h1>소개</h1><p>질문 있으신가요? Question time.</p>
<a href="/">홈</a><a href="/faq">FAQ</a></body></html>
"""


class FakeResponse:
    def __init__(self, text: str, status_code: int = 200):
        self.text = text
        self.status_code = status_code
        self.encoding = "utf-8"
        self.apparent_encoding = "utf-8"

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, pages: dict[str, object]):
        self.pages = pages
        self.requested: list[str] = []

    def get(self, url, timeout=None, headers=None):
        self.requested.append(url)
        value = self.pages.get(url)
        if isinstance(value, Exception):
            raise value
        if value is None:
            return FakeResponse("", 404)
        return FakeResponse(value)


class TestParsePage:
    def test_extracts_signals(self):
        page = crawler.parse_page("https://clinic.example/", HOME_HTML)
        assert page.title == "서울미소치과 | 임플란트"
        assert page.description == "서울미소치과 임플란트 안내"
        assert page.h1 == ("임플란트 치료",)
        assert page.h2 == ("원인", "증상")
        assert page.has_canonical
        assert page.has_viewport
        assert page.has_og_tags
        assert page.schema_types == ("MedicalClinic", "FAQPage", "Organization", "LocalBusiness")
        assert page.has_schema
        assert page.faq_count == 2

    def test_body_text_excludes_scripts_and_styles(self):
        page = crawler.parse_page("https://clinic.example/", HOME_HTML)
        assert "should not appear" not in page.body_text
        assert "color: red" not in page.body_text
        assert "  " not in page.body_text

    def test_internal_links_are_same_origin_and_absolute(self):
        page = crawler.parse_page("https://clinic.example/", HOME_HTML)
        assert page.internal_links == (
            "https://clinic.example/about",
            "https://clinic.example/faq?x=1#top",
        )

    def test_faq_count_falls_back_to_text_markers(self):
        page = crawler.parse_page("https://clinic.example/about", ABOUT_HTML)
        assert page.faq_count == 2

    def test_missing_tags_give_zero_values(self):
        page = crawler.parse_page("https://clinic.example/x", "<html><body>hi</body></html>")
        assert page.title == ""
        assert page.description == ""
        assert not page.has_canonical
        assert not page.has_og_tags
        assert page.schema_types == ()
        assert page.faq_count == 0

    def test_body_text_is_capped(self, monkeypatch):
        monkeypatch.setattr(crawler.config, "CRAWL_BODY_TEXT_LIMIT", 10)
        page = crawler.parse_page("https://clinic.example/", "<body>" + "가" * 50 + "</body>")
        assert len(page.body_text) == 10


class TestCrawlSite:
    def test_breadth_first_same_origin(self):
        session = FakeSession(
            {
                "https://clinic.example/": HOME_HTML,
                "https://clinic.example/about": ABOUT_HTML,
                "https://clinic.example/faq?x=1#top": "<html><body><h1>FAQ</h1></body></html>",
            }
        )
        pages = crawler.crawl_site("https://clinic.example/", max_pages=10, session=session)
        assert [p.url for p in pages] == [
            "https://clinic.example/",
            "https://clinic.example/about",
            "https://clinic.example/faq?x=1#top",
        ]
        assert all("other.example" not in url for url in session.requested)

    def test_dedupes_ignoring_query_and_fragment(self):
        session = FakeSession(
            {
                "https://clinic.example/": HOME_HTML,
                "https://clinic.example/about": ABOUT_HTML,
                "https://clinic.example/faq?x=1#top": "<html><body><h1>FAQ</h1></body></html>",
            }
        )
        crawler.crawl_site("https://clinic.example/", max_pages=10, session=session)
        # /faq from the about page is the same page as /faq?x=1#top
        assert "https://clinic.example/faq" not in session.requested

    def test_respects_page_cap(self):
        session = FakeSession({"https://clinic.example/": HOME_HTML, "https://clinic.example/about": ABOUT_HTML})
        pages = crawler.crawl_site("https://clinic.example/", max_pages=1, session=session)
        assert len(pages) == 1

    def test_failed_fetches_are_skipped(self):
        session = FakeSession(
            {
                "https://clinic.example/": HOME_HTML,
                "https://clinic.example/about": requests.ConnectionError("boom"),
            }
        )
        pages = crawler.crawl_site("https://clinic.example/", max_pages=10, session=session)
        assert [p.url for p in pages] == ["https://clinic.example/"]

    def test_unreachable_start_yields_nothing(self):
        assert crawler.crawl_site("https://clinic.example/", session=FakeSession({})) == []
