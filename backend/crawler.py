"""Site crawler: fetch up to N same-origin pages and extract scoring signals.

Breadth-first from the start URL. Pages that fail to fetch are skipped.
No JavaScript rendering.
"""

import json as _json
import logging
import re
from collections import deque
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

import config
from models import PageRecord

logger = logging.getLogger(__name__)

_REQUEST_HEADERS = {
    "User-Agent": config.CRAWL_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "ko,ja;q=0.9,en;q=0.8",
}

FAQ_TEXT_PATTERN = re.compile(r"Q\.|Question|질문")
FAQ_SELECTOR = "dt, .faq-question, .question"


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def dedupe_key(url: str) -> str:
    """Query string and fragment are ignored when deciding if a URL was seen."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return url
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


def fetch_html(url: str, session: requests.Session | None = None) -> str | None:
    """GET `url` and return its HTML, or None on any HTTP or network failure."""
    client = session or requests
    try:
        response = client.get(url, timeout=config.CRAWL_TIMEOUT_SECONDS, headers=_REQUEST_HEADERS)
        response.raise_for_status()
        response.encoding = response.apparent_encoding or "utf-8"
        return response.text
    except (requests.RequestException, ValueError, OSError) as e:
        logger.warning("Failed to fetch %s: %s", url, e)
        return None


def _collect_types(node: object, out: list[str]) -> None:
    if isinstance(node, list):
        for item in node:
            _collect_types(item, out)
        return
    if not isinstance(node, dict):
        return
    sd_type = node.get("@type")
    if isinstance(sd_type, list):
        out.extend(str(t) for t in sd_type if t)
    elif sd_type:
        out.append(str(sd_type))
    graph = node.get("@graph")
    if isinstance(graph, list):
        _collect_types(graph, out)


def extract_schema_types(soup: BeautifulSoup) -> list[str]:
    schema_types: list[str] = []
    for script_tag in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            ld = _json.loads(script_tag.string or "")
        except ValueError:
            continue
        _collect_types(ld, schema_types)
    return schema_types


def extract_internal_links(soup: BeautifulSoup, page_url: str, origin: str) -> list[str]:
    links: list[str] = []
    for a in soup.find_all("a", href=True):
        href = (a["href"] or "").strip()
        if not href:
            continue
        try:
            absolute = urljoin(page_url, href)
        except ValueError:
            continue
        if origin_of(absolute) == origin:
            links.append(absolute)
    return links


def parse_page(url: str, html: str, origin: str | None = None) -> PageRecord:
    """Extract a PageRecord from raw HTML. Never fetches."""
    soup = BeautifulSoup(html, "html.parser")
    origin = origin or origin_of(url)

    # Structured data before scripts are removed
    schema_types = extract_schema_types(soup)

    for tag in soup.find_all(["script", "style", "noscript"]):
        tag.decompose()

    title = soup.title.get_text(strip=True) if soup.title else ""

    description = ""
    meta_desc_tag = soup.find("meta", attrs={"name": "description"})
    if meta_desc_tag and meta_desc_tag.get("content"):
        description = meta_desc_tag["content"].strip()

    h1 = [h.get_text(" ", strip=True) for h in soup.find_all("h1")]
    h2 = [h.get_text(" ", strip=True) for h in soup.find_all("h2")]

    body = soup.body or soup
    body_text = " ".join(body.get_text(" ").split())[: config.CRAWL_BODY_TEXT_LIMIT]

    canonical_tag = soup.find("link", attrs={"rel": "canonical"})
    has_canonical = bool(canonical_tag and (canonical_tag.get("href") or "").strip())

    viewport_tag = soup.find("meta", attrs={"name": re.compile(r"^viewport$", re.I)})
    has_viewport = bool(viewport_tag and (viewport_tag.get("content") or "").strip())

    og_tags = soup.find_all("meta", attrs={"property": re.compile(r"^og:")})
    has_og_tags = len(og_tags) >= 2

    faq_count = len(soup.select(FAQ_SELECTOR)) or len(FAQ_TEXT_PATTERN.findall(body_text))

    return PageRecord(
        url=url,
        title=title,
        description=description,
        h1=h1,
        h2=h2,
        body_text=body_text,
        has_canonical=has_canonical,
        has_viewport=has_viewport,
        has_og_tags=has_og_tags,
        has_schema=len(schema_types) > 0,
        schema_types=schema_types,
        internal_links=extract_internal_links(soup, url, origin),
        faq_count=faq_count,
    )


def crawl_site(
    base_url: str,
    max_pages: int = config.CRAWL_MAX_PAGES,
    session: requests.Session | None = None,
) -> list[PageRecord]:
    """Crawl same-origin pages starting at `base_url`, at most `max_pages` records."""
    origin = origin_of(base_url)
    visited: set[str] = set()
    queued: set[str] = {base_url}
    queue: deque[str] = deque([base_url])
    results: list[PageRecord] = []

    while queue and len(results) < max_pages:
        current_url = queue.popleft()
        key = dedupe_key(current_url)
        if key in visited:
            continue
        visited.add(key)

        html = fetch_html(current_url, session)
        if html is None:
            continue

        page = parse_page(current_url, html, origin)
        results.append(page)
        logger.debug("Crawled %s (%d links)", current_url, len(page.internal_links))

        for link in page.internal_links:
            if dedupe_key(link) not in visited and link not in queued:
                queued.add(link)
                queue.append(link)

    logger.info("Crawl of %s finished: %d pages", base_url, len(results))
    return results
