"""Page-context enrichment for ambiguous tabs using trafilatura + httpx."""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from urllib.parse import urlparse

import httpx
import trafilatura

from models import GroupSuggestion, PageContext, Tab

log = logging.getLogger(__name__)

MAX_ENRICHED_TABS = 25
FETCH_TIMEOUT = 10
MAX_SITE_HINTS = 6

_GENERIC_NAME = re.compile(r"\b(group|tabs|misc|other|stuff|random)\b", re.IGNORECASE)

_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass
class EnrichmentResult:
    tabs: list[Tab]
    enriched: bool
    hint: str


def _clean(text: str | None, limit: int) -> str:
    if not text or not isinstance(text, str):
        return ""
    return " ".join(text.split())[:limit]


def detect_ambiguous_tab_indices(tabs: list[Tab], groups: list[GroupSuggestion]) -> list[int]:
    ambiguous: list[int] = []
    for group in groups:
        indices = [i for i in group.tab_indices if 0 <= i < len(tabs)]
        if not indices:
            continue
        counts = Counter(tabs[i].domain for i in indices)
        too_large = len(indices) > 12
        domain_heavy = max(counts.values()) / len(indices) >= 0.7
        low_confidence = group.confidence is not None and group.confidence < 0.65
        generic = bool(_GENERIC_NAME.search(group.name or ""))
        if too_large or domain_heavy or low_confidence or generic:
            for index in indices:
                if index not in ambiguous:
                    ambiguous.append(index)
    return ambiguous[:MAX_ENRICHED_TABS]


def build_site_hints(tab: Tab) -> list[str]:
    hints: list[str] = []
    title_words = re.sub(r"[^a-z0-9\s]", " ", (tab.title or "").lower()).split()
    for word in [w for w in title_words if len(w) >= 4][:MAX_SITE_HINTS]:
        if word not in hints:
            hints.append(word)
    if tab.url:
        try:
            segments = urlparse(tab.url).path.split("/")
        except ValueError:
            segments = []
        for segment in [s.strip().lower() for s in segments if len(s.strip()) >= 4][:MAX_SITE_HINTS]:
            if segment not in hints:
                hints.append(segment)
    return hints[:MAX_SITE_HINTS]


def fetch_page_context(url: str) -> dict | None:
    """Fetch URL and extract description/headings/snippet server-side."""
    try:
        resp = httpx.get(
            url,
            follow_redirects=True,
            timeout=FETCH_TIMEOUT,
            headers={"User-Agent": _USER_AGENT},
        )
        resp.raise_for_status()
    except httpx.HTTPError as e:
        log.warning("Failed to fetch %s: %s", url, e)
        return None

    html = resp.text
    if not html or len(html) < 100:
        return None

    text = trafilatura.extract(html, include_comments=False, include_tables=False)
    description = ""
    headings: list[str] = []
    metadata = trafilatura.extract_metadata(html)
    if metadata:
        description = _clean(metadata.description, 220)
        for heading in (metadata.title, metadata.sitename):
            heading = _clean(heading, 120)
            if heading and heading not in headings:
                headings.append(heading)

    snippet = _clean(text, 360)
    if not (description or headings or snippet):
        return None
    return {"description": description, "headings": headings[:4], "snippet": snippet}


def enrich_tabs_with_page_context(tabs: list[Tab], groups: list[GroupSuggestion]) -> EnrichmentResult:
    """Attach page context to ambiguous tabs. Never raises; degrades to a hint."""
    if not tabs:
        return EnrichmentResult(tabs, False, "No tabs to enrich.")

    targets = detect_ambiguous_tab_indices(tabs, groups)
    if not targets:
        return EnrichmentResult(tabs, False, "No ambiguous tabs detected.")

    next_tabs = list(tabs)
    enriched_count = 0
    for index in targets:
        tab = next_tabs[index]
        hints = build_site_hints(tab)
        context = None
        if tab.url:
            try:
                context = fetch_page_context(tab.url)
            except Exception as e:
                log.warning("Page extraction failed for %s: %s", tab.url, e)
        if context:
            page_context = PageContext(
                description=context["description"] or None,
                headings=context["headings"] or None,
                snippet=context["snippet"] or None,
                site_hints=hints,
            )
            enriched_count += 1
        else:
            page_context = PageContext(site_hints=hints)
        next_tabs[index] = tab.model_copy(update={"page_context": page_context})

    if enriched_count:
        hint = f"Enriched {enriched_count} tabs with page context."
    else:
        hint = "No readable page context extracted. Used title/URL metadata."
    log.info("Page enrichment: %d of %d ambiguous tabs", enriched_count, len(targets))
    return EnrichmentResult(next_tabs, enriched_count > 0, hint)
