"""
Utilities for extracting source/citation references from an answer's DOM.

The answer container is located by text, then a single in-page evaluation
collects the raw material (links, citation-marker labels, source-like chips).
Filtering, prefix stripping and de-duplication happen here in Python:
- Explicit http(s) links inside the answer
- Citation markers labelled through aria-label/title/dialog attributes
- Any other source/citation-looking element that is not itself a link
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

from ..config import (
    CITATION_MARKER_SELECTOR,
    MAX_EXTRACTED_SOURCES,
    NOTEBOOKLM_SELECTORS,
    SOURCE_LIKE_SELECTORS,
)
from .browser_errors import browser_error_message, raise_if_recoverable
from .logging import logger, log_dim
from .text_utils import is_likely_same_answer, normalize_text


_CITATION_PREFIX_RE = re.compile(r"^\s*\d+\s*[:.)-]\s*")
_NUMERIC_ONLY_RE = re.compile(r"^\d+$")
_HTTP_URL_RE = re.compile(r"^https?:", re.IGNORECASE)

# UI chrome that shows up as labels on citation widgets
_NOISE_LABEL_PATTERNS = [
    re.compile(r"^[.…·•]+$"),
    re.compile(r"^(citation details|click to open citation details)$"),
    re.compile(r"^(show|hide)\s+(additional\s+)?citations?$"),
    re.compile(r"^(show|hide)\s+more\s+citations?$"),
    re.compile(r"^more\s+citations?$"),
]

# Runs against the container element; returns JSON-safe raw material only.
_COLLECT_SOURCES_JS = """(node, opts) => {
    const textOf = (el) => (el && (el.innerText || el.textContent)) || "";
    const links = [];
    node.querySelectorAll("a[href]").forEach((anchor) => {
        links.push({
            href: anchor.href || anchor.getAttribute("href") || "",
            text: textOf(anchor),
        });
    });

    const markers = [];
    node.querySelectorAll(opts.markerSelector).forEach((marker) => {
        const labels = [
            marker.getAttribute("aria-label"),
            marker.getAttribute("title"),
            marker.getAttribute("dialoglabel"),
            marker.getAttribute("triggerdescription"),
            textOf(marker),
        ];
        marker.querySelectorAll("[aria-label], [title]").forEach((child) => {
            labels.push(child.getAttribute("aria-label"));
            labels.push(child.getAttribute("title"));
        });
        markers.push(labels.filter((value) => typeof value === "string" && value));
    });

    const sourceLike = [];
    for (const selector of opts.sourceLikeSelectors) {
        node.querySelectorAll(selector).forEach((el) => {
            if (el.tagName.toLowerCase() === "a") {
                return;
            }
            sourceLike.push(textOf(el));
        });
    }

    return { links, markers, sourceLike };
}"""


@dataclass
class SourceReference:
    """A citation attached to an answer."""

    title: str
    url: Optional[str] = None
    raw_text: str = ""

    def to_dict(self) -> Dict[str, str]:
        data = {"title": self.title, "raw_text": self.raw_text}
        if self.url:
            data["url"] = self.url
        return data


def strip_citation_prefix(value: str) -> str:
    """Drop a leading citation number such as ``3: ``, ``3) `` or ``3. ``."""
    return _CITATION_PREFIX_RE.sub("", value, count=1).strip()


def is_numeric_only(value: str) -> bool:
    return bool(_NUMERIC_ONLY_RE.match(value))


def is_noise_label(value: str) -> bool:
    normalized = value.lower().strip()
    if not normalized:
        return True
    return any(p.match(normalized) for p in _NOISE_LABEL_PATTERNS)


class _ReferenceCollector:
    """Accumulates references, de-duplicated by lower-cased (title, url)."""

    def __init__(self):
        self.refs: List[SourceReference] = []
        self._seen: Set[str] = set()

    def add(self, title: str, url: Optional[str] = None, raw_text: Optional[str] = None) -> None:
        normalized_title = strip_citation_prefix(normalize_text(title or ""))
        normalized_raw = normalize_text(raw_text or normalized_title or "")
        normalized_url = normalize_text(url or "")

        if not normalized_title and not normalized_url:
            return
        # A URL legitimizes an otherwise noisy label
        if not normalized_url and (is_noise_label(normalized_title) or is_numeric_only(normalized_title)):
            return

        key = f"{normalized_title.lower()}|{normalized_url.lower()}"
        if key in self._seen:
            return
        self._seen.add(key)

        self.refs.append(SourceReference(
            title=normalized_title or normalized_url or "Untitled source",
            url=normalized_url or None,
            raw_text=normalized_raw or normalized_title or normalized_url,
        ))


def build_source_references(raw: Dict[str, Any]) -> List[SourceReference]:
    """
    Turn the raw payload collected in-page into SourceReferences.

    Args:
        raw: ``{"links": [{"href", "text"}], "markers": [[label, ...]],
            "sourceLike": [text, ...]}``

    Returns:
        At most MAX_EXTRACTED_SOURCES references with non-empty titles
    """
    collector = _ReferenceCollector()

    for link in raw.get("links") or []:
        href = str(link.get("href") or "")
        text = str(link.get("text") or "")
        if not href or not _HTTP_URL_RE.match(href):
            continue
        collector.add(text or href, href, text or href)

    for labels in raw.get("markers") or []:
        candidates = []
        for value in labels or []:
            normalized = normalize_text(str(value or ""))
            if normalized and not is_noise_label(normalized):
                candidates.append(normalized)

        for candidate in candidates:
            cleaned = strip_citation_prefix(candidate)
            if cleaned and not is_noise_label(cleaned) and not is_numeric_only(cleaned):
                collector.add(cleaned, None, candidate)

    for text in raw.get("sourceLike") or []:
        cleaned = normalize_text(str(text or ""))
        if cleaned:
            collector.add(cleaned, None, cleaned)

    return _finalize(collector.refs[:MAX_EXTRACTED_SOURCES])


def _finalize(refs: Iterable[SourceReference]) -> List[SourceReference]:
    final: List[SourceReference] = []
    for ref in refs:
        title = normalize_text(ref.title)
        if not title:
            continue
        url = normalize_text(ref.url) if ref.url else ""
        final.append(SourceReference(
            title=title,
            url=url or None,
            raw_text=normalize_text(ref.raw_text or ref.title),
        ))
    return final[:MAX_EXTRACTED_SOURCES]


def extract_sources_from_container(container: Any) -> List[SourceReference]:
    """Collect references from one answer container element."""
    raw = container.evaluate(
        _COLLECT_SOURCES_JS,
        {
            "markerSelector": CITATION_MARKER_SELECTOR,
            "sourceLikeSelectors": SOURCE_LIKE_SELECTORS,
        },
    )
    if not isinstance(raw, dict):
        return []
    return build_source_references(raw)


def find_response_container_for_answer(page: Any, answer: str) -> Optional[Any]:
    """
    Find the response container holding ``answer``.

    Scans newest first so a repeated answer resolves to the latest turn.
    """
    containers = page.query_selector_all(NOTEBOOKLM_SELECTORS["response_container"])
    for container in reversed(containers):
        try:
            text_element = container.query_selector(NOTEBOOKLM_SELECTORS["response_text"])
            if not text_element:
                continue

            text = text_element.inner_text()
            if not text or not text.strip():
                continue

            if is_likely_same_answer(text, answer):
                return container
        except Exception as e:
            raise_if_recoverable(
                e,
                "Browser page unavailable while matching answer container for source extraction",
            )
            logger.debug(f"Skipping unreadable response container: {e}")
            continue

    return None


def extract_sources_for_answer(page: Any, answer: str, debug: bool = False) -> List[SourceReference]:
    """
    Extract citation references for a finished answer.

    Returns an empty list when no container matches or extraction fails;
    page-fatal errors still propagate.
    """
    try:
        container = find_response_container_for_answer(page, answer)
        if not container:
            if debug:
                log_dim("[SOURCES] No matching response container found")
            return []

        sources = extract_sources_from_container(container)
        if debug:
            logger.debug(f"[SOURCES] Extracted {len(sources)} source reference(s)")
        return sources
    except Exception as e:
        raise_if_recoverable(
            e,
            "Browser page unavailable while extracting sources from answer container",
        )
        logger.warning(f"[SOURCES] Failed to extract sources: {browser_error_message(e)}")
        return []
