"""
Page utilities for detecting answers in the NotebookLM web UI.

This module provides functions to:
- Extract the latest NEW assistant response from the page
- Wait for a new response with streaming detection (text must stop changing)
- Guard the polling loop against unresponsive pages and broken waits
- Snapshot existing responses before a question is submitted

All mutable state lives in a PollState created per call, so independent
pages can be watched concurrently as long as each page has one caller.
"""

from __future__ import annotations

import json
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Sequence

from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from ..config import (
    DEBUG_LOG_EVERY_POLLS,
    FAST_POLL_DRIFT_THRESHOLD_MS,
    HEALTH_CHECK_INTERVAL_POLLS,
    HEALTH_CHECK_TIMEOUT_MS,
    JS_FALLBACK_SELECTORS,
    MAX_FAST_POLL_STREAK,
    MESSAGE_CONTAINER_SELECTOR,
    MIN_POLL_GUARD,
    MIN_POLL_INTERVAL_MS,
    NOTEBOOKLM_SELECTORS,
    POLL_GUARD_MULTIPLIER,
    REQUIRED_STABLE_POLLS,
    RESPONSE_SELECTORS,
)
from .browser_errors import (
    PageUnresponsiveError,
    PollGuardExceededError,
    browser_error_message,
    raise_if_recoverable,
)
from .logging import logger, log_dim, log_success
from .source_utils import SourceReference, extract_sources_for_answer
from .text_utils import KnownResponses, fingerprint, normalize_text


@dataclass
class Candidate:
    """Text produced by one extraction strategy during a poll."""

    text: str
    source: str
    # Read from an answer container by the primary strategy
    from_container: bool = False


@dataclass
class PollState:
    """Per-call state of the streaming detector."""

    known: KnownResponses = field(default_factory=KnownResponses)
    poll_count: int = 0
    last_candidate: Optional[str] = None
    stable_count: int = 0
    fast_poll_streak: int = 0


@dataclass
class AnswerWithSources:
    """A stabilized answer (None on timeout) and the sources cited by it."""

    answer: Optional[str]
    sources: List[SourceReference] = field(default_factory=list)


# In-page last resort: no arguments, returns a string or null.
_JS_FALLBACK_EXTRACT = """() => {
    const selectors = %s;
    const unique = new Set();
    const isVisible = (el) => {
        if (!el || !el.isConnected) return false;
        const rect = el.getBoundingClientRect();
        if (rect.width === 0 || rect.height === 0) return false;
        const style = window.getComputedStyle(el);
        if (
            style.visibility === "hidden" ||
            style.display === "none" ||
            parseFloat(style.opacity || "1") === 0
        ) {
            return false;
        }
        return true;
    };

    const candidates = [];
    for (const selector of selectors) {
        for (const el of document.querySelectorAll(selector)) {
            if (!isVisible(el) || unique.has(el)) continue;
            unique.add(el);
            const text = el.innerText || el.textContent || "";
            if (!text.trim()) continue;
            candidates.push(text.trim());
        }
    }

    return candidates.length > 0 ? candidates[candidates.length - 1] : null;
}""" % json.dumps(JS_FALLBACK_SELECTORS)

_CLOSEST_CONTAINER_JS = "(el, selector) => el.closest(selector)"


def _should_log(debug: bool, poll_count: int) -> bool:
    return debug and poll_count % DEBUG_LOG_EVERY_POLLS == 0


# ============================================================================
# Liveness guard
# ============================================================================

def assert_page_responsive(page: Any, timeout_ms: int = HEALTH_CHECK_TIMEOUT_MS) -> None:
    """
    Prove the page still answers a round-trip within ``timeout_ms``.

    Raises:
        PageUnresponsiveError: The probe timed out or failed
    """
    try:
        page.wait_for_function("() => true", timeout=timeout_ms)
    except PlaywrightTimeoutError as e:
        raise PageUnresponsiveError(
            f"Browser page unresponsive: health check timed out after {timeout_ms}ms"
        ) from e
    except Exception as e:
        raise PageUnresponsiveError(f"Browser page unresponsive: {browser_error_message(e)}") from e


def compute_max_polls(timeout_ms: int, poll_interval_ms: int) -> int:
    expected_polls = math.ceil(timeout_ms / poll_interval_ms)
    return max(MIN_POLL_GUARD, expected_polls * POLL_GUARD_MULTIPLIER)


def _wait_for_poll_interval(page: Any, state: PollState, poll_interval_ms: int, debug: bool) -> None:
    """Wait one interval, compensating for waits that return early."""
    started_at = time.monotonic()
    try:
        page.wait_for_timeout(poll_interval_ms)
    except Exception as e:
        raise_if_recoverable(e, "Browser page unavailable during poll wait")
        raise

    waited_ms = (time.monotonic() - started_at) * 1000
    remaining_ms = poll_interval_ms - waited_ms

    if remaining_ms > FAST_POLL_DRIFT_THRESHOLD_MS:
        state.fast_poll_streak += 1
        if debug:
            logger.warning(
                f"[POLL] Wait returned early ({waited_ms:.0f}ms < {poll_interval_ms}ms), "
                "using fallback sleep"
            )
        time.sleep(remaining_ms / 1000)
    else:
        state.fast_poll_streak = 0

    if state.fast_poll_streak >= MAX_FAST_POLL_STREAK:
        assert_page_responsive(page, HEALTH_CHECK_TIMEOUT_MS)
        state.fast_poll_streak = 0


def _is_thinking(page: Any) -> bool:
    try:
        indicator = page.query_selector(NOTEBOOKLM_SELECTORS["thinking_indicator"])
        return bool(indicator and indicator.is_visible())
    except Exception as e:
        raise_if_recoverable(e, "Browser page unavailable while checking thinking indicator")
        return False


# ============================================================================
# Candidate extraction strategies
# ============================================================================

def _extract_from_primary(page: Any, known: KnownResponses, debug: bool, poll_count: int) -> Optional[Candidate]:
    """
    Scan the NotebookLM turn containers in DOM order.

    Returns a Candidate with empty text when containers exist but none holds
    new text; that ends the cascade for this poll.
    """
    selector = NOTEBOOKLM_SELECTORS["response_container"]
    try:
        containers = page.query_selector_all(selector)
    except Exception as e:
        raise_if_recoverable(e, "Browser page unavailable in primary extraction")
        logger.error(f"[EXTRACT] Primary selector failed: {e}")
        return None

    total = len(containers)
    if total == 0:
        if debug:
            logger.warning("[EXTRACT] No containers found")
        return None

    # No new container is structurally possible
    if total <= known.container_count:
        if _should_log(debug, poll_count):
            log_dim(f"[EXTRACT] No new containers ({total} total, {known.container_count} known)")
        return Candidate(text="", source=selector)

    if _should_log(debug, poll_count):
        log_dim(f"[EXTRACT] Scanning {total} containers ({known.container_count} known)")

    skipped = 0
    empty = 0
    for idx, container in enumerate(containers):
        try:
            text_element = container.query_selector(NOTEBOOKLM_SELECTORS["response_text"])
            if not text_element:
                continue
            text = (text_element.inner_text() or "").strip()
        except Exception as e:
            raise_if_recoverable(e, "Browser page unavailable while reading response container")
            logger.debug(f"[EXTRACT] Skipping container[{idx}]: {e}")
            continue

        if not text:
            empty += 1
        elif fingerprint(text) in known:
            skipped += 1
        else:
            log_success(f"[EXTRACT] Found NEW text in container[{idx}]: {len(text)} chars")
            return Candidate(text=text, source=f"{selector}[{idx}]", from_container=True)

    if _should_log(debug, poll_count):
        log_dim(f"[EXTRACT] No NEW text (skipped {skipped} known, {empty} empty)")
    return Candidate(text="", source=selector)


def _resolve_message_container(element: Any) -> Any:
    """Prefer the enclosing message over a leaf fragment."""
    try:
        handle = element.evaluate_handle(_CLOSEST_CONTAINER_JS, MESSAGE_CONTAINER_SELECTOR)
        if handle:
            return handle.as_element() or element
    except Exception as e:
        raise_if_recoverable(e, "Browser page unavailable while resolving response container")
    return element


def _extract_from_fallback_selectors(page: Any, known: KnownResponses, debug: bool, poll_count: int) -> Optional[Candidate]:
    if debug:
        log_dim("[EXTRACT] Trying fallback selectors...")

    for selector in RESPONSE_SELECTORS:
        try:
            elements = page.query_selector_all(selector)
        except Exception as e:
            raise_if_recoverable(
                e, f"Browser page unavailable while querying fallback selector ({selector})"
            )
            continue

        for element in elements:
            try:
                container = _resolve_message_container(element)
                text = (container.inner_text() or "").strip()
            except Exception as e:
                raise_if_recoverable(e, "Browser page unavailable while reading fallback response element")
                continue

            if text and fingerprint(text) not in known:
                if debug:
                    log_dim(f"[EXTRACT] Found NEW text via {selector}: {len(text)} chars")
                return Candidate(text=text, source=selector)

    return None


def _extract_via_page_evaluation(page: Any, known: KnownResponses, debug: bool, poll_count: int) -> Optional[Candidate]:
    """Last visible message in document order; does not consult ``known``."""
    try:
        text = page.evaluate(_JS_FALLBACK_EXTRACT)
    except Exception as e:
        raise_if_recoverable(e, "Browser page unavailable during JS fallback extraction")
        logger.debug(f"[EXTRACT] JS fallback failed: {e}")
        return None

    if isinstance(text, str) and text.strip():
        if debug:
            log_dim(f"[EXTRACT] Found text via JS fallback: {len(text.strip())} chars")
        return Candidate(text=text.strip(), source="js-fallback")
    return None


ExtractionStrategy = Callable[[Any, KnownResponses, bool, int], Optional[Candidate]]

EXTRACTION_STRATEGIES: Sequence[ExtractionStrategy] = (
    _extract_from_primary,
    _extract_from_fallback_selectors,
    _extract_via_page_evaluation,
)


def extract_latest_candidate(
    page: Any,
    known: KnownResponses,
    debug: bool = False,
    poll_count: int = 0,
) -> Optional[Candidate]:
    """Run the strategies in order; the first non-None result wins."""
    for strategy in EXTRACTION_STRATEGIES:
        candidate = strategy(page, known, debug, poll_count)
        if candidate is not None:
            return candidate if candidate.text else None
    return None


def extract_latest_text(
    page: Any,
    known: KnownResponses,
    debug: bool = False,
    poll_count: int = 0,
) -> Optional[str]:
    """
    Extract the first NEW response text from the page.

    Args:
        page: Playwright page
        known: Fingerprints of already-seen texts
        debug: Enable verbose logging
        poll_count: Current poll number (throttles logging)

    Returns:
        First text not in ``known``, or None
    """
    candidate = extract_latest_candidate(page, known, debug, poll_count)
    return candidate.text if candidate else None


# ============================================================================
# Snapshots
# ============================================================================

def snapshot_latest_response(page: Any) -> Optional[str]:
    """Latest response text currently visible, or None."""
    return extract_latest_text(page, KnownResponses(), False, 0)


def snapshot_all_responses(page: Any) -> List[str]:
    """
    Capture ALL existing assistant response texts.

    Used before submitting a new question so old answers are ignored.
    """
    all_texts: List[str] = []
    try:
        containers = page.query_selector_all(NOTEBOOKLM_SELECTORS["response_container"])
    except Exception as e:
        logger.warning(f"[SNAPSHOT] Failed to snapshot responses: {e}")
        return all_texts

    if not containers:
        return all_texts

    for container in containers:
        try:
            text_element = container.query_selector(NOTEBOOKLM_SELECTORS["response_text"])
            if text_element:
                text = text_element.inner_text()
                if text and text.strip():
                    all_texts.append(text.strip())
        except Exception:
            continue

    logger.info(f"[SNAPSHOT] Captured {len(all_texts)} existing responses")
    return all_texts


def count_response_elements(page: Any) -> int:
    """Count visible answer elements using the first selector that matches any."""
    count = 0
    for selector in RESPONSE_SELECTORS:
        try:
            elements = page.query_selector_all(selector)
        except Exception:
            continue

        for element in elements:
            try:
                if element.is_visible():
                    count += 1
            except Exception:
                continue

        if count > 0:
            break
    return count


# ============================================================================
# Streaming detection
# ============================================================================

def wait_for_latest_answer(
    page: Any,
    question: str = "",
    timeout_ms: int = 120000,
    poll_interval_ms: int = 1000,
    ignore_texts: Iterable[str] = (),
    debug: bool = False,
) -> Optional[str]:
    """
    Wait for a new assistant response with streaming detection.

    This function:
    1. Polls the page for new response text
    2. Detects streaming (text changes) vs. complete (text stable)
    3. Requires text to be stable for 3 consecutive polls before returning
    4. Ignores question echoes and known responses

    Args:
        page: Playwright page
        question: The submitted question, used to skip its echo
        timeout_ms: Wall-clock deadline
        poll_interval_ms: Delay between polls (floored at 100ms)
        ignore_texts: Responses visible before the question was sent
        debug: Enable verbose logging

    Returns:
        The stabilized answer text, or None on timeout

    Raises:
        PollGuardExceededError: Poll cap reached before the deadline
        PageUnresponsiveError: Liveness probe failed
        RecoverableBrowserError: The page closed/crashed mid-call
    """
    safe_interval_ms = max(MIN_POLL_INTERVAL_MS, poll_interval_ms)
    max_polls = compute_max_polls(timeout_ms, safe_interval_ms)
    deadline = time.monotonic() + timeout_ms / 1000
    sanitized_question = normalize_text(question).lower()

    state = PollState(known=KnownResponses(ignore_texts))

    if debug:
        logger.debug(f"[DETECT] Waiting for NEW answer. Ignoring {len(state.known)} known responses")

    while time.monotonic() < deadline and state.poll_count < max_polls:
        state.poll_count += 1

        if state.poll_count % HEALTH_CHECK_INTERVAL_POLLS == 0:
            assert_page_responsive(page, HEALTH_CHECK_TIMEOUT_MS)

        if _is_thinking(page):
            if _should_log(debug, state.poll_count):
                logger.debug("[DETECT] NotebookLM still thinking...")
            _wait_for_poll_interval(page, state, safe_interval_ms, debug)
            continue

        candidate = extract_latest_candidate(page, state.known, debug, state.poll_count)
        normalized = candidate.text.strip() if candidate else ""

        if normalized:
            if normalize_text(normalized).lower() == sanitized_question:
                if debug:
                    logger.debug(f"[DETECT] Found question echo via {candidate.source}, ignoring")
                state.known.add_text(normalized, from_container=candidate.from_container)
                _wait_for_poll_interval(page, state, safe_interval_ms, debug)
                continue

            # The JS fallback does not consult the known set
            if state.known.has_text(normalized):
                if _should_log(debug, state.poll_count):
                    log_dim("[DETECT] Candidate already known, ignoring")
            elif _observe_candidate(state, normalized, debug):
                if debug:
                    logger.debug(
                        f"[DETECT] Returning stable answer ({len(normalized)} chars, via {candidate.source})"
                    )
                return normalized

        _wait_for_poll_interval(page, state, safe_interval_ms, debug)

    if state.poll_count >= max_polls and time.monotonic() < deadline:
        raise PollGuardExceededError(
            f"Polling guard triggered after {state.poll_count} polls before timeout; "
            "browser page may be unresponsive"
        )

    if debug:
        logger.debug(f"[DETECT] Timeout after {state.poll_count} polls")
    return None


def _observe_candidate(state: PollState, text: str, debug: bool) -> bool:
    """Record one observation; True once the text is stable."""
    if text == state.last_candidate:
        state.stable_count += 1
        if debug and state.stable_count == REQUIRED_STABLE_POLLS:
            logger.debug(f"[DETECT] Text stable for {state.stable_count} polls ({len(text)} chars)")
    else:
        if debug and state.last_candidate:
            logger.debug(
                f"[DETECT] Text changed ({len(text)} chars, was {len(state.last_candidate)})"
            )
        state.stable_count = 1
        state.last_candidate = text

    return state.stable_count >= REQUIRED_STABLE_POLLS


def wait_for_latest_answer_with_sources(
    page: Any,
    question: str = "",
    timeout_ms: int = 120000,
    poll_interval_ms: int = 1000,
    ignore_texts: Iterable[str] = (),
    debug: bool = False,
) -> AnswerWithSources:
    """Wait for the latest answer, then parse its citations from the DOM."""
    answer = wait_for_latest_answer(
        page,
        question=question,
        timeout_ms=timeout_ms,
        poll_interval_ms=poll_interval_ms,
        ignore_texts=ignore_texts,
        debug=debug,
    )
    if not answer:
        return AnswerWithSources(answer=None)

    return AnswerWithSources(answer=answer, sources=extract_sources_for_answer(page, answer, debug))
