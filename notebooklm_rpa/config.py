"""
Configuration for NotebookLM RPA Automation

This module contains the selectors, tuning constants and env-driven settings
used by the response detection engine.
Modify these values or use environment variables to customize behavior.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# ===========================================
# Detection Tuning
# ===========================================

# Floor applied to any configured poll interval
MIN_POLL_INTERVAL_MS = 100

# max_polls = max(MIN_POLL_GUARD, expected_polls * POLL_GUARD_MULTIPLIER)
POLL_GUARD_MULTIPLIER = 5
MIN_POLL_GUARD = 120

# A wait returning earlier than this (ms) counts as a fast poll
FAST_POLL_DRIFT_THRESHOLD_MS = 50
MAX_FAST_POLL_STREAK = 5

# Liveness probe schedule
HEALTH_CHECK_INTERVAL_POLLS = 10
HEALTH_CHECK_TIMEOUT_MS = 2000

# Text must be identical for this many consecutive polls
REQUIRED_STABLE_POLLS = 3

# Answers at least this long may match by substring containment
LIKELY_SAME_MIN_LENGTH = 80

MAX_EXTRACTED_SOURCES = 30

# Debug logs are only emitted every N polls
DEBUG_LOG_EVERY_POLLS = 5

# ===========================================
# Engine-Specific Selectors
# ===========================================

NOTEBOOKLM_SELECTORS = {
    # Input selectors (try in order)
    "prompt_input": [
        "textarea.query-box-input",
        "textarea[aria-label='Query box']",
        "textarea[placeholder*='Start typing']",
        "textarea",
    ],
    "submit_button": [
        "button.submit-button",
        "button[aria-label='Submit']",
        "button[type='submit']",
    ],
    # One container per chat turn addressed to the user
    "response_container": ".to-user-container",
    "response_text": ".message-text-content",
    "thinking_indicator": "div.thinking-message",
    "error_screenshot_prefix": "notebooklm",
}

# Fallback answer selectors, ordered by priority (most specific first)
RESPONSE_SELECTORS = [
    ".to-user-container .message-text-content",
    "[data-message-author='bot']",
    "[data-message-author='assistant']",
    "[data-message-role='assistant']",
    "[data-author='assistant']",
    "[data-renderer*='assistant']",
    "[data-automation-id='response-text']",
    "[data-automation-id='assistant-response']",
    "[data-automation-id='chat-response']",
    "[data-testid*='assistant']",
    "[data-testid*='response']",
    "[aria-live='polite']",
    "[role='listitem'][data-message-author]",
]

# Ancestors recognised as a full chat message
MESSAGE_CONTAINER_SELECTOR = (
    "[data-message-author], [data-message-role], [data-author], "
    "[data-testid*='assistant'], [data-automation-id*='response'], article, section"
)

# Scanned in-page by the last-resort fallback
JS_FALLBACK_SELECTORS = [
    "[data-message-author]",
    "[data-message-role]",
    "[data-author]",
    "[data-renderer*='assistant']",
    "[data-testid*='assistant']",
    "[data-automation-id*='response']",
]

CITATION_MARKER_SELECTOR = (
    ".citation-marker, button[dialoglabel*='Citation'], button[triggerdescription*='citation']"
)

SOURCE_LIKE_SELECTORS = [
    "[data-testid*='source']",
    "[data-testid*='citation']",
    "[data-automation-id*='source']",
    "[data-automation-id*='citation']",
    "[aria-label*='Source']",
    "[aria-label*='source']",
    "[title*='Source']",
    "[title*='source']",
    ".source-chip",
    ".citation-chip",
    ".source-item",
    ".citation-item",
    ".citation-marker",
    "button[dialoglabel*='Citation']",
    "button[triggerdescription*='citation']",
]

# ===========================================
# Detection Configuration
# ===========================================

@dataclass
class DetectionConfig:
    """Timeouts and polling for answer detection."""

    # Wait for a stable answer (milliseconds)
    response_timeout_ms: int = field(
        default_factory=lambda: int(os.getenv("RESPONSE_TIMEOUT_MS", "120000"))
    )

    # Delay between polls (milliseconds, floored at MIN_POLL_INTERVAL_MS)
    poll_interval_ms: int = field(
        default_factory=lambda: int(os.getenv("POLL_INTERVAL_MS", "1000"))
    )

    # Verbose per-poll logging
    debug: bool = field(
        default_factory=lambda: os.getenv("DETECTION_DEBUG", "").strip().lower() in ("1", "true", "yes")
    )

    # Wait for the query box before sending (seconds)
    ready_timeout: int = 30

# ===========================================
# Error Handling Configuration
# ===========================================

@dataclass
class ErrorConfig:
    """Error reporting configuration."""

    # Log file path
    log_file: str = field(
        default_factory=lambda: os.getenv("LOG_FILE", "./notebooklm_rpa.log")
    )

    # Screenshot on error
    screenshot_on_error: bool = field(
        default_factory=lambda: os.getenv("SCREENSHOT_ON_ERROR", "true").strip().lower() in ("1", "true", "yes")
    )

    # Screenshot directory
    screenshot_dir: str = field(
        default_factory=lambda: os.getenv("SCREENSHOT_DIR", "./screenshots")
    )

# ===========================================
# Main Config Class
# ===========================================

def default_config_dir() -> Path:
    """Directory holding settings.json."""
    override = os.getenv("NOTEBOOKLM_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "notebooklm-rpa"


@dataclass
class RPAConfig:
    """Main configuration container."""

    detection: DetectionConfig = field(default_factory=DetectionConfig)
    error: ErrorConfig = field(default_factory=ErrorConfig)

    # Where persistent settings live
    config_dir: Path = field(default_factory=default_config_dir)

# Create default config instance
config = RPAConfig()
