"""
RPA Browser Automation for NotebookLM

Submits questions to a NotebookLM notebook in a Playwright-driven browser and
reliably detects when a NEW answer has finished streaming, then harvests the
citations attached to that answer.
"""

__version__ = "1.0.0"

from .config import config, RPAConfig
from .engines import get_engine, ENGINES
from .settings import SettingsManager
from .utils.browser_errors import (
    BrowserPageError,
    PageUnresponsiveError,
    PollGuardExceededError,
    RecoverableBrowserError,
    is_recoverable_browser_error,
)
from .utils.page_utils import (
    AnswerWithSources,
    count_response_elements,
    snapshot_all_responses,
    snapshot_latest_response,
    wait_for_latest_answer,
    wait_for_latest_answer_with_sources,
)
from .utils.source_utils import SourceReference, extract_sources_for_answer

__all__ = [
    "config",
    "RPAConfig",
    "get_engine",
    "ENGINES",
    "SettingsManager",
    "BrowserPageError",
    "PageUnresponsiveError",
    "PollGuardExceededError",
    "RecoverableBrowserError",
    "is_recoverable_browser_error",
    "AnswerWithSources",
    "count_response_elements",
    "snapshot_all_responses",
    "snapshot_latest_response",
    "wait_for_latest_answer",
    "wait_for_latest_answer_with_sources",
    "SourceReference",
    "extract_sources_for_answer",
]
