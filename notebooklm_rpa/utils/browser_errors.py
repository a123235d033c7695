"""
Shared browser error helpers.

The pattern below covers common Playwright failures for closed, disconnected,
crashed, or unresponsive browser/page/context states. Everything the detection
engine treats as fatal to a call derives from BrowserPageError.
"""

import re
from typing import Any

RECOVERABLE_BROWSER_ERROR_PATTERN = re.compile(
    r"has been closed|Target .* closed|Browser has been closed|Context .* closed"
    r"|Target page, context or browser has been closed"
    r"|Target page, context or browser has been disconnected"
    r"|Browser closed|Browser disconnected|Page crashed|Protocol error"
    r"|Execution context was destroyed|Session closed|unresponsive"
    r"|health check timed out",
    re.IGNORECASE,
)


class BrowserPageError(RuntimeError):
    """The page can no longer be trusted for the current call."""


class RecoverableBrowserError(BrowserPageError):
    """A page operation failed because the page/browser went away."""


class PageUnresponsiveError(BrowserPageError):
    """The liveness probe timed out or raised."""


class PollGuardExceededError(BrowserPageError):
    """Polling hit its iteration cap before the wall-clock deadline."""


def browser_error_message(error: Any) -> str:
    if isinstance(error, str):
        return error
    return str(error)


def is_recoverable_browser_error(error: Any) -> bool:
    """True when the error means the page/session needs recovery."""
    return bool(RECOVERABLE_BROWSER_ERROR_PATTERN.search(browser_error_message(error)))


def raise_if_recoverable(error: BaseException, context: str) -> None:
    """
    Re-raise page-fatal errors with a context prefix; return otherwise.

    Errors already wrapped as BrowserPageError propagate unchanged so nested
    handlers do not stack prefixes.
    """
    if isinstance(error, BrowserPageError):
        raise error
    if is_recoverable_browser_error(error):
        raise RecoverableBrowserError(f"{context}: {browser_error_message(error)}") from error
