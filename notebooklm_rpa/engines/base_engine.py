"""
Base Engine class for chat platform automation.

Provides the prompt lifecycle and selector helpers shared by engines.
"""

import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any
from playwright.sync_api import Page

from ..config import DetectionConfig, ErrorConfig, config
from ..utils.browser_errors import BrowserPageError, is_recoverable_browser_error
from ..utils.logging import logger, log_engine, log_error


@dataclass
class EngineResponse:
    """Response from a chat engine."""

    # Content
    response_text: str = ""

    # Sources/Citations
    sources: List[Dict[str, str]] = field(default_factory=list)
    citation_count: int = 0

    # Timing
    response_time_ms: float = 0.0

    # Status
    success: bool = False
    error_message: str = ""

    # Page needs recovery (reload/new page) before reuse
    browser_error: bool = False

    # Engine info
    engine: str = ""


class BaseEngine(ABC):
    """
    Abstract base class for chat engine automation.

    Subclasses must implement:
    - send_prompt()
    - wait_for_response()
    - extract_response()
    """

    selectors: Dict[str, Any] = {}

    def __init__(self, engine_name: str):
        self.engine_name = engine_name
        self.detection: DetectionConfig = config.detection
        self.error: ErrorConfig = config.error
        self.page: Optional[Page] = None

    def setup(self, page: Page) -> None:
        """
        Set up the engine with a page.

        Args:
            page: Playwright Page object
        """
        self.page = page

    def run_prompt(self, prompt: str) -> EngineResponse:
        """
        Execute a prompt and get the response.

        This is the main entry point for running prompts. Errors never
        propagate; they are reported on the returned EngineResponse.

        Args:
            prompt: The prompt text to send

        Returns:
            EngineResponse with the result
        """
        if not self.page:
            raise RuntimeError("Engine not set up. Call setup(page) first.")

        response = EngineResponse(engine=self.engine_name)
        start_time = time.time()

        try:
            log_engine(self.engine_name, f"Sending prompt: {prompt[:50]}...")

            if not self._is_ready():
                log_engine(self.engine_name, "Waiting for page to be ready...", "warning")
                self._wait_for_ready(self.detection.ready_timeout)

            self.send_prompt(prompt)

            log_engine(self.engine_name, "Waiting for response...")
            self.wait_for_response()

            log_engine(self.engine_name, "Extracting response...")
            response = self.extract_response()
            response.engine = self.engine_name
            response.response_time_ms = (time.time() - start_time) * 1000

            if response.success:
                log_engine(
                    self.engine_name,
                    f"Response received ({response.response_time_ms:.0f}ms, "
                    f"{response.citation_count} citations)"
                )
            else:
                log_engine(self.engine_name, f"No response: {response.error_message}", "warning")

        except Exception as e:
            log_error(f"[{self.engine_name}] Error: {e}")
            response.success = False
            response.error_message = str(e)
            response.browser_error = isinstance(e, BrowserPageError) or is_recoverable_browser_error(e)
            response.response_time_ms = (time.time() - start_time) * 1000

            self._take_error_screenshot()

        return response

    @abstractmethod
    def send_prompt(self, prompt: str) -> None:
        """
        Send a prompt to the chat.

        Args:
            prompt: The prompt text to send
        """

    @abstractmethod
    def wait_for_response(self) -> None:
        """Wait for the assistant to finish generating its response."""

    @abstractmethod
    def extract_response(self) -> EngineResponse:
        """
        Extract the response from the page.

        Returns:
            EngineResponse with the extracted content
        """

    def _selector_list(self, selector_key: str) -> List[str]:
        selectors = self.selectors.get(selector_key, [])
        if isinstance(selectors, str):
            selectors = [selectors]
        return selectors

    def _is_ready(self) -> bool:
        """Check if the page is ready for input."""
        if not self.page:
            return False
        return self._find_element("prompt_input") is not None

    def _wait_for_ready(self, timeout: int = 30) -> None:
        """Wait for the page to be ready for input."""
        input_selectors = self._selector_list("prompt_input")

        start = time.time()
        while time.time() - start < timeout:
            for selector in input_selectors:
                try:
                    self.page.wait_for_selector(selector, state="visible", timeout=5000)
                    return
                except Exception as e:
                    logger.debug(f"Input not visible via {selector}: {e}")
            time.sleep(1)

        raise TimeoutError(f"{self.engine_name} input not found after {timeout}s")

    def _find_element(self, selector_key: str) -> Optional[Any]:
        """
        Find the first visible element for a selector key.

        Returns:
            Locator or None
        """
        for selector in self._selector_list(selector_key):
            try:
                element = self.page.locator(selector).first
                if element.is_visible():
                    return element
            except Exception as e:
                logger.debug(f"Selector {selector} failed: {e}")

        return None

    def _click_element(self, selector_key: str) -> bool:
        """
        Click the first visible element for a selector key.

        Returns:
            True if clicked successfully
        """
        element = self._find_element(selector_key)
        if element is None:
            return False
        element.click()
        return True

    def _type_text(self, selector_key: str, text: str) -> bool:
        """
        Type text into the first visible element for a selector key.

        Returns:
            True if typed successfully
        """
        element = self._find_element(selector_key)
        if element is None:
            return False
        element.click()
        element.fill(text)
        return True

    def _take_error_screenshot(self) -> None:
        """Take a screenshot for debugging errors."""
        if not (self.error.screenshot_on_error and self.page):
            return
        try:
            os.makedirs(self.error.screenshot_dir, exist_ok=True)

            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"{self.error.screenshot_dir}/{self.engine_name}_{timestamp}.png"

            self.page.screenshot(path=filename)
            logger.info(f"Error screenshot saved: {filename}")
        except Exception as e:
            logger.debug(f"Could not take screenshot: {e}")
