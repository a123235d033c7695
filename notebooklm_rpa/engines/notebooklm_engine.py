"""
NotebookLM Browser Engine for RPA.

Handles automation of notebooklm.google.com including:
- Prompt submission
- Response capture with streaming detection (text must settle across polls)
- Source/citation extraction (ONLY from the matched answer)
"""

from typing import Optional, List

from .base_engine import BaseEngine, EngineResponse
from ..config import NOTEBOOKLM_SELECTORS
from ..settings import SettingsManager
from ..utils.logging import log_engine
from ..utils.page_utils import snapshot_all_responses, wait_for_latest_answer
from ..utils.source_utils import extract_sources_for_answer


class NotebookLMEngine(BaseEngine):
    """
    NotebookLM browser automation engine.

    Answers already on the page when the prompt is sent are snapshotted and
    ignored, so only the answer to THIS prompt is returned.
    """

    selectors = NOTEBOOKLM_SELECTORS

    def __init__(self, settings: Optional[SettingsManager] = None):
        super().__init__("notebooklm")
        self.settings = settings or SettingsManager()

        self._prompt = ""
        self._existing_responses: List[str] = []
        self._answer: Optional[str] = None

    def send_prompt(self, prompt: str) -> None:
        """Snapshot existing answers, then type and submit the prompt."""
        self._prompt = prompt
        self._answer = None
        self._existing_responses = snapshot_all_responses(self.page)
        log_engine(
            self.engine_name,
            f"Existing responses in conversation: {len(self._existing_responses)}",
            "debug"
        )

        if not self._type_text("prompt_input", prompt):
            raise RuntimeError("Could not find NotebookLM query input")

        if not self._click_element("submit_button"):
            log_engine(self.engine_name, "Using Enter key to submit", "debug")
            self.page.keyboard.press("Enter")

    def wait_for_response(self) -> None:
        self._answer = wait_for_latest_answer(
            self.page,
            question=self._prompt,
            timeout_ms=self.detection.response_timeout_ms,
            poll_interval_ms=self.detection.poll_interval_ms,
            ignore_texts=self._existing_responses,
            debug=self.detection.debug,
        )

    def extract_response(self) -> EngineResponse:
        response = EngineResponse(engine=self.engine_name)

        if not self._answer:
            response.error_message = (
                f"No new answer within {self.detection.response_timeout_ms}ms"
            )
            return response

        response.response_text = self._answer
        response.success = True

        if self.settings.get_always_include_sources():
            sources = extract_sources_for_answer(self.page, self._answer, self.detection.debug)
            response.sources = [s.to_dict() for s in sources]
            response.citation_count = len(response.sources)

        log_engine(
            self.engine_name,
            f"✓ Extracted: {len(response.response_text)} chars text, {response.citation_count} sources",
        )
        return response
