"""
RPA Utility modules
"""

from .logging import logger, setup_logging
from .text_utils import KnownResponses, normalize_text, is_likely_same_answer

__all__ = ["logger", "setup_logging", "KnownResponses", "normalize_text", "is_likely_same_answer"]
