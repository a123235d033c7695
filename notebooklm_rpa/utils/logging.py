"""
Logging utilities for NotebookLM RPA automation.

Provides rich console output and file logging with timestamps.
"""

import logging
from pathlib import Path
from typing import Optional
from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

# Custom theme for console output
custom_theme = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "dim": "dim white",
    "engine.notebooklm": "magenta",
})

console = Console(theme=custom_theme)

# Global logger instance
logger = logging.getLogger("notebooklm_rpa")


def setup_logging(log_file: str = "./notebooklm_rpa.log", level: int = logging.INFO) -> None:
    """
    Set up logging with both console (rich) and file handlers.

    Args:
        log_file: Path to log file
        level: Logging level
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    # Clear existing handlers
    logger.handlers = []
    logger.setLevel(level)

    console_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        markup=True,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(file_handler)

    logger.propagate = False

    logger.info(f"Logging initialized. File: {log_file}")


def log_engine(engine: str, message: str, level: str = "info") -> None:
    """Log a message with engine-specific styling."""
    full_message = f"[engine.{engine}][{engine.upper()}][/] {message}"

    if level == "warning":
        logger.warning(full_message)
    elif level == "error":
        logger.error(full_message)
    elif level == "debug":
        logger.debug(full_message)
    else:
        logger.info(full_message)


def log_success(message: str) -> None:
    """Log a success message."""
    logger.info(f"[success]✓[/] {message}")


def log_dim(message: str) -> None:
    """Low-importance trace line, debug level."""
    logger.debug(f"[dim]{message}[/]")


def log_error(message: str, exc: Optional[Exception] = None) -> None:
    """Log an error message, optionally with exception."""
    if exc:
        logger.error(f"[error]✗[/] {message}: {exc}", exc_info=True)
    else:
        logger.error(f"[error]✗[/] {message}")
