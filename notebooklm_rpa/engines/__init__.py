"""
Chat engine automation modules.

Each engine module handles the specific selectors and behaviors for that platform.
"""

from .base_engine import BaseEngine, EngineResponse
from .notebooklm_engine import NotebookLMEngine

# Engine registry
ENGINES = {
    "notebooklm": NotebookLMEngine,
}


def get_engine(engine_name: str) -> BaseEngine:
    """
    Get an engine instance by name.

    Args:
        engine_name: Name of the engine (notebooklm)

    Returns:
        Engine instance

    Raises:
        ValueError: If engine name is not recognized
    """
    engine_name = engine_name.lower()

    if engine_name not in ENGINES:
        raise ValueError(
            f"Unknown engine: {engine_name}. "
            f"Available engines: {list(ENGINES.keys())}"
        )

    return ENGINES[engine_name]()


__all__ = [
    "BaseEngine",
    "EngineResponse",
    "NotebookLMEngine",
    "ENGINES",
    "get_engine",
]
