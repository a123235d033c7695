"""
Settings Manager

Handles persistent configuration stored in ``settings.json``: the active tool
profile, explicitly disabled tools, and whether answers always include
sources. Environment variables override the stored file.
"""

import json
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .config import config
from .utils.logging import logger

DEFAULT_ALWAYS_INCLUDE_SOURCES = True
DEFAULT_PROFILE = "full"

PROFILES: Dict[str, List[str]] = {
    "minimal": [
        "ask_question",
        "get_health",
        "list_notebooks",
        "select_notebook",
        "get_notebook",
    ],
    "standard": [
        "ask_question",
        "get_health",
        "list_notebooks",
        "select_notebook",
        "get_notebook",
        "setup_auth",
        "list_sessions",
        "add_notebook",
        "update_notebook",
        "search_notebooks",
    ],
    "full": ["*"],
}


class SettingsError(RuntimeError):
    """Settings could not be written."""


@dataclass
class CustomSettings:
    always_include_sources: bool = DEFAULT_ALWAYS_INCLUDE_SOURCES


@dataclass
class Settings:
    profile: str = DEFAULT_PROFILE
    disabled_tools: List[str] = field(default_factory=list)
    custom_settings: CustomSettings = field(default_factory=CustomSettings)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_boolean_override(value: Optional[str]) -> Optional[bool]:
    """``true/1`` and ``false/0``; anything else means no override."""
    if value is None:
        return None
    lower = value.strip().lower()
    if lower in ("true", "1"):
        return True
    if lower in ("false", "0"):
        return False
    return None


def normalize_settings(data: Dict[str, Any]) -> Settings:
    """Build Settings from loosely-typed JSON, falling back per field."""
    custom = data.get("custom_settings")
    if not isinstance(custom, dict):
        custom = {}
    always = custom.get("always_include_sources")

    profile = data.get("profile")
    disabled = data.get("disabled_tools")

    return Settings(
        profile=profile if profile in PROFILES else DEFAULT_PROFILE,
        disabled_tools=list(disabled) if isinstance(disabled, list) else [],
        custom_settings=CustomSettings(
            always_include_sources=always if isinstance(always, bool) else DEFAULT_ALWAYS_INCLUDE_SOURCES,
        ),
    )


class SettingsManager:
    """
    Loads, merges and saves persistent settings.

    Loading never raises: a missing or malformed file yields defaults.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir or config.config_dir)
        self.settings_path = self.config_dir / "settings.json"
        self.settings = self._load_settings()

    def _load_settings(self) -> Settings:
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            if self.settings_path.exists():
                data = json.loads(self.settings_path.read_text(encoding="utf-8"))
                if isinstance(data, dict):
                    return normalize_settings(data)
                logger.warning(f"Ignoring settings file with unexpected shape: {self.settings_path}")
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load settings: {e}. Using defaults.")
        return Settings()

    def save_settings(self, new_settings: Dict[str, Any]) -> None:
        """
        Merge ``new_settings`` into the stored settings and write them.

        Raises:
            SettingsError: If the file cannot be written
        """
        merged = self.settings.to_dict()
        custom_update = new_settings.get("custom_settings")
        merged.update({k: v for k, v in new_settings.items() if k != "custom_settings"})
        if isinstance(custom_update, dict):
            merged["custom_settings"] = {**merged["custom_settings"], **custom_update}

        self.settings = normalize_settings(merged)
        try:
            self.settings_path.write_text(
                json.dumps(self.settings.to_dict(), indent=2), encoding="utf-8"
            )
        except OSError as e:
            raise SettingsError(f"Failed to save settings: {e}") from e

    def get_effective_settings(self) -> Settings:
        """Stored settings with environment overrides applied."""
        env_profile = os.getenv("NOTEBOOKLM_PROFILE")
        env_disabled = os.getenv("NOTEBOOKLM_DISABLED_TOOLS")
        env_always = parse_boolean_override(os.getenv("NOTEBOOKLM_ALWAYS_INCLUDE_SOURCES"))

        profile = env_profile if env_profile in PROFILES else self.settings.profile

        disabled = list(self.settings.disabled_tools)
        if env_disabled:
            for name in (t.strip() for t in env_disabled.split(",")):
                if name and name not in disabled:
                    disabled.append(name)

        always = self.settings.custom_settings.always_include_sources
        if env_always is not None:
            always = env_always

        return Settings(
            profile=profile,
            disabled_tools=disabled,
            custom_settings=CustomSettings(always_include_sources=always),
        )

    def get_always_include_sources(self) -> bool:
        return self.get_effective_settings().custom_settings.always_include_sources

    def filter_tools(self, tool_names: Iterable[str]) -> List[str]:
        """Tool names allowed by the effective profile and not disabled."""
        effective = self.get_effective_settings()
        allowed = PROFILES[effective.profile]

        result = []
        for name in tool_names:
            if "*" not in allowed and name not in allowed:
                continue
            if name in effective.disabled_tools:
                continue
            result.append(name)
        return result

    def get_profiles(self) -> Dict[str, List[str]]:
        return PROFILES

    def get_stored_settings(self) -> Settings:
        return normalize_settings(self.settings.to_dict())
