"""
Configuration: built-in defaults, overridden by environment variables,
overridden by an explicit dict (usually built from CLI arguments).
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

from .assembler import DEFAULT_MERMAID_CONFIG, MERMAID_SCRIPT_URL, AssemblyOptions
from .emitter import PageOptions
from .logger import ConsoleLogger, level_threshold

DEFAULTS: Dict[str, Any] = {
    "debug": False,
    "logging_enabled": True,
    "log_level": "info",
    "mermaid_script_url": MERMAID_SCRIPT_URL,
    "mermaid_script_path": None,
    "mermaid_theme": "default",
    "page_format": "A4",
    "page_margins": "1in",
    "renderer_timeout": 10.0,
    "diagram_pause_ms": 100,
    "chromium_sandbox": False,
    "save_html": False,
}

ENV_VARS = {
    "debug": "MARKDOWN_MERMAIDJS_TO_PDF_DEBUG",
    "logging_enabled": "LOGGING_ENABLED",
    "log_level": "LOG_LEVEL",
    "mermaid_script_url": "MERMAID_SCRIPT_URL",
    "mermaid_script_path": "MERMAID_SCRIPT_PATH",
    "mermaid_theme": "MERMAID_THEME",
    "page_format": "PAGE_FORMAT",
    "page_margins": "PAGE_MARGINS",
    "renderer_timeout": "RENDERER_TIMEOUT",
    "diagram_pause_ms": "DIAGRAM_PAUSE_MS",
    "chromium_sandbox": "CHROMIUM_SANDBOX",
    "save_html": "SAVE_HTML",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


class Config:
    """Resolved settings for the converter."""

    def __init__(self, cli_config: Optional[Dict[str, Any]] = None, environ: Optional[Dict[str, str]] = None):
        environ = os.environ if environ is None else environ
        self._values = dict(DEFAULTS)
        for key, var in ENV_VARS.items():
            if environ.get(var):
                self._values[key] = environ[var]
        for key, value in (cli_config or {}).items():
            if key not in DEFAULTS:
                raise ValueError(f"Unknown configuration key: {key}")
            if value is not None:
                self._values[key] = value

    def get(self, key: str) -> Any:
        return self._values[key]

    def get_debug(self) -> bool:
        return parse_bool(self._values["debug"]) or str(self._values["log_level"]).lower() == "debug"

    def get_log_level(self) -> str:
        if self.get_debug():
            return "debug"
        level = str(self._values["log_level"]).strip().lower()
        level_threshold(level)
        return level

    def get_logging_enabled(self) -> bool:
        # Only an explicit "false" disables logging
        value = self._values["logging_enabled"]
        return value if isinstance(value, bool) else str(value).strip().lower() != "false"

    def create_logger(self) -> ConsoleLogger:
        return ConsoleLogger(enabled=self.get_logging_enabled(), level=self.get_log_level())

    def get_renderer_timeout(self) -> float:
        return float(self._values["renderer_timeout"])

    def get_diagram_pause(self) -> float:
        """Pause between diagrams, in seconds."""
        return int(self._values["diagram_pause_ms"]) / 1000

    def get_chromium_sandbox(self) -> bool:
        return parse_bool(self._values["chromium_sandbox"])

    def get_save_html(self) -> bool:
        return parse_bool(self._values["save_html"])

    def get_assembly_options(self) -> AssemblyOptions:
        mermaid_config = dict(DEFAULT_MERMAID_CONFIG)
        mermaid_config["theme"] = self._values["mermaid_theme"]

        script = None
        script_path = self._values["mermaid_script_path"]
        if script_path:
            script = Path(script_path).read_text(encoding="utf-8")

        return AssemblyOptions(
            mermaid_script_url=self._values["mermaid_script_url"],
            mermaid_script=script,
            mermaid_config=mermaid_config,
        )

    def get_page_options(self) -> PageOptions:
        return PageOptions.from_margins(self._values["page_margins"], page_format=self._values["page_format"])
