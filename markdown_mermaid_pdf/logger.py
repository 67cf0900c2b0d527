"""
Colored console logging shared by every stage of the converter.
"""

import threading
from typing import Any

from colorama import init, Fore, Style

# Initialize colorama for cross-platform colored output
init(autoreset=True)


def format_duration(ms: float) -> str:
    """Render a millisecond duration for humans."""
    if ms < 1000:
        return f"{int(round(ms))}ms"
    if ms < 60000:
        return f"{ms / 1000:.2f}s"
    minutes = int(ms // 60000)
    seconds = (ms % 60000) / 1000
    return f"{minutes}m {seconds:.2f}s"


# Severity thresholds; "warn" is accepted as an alias for "warning"
LOG_LEVELS = {
    'debug': 10,
    'info': 20,
    'warning': 30,
    'warn': 30,
    'error': 40,
}


def level_threshold(level: str) -> int:
    try:
        return LOG_LEVELS[str(level).strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: '{level}'. Use one of: debug, info, warning, error") from None


class ConsoleLogger:
    """Prints colored, level-prefixed messages with optional key=value context.

    Messages below ``level`` are dropped; ``debug=True`` lowers the level to debug.
    """

    def __init__(self, debug: bool = False, enabled: bool = True, level: str = 'info'):
        self.threshold = LOG_LEVELS['debug'] if debug else level_threshold(level)
        self.debug_enabled = self.threshold <= LOG_LEVELS['debug']
        self.enabled = enabled
        self._lock = threading.Lock()

    @staticmethod
    def _format(message: str, context: dict) -> str:
        if not context:
            return message
        details = " ".join(f"{key}={value}" for key, value in context.items() if value is not None)
        return f"{message} ({details})" if details else message

    def _emit(self, level: str, prefix: str, message: str, context: dict) -> None:
        if not self.enabled or LOG_LEVELS[level] < self.threshold:
            return
        with self._lock:
            print(f"{prefix}{Style.RESET_ALL} {self._format(message, context)}")

    def debug(self, message: str, **context: Any) -> None:
        """Log debug message with color (only if debug mode is enabled)."""
        self._emit('debug', f"{Fore.CYAN}[DEBUG]", message, context)

    def info(self, message: str, **context: Any) -> None:
        """Log info message with color."""
        self._emit('info', f"{Fore.GREEN}[INFO]", message, context)

    def warning(self, message: str, **context: Any) -> None:
        """Log warning message with color."""
        self._emit('warning', f"{Fore.YELLOW}[WARNING]", message, context)

    def error(self, message: str, **context: Any) -> None:
        """Log error message with color."""
        self._emit('error', f"{Fore.RED}[ERROR]", message, context)

    def success(self, message: str, **context: Any) -> None:
        """Log success message with color."""
        self._emit('info', f"{Fore.GREEN}[OK]", message, context)
