"""
Checks for the browser runtime the converter needs, and a helper to install it.
"""

import importlib.util
import subprocess
import sys
from pathlib import Path

from .logger import ConsoleLogger


def run_command(cmd: list, description: str, logger: ConsoleLogger) -> bool:
    """Run a command and return success status."""
    logger.info(f"Installing {description}...")
    try:
        subprocess.run(cmd, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as e:
        logger.error(f"Failed to install {description}: {e.stderr}")
        return False
    except FileNotFoundError as e:
        logger.error(f"Failed to install {description}: {e}")
        return False
    logger.success(f"{description} installed successfully")
    return True


def chromium_executable() -> Path:
    """Path of the Chromium build Playwright will launch."""
    from playwright.sync_api import sync_playwright

    with sync_playwright() as p:
        return Path(p.chromium.executable_path)


def check_dependencies(logger: ConsoleLogger) -> bool:
    """Report whether Playwright and its Chromium build are available."""
    if importlib.util.find_spec("playwright") is None:
        logger.error("The 'playwright' package is not installed")
        return False
    logger.success("playwright package is available")

    try:
        executable = chromium_executable()
    except Exception as e:
        logger.error(f"Could not locate Playwright Chromium: {e}")
        return False
    if not executable.exists():
        logger.error(f"Playwright Chromium is not installed (expected at {executable}). "
                     "Run with --install-browser to install it.")
        return False
    logger.success(f"Chromium is available: {executable}")
    return True


def install_browser(logger: ConsoleLogger) -> bool:
    """Install Playwright's Chromium build."""
    return run_command([sys.executable, "-m", "playwright", "install", "chromium"], "Playwright Chromium", logger)
