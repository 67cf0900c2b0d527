"""Conversions through a real headless Chromium.

Skipped unless RUN_BROWSER_TESTS=1 and Playwright's Chromium is installed.
The Mermaid script is fetched from the CDN, so these also need network access.
"""

import os

import pytest

from markdown_mermaid_pdf.config import Config
from markdown_mermaid_pdf.converter import MarkdownConverter
from markdown_mermaid_pdf.lifecycle import live_environment_count
from markdown_mermaid_pdf.logger import ConsoleLogger


def _chromium_available() -> bool:
    if os.environ.get("RUN_BROWSER_TESTS") != "1":
        return False
    try:
        from markdown_mermaid_pdf.dependencies import chromium_executable
        return chromium_executable().exists()
    except Exception:
        return False


pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not _chromium_available(), reason="set RUN_BROWSER_TESTS=1 with Playwright Chromium installed"),
]


@pytest.fixture
def converter():
    config = Config({"diagram_pause_ms": 0, "logging_enabled": False})
    return MarkdownConverter(config, ConsoleLogger(enabled=False))


def test_renders_flowchart_and_isolates_bad_diagram(converter, tmp_path):
    source = tmp_path / "doc.md"
    source.write_text(
        "# Diagrams\n\n"
        "```mermaid\ngraph TD\nA-->B\n```\n\n"
        "```mermaid\ngraph TD\n  A -->> -->> ]]\n```\n\n"
        "Closing paragraph.\n",
        encoding="utf-8",
    )

    result = converter.convert_file(source)

    assert (result.outcome.total, result.outcome.rendered, result.outcome.failed) == (2, 1, 1)
    assert result.pages >= 1
    assert result.output_path.read_bytes().startswith(b"%PDF")
    assert live_environment_count() == 0


def test_unreachable_renderer_fails_cleanly(tmp_path):
    config = Config({
        "diagram_pause_ms": 0,
        "logging_enabled": False,
        "mermaid_script_url": "http://127.0.0.1:9/mermaid.min.js",
        "renderer_timeout": 2,
    })
    converter = MarkdownConverter(config, ConsoleLogger(enabled=False))
    source = tmp_path / "doc.md"
    source.write_text("```mermaid\ngraph TD\nA-->B\n```\n", encoding="utf-8")

    from markdown_mermaid_pdf.errors import RendererUnavailableError
    with pytest.raises(RendererUnavailableError):
        converter.convert_file(source)
    assert not (tmp_path / "doc.pdf").exists()
    assert live_environment_count() == 0
