"""Shared fixtures: an in-memory rendering environment and quiet loggers."""

from __future__ import annotations

import html
import re
from typing import Dict, List, Optional, Tuple

import pytest

from markdown_mermaid_pdf.config import Config
from markdown_mermaid_pdf.emitter import PageOptions
from markdown_mermaid_pdf.environment import RenderEnvironment
from markdown_mermaid_pdf.errors import DiagramRenderError
from markdown_mermaid_pdf.logger import ConsoleLogger

_PLACEHOLDER = re.compile(
    r'<div class="mermaid-diagram" data-index="(\d+)" data-type="[^"]*" data-mermaid="([^"]*)">'
)

# Diagrams whose source contains this token are rejected like a Mermaid parse error
FAILURE_TOKEN = "%%invalid%%"


class FakeEnvironment(RenderEnvironment):
    """Rendering environment that keeps the page in memory.

    ``fail_on`` names a stage that raises: start, load, capability, render,
    fill, overlay, serialize or close.
    """

    def __init__(self, fail_on: Optional[str] = None):
        self.fail_on = fail_on
        self.started = False
        self.loaded_html: Optional[str] = None
        self.placeholders: List[Tuple[int, str]] = []
        self.filled: Dict[int, Tuple[str, str]] = {}
        self.render_calls: List[str] = []
        self.progress: List[str] = []
        self.close_calls = 0
        self.capability_timeout: Optional[float] = None

    async def start(self) -> None:
        if self.fail_on == "start":
            raise RuntimeError("Executable doesn't exist")
        self.started = True

    async def load(self, document_html: str) -> None:
        if self.fail_on == "load":
            raise RuntimeError("net::ERR_ABORTED")
        self.loaded_html = document_html
        self.placeholders = [(int(i), enc) for i, enc in _PLACEHOLDER.findall(document_html)]

    async def await_capability(self, timeout: float) -> None:
        self.capability_timeout = timeout
        if self.fail_on == "capability":
            raise TimeoutError(f"Timeout {timeout * 1000:.0f}ms exceeded.")

    async def placeholder_sources(self) -> List[Tuple[int, str]]:
        return list(self.placeholders)

    async def render_diagram(self, element_id: str, source: str) -> str:
        self.render_calls.append(element_id)
        if self.fail_on == "render":
            raise RuntimeError("Target page, context or browser has been closed")
        if FAILURE_TOKEN in source:
            raise DiagramRenderError("Parse error on line 2")
        return f'<svg id="{element_id}"><text>{html.escape(source)}</text></svg>'

    async def fill_placeholder(self, index: int, markup: str, status: str) -> bool:
        if self.fail_on == "fill":
            raise RuntimeError("Execution context was destroyed")
        if index not in dict(self.placeholders):
            return False
        self.filled[index] = (markup, status)
        return True

    async def placeholder_states(self) -> List[str]:
        states = []
        for index, _ in self.placeholders:
            markup, _status = self.filled.get(index, ("", "pending"))
            if "mermaid-error" in markup:
                states.append("failed")
            elif "<svg" in markup:
                states.append("rendered")
            else:
                states.append("pending")
        return states

    async def show_progress(self, message: str) -> None:
        if self.fail_on == "overlay":
            raise RuntimeError("overlay failed")
        self.progress.append(message)

    async def serialize(self, options: PageOptions) -> bytes:
        if self.fail_on == "serialize":
            raise RuntimeError("Printing failed")
        body = [b"%PDF-1.4\n", b"1 0 obj << /Type /Pages /Count 1 >> endobj\n",
                b"2 0 obj << /Type /Page /Parent 1 0 R >> endobj\n"]
        for index, (markup, _status) in sorted(self.filled.items()):
            body.append(f"% diagram {index}: {markup}\n".encode("utf-8"))
        body.append(b"%%EOF\n")
        return b"".join(body)

    async def close(self) -> None:
        self.close_calls += 1
        if self.fail_on == "close":
            raise RuntimeError("Browser has been closed")


class EnvironmentFactory:
    """Creates FakeEnvironments and remembers them."""

    def __init__(self, fail_on: Optional[str] = None):
        self.fail_on = fail_on
        self.created: List[FakeEnvironment] = []

    def __call__(self) -> FakeEnvironment:
        environment = FakeEnvironment(self.fail_on)
        self.created.append(environment)
        return environment

    @property
    def last(self) -> FakeEnvironment:
        return self.created[-1]


@pytest.fixture
def quiet_logger() -> ConsoleLogger:
    return ConsoleLogger(enabled=False)


@pytest.fixture
def fake_environment() -> FakeEnvironment:
    return FakeEnvironment()


@pytest.fixture
def environment_factory() -> EnvironmentFactory:
    return EnvironmentFactory()


@pytest.fixture
def test_config() -> Config:
    return Config({"diagram_pause_ms": 0, "logging_enabled": False}, environ={})
