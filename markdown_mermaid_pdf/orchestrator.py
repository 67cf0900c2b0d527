"""
Render orchestration: drive one rendering environment from an empty browser
to a page where every diagram placeholder is either an SVG or an error marker.

Diagrams render one at a time, in extraction order. A diagram that Mermaid
rejects is replaced by an inline error marker and the loop moves on; only
environment-level failures abort the conversion.
"""

import asyncio
import html
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from tqdm import tqdm

from .assembler import AssembledDocument, decode_diagram_source
from .environment import RenderEnvironment
from .errors import (
    AssemblyError,
    ContentLoadError,
    ConversionError,
    DiagramRenderError,
    RenderEnvironmentError,
    RendererUnavailableError,
)
from .logger import ConsoleLogger, format_duration
from .timing import ConversionTiming


class RenderState(str, Enum):
    IDLE = "idle"
    ENVIRONMENT_READY = "environment-ready"
    CONTENT_LOADED = "content-loaded"
    RENDERER_AVAILABLE = "renderer-available"
    RENDERING = "rendering"
    RENDER_COMPLETE = "render-complete"
    ERRORED = "errored"


_TRANSITIONS = {
    RenderState.IDLE: {RenderState.ENVIRONMENT_READY},
    RenderState.ENVIRONMENT_READY: {RenderState.CONTENT_LOADED},
    RenderState.CONTENT_LOADED: {RenderState.RENDERER_AVAILABLE},
    RenderState.RENDERER_AVAILABLE: {RenderState.RENDERING},
    RenderState.RENDERING: {RenderState.RENDER_COMPLETE},
    RenderState.RENDER_COMPLETE: set(),
    RenderState.ERRORED: set(),
}


@dataclass
class DiagramOutcome:
    index: int
    diagram_type: str
    rendered: bool
    error: Optional[str] = None


@dataclass
class RenderOutcome:
    total: int = 0
    rendered: int = 0
    failed: int = 0
    diagrams: List[DiagramOutcome] = field(default_factory=list)

    @classmethod
    def from_states(cls, states: List[str], diagrams: List[DiagramOutcome]) -> 'RenderOutcome':
        """Aggregate counts from the final placeholder states in the page."""
        return cls(
            total=len(states),
            rendered=states.count('rendered'),
            failed=states.count('failed'),
            diagrams=list(diagrams),
        )


def error_marker(message: str, source: str) -> str:
    """Inline replacement for a diagram that failed to render; shows its source for diagnosis."""
    return (
        '<div class="mermaid-error">'
        f'<strong>Mermaid Diagram Error:</strong> {html.escape(message)}'
        f'<pre>{html.escape(source)}</pre>'
        '</div>'
    )


class RenderOrchestrator:
    """Owns the render state machine for a single conversion."""

    def __init__(self, environment: RenderEnvironment, logger: ConsoleLogger, timing: ConversionTiming,
                 renderer_timeout: float = 10.0, diagram_pause: float = 0.1, debug: bool = False):
        self.environment = environment
        self.logger = logger
        self.timing = timing
        self.renderer_timeout = renderer_timeout
        self.diagram_pause = diagram_pause
        self.debug = debug
        self.state = RenderState.IDLE
        self.current_index: Optional[int] = None

    def _transition(self, new_state: RenderState) -> None:
        if new_state is not RenderState.ERRORED and new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid render state transition: {self.state.value} -> {new_state.value}")
        self.logger.debug(f"Render state: {self.state.value} -> {new_state.value}")
        self.state = new_state

    async def run(self, document: AssembledDocument) -> RenderOutcome:
        """Take the environment from Idle to RenderComplete."""
        try:
            await self.start_environment()
            await self.load(document)
            await self.await_renderer()
            return await self.render_all(document)
        except BaseException:
            self._transition(RenderState.ERRORED)
            raise

    async def start_environment(self) -> None:
        with self.timing.measure('browser_init'):
            try:
                await self.environment.start()
            except Exception as e:
                raise RenderEnvironmentError(f"Failed to start the rendering environment: {e}") from e
        self.logger.debug("Browser ready", duration=format_duration(self.timing.browser_init))
        self._transition(RenderState.ENVIRONMENT_READY)

    async def load(self, document: AssembledDocument) -> None:
        with self.timing.measure('content_load'):
            try:
                await self.environment.load(document.html)
            except Exception as e:
                raise ContentLoadError(f"Failed to load the assembled document: {e}") from e
        self.logger.debug("HTML content set in page", duration=format_duration(self.timing.content_load))
        self._transition(RenderState.CONTENT_LOADED)

    async def await_renderer(self) -> None:
        with self.timing.measure('mermaid_load'):
            try:
                await self.environment.await_capability(self.renderer_timeout)
            except TimeoutError as e:
                raise RendererUnavailableError(
                    f"Mermaid did not become available within {self.renderer_timeout:g}s"
                ) from e
            except Exception as e:
                raise RendererUnavailableError(f"Failed while waiting for Mermaid: {e}") from e
        self.logger.debug("Mermaid library loaded", duration=format_duration(self.timing.mermaid_load))
        self._transition(RenderState.RENDERER_AVAILABLE)

    async def _progress(self, message: str) -> None:
        if not self.debug:
            return
        try:
            await self.environment.show_progress(message)
        except Exception as e:
            self.logger.debug(f"Debug overlay update failed: {e}")

    async def render_all(self, document: AssembledDocument) -> RenderOutcome:
        """Render every placeholder in order, isolating per-diagram failures."""
        with self.timing.measure('diagram_render'):
            try:
                outcome = await self._render_placeholders(document)
            except ConversionError:
                raise
            except Exception as e:
                raise RenderEnvironmentError(
                    f"Rendering environment failed at diagram {self.current_index}: {e}"
                ) from e

        self.logger.info(
            "Progressive Mermaid rendering completed",
            total=outcome.total, rendered=outcome.rendered, failed=outcome.failed,
            duration=format_duration(self.timing.diagram_render),
        )
        self._transition(RenderState.RENDER_COMPLETE)
        return outcome

    async def _render_placeholders(self, document: AssembledDocument) -> RenderOutcome:
        placeholders = await self.environment.placeholder_sources()
        if [index for index, _ in placeholders] != [diagram.index for diagram in document.diagrams]:
            raise AssemblyError(
                f"Page holds {len(placeholders)} diagram placeholder(s) but {len(document.diagrams)} "
                "diagram(s) were extracted"
            )

        self._transition(RenderState.RENDERING)
        total = len(placeholders)
        if total == 0:
            await self._progress("Mermaid: No diagrams found.")

        results = []
        for diagram, (index, encoded) in tqdm(list(zip(document.diagrams, placeholders)), desc="  Mermaid diagrams",
                                               unit="diagram", leave=False, disable=not self.logger.enabled):
            self.current_index = index
            source = decode_diagram_source(encoded)
            await self._progress(f"Mermaid: Rendering diagram {index + 1}/{total}...")

            try:
                svg = await self.environment.render_diagram(diagram.element_id, source)
            except DiagramRenderError as e:
                self.logger.error("Failed to render Mermaid diagram", index=index,
                                  type=diagram.diagram_type.value, error=e.message)
                await self.environment.fill_placeholder(index, error_marker(e.message, source), 'failed')
                results.append(DiagramOutcome(index, diagram.diagram_type.value, False, e.message))
                await self._progress(f"Mermaid: Diagram {index + 1} failed, continuing...")
            else:
                await self.environment.fill_placeholder(index, svg, 'rendered')
                results.append(DiagramOutcome(index, diagram.diagram_type.value, True))
                self.logger.debug("Mermaid diagram rendered successfully", index=index,
                                  type=diagram.diagram_type.value)

            # Small delay to prevent overwhelming the browser
            if self.diagram_pause:
                await asyncio.sleep(self.diagram_pause)

        states = await self.environment.placeholder_states()
        outcome = RenderOutcome.from_states(states, results)
        if outcome.rendered != sum(r.rendered for r in results) or outcome.total != len(results):
            self.logger.warning("Placeholder states disagree with per-diagram results", states=states)
        await self._progress(
            f"Mermaid: {outcome.total} diagrams processed ({outcome.rendered} rendered, {outcome.failed} failed)."
        )
        return outcome
