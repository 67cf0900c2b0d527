#!/usr/bin/env python3
"""
Markdown to PDF converter with Mermaid diagrams rendered as inline SVG.

Pipeline for one document:
    extract diagrams -> placeholders + markdown -> assembled HTML
    -> load into headless Chromium -> render diagrams one by one -> print to PDF
The browser is torn down on every exit path.
"""

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from tqdm import tqdm

from .assembler import AssembledDocument, DocumentAssembler
from .config import Config
from .diagrams import extract_diagrams
from .emitter import PageEmitter
from .environment import PlaywrightEnvironment, RenderEnvironment
from .errors import ConversionError, InputError
from .lifecycle import EnvironmentLifecycle
from .logger import ConsoleLogger, format_duration
from .orchestrator import RenderOrchestrator, RenderOutcome
from .timing import ConversionTiming

PathLike = Union[str, Path]


@dataclass(frozen=True)
class SourceDocument:
    """A markdown document read for exactly one conversion."""

    name: str
    content: str
    base_dir: Optional[Path] = None

    @property
    def size(self) -> int:
        return len(self.content.encode('utf-8'))

    @property
    def lines(self) -> int:
        return len(self.content.split('\n'))

    @classmethod
    def from_path(cls, path: PathLike) -> 'SourceDocument':
        path = Path(path)
        try:
            content = path.read_text(encoding='utf-8')
        except FileNotFoundError as e:
            raise InputError(f"Markdown file not found: {path}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise InputError(f"Failed to read markdown file {path}: {e}") from e
        return cls(name=path.name, content=content, base_dir=path.parent)


@dataclass
class ConversionResult:
    name: str
    output_path: Path
    outcome: RenderOutcome
    timing: ConversionTiming
    pages: int
    html_path: Optional[Path] = None


class MarkdownConverter:
    """Converts one markdown document at a time into a PDF."""

    def __init__(self, config: Optional[Config] = None, logger: Optional[ConsoleLogger] = None,
                 environment_factory: Optional[Callable[[], RenderEnvironment]] = None):
        self.config = config or Config()
        self.logger = logger or self.config.create_logger()
        self.assembler = DocumentAssembler(self.config.get_assembly_options(), self.logger)
        self.emitter = PageEmitter(self.config.get_page_options(), self.logger)
        self.environment_factory = environment_factory or self._playwright_environment
        self.save_html = self.config.get_save_html()

    def _playwright_environment(self) -> RenderEnvironment:
        return PlaywrightEnvironment(self.logger, chromium_sandbox=self.config.get_chromium_sandbox())

    def assemble(self, document: SourceDocument, timing: Optional[ConversionTiming] = None) -> AssembledDocument:
        """Extract diagrams and build the renderable page."""
        timing = timing or ConversionTiming()
        with timing.measure('process'):
            diagrams = extract_diagrams(document.content)
            self.logger.debug("Extracted Mermaid diagrams", filename=document.name, count=len(diagrams),
                              types=",".join(d.diagram_type.value for d in diagrams) or None)
            assembled = self.assembler.assemble(document.content, diagrams, name=document.name,
                                                base_dir=document.base_dir)
        return assembled

    async def convert_document(self, document: SourceDocument, output_path: PathLike,
                               timing: Optional[ConversionTiming] = None) -> ConversionResult:
        """Convert an in-memory document. Raises ConversionError on any fatal failure."""
        timing = timing or ConversionTiming()
        output_path = Path(output_path)
        started = time.perf_counter()
        self.logger.info("Starting conversion", filename=document.name, output=output_path,
                         size=document.size, lines=document.lines)

        try:
            # Progress bar for this document's conversion steps
            with tqdm(total=3, desc=f"  {document.name}", unit="step", leave=False,
                      disable=not self.logger.enabled) as pbar:
                pbar.set_description(f"  {document.name} - Processing")
                assembled = self.assemble(document, timing)
                html_path = self._save_html(assembled, output_path) if self.save_html else None
                pbar.update(1)

                async with EnvironmentLifecycle(self.environment_factory, self.logger) as environment:
                    pbar.set_description(f"  {document.name} - Diagrams")
                    orchestrator = RenderOrchestrator(
                        environment, self.logger, timing,
                        renderer_timeout=self.config.get_renderer_timeout(),
                        diagram_pause=self.config.get_diagram_pause(),
                        debug=self.logger.debug_enabled,
                    )
                    outcome = await orchestrator.run(assembled)
                    pbar.update(1)

                    pbar.set_description(f"  {document.name} - PDF")
                    with timing.measure('pdf_generation'):
                        pages = await self.emitter.emit(environment, output_path)
                    pbar.update(1)
        except ConversionError as e:
            timing.total = (time.perf_counter() - started) * 1000
            self.logger.error("Conversion failed", filename=document.name, stage=e.stage, error=e.message,
                              total=format_duration(timing.total))
            raise
        except Exception as e:
            timing.total = (time.perf_counter() - started) * 1000
            self.logger.error("Conversion failed", filename=document.name, error=e)
            raise ConversionError(f"Unexpected failure converting {document.name}: {e}") from e

        timing.total = (time.perf_counter() - started) * 1000
        self.logger.success(f"Converted {document.name} to {output_path.name}",
                            diagrams=outcome.total, rendered=outcome.rendered, failed=outcome.failed, pages=pages)
        self.logger.debug(f"Timing: {timing.summary()}")
        return ConversionResult(
            name=document.name,
            output_path=output_path,
            outcome=outcome,
            timing=timing,
            pages=pages,
            html_path=html_path,
        )

    async def convert_file_async(self, input_path: PathLike, output_path: Optional[PathLike] = None) -> ConversionResult:
        """Read ``input_path`` and convert it; the PDF defaults to the same name with a .pdf suffix."""
        input_path = Path(input_path)
        output_path = Path(output_path) if output_path else input_path.with_suffix('.pdf')
        timing = ConversionTiming()
        with timing.measure('read'):
            try:
                document = SourceDocument.from_path(input_path)
            except InputError as e:
                self.logger.error("Failed to read markdown file", path=input_path, error=e.message)
                raise
        self.logger.debug("Markdown file read successfully", filename=document.name,
                          duration=format_duration(timing.read))
        return await self.convert_document(document, output_path, timing)

    def convert_file(self, input_path: PathLike, output_path: Optional[PathLike] = None) -> ConversionResult:
        """Synchronous wrapper around ``convert_file_async`` with its own event loop."""
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(self.convert_file_async(input_path, output_path))
        finally:
            loop.close()

    def convert(self, name: str, content: str, output_path: PathLike) -> ConversionResult:
        """Synchronous conversion of markdown text that did not come from a file."""
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(self.convert_document(SourceDocument(name, content), output_path))
        finally:
            loop.close()

    def _save_html(self, assembled: AssembledDocument, output_path: Path) -> Path:
        html_path = output_path.with_suffix('.html')
        html_path.parent.mkdir(parents=True, exist_ok=True)
        html_path.write_text(assembled.html, encoding='utf-8')
        self.logger.debug(f"Saved HTML to {html_path}")
        return html_path
