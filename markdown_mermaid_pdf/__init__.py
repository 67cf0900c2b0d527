"""
Markdown to PDF conversion with Mermaid diagrams rendered in headless Chromium.
"""

from .assembler import AssembledDocument, AssemblyOptions, DocumentAssembler
from .config import Config
from .converter import ConversionResult, MarkdownConverter, SourceDocument
from .diagrams import DiagramBlock, DiagramType, detect_diagram_type, extract_diagrams
from .emitter import PageEmitter, PageOptions
from .environment import PlaywrightEnvironment, RenderEnvironment
from .errors import (
    AssemblyError,
    ContentLoadError,
    ConversionError,
    DiagramRenderError,
    EmissionError,
    InputError,
    RenderEnvironmentError,
    RendererUnavailableError,
)
from .lifecycle import EnvironmentLifecycle, live_environment_count
from .orchestrator import RenderOrchestrator, RenderOutcome, RenderState
from .timing import ConversionTiming
from .transform import render_markdown

__version__ = "1.0.0"
