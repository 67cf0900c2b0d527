"""
Failure taxonomy for a single markdown to PDF conversion.

Every fatal failure surfaces to the caller as exactly one ConversionError
subclass. DiagramRenderError is the only recoverable failure: the render loop
catches it and degrades the diagram to an inline error marker.
"""


class ConversionError(Exception):
    """A conversion failed; no PDF was produced."""

    stage = "convert"

    def __init__(self, message: str, stage: str = None):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage

    def __str__(self) -> str:
        return f"[{self.stage}] {self.message}"


class InputError(ConversionError):
    """The source document is missing or unreadable."""

    stage = "read"


class AssemblyError(ConversionError):
    """The assembled document does not match the extracted diagrams."""

    stage = "assemble"


class RenderEnvironmentError(ConversionError):
    """The headless browser could not be started."""

    stage = "environment"


class ContentLoadError(ConversionError):
    """The assembled document could not be loaded into the browser."""

    stage = "content"


class RendererUnavailableError(ConversionError):
    """Mermaid never became available in the loaded page."""

    stage = "renderer"


class EmissionError(ConversionError):
    """The rendered page could not be serialized to PDF."""

    stage = "pdf"


class DiagramRenderError(Exception):
    """A single diagram failed to render."""

    def __init__(self, message: str, index: int = None):
        super().__init__(message)
        self.message = message
        self.index = index


class MarginError(ValueError):
    """Invalid page margin specification."""
