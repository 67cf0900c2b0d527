"""
Page emission: serialize the fully rendered page to a paginated PDF.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

from .errors import EmissionError, MarginError
from .logger import ConsoleLogger

_MARGIN_PATTERN = re.compile(r'^(-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)\s*(cm|in|mm|pt|px)?$')

# Centimeters per unit; bare numbers are inches
_CM_PER_UNIT = {
    'in': 2.54,
    'cm': 1.0,
    'mm': 0.1,
    'pt': 2.54 / 72,
    'px': 2.54 / 96,  # Assuming 96 DPI
}

MAX_MARGIN_INCHES = 3

_PAGE_OBJECT = re.compile(rb'/Type\s*/Page(?![A-Za-z])')


def margin_to_cm(margin_str: str) -> float:
    """Validate a single margin value and convert it to centimeters."""
    match = _MARGIN_PATTERN.match(margin_str.strip())
    if not match:
        raise MarginError(f"Invalid margin format: '{margin_str}'. Use format like '1in', '2.5cm', '10mm', etc.")

    value_str, unit = match.groups()
    value_cm = float(value_str) * _CM_PER_UNIT[unit or 'in']

    if value_cm < 0:
        raise MarginError(f"Margin cannot be negative: '{margin_str}'. Minimum value is 0.")
    if value_cm > MAX_MARGIN_INCHES * 2.54 + 1e-9:
        raise MarginError(f"Margin too large: '{margin_str}'. Maximum value is 3 inches (7.62cm).")
    return round(value_cm, 4)


def parse_margins(margins: str) -> Dict[str, str]:
    """Parse a CSS-style margin shorthand (1, 2 or 4 values) into Playwright margins."""
    parts = margins.split()

    if len(parts) == 1:
        top = right = bottom = left = parts[0]
    elif len(parts) == 2:
        # Vertical and horizontal
        top, right = parts
        bottom, left = parts
    elif len(parts) == 4:
        top, right, bottom, left = parts
    else:
        raise MarginError(f"Invalid margin format: '{margins}'. Use 1, 2, or 4 values.")

    return {
        'top': f"{margin_to_cm(top)}cm",
        'right': f"{margin_to_cm(right)}cm",
        'bottom': f"{margin_to_cm(bottom)}cm",
        'left': f"{margin_to_cm(left)}cm",
    }


def count_pages(pdf_bytes: bytes) -> int:
    """Count the page objects in a PDF."""
    return len(_PAGE_OBJECT.findall(pdf_bytes))


@dataclass
class PageOptions:
    """Fixed page geometry for one conversion."""

    page_format: str = 'A4'
    margins: Dict[str, str] = field(default_factory=lambda: parse_margins('1in'))

    @classmethod
    def from_margins(cls, margins: str, page_format: str = 'A4') -> 'PageOptions':
        return cls(page_format=page_format, margins=parse_margins(margins))

    def to_pdf_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for Playwright's ``page.pdf``."""
        return {
            'format': self.page_format,
            'margin': dict(self.margins),
            'print_background': True,
            'display_header_footer': False,
        }


class PageEmitter:
    """Writes the rendered environment state to a PDF file."""

    def __init__(self, options: PageOptions, logger: ConsoleLogger):
        self.options = options
        self.logger = logger

    async def emit(self, environment, output_path: Path) -> int:
        """Serialize the page and write it to ``output_path``. Returns the page count.

        The PDF goes to a temporary sibling first and is moved into place only
        once complete, so a failed emission never leaves a partial artifact.
        """
        output_path = Path(output_path)
        self.logger.debug("Generating PDF", format=self.options.page_format, margins=self.options.margins)

        try:
            pdf_bytes = await environment.serialize(self.options)
        except Exception as e:
            raise EmissionError(f"PDF generation failed: {e}") from e
        if not pdf_bytes:
            raise EmissionError("PDF generation failed: the browser returned an empty document")

        partial = output_path.with_name(output_path.name + '.part')
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            partial.write_bytes(pdf_bytes)
            os.replace(partial, output_path)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise EmissionError(f"Failed to write PDF to {output_path}: {e}") from e

        pages = count_pages(pdf_bytes)
        self.logger.debug("PDF written", path=output_path, pages=pages, size=len(pdf_bytes))
        return pages
