"""
Document assembly: diagram placeholders, markdown body, style sheet and the
Mermaid bootstrap, merged into one self-contained HTML page.

Diagram fences are swapped for placeholders BEFORE the markdown transform runs,
so diagram source (pipes, angle brackets, dashes) is never parsed as markdown.
"""

import base64
import html
import json
import mimetypes
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote, unquote

from .diagrams import DiagramBlock
from .errors import AssemblyError
from .logger import ConsoleLogger
from .transform import parse_markdown, render_markdown

MERMAID_SCRIPT_URL = "https://cdn.jsdelivr.net/npm/mermaid@10.6.1/dist/mermaid.min.js"

# Characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "-_.!~*'()"

PLACEHOLDER_CLASS = "mermaid-diagram"
_PLACEHOLDER_TAG = re.compile(r'<div class="mermaid-diagram" data-index="(\d+)"')

PAGE_BREAK = '<div class="page-break"></div>'
_PAGE_BREAK_MARKERS = (
    re.compile(r'<!--\s*page-break\s*-->', re.IGNORECASE),
    re.compile(r'```page-break[ \t]*\r?\n```', re.IGNORECASE),
    re.compile(r'<page-break\s*/?>', re.IGNORECASE),
)

_MARKDOWN_IMAGE = re.compile(r'!\[([^\]]*)\]\(([^)\s]+)((?:\s+"[^"]*")?)\)')
_HTML_IMAGE = re.compile(r'(<img\b[^>]*?\bsrc=)(["\'])([^"\']+)\2', re.IGNORECASE)

DEFAULT_MERMAID_CONFIG: Dict[str, Any] = {
    "startOnLoad": False,
    "theme": "default",
    "securityLevel": "loose",
    "fontFamily": "Arial, sans-serif",
}

DEFAULT_STYLESHEET = """
body {
    font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif;
    line-height: 1.6;
    color: #333;
    max-width: 800px;
    margin: 0 auto;
    padding: 20px;
}

* {
    box-sizing: border-box;
}

h1, h2, h3, h4, h5, h6 {
    color: #2c3e50;
    margin-top: 1.5em;
    margin-bottom: 0.5em;
    font-weight: 600;
    page-break-after: avoid;
    break-after: avoid;
}

h1 { font-size: 2em; border-bottom: 2px solid #eee; padding-bottom: 0.3em; }
h2 { font-size: 1.5em; border-bottom: 1px solid #eee; padding-bottom: 0.3em; }
h3 { font-size: 1.25em; }

p {
    margin-bottom: 1em;
    orphans: 3;
    widows: 3;
}

code {
    background-color: #f6f8fa;
    padding: 0.2em 0.4em;
    border-radius: 3px;
    font-family: 'SFMono-Regular', Consolas, 'Liberation Mono', Menlo, monospace;
    font-size: 0.9em;
}

pre {
    background-color: #f6f8fa;
    padding: 16px;
    border-radius: 6px;
    overflow-x: auto;
    margin: 1em 0;
}

pre code {
    background-color: transparent;
    padding: 0;
}

blockquote {
    border-left: 4px solid #ddd;
    margin: 1em 0;
    padding-left: 1em;
    color: #666;
}

table {
    border-collapse: collapse;
    width: 100%;
    margin: 1em 0;
}

th, td {
    border: 1px solid #ddd;
    padding: 8px 12px;
    text-align: left;
}

th {
    background-color: #f6f8fa;
    font-weight: 600;
}

ul, ol {
    margin-bottom: 1em;
    padding-left: 2em;
}

li {
    margin-bottom: 0.5em;
}

img {
    max-width: 100%;
    height: auto;
}

hr {
    border: none;
    border-top: 1px solid #eee;
    margin: 2em 0;
}

pre, blockquote, table, img {
    page-break-inside: avoid;
    break-inside: avoid;
}

.page-break {
    page-break-before: always;
}

.mermaid-diagram {
    text-align: center;
    margin: 2em 0;
    padding: 1em;
    border: 1px solid #eee;
    border-radius: 6px;
    background-color: #fafafa;
    page-break-inside: avoid;
    break-inside: avoid;
}

.mermaid-diagram svg {
    max-width: 100%;
    height: auto;
}

.mermaid-placeholder {
    color: #666;
    font-style: italic;
}

.mermaid-error {
    color: red;
    border: 1px solid red;
    padding: 10px;
    text-align: left;
}

.mermaid-error pre {
    font-size: 10px;
    color: #333;
    overflow: auto;
}
"""


def encode_diagram_source(code: str) -> str:
    """Percent-encode diagram source exactly like JavaScript's encodeURIComponent."""
    return quote(code, safe=_URI_COMPONENT_SAFE)


def decode_diagram_source(encoded: str) -> str:
    return unquote(encoded)


def placeholder_html(diagram: DiagramBlock) -> str:
    """An opaque HTML block standing in for ``diagram`` until it is rendered.

    The surrounding blank lines keep the markdown transform from merging it
    into a neighbouring paragraph.
    """
    return (
        f'\n\n<div class="{PLACEHOLDER_CLASS}" data-index="{diagram.index}" '
        f'data-type="{diagram.diagram_type.value}" '
        f'data-mermaid="{encode_diagram_source(diagram.source)}">\n'
        f'<div class="mermaid-placeholder">Rendering diagram...</div>\n'
        f'</div>\n\n'
    )


def substitute_placeholders(content: str, diagrams: List[DiagramBlock]) -> str:
    """Replace each diagram's matched span with its placeholder."""
    pieces = []
    position = 0
    for diagram in sorted(diagrams, key=lambda d: d.span[0]):
        start, end = diagram.span
        pieces.append(content[position:start])
        pieces.append(placeholder_html(diagram))
        position = end
    pieces.append(content[position:])
    return "".join(pieces)


def placeholder_indices(document_html: str) -> List[int]:
    """Indices of the diagram placeholders present in ``document_html``, in order."""
    return [int(index) for index in _PLACEHOLDER_TAG.findall(document_html)]


def process_page_breaks(content: str) -> str:
    """Turn the supported page-break markers into a page-break div."""
    for marker in _PAGE_BREAK_MARKERS:
        content = marker.sub(PAGE_BREAK, content)
    return content


def extract_title(content: str, fallback_name: str) -> str:
    """Extract the document title from markdown content.

    Preference order:
    1) First level-one heading, ATX ('# ') or setext ('==='), outside code blocks
    2) Humanized filename stem
    """
    tokens = parse_markdown(content)
    for heading, inline in zip(tokens, tokens[1:]):
        if heading.type == 'heading_open' and heading.tag == 'h1' and inline.content.strip():
            return inline.content.strip()

    stem = Path(fallback_name).stem
    humanized = stem.replace('_', ' ').replace('-', ' ').strip()
    return humanized.title() if humanized else stem


@dataclass
class AssemblyOptions:
    """Style sheet and Mermaid bootstrap embedded into every assembled page."""

    stylesheet: str = DEFAULT_STYLESHEET
    mermaid_script_url: str = MERMAID_SCRIPT_URL
    # Inline script contents; when set, no network fetch is needed for Mermaid
    mermaid_script: Optional[str] = None
    mermaid_config: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_MERMAID_CONFIG))

    def bootstrap(self) -> str:
        """Script tags that load and initialize Mermaid without rendering anything."""
        if self.mermaid_script is not None:
            loader = f"<script>\n{self.mermaid_script}\n</script>"
        else:
            loader = f'<script src="{html.escape(self.mermaid_script_url, quote=True)}"></script>'
        config = json.dumps(self.mermaid_config)
        return (
            f"{loader}\n"
            "<script>\n"
            "  if (window.mermaid) {\n"
            f"    window.mermaid.initialize({config});\n"
            "    window.mermaidReady = true;\n"
            "  }\n"
            "</script>"
        )


@dataclass
class AssembledDocument:
    html: str
    diagrams: List[DiagramBlock]
    title: str

    @property
    def placeholder_count(self) -> int:
        return len(placeholder_indices(self.html))


class DocumentAssembler:
    """Builds the renderable page for one conversion."""

    def __init__(self, options: AssemblyOptions, logger: ConsoleLogger):
        self.options = options
        self.logger = logger

    def inline_local_images(self, content: str, base_dir: Path) -> str:
        """Embed local image references as data URIs so the page needs no file access."""

        def data_uri(ref: str) -> Optional[str]:
            if ref.startswith(('http://', 'https://', 'data:', '//')):
                return None
            path = Path(ref) if Path(ref).is_absolute() else base_dir / ref
            if not path.is_file():
                self.logger.warning(f"Image not found: {path}")
                return None
            mime, _ = mimetypes.guess_type(path.name)
            if not mime or not mime.startswith('image/'):
                self.logger.warning(f"Not an image, leaving reference as is: {ref}")
                return None
            encoded = base64.b64encode(path.read_bytes()).decode('ascii')
            self.logger.debug(f"Embedded image: {ref}")
            return f"data:{mime};base64,{encoded}"

        def replace_markdown(match: re.Match) -> str:
            uri = data_uri(match.group(2))
            if uri is None:
                return match.group(0)
            return f"![{match.group(1)}]({uri}{match.group(3)})"

        def replace_html(match: re.Match) -> str:
            uri = data_uri(match.group(3))
            if uri is None:
                return match.group(0)
            return f"{match.group(1)}{match.group(2)}{uri}{match.group(2)}"

        content = _MARKDOWN_IMAGE.sub(replace_markdown, content)
        return _HTML_IMAGE.sub(replace_html, content)

    def wrap(self, body: str, title: str) -> str:
        """Wrap an HTML body into a complete page."""
        return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{html.escape(title)}</title>
    <style>{self.options.stylesheet}</style>
    {self.options.bootstrap()}
</head>
<body>
{body}
</body>
</html>
"""

    def assemble(self, content: str, diagrams: List[DiagramBlock], name: str = "document",
                 base_dir: Optional[Path] = None) -> AssembledDocument:
        """Produce the self-contained page for ``content``."""
        processed = substitute_placeholders(content, diagrams)
        for diagram in diagrams:
            self.logger.debug("Replaced Mermaid diagram with placeholder",
                              index=diagram.index, type=diagram.diagram_type.value)

        processed = process_page_breaks(processed)
        if base_dir is not None:
            processed = self.inline_local_images(processed, Path(base_dir))

        body = render_markdown(processed)
        title = extract_title(content, name)
        document = AssembledDocument(html=self.wrap(body, title), diagrams=list(diagrams), title=title)

        indices = placeholder_indices(document.html)
        expected = [diagram.index for diagram in diagrams]
        if indices != expected:
            raise AssemblyError(
                f"Expected {len(expected)} diagram placeholder(s) in order, found {len(indices)}; "
                "a placeholder landed inside a code block or raw HTML"
            )
        self.logger.debug("HTML wrapped in complete document", size=len(document.html), title=title)
        return document
