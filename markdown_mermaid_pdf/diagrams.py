"""
Mermaid diagram extraction and classification.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

from markdown_it.token import Token

from .transform import parse_markdown


class DiagramType(str, Enum):
    FLOWCHART = "flowchart"
    SEQUENCE = "sequence"
    CLASS = "class"
    STATE = "state"
    ENTITY_RELATIONSHIP = "entity-relationship"
    JOURNEY = "journey"
    GANTT = "gantt"
    PIE = "pie"
    GIT_GRAPH = "git-graph"
    MIND_MAP = "mind-map"
    TIMELINE = "timeline"
    ZENUML = "zenuml"
    SANKEY = "sankey"
    UNKNOWN = "unknown"


# First match wins, so the order here is part of the classification rules.
# "gitGraph" contains "graph" and therefore classifies as a flowchart.
DIAGRAM_KEYWORDS: Tuple[Tuple[Tuple[str, ...], DiagramType], ...] = (
    (("graph", "flowchart"), DiagramType.FLOWCHART),
    (("sequence",), DiagramType.SEQUENCE),
    (("class",), DiagramType.CLASS),
    (("state",), DiagramType.STATE),
    (("er",), DiagramType.ENTITY_RELATIONSHIP),
    (("journey",), DiagramType.JOURNEY),
    (("gantt",), DiagramType.GANTT),
    (("pie",), DiagramType.PIE),
    (("gitgraph",), DiagramType.GIT_GRAPH),
    (("mindmap",), DiagramType.MIND_MAP),
    (("timeline",), DiagramType.TIMELINE),
    (("zenuml",), DiagramType.ZENUML),
    (("sankey",), DiagramType.SANKEY),
)

# Fence info string: "mermaid" or a pandoc attribute block such as {.mermaid #id}
MERMAID_INFO = re.compile(r'^(?:mermaid(?:\s.*)?|\{[^}]*\.mermaid\b[^}]*\})$', re.IGNORECASE)

_NEWLINE = re.compile(r'\r\n?|\n')


@dataclass(frozen=True)
class DiagramBlock:
    """One mermaid fence found in the source document."""

    index: int
    diagram_type: DiagramType
    source: str
    span: Tuple[int, int]

    @property
    def element_id(self) -> str:
        return f"mermaid-diagram-{self.index}"


def detect_diagram_type(code: str) -> DiagramType:
    """Classify a diagram by its first non-empty line."""
    first_line = next((line.strip() for line in code.splitlines() if line.strip()), "").lower()

    for keywords, diagram_type in DIAGRAM_KEYWORDS:
        if any(keyword in first_line for keyword in keywords):
            return diagram_type
    return DiagramType.UNKNOWN


def _line_bounds(content: str) -> List[Tuple[int, int]]:
    """(start, end) offsets of every line, line terminators excluded."""
    bounds = []
    position = 0
    for newline in _NEWLINE.finditer(content):
        bounds.append((position, newline.start()))
        position = newline.end()
    bounds.append((position, len(content)))
    return bounds


def _is_closed(token: Token, closing_line: str) -> bool:
    # An unclosed fence runs to the end of the document and is left as code
    closing = closing_line.lstrip(' \t>').rstrip()
    return len(closing) >= len(token.markup) and set(closing) == {token.markup[0]}


def extract_diagrams(content: str) -> List[DiagramBlock]:
    """Find every mermaid fence in ``content``, in document order.

    Fences are taken from the markdown parse, so a mermaid example shown
    inside another code block stays part of that code block.
    """
    lines = _line_bounds(content)
    diagrams = []
    for token in parse_markdown(content):
        if token.type != 'fence' or not token.map or not MERMAID_INFO.match(token.info.strip()):
            continue
        first, last = token.map[0], token.map[1] - 1
        if last <= first or not _is_closed(token, content[lines[last][0]:lines[last][1]]):
            continue

        code = token.content.strip()
        diagrams.append(DiagramBlock(
            index=len(diagrams),
            diagram_type=detect_diagram_type(code),
            source=code,
            span=(lines[first][0], lines[last][1]),
        ))
    return diagrams
