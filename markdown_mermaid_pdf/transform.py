"""
Markdown to HTML with GitHub-flavored rules.

Consecutive lines join into one paragraph (soft breaks), blank lines separate
paragraphs and two trailing spaces force a ``<br />``. Raw HTML passes through
untouched, which is what keeps diagram placeholders opaque.
"""

from typing import List

from markdown_it import MarkdownIt
from markdown_it.token import Token

_PARSER = None


def _markdown_parser() -> MarkdownIt:
    global _PARSER
    if _PARSER is None:
        _PARSER = MarkdownIt('gfm-like', {'html': True, 'breaks': False, 'linkify': True})
    return _PARSER


def render_markdown(content: str) -> str:
    """Render a markdown body (no ``<html>`` wrapper)."""
    return _markdown_parser().render(content)


def parse_markdown(content: str) -> List[Token]:
    """Block and inline tokens for ``content``, with source line maps on block tokens."""
    return _markdown_parser().parse(content)
