"""
Per-stage timing for one conversion.
"""

import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Dict, Iterator

from .logger import format_duration

# (bucket, label) in pipeline order
STAGES = (
    ('read', 'read'),
    ('process', 'process'),
    ('browser_init', 'browser'),
    ('content_load', 'content'),
    ('mermaid_load', 'mermaid'),
    ('diagram_render', 'diagrams'),
    ('pdf_generation', 'pdf'),
)


@dataclass
class ConversionTiming:
    """Durations in milliseconds."""

    read: float = 0.0
    process: float = 0.0
    browser_init: float = 0.0
    content_load: float = 0.0
    mermaid_load: float = 0.0
    diagram_render: float = 0.0
    pdf_generation: float = 0.0
    total: float = 0.0

    @contextmanager
    def measure(self, bucket: str) -> Iterator[None]:
        """Record the wall time of the ``with`` body into ``bucket``, even if it raises."""
        if bucket not in self.__dataclass_fields__:
            raise KeyError(f"Unknown timing bucket: {bucket}")
        start = time.perf_counter()
        try:
            yield
        finally:
            setattr(self, bucket, (time.perf_counter() - start) * 1000)

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)

    def summary(self) -> str:
        parts = [f"{label}: {format_duration(getattr(self, bucket))}" for bucket, label in STAGES]
        parts.append(f"total: {format_duration(self.total)}")
        return ", ".join(parts)
