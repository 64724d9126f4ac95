"""
Stage Timing.

Wall-clock timing for pipeline stages, synthesis calls and segmentation.
The measured seconds feed the per-stage log lines and the stage duration
histogram.

Example Usage:
    with timeit("extract") as t:
        article = extractor.extract(url)
    metrics.observe_stage(t.name, t.seconds)
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Dict, Iterator


@dataclass
class Timing:
    """
    A running or finished measurement.

    `seconds` is -1.0 until the timed block exits, then the elapsed time,
    recorded even when the block raised.
    """
    name: str
    seconds: float = -1.0
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def done(self) -> bool:
        return self.seconds >= 0.0


@contextmanager
def timeit(name: str, **meta: Any) -> Iterator[Timing]:
    timing = Timing(name=name, meta=meta)
    t0 = perf_counter()
    try:
        yield timing
    finally:
        timing.seconds = perf_counter() - t0
