"""Batch run metrics collection for performance monitoring."""
from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

from veriwrite.core.logging import LogEvent, get_logger

logger = get_logger(__name__)


@dataclass
class StageMetrics:
    """Metrics for a single batch stage."""
    name: str
    execution_time: float = 0.0
    items_in: int = 0
    items_out: int = 0
    cache_hits: int = 0
    cache_misses: int = 0

    @property
    def cache_hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.cache_hits + self.cache_misses
        if total == 0:
            return 0.0
        return self.cache_hits / total


@dataclass
class BatchMetrics:
    """Aggregated metrics for one batch run."""
    run_id: str
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    stages: Dict[str, StageMetrics] = field(default_factory=dict)
    documents: int = 0
    pairs_scheduled: int = 0
    pairs_scored: int = 0
    pairs_flagged: int = 0
    workers: int = 0

    @property
    def total_execution_time(self) -> float:
        if self.end_time is None:
            return time.time() - self.start_time
        return self.end_time - self.start_time

    @property
    def total_cache_hits(self) -> int:
        return sum(stage.cache_hits for stage in self.stages.values())

    @property
    def total_cache_misses(self) -> int:
        return sum(stage.cache_misses for stage in self.stages.values())

    def stage_metrics(self, name: str) -> StageMetrics:
        if name not in self.stages:
            self.stages[name] = StageMetrics(name=name)
        return self.stages[name]

    @contextmanager
    def stage(self, name: str, items_in: int = 0) -> Iterator[StageMetrics]:
        """Time a stage; the yielded record can be updated inside the block."""
        metrics = self.stage_metrics(name)
        metrics.items_in = items_in
        started = time.time()
        try:
            yield metrics
        finally:
            metrics.execution_time += time.time() - started

    def finish(self) -> "BatchMetrics":
        self.end_time = time.time()
        logger.info(
            LogEvent.PERFORMANCE_METRIC,
            run_id=self.run_id,
            execution_time=round(self.total_execution_time, 3),
            documents=self.documents,
            pairs_scored=self.pairs_scored,
            pairs_flagged=self.pairs_flagged,
            cache_hits=self.total_cache_hits,
            cache_misses=self.total_cache_misses,
        )
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for reporting."""
        return {
            "run_id": self.run_id,
            "total_execution_time": round(self.total_execution_time, 3),
            "documents": self.documents,
            "pairs_scheduled": self.pairs_scheduled,
            "pairs_scored": self.pairs_scored,
            "pairs_flagged": self.pairs_flagged,
            "workers": self.workers,
            "stages": {
                name: {
                    "execution_time": round(stage.execution_time, 3),
                    "items_in": stage.items_in,
                    "items_out": stage.items_out,
                    "cache_hit_rate": round(stage.cache_hit_rate, 3),
                }
                for name, stage in self.stages.items()
            },
        }
