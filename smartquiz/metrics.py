"""Simple in-process metrics registry for service instrumentation."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import List


@dataclass
class MetricsRegistry:
    """Holds counters and histograms exposed by the application."""

    selection_requests: int = 0
    degraded_selections: int = 0
    degraded_reasons: Counter = field(default_factory=Counter)
    selected_item_counts: List[int] = field(default_factory=list)
    answer_outcomes: Counter = field(default_factory=Counter)
    presentations_recorded: int = 0
    recording_failures: Counter = field(default_factory=Counter)
    rejected_configs: int = 0

    def record_selection(self, item_count: int) -> None:
        self.selection_requests += 1
        self.selected_item_counts.append(item_count)

    def record_degraded_selection(self, reason: str) -> None:
        self.degraded_selections += 1
        self.degraded_reasons[reason] += 1

    def record_answer(self, is_correct: bool) -> None:
        self.answer_outcomes["correct" if is_correct else "incorrect"] += 1

    def record_presentations(self, count: int) -> None:
        self.presentations_recorded += count

    def record_recording_failure(self, operation: str) -> None:
        self.recording_failures[operation] += 1

    def record_rejected_config(self) -> None:
        self.rejected_configs += 1

    @property
    def degraded_rate(self) -> float:
        if self.selection_requests == 0:
            return 0.0
        return self.degraded_selections / self.selection_requests

    def reset(self) -> None:
        fresh = MetricsRegistry()
        self.__dict__.update(fresh.__dict__)


METRICS = MetricsRegistry()

__all__ = ["METRICS", "MetricsRegistry"]
