"""Accumulate per-field detection statistics across a trace sample."""

from typing import Iterable

from .models import FieldStats, Trace

MIN_ANALYZE_TRACES = 50


class SampleAggregator:
    """Counts, per field location, how often it appeared and how often each class matched.

    Samples must be fed in processing order; the exemplar kept for a
    (location, class) pair is the last trace in that order that exhibited it.
    """

    def __init__(self, min_analyze_traces: int = MIN_ANALYZE_TRACES):
        self.min_analyze_traces = min_analyze_traces

    def has_enough_traces(self, sample_size: int) -> bool:
        """Whether an endpoint's sample is large enough to analyze at all."""
        return sample_size >= self.min_analyze_traces

    def is_eligible(self, stats: FieldStats) -> bool:
        """Whether a single location has been seen often enough to decide on."""
        return stats.total_count > self.min_analyze_traces

    def aggregate(self, samples: Iterable[tuple[Trace, dict[str, set[str]]]]) -> dict[str, FieldStats]:
        """Fold extracted field maps into per-location statistics.

        Args:
            samples: ``(trace, field_map)`` pairs in processing order.

        Returns:
            Mapping of field-location key to its statistics.
        """
        stats: dict[str, FieldStats] = {}
        for trace, field_map in samples:
            for key, data_classes in field_map.items():
                entry = stats.get(key)
                if entry is None:
                    entry = stats[key] = FieldStats()
                entry.total_count += 1
                for data_class in data_classes:
                    entry.match_counts[data_class] = entry.match_counts.get(data_class, 0) + 1
                    entry.exemplars[data_class] = trace
        return stats
