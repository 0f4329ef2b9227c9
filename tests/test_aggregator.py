"""Tests for sample aggregation."""

from datetime import datetime, timedelta

from datascan.aggregator import MIN_ANALYZE_TRACES, SampleAggregator
from datascan.models import FieldStats, Trace


def trace(i: int) -> Trace:
    return Trace(uuid=f"t-{i}", path="/", method="GET", created_at=datetime(2024, 3, 1) + timedelta(seconds=i))


class TestSampleAggregator:
    """Tests for SampleAggregator."""

    def test_counts(self):
        """Test occurrences and matches are counted per location."""
        aggregator = SampleAggregator()
        samples = [
            (trace(1), {"k": {"Email"}, "other": set()}),
            (trace(2), {"k": {"Email", "SSN"}}),
            (trace(3), {"k": set()}),
        ]

        stats = aggregator.aggregate(samples)

        assert stats["k"].total_count == 3
        assert stats["k"].match_counts == {"Email": 2, "SSN": 1}
        assert stats["other"].total_count == 1
        assert stats["other"].match_counts == {}

    def test_last_exhibiting_trace_is_exemplar(self):
        """Test the exemplar is the last trace in processing order that matched."""
        aggregator = SampleAggregator()
        samples = [
            (trace(1), {"k": {"Email"}}),
            (trace(2), {"k": {"Email"}}),
            (trace(3), {"k": set()}),
        ]

        stats = aggregator.aggregate(samples)

        assert stats["k"].exemplars["Email"].uuid == "t-2"

    def test_empty_sample(self):
        """Test no samples yields no statistics."""
        assert SampleAggregator().aggregate([]) == {}

    def test_has_enough_traces(self):
        """Test the sample-size precondition is inclusive."""
        aggregator = SampleAggregator()

        assert MIN_ANALYZE_TRACES == 50
        assert not aggregator.has_enough_traces(49)
        assert aggregator.has_enough_traces(50)

    def test_field_eligibility_is_strict(self):
        """Test a location must be seen more often than the minimum."""
        aggregator = SampleAggregator(min_analyze_traces=50)

        assert not aggregator.is_eligible(FieldStats(total_count=50))
        assert aggregator.is_eligible(FieldStats(total_count=51))

    def test_ratio(self):
        """Test the match ratio helper."""
        stats = FieldStats(total_count=4, match_counts={"Email": 3})

        assert stats.ratio("Email") == 0.75
        assert stats.ratio("SSN") == 0.0
        assert FieldStats().ratio("Email") == 0.0
