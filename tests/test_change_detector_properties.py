"""
Property-based tests for the Change Detector.

Uses Hypothesis to verify baseline handling, multiset change detection,
unconditional overwrite and the all-resolvers-failed soft failure.
"""

from io import StringIO

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from dns_monitor.audit_logger import AuditLogger
from dns_monitor.change_detector import ChangeDetector
from dns_monitor.enums import LogLevel, RecordType
from dns_monitor.exceptions import PersistenceError
from dns_monitor.history_store import HistoryStore, MemoryHistoryBackend
from dns_monitor.models import ConsensusResult, HistoryRecord


OBSERVED_AT = "2025-06-01T12:00:00+00:00"
EARLIER = "2025-05-31T12:00:00+00:00"

ip_list_strategy = st.lists(st.ip_addresses(v=4).map(str), min_size=1, max_size=4, unique=True)


def consensus_of(values: list[str], failed: bool = False) -> ConsensusResult:
    if failed:
        return ConsensusResult(
            values=[],
            discrepancy=False,
            per_resolver={"a": [], "b": []},
            failed_resolvers=["a", "b"],
        )
    return ConsensusResult(values=list(values), discrepancy=False, per_resolver={"a": list(values)})


def detector_with(previous=None, logger=None):
    store = HistoryStore(MemoryHistoryBackend())
    if previous is not None:
        store.put(HistoryRecord("example.com", RecordType.A, list(previous), EARLIER))
    return ChangeDetector(store, logger=logger), store


class TestFirstCheckProperty:
    """The first check of a key establishes a baseline and never changes."""

    @given(values=st.lists(st.ip_addresses(v=4).map(str), max_size=4))
    @settings(max_examples=100)
    def test_first_check_never_changed(self, values: list[str]) -> None:
        detector, store = detector_with()

        outcome = detector.evaluate("example.com", RecordType.A, consensus_of(values), OBSERVED_AT)

        assert outcome.is_first_check is True
        assert outcome.has_changed is False
        assert outcome.previous_values == []
        stored = store.get("example.com", RecordType.A)
        assert stored is not None
        assert stored.values == values

    def test_second_check_is_tracked(self) -> None:
        detector, _ = detector_with()
        detector.evaluate("example.com", RecordType.A, consensus_of(["1.1.1.1"]), EARLIER)
        outcome = detector.evaluate("example.com", RecordType.A, consensus_of(["1.1.1.1"]), OBSERVED_AT)
        assert outcome.is_first_check is False
        assert outcome.has_changed is False


class TestChangeDetectionProperty:
    """Changes are detected as multiset inequality and always overwritten."""

    @given(previous=ip_list_strategy, data=st.data())
    @settings(max_examples=100)
    def test_reordered_values_are_unchanged(self, previous: list[str], data) -> None:
        current = list(data.draw(st.permutations(previous)))
        detector, store = detector_with(previous)

        outcome = detector.evaluate("example.com", RecordType.A, consensus_of(current), OBSERVED_AT)

        assert outcome.has_changed is False
        assert outcome.history_written is True
        assert store.get("example.com", RecordType.A).observed_at == OBSERVED_AT

    @given(previous=ip_list_strategy, current=ip_list_strategy)
    @settings(max_examples=100)
    def test_change_matches_set_inequality(self, previous: list[str], current: list[str]) -> None:
        detector, store = detector_with(previous)

        outcome = detector.evaluate("example.com", RecordType.A, consensus_of(current), OBSERVED_AT)

        assert outcome.is_first_check is False
        assert outcome.has_changed is (sorted(previous) != sorted(current))
        assert store.get("example.com", RecordType.A).values == current

    def test_example_com_hijack(self) -> None:
        detector, store = detector_with(["93.184.216.34"])

        outcome = detector.evaluate(
            "example.com", RecordType.A, consensus_of(["192.0.2.1"]), OBSERVED_AT
        )

        assert outcome.has_changed is True
        assert outcome.previous_values == ["93.184.216.34"]
        assert outcome.current_values == ["192.0.2.1"]
        assert store.get("example.com", RecordType.A).values == ["192.0.2.1"]


class TestAllResolversFailedProperty:
    """A fully failed lookup is flagged and never touches history."""

    @given(previous=st.one_of(st.none(), ip_list_strategy))
    @settings(max_examples=50)
    def test_history_left_untouched(self, previous) -> None:
        detector, store = detector_with(previous)

        outcome = detector.evaluate(
            "example.com", RecordType.A, consensus_of([], failed=True), OBSERVED_AT
        )

        assert outcome.has_changed is True
        assert outcome.is_first_check is False
        assert outcome.current_values == []
        assert outcome.history_written is False
        stored = store.get("example.com", RecordType.A)
        if previous is None:
            assert stored is None
        else:
            assert stored.values == previous
            assert stored.observed_at == EARLIER

    def test_failure_is_logged(self) -> None:
        logger = AuditLogger(output_stream=StringIO())
        detector, _ = detector_with(["1.1.1.1"], logger=logger)
        detector.evaluate("example.com", RecordType.A, consensus_of([], failed=True), OBSERVED_AT)
        assert any(e.level == LogLevel.WARN for e in logger.entries)

    def test_empty_answer_keeps_stored_record(self) -> None:
        detector, store = detector_with(["1.1.1.1"])

        outcome = detector.evaluate("example.com", RecordType.A, consensus_of([]), OBSERVED_AT)

        assert outcome.has_changed is True
        assert outcome.history_written is False
        assert store.get("example.com", RecordType.A).values == ["1.1.1.1"]


class TestHistoryFailure:
    """History store failures propagate to the caller."""

    def test_malformed_history_raises(self) -> None:
        store = HistoryStore(MemoryHistoryBackend({"dns:example.com:A": b"{broken"}))
        detector = ChangeDetector(store)
        with pytest.raises(PersistenceError):
            detector.evaluate("example.com", RecordType.A, consensus_of(["1.1.1.1"]), OBSERVED_AT)
