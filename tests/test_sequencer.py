"""
Unit tests for the greedy sequencing algorithm.

Covers the reference scenarios, line selection, the uniform-duration
queueing model, conflict reporting and the derived metrics.
"""

from datetime import timedelta

import pytest

from factories import (
    NOW,
    RecordingCommitAdapter,
    make_line,
    make_order,
    snapshot_of,
)
from production_sequencing.domain import ConflictSeverity, ConflictType


def conflict_types(result):
    return [conflict.type for conflict in result.conflicts]


class TestReferenceScenarios:
    def test_higher_priority_order_takes_first_slot(self, sequencer):
        orders = [make_order("low", priority=5), make_order("high", priority=8)]

        result = sequencer.sequence(orders, snapshot_of(make_line("L1", capacity=2)))

        assert [entry.order_id for entry in result.sequence] == ["high", "low"]
        first, second = result.sequence
        assert (first.position, first.estimated_start) == (1, NOW)
        assert (second.position, second.estimated_start) == (2, NOW + timedelta(hours=4))
        assert result.conflicts == []
        assert result.metrics.capacity_utilization == 100.0
        assert result.metrics.avg_wait_time == 2.0
        assert result.metrics.estimated_completion == NOW + timedelta(hours=8)

    def test_full_line_reports_no_line_available(self, sequencer):
        snapshot = snapshot_of(make_line("L1", capacity=1, current_load=1))

        result = sequencer.sequence([make_order("o1")], snapshot)

        assert result.sequence == []
        assert conflict_types(result) == [
            ConflictType.CAPACITY_EXCEEDED,
            ConflictType.NO_LINE_AVAILABLE,
        ]
        no_line = result.conflicts[-1]
        assert no_line.severity == ConflictSeverity.CRITICAL
        assert no_line.affected_orders == ("o1",)

    def test_missing_materials_skip_line_search(self, sequencer):
        snapshot = snapshot_of(make_line("L1", capacity=0))
        commit = RecordingCommitAdapter()

        result = sequencer.sequence(
            [make_order("o1", materials_available=False)],
            snapshot,
            auto_commit=True,
            commit=commit,
        )

        assert result.sequence == []
        assert len(result.conflicts) == 1
        conflict = result.conflicts[0]
        assert conflict.type == ConflictType.MATERIALS_UNAVAILABLE
        assert conflict.severity == ConflictSeverity.CRITICAL
        assert conflict.affected_orders == ("o1",)
        assert commit.calls == []

    def test_commit_failure_keeps_placement(self, sequencer):
        commit = RecordingCommitAdapter(failing=("o1",))

        result = sequencer.sequence(
            [make_order("o1", customer="Hydraulik Nord")],
            snapshot_of(make_line("L1", capacity=2)),
            auto_commit=True,
            commit=commit,
        )

        assert [entry.order_id for entry in result.sequence] == ["o1"]
        assert conflict_types(result) == [ConflictType.OF_CREATION_FAILED]
        conflict = result.conflicts[0]
        assert conflict.severity == ConflictSeverity.WARNING
        assert conflict.affected_orders == ("o1",)
        assert "Hydraulik Nord" in conflict.message
        assert "insert rejected by storage" in conflict.message

    def test_no_candidates(self, sequencer):
        result = sequencer.sequence([], snapshot_of(make_line("L1", capacity=4, current_load=1)))

        assert result.sequence == []
        assert result.conflicts == []
        assert result.metrics.total_orders == 0
        assert result.metrics.avg_wait_time == 0
        assert result.metrics.capacity_utilization == 25.0
        assert result.metrics.estimated_completion == NOW

    def test_no_lines_and_no_candidates(self, sequencer):
        result = sequencer.sequence([], snapshot_of())

        assert result.metrics.capacity_utilization == 0
        assert result.metrics.estimated_completion == NOW


class TestLineSelection:
    def test_least_loaded_line_wins(self, sequencer):
        snapshot = snapshot_of(
            make_line("A", capacity=3, current_load=2),
            make_line("B", capacity=3, current_load=1),
        )

        result = sequencer.sequence([make_order("o1", estimated_hours=5)], snapshot)

        entry = result.sequence[0]
        assert entry.line_id == "B"
        assert entry.position == 2
        assert entry.estimated_start == NOW + timedelta(hours=5)

    def test_equal_load_prefers_first_line(self, sequencer):
        snapshot = snapshot_of(make_line("A", capacity=2), make_line("B", capacity=2))

        result = sequencer.sequence([make_order("o1"), make_order("o2")], snapshot)

        assert [(e.order_id, e.line_id) for e in result.sequence] == [
            ("o1", "A"),
            ("o2", "B"),
        ]

    def test_every_full_line_is_reported_per_order(self, sequencer):
        snapshot = snapshot_of(
            make_line("A", capacity=1, current_load=1, name="Press"),
            make_line("B", capacity=1, current_load=1, name="Saw"),
            make_line("C", capacity=5),
        )

        result = sequencer.sequence(
            [make_order("o1", priority=2), make_order("o2", priority=1)], snapshot
        )

        assert [e.line_id for e in result.sequence] == ["C", "C"]
        warnings = [
            (c.affected_orders, c.message)
            for c in result.conflicts
            if c.type == ConflictType.CAPACITY_EXCEEDED
        ]
        assert warnings == [
            (("o1",), "Line Press has no free capacity"),
            (("o1",), "Line Saw has no free capacity"),
            (("o2",), "Line Press has no free capacity"),
            (("o2",), "Line Saw has no free capacity"),
        ]
        assert all(c.severity == ConflictSeverity.WARNING for c in result.conflicts)

    def test_line_filled_during_run_rejects_later_orders(self, sequencer):
        snapshot = snapshot_of(make_line("L1", capacity=1))

        result = sequencer.sequence(
            [make_order("first", priority=9), make_order("second", priority=1)],
            snapshot,
        )

        assert [e.order_id for e in result.sequence] == ["first"]
        assert conflict_types(result) == [
            ConflictType.CAPACITY_EXCEEDED,
            ConflictType.NO_LINE_AVAILABLE,
        ]
        assert all(c.affected_orders == ("second",) for c in result.conflicts)

    def test_snapshot_is_not_mutated(self, sequencer):
        line = make_line("L1", capacity=3, current_load=1)

        sequencer.sequence([make_order("o1"), make_order("o2")], snapshot_of(line))

        assert line.current_load == 1


class TestOrdering:
    def test_priority_ties_keep_submitted_order(self, sequencer):
        orders = [
            make_order("a", priority=5),
            make_order("b", priority=9),
            make_order("c", priority=5),
            make_order("d", priority=5),
        ]

        result = sequencer.sequence(orders, snapshot_of(make_line("L1", capacity=10)))

        assert [e.order_id for e in result.sequence] == ["b", "a", "c", "d"]
        assert [e.position for e in result.sequence] == [1, 2, 3, 4]

    def test_negative_priorities_sort_last(self, sequencer):
        orders = [make_order("neg", priority=-3), make_order("zero", priority=0)]

        result = sequencer.sequence(orders, snapshot_of(make_line("L1", capacity=2)))

        assert [e.order_id for e in result.sequence] == ["zero", "neg"]

    def test_fractional_priorities_keep_their_value(self, sequencer):
        orders = [make_order("low", priority=5.2), make_order("high", priority=5.8)]

        result = sequencer.sequence(orders, snapshot_of(make_line("L1", capacity=2)))

        assert [e.order_id for e in result.sequence] == ["high", "low"]


class TestTimings:
    def test_waits_behind_existing_load(self, sequencer):
        snapshot = snapshot_of(make_line("L1", capacity=5, current_load=2))

        result = sequencer.sequence([make_order("o1", estimated_hours=3)], snapshot)

        entry = result.sequence[0]
        assert entry.position == 3
        assert entry.estimated_start == NOW + timedelta(hours=6)
        assert entry.estimated_end == NOW + timedelta(hours=9)

    def test_queue_offset_uses_the_orders_own_duration(self, sequencer):
        orders = [
            make_order("long", priority=9, estimated_hours=10),
            make_order("short", priority=1, estimated_hours=2),
        ]

        result = sequencer.sequence(orders, snapshot_of(make_line("L1", capacity=2)))

        short = result.sequence[1]
        assert short.estimated_start == NOW + timedelta(hours=2)
        assert short.estimated_end == NOW + timedelta(hours=4)
        assert result.metrics.avg_wait_time == 1.0
        assert result.metrics.estimated_completion == NOW + timedelta(hours=10)

    def test_zero_duration_gives_empty_slot(self, sequencer):
        snapshot = snapshot_of(make_line("L1", capacity=3, current_load=1))

        result = sequencer.sequence([make_order("o1", estimated_hours=0)], snapshot)

        entry = result.sequence[0]
        assert entry.estimated_start == entry.estimated_end == NOW
        assert entry.position == 2

    def test_unrepresentable_duration_rejects_only_that_order(self, sequencer):
        orders = [
            make_order("huge", priority=9, estimated_hours=1e8),
            make_order("normal", priority=1, estimated_hours=2),
        ]

        result = sequencer.sequence(orders, snapshot_of(make_line("L1", capacity=2)))

        assert [(e.order_id, e.position, e.estimated_start) for e in result.sequence] == [
            ("normal", 1, NOW)
        ]
        assert [(c.type, c.affected_orders) for c in result.conflicts] == [
            (ConflictType.INVALID_ORDER, ("huge",))
        ]
        assert result.metrics.capacity_utilization == 50.0


class TestMetrics:
    @pytest.mark.parametrize(
        "capacity, orders, expected",
        [
            (3, 1, 33.3),
            (3, 2, 66.7),
            (8, 8, 100.0),
        ],
    )
    def test_utilization_rounded_to_one_decimal(self, sequencer, capacity, orders, expected):
        candidates = [make_order(f"o{i}") for i in range(orders)]

        result = sequencer.sequence(candidates, snapshot_of(make_line("L1", capacity)))

        assert result.metrics.capacity_utilization == expected

    def test_wait_time_rounds_half_up(self, sequencer):
        snapshot = snapshot_of(make_line("L1", capacity=2, current_load=1))

        result = sequencer.sequence([make_order("o1", estimated_hours=0.25)], snapshot)

        assert result.metrics.avg_wait_time == 0.3

    def test_overloaded_snapshot_caps_utilization(self, sequencer):
        snapshot = snapshot_of(make_line("L1", capacity=2, current_load=3))

        result = sequencer.sequence([], snapshot)

        assert result.metrics.capacity_utilization == 100.0

    def test_total_orders_counts_rejected_candidates(self, sequencer):
        orders = [make_order("o1"), make_order("o2", materials_available=False)]

        result = sequencer.sequence(orders, snapshot_of(make_line("L1", capacity=1)))

        assert result.metrics.total_orders == 2


class TestCommit:
    def test_commits_follow_placement_order(self, sequencer):
        commit = RecordingCommitAdapter(failing=("x",))
        orders = [make_order("y", priority=1), make_order("x", priority=9)]

        result = sequencer.sequence(
            orders, snapshot_of(make_line("L1", capacity=2)), auto_commit=True, commit=commit
        )

        assert commit.calls == [("x", "L1"), ("y", "L1")]
        assert [e.order_id for e in result.sequence] == ["x", "y"]
        assert [c.affected_orders for c in result.conflicts] == [("x",)]

    def test_commit_skipped_without_auto_commit(self, sequencer):
        commit = RecordingCommitAdapter()

        sequencer.sequence(
            [make_order("o1")], snapshot_of(make_line("L1", capacity=1)), commit=commit
        )

        assert commit.calls == []

    def test_out_of_range_duration_is_not_committed(self, sequencer):
        commit = RecordingCommitAdapter()
        orders = [
            make_order("huge", priority=9, estimated_hours=1e8),
            make_order("ok", priority=1),
        ]

        sequencer.sequence(
            orders, snapshot_of(make_line("L1", capacity=2)), auto_commit=True, commit=commit
        )

        assert commit.calls == [("ok", "L1")]

    def test_auto_commit_requires_adapter(self, sequencer):
        with pytest.raises(ValueError):
            sequencer.sequence([], snapshot_of(), auto_commit=True)


class TestInvariants:
    @pytest.fixture
    def mixed_run(self, sequencer):
        snapshot = snapshot_of(
            make_line("A", capacity=3, current_load=1),
            make_line("B", capacity=2, current_load=2),
            make_line("C", capacity=2),
        )
        orders = [
            make_order("o1", priority=3, estimated_hours=2),
            make_order("o2", priority=7, estimated_hours=6),
            make_order("o3", priority=3, materials_available=False),
            make_order("o4", priority=1, estimated_hours=1.5),
            make_order("o5", priority=9, estimated_hours=8),
            make_order("o6", priority=0, estimated_hours=4),
            make_order("o7", priority=2, estimated_hours=3),
        ]
        return orders, snapshot, sequencer.sequence(orders, snapshot)

    def test_every_order_is_placed_or_named_in_a_conflict(self, mixed_run):
        orders, _, result = mixed_run
        placed = [entry.order_id for entry in result.sequence]
        in_conflict = {oid for c in result.conflicts for oid in c.affected_orders}

        assert len(placed) == len(set(placed))
        for order in orders:
            assert order.id in placed or order.id in in_conflict

    def test_positions_are_contiguous_per_line(self, mixed_run):
        _, snapshot, result = mixed_run
        for line in snapshot.lines:
            positions = [e.position for e in result.sequence if e.line_id == line.id]
            expected = list(
                range(line.current_load + 1, line.current_load + 1 + len(positions))
            )
            assert positions == expected

    def test_slot_length_matches_estimate(self, mixed_run):
        orders, _, result = mixed_run
        hours = {order.id: order.estimated_hours for order in orders}
        for entry in result.sequence:
            assert entry.estimated_end - entry.estimated_start == timedelta(
                hours=hours[entry.order_id]
            )

    def test_placements_follow_priority(self, mixed_run):
        orders, _, result = mixed_run
        priority = {order.id: order.priority for order in orders}
        placed = [priority[e.order_id] for e in result.sequence]

        assert placed == sorted(placed, reverse=True)
        assert 0 <= result.metrics.capacity_utilization <= 100

    def test_repeated_runs_are_identical(self, sequencer, mixed_run):
        orders, snapshot, result = mixed_run

        assert sequencer.sequence(orders, snapshot).as_dict() == result.as_dict()
