"""Service layer implementing the production order sequencing engine."""

from __future__ import annotations

import logging
import math
import sqlite3
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
)
from uuid import uuid4

from .domain import (
    DEFAULT_ESTIMATED_HOURS,
    AssignmentEntry,
    CandidateOrder,
    Conflict,
    ConflictType,
    FabricationOrder,
    FabricationOrderStatus,
    InvalidOrderError,
    LineStatus,
    ProductionLine,
    SequenceMetrics,
    SequenceResult,
)
from .repository import InMemoryRepository, RecordNotFoundError, RepositoryError

logger = logging.getLogger(__name__)

ACTIVE_ORDER_STATUSES: Tuple[FabricationOrderStatus, ...] = (
    FabricationOrderStatus.PENDING,
    FabricationOrderStatus.IN_PROGRESS,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _round_one_decimal(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


@dataclass(slots=True)
class SequencingOptions:
    """Tunable defaults used when reading snapshots and parsing orders."""

    default_estimated_hours: float = DEFAULT_ESTIMATED_HOURS
    active_order_statuses: Tuple[FabricationOrderStatus, ...] = field(
        default_factory=lambda: ACTIVE_ORDER_STATUSES
    )


class SequencingError(RuntimeError):
    """Base exception for failures outside the pure sequencing algorithm."""


class SnapshotUnavailableError(SequencingError):
    """Raised when the capacity snapshot cannot be read from storage."""


class CommitError(SequencingError):
    """Raised by a commit adapter when a fabrication order cannot be stored."""


# ----------------------------------------------------------------------
# Capacity snapshot
# ----------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CapacitySnapshot:
    """Read-once view of the active lines and their load for one run."""

    lines: Tuple[ProductionLine, ...]
    taken_at: datetime = field(default_factory=_utcnow)

    @property
    def total_capacity(self) -> int:
        return sum(line.capacity for line in self.lines)


class SnapshotLoader(Protocol):
    def load(self) -> CapacitySnapshot:
        ...


def count_active_orders(
    orders: Iterable[FabricationOrder],
    statuses: Sequence[FabricationOrderStatus] = ACTIVE_ORDER_STATUSES,
) -> Dict[str, int]:
    """Number of orders occupying a slot, keyed by line id."""

    counts: Dict[str, int] = {}
    for order in orders:
        if order.line_id is None or order.status not in statuses:
            continue
        counts[order.line_id] = counts.get(order.line_id, 0) + 1
    return counts


class RepositorySnapshotLoader:
    """Builds snapshots from the line and fabrication order repositories."""

    def __init__(
        self,
        line_repo: InMemoryRepository[ProductionLine],
        order_repo: InMemoryRepository[FabricationOrder],
        *,
        active_statuses: Sequence[FabricationOrderStatus] = ACTIVE_ORDER_STATUSES,
    ) -> None:
        self._lines = line_repo
        self._orders = order_repo
        self._active_statuses = tuple(active_statuses)

    def load(self) -> CapacitySnapshot:
        try:
            lines = self._lines.filter(lambda line: line.status == LineStatus.ACTIVE)
            loads = count_active_orders(self._orders.list(), self._active_statuses)
        except (RepositoryError, sqlite3.Error) as exc:
            raise SnapshotUnavailableError(
                "Could not read production line capacity"
            ) from exc
        return CapacitySnapshot(
            lines=tuple(
                replace(line, current_load=loads.get(line.id, 0)) for line in lines
            )
        )


# ----------------------------------------------------------------------
# Commit adapter
# ----------------------------------------------------------------------
class CommitAdapter(Protocol):
    def create_fabrication_order(
        self, order: CandidateOrder, line_id: str
    ) -> FabricationOrder:
        ...


class RepositoryCommitAdapter:
    """Persists placed orders as pending fabrication orders."""

    def __init__(self, order_repo: InMemoryRepository[FabricationOrder]) -> None:
        self._orders = order_repo

    def create_fabrication_order(
        self, order: CandidateOrder, line_id: str
    ) -> FabricationOrder:
        record = FabricationOrder(
            id=str(uuid4()),
            customer=order.customer,
            priority=order.priority,
            line_id=line_id,
            status=FabricationOrderStatus.PENDING,
            sap_id=order.sap_id,
        )
        try:
            self._orders.add(record)
        except (RepositoryError, sqlite3.Error) as exc:
            raise CommitError(str(exc)) from exc
        return record


# ----------------------------------------------------------------------
# Sequencer
# ----------------------------------------------------------------------
class Sequencer:
    """Greedy single-pass assignment of candidate orders to production lines.

    Orders are taken by descending priority (ties keep their submitted
    order) and each one goes to the least-loaded line that still has a free
    slot. Every full line seen while placing an order is reported as a
    ``CAPACITY_EXCEEDED`` warning for that order. The start of a placement
    assumes every slot ahead of it on the line takes as long as the order
    itself.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock

    def sequence(
        self,
        candidates: Sequence[CandidateOrder],
        snapshot: CapacitySnapshot,
        *,
        auto_commit: bool = False,
        commit: Optional[CommitAdapter] = None,
    ) -> SequenceResult:
        if auto_commit and commit is None:
            raise ValueError("auto_commit requires a commit adapter")
        committer = commit if auto_commit else None
        now = self._clock()
        line_load: Dict[str, int] = {
            line.id: line.current_load for line in snapshot.lines
        }
        ordered = sorted(candidates, key=lambda order: order.priority, reverse=True)
        sequence: List[AssignmentEntry] = []
        conflicts: List[Conflict] = []

        for order in ordered:
            if not order.materials_available:
                conflicts.append(
                    Conflict.of(
                        ConflictType.MATERIALS_UNAVAILABLE,
                        f"Order {order.customer} has no materials available",
                        order.id,
                    )
                )
                continue

            selected: Optional[ProductionLine] = None
            min_load = math.inf
            for line in snapshot.lines:
                load = line_load[line.id]
                if load >= line.capacity:
                    conflicts.append(
                        Conflict.of(
                            ConflictType.CAPACITY_EXCEEDED,
                            f"Line {line.name} has no free capacity",
                            order.id,
                        )
                    )
                    continue
                if load < min_load:
                    min_load = load
                    selected = line

            if selected is None:
                conflicts.append(
                    Conflict.of(
                        ConflictType.NO_LINE_AVAILABLE,
                        f"No production line available for order {order.customer}",
                        order.id,
                    )
                )
                continue

            queued = line_load[selected.id]
            try:
                start = now + timedelta(hours=queued * order.estimated_hours)
                end = start + timedelta(hours=order.estimated_hours)
            except (OverflowError, ValueError):
                conflicts.append(
                    Conflict.of(
                        ConflictType.INVALID_ORDER,
                        f"Order {order.customer} has an estimated duration out of "
                        f"range: {order.estimated_hours!r} hours",
                        order.id,
                    )
                )
                continue
            entry = AssignmentEntry(
                order_id=order.id,
                line_id=selected.id,
                position=queued + 1,
                estimated_start=start,
                estimated_end=end,
            )
            sequence.append(entry)
            line_load[selected.id] = queued + 1

            if committer is not None:
                conflict = self._commit(committer, order, selected.id)
                if conflict is not None:
                    conflicts.append(conflict)

        metrics = self._metrics(
            len(candidates), sequence, snapshot, line_load, now
        )
        return SequenceResult(sequence=sequence, conflicts=conflicts, metrics=metrics)

    @staticmethod
    def _commit(
        commit: CommitAdapter, order: CandidateOrder, line_id: str
    ) -> Optional[Conflict]:
        try:
            record = commit.create_fabrication_order(order, line_id)
        except CommitError as exc:
            logger.warning(
                "Could not create fabrication order for %s: %s", order.id, exc
            )
            return Conflict.of(
                ConflictType.OF_CREATION_FAILED,
                f"Could not create fabrication order for {order.customer}: {exc}",
                order.id,
            )
        logger.info("Fabrication order %s created for order %s", record.id, order.id)
        return None

    @staticmethod
    def _metrics(
        total_orders: int,
        sequence: Sequence[AssignmentEntry],
        snapshot: CapacitySnapshot,
        line_load: Dict[str, int],
        now: datetime,
    ) -> SequenceMetrics:
        if sequence:
            waits = [
                (entry.estimated_start - now).total_seconds() / 3600
                for entry in sequence
            ]
            avg_wait = sum(waits) / len(waits)
            completion = max(entry.estimated_end for entry in sequence)
        else:
            avg_wait = 0.0
            completion = now

        total_capacity = snapshot.total_capacity
        if total_capacity <= 0:
            utilization = 0.0
        else:
            utilization = 100.0 * sum(line_load.values()) / total_capacity
            utilization = min(max(utilization, 0.0), 100.0)

        return SequenceMetrics(
            total_orders=total_orders,
            avg_wait_time=_round_one_decimal(avg_wait),
            capacity_utilization=_round_one_decimal(utilization),
            estimated_completion=completion,
        )


# ----------------------------------------------------------------------
# Service facade
# ----------------------------------------------------------------------
class SequencingService:
    """Facade that exposes sequencing and line master data to clients."""

    def __init__(
        self,
        line_repo: Optional[InMemoryRepository[ProductionLine]] = None,
        fabrication_order_repo: Optional[InMemoryRepository[FabricationOrder]] = None,
        *,
        snapshot_loader: Optional[SnapshotLoader] = None,
        commit_adapter: Optional[CommitAdapter] = None,
        clock: Callable[[], datetime] = _utcnow,
        options: Optional[SequencingOptions] = None,
    ) -> None:
        # empty repositories are falsy, so test against None explicitly
        self.lines = line_repo if line_repo is not None else InMemoryRepository()
        self.fabrication_orders = (
            fabrication_order_repo
            if fabrication_order_repo is not None
            else InMemoryRepository()
        )
        self.options = options or SequencingOptions()
        self.sequencer = Sequencer(clock)
        self.commit_adapter = commit_adapter or RepositoryCommitAdapter(
            self.fabrication_orders
        )
        self._snapshot_loader = snapshot_loader

    @property
    def snapshot_loader(self) -> SnapshotLoader:
        if self._snapshot_loader is not None:
            return self._snapshot_loader
        return RepositorySnapshotLoader(
            self.lines,
            self.fabrication_orders,
            active_statuses=self.options.active_order_statuses,
        )

    def update_options(
        self,
        *,
        default_estimated_hours: float,
        active_order_statuses: Optional[Sequence[FabricationOrderStatus]] = None,
    ) -> SequencingOptions:
        if default_estimated_hours <= 0:
            raise ValueError("Default estimated hours must be positive")
        self.options = SequencingOptions(
            default_estimated_hours=default_estimated_hours,
            active_order_statuses=tuple(
                dict.fromkeys(active_order_statuses or ACTIVE_ORDER_STATUSES)
            ),
        )
        return self.options

    # ------------------------------------------------------------------
    # Sequencing
    # ------------------------------------------------------------------
    def parse_orders(
        self, payloads: Sequence[Any]
    ) -> Tuple[List[CandidateOrder], List[Conflict]]:
        """Split request entries into candidates and ``INVALID_ORDER`` conflicts."""

        candidates: List[CandidateOrder] = []
        rejected: List[Conflict] = []
        seen: set[str] = set()
        for index, payload in enumerate(payloads):
            try:
                order = CandidateOrder.from_mapping(
                    payload,
                    index=index,
                    default_estimated_hours=self.options.default_estimated_hours,
                )
                if order.id in seen:
                    raise InvalidOrderError(
                        f"Order {order.id} was submitted more than once", order.id
                    )
            except InvalidOrderError as exc:
                rejected.append(
                    Conflict.of(ConflictType.INVALID_ORDER, str(exc), exc.order_ref)
                )
                continue
            seen.add(order.id)
            candidates.append(order)
        return candidates, rejected

    def sequence_orders(
        self, payloads: Sequence[Any], *, auto_create: bool = False
    ) -> SequenceResult:
        """Sequence submitted orders against the current line capacity.

        Raises ``SnapshotUnavailableError`` when line capacity cannot be read;
        every per-order problem is reported as a conflict instead.
        """

        logger.info(
            "Sequencing %d orders (auto_create: %s)", len(payloads), auto_create
        )
        candidates, rejected = self.parse_orders(payloads)
        snapshot = self.snapshot_loader.load()
        result = self.sequencer.sequence(
            candidates,
            snapshot,
            auto_commit=auto_create,
            commit=self.commit_adapter,
        )
        if rejected:
            result.conflicts[:0] = rejected
            result.metrics = replace(result.metrics, total_orders=len(payloads))
        logger.info(
            "Sequencing complete: %d/%d assigned, %d conflicts",
            len(result.sequence),
            result.metrics.total_orders,
            len(result.conflicts),
        )
        return result

    # ------------------------------------------------------------------
    # Production lines
    # ------------------------------------------------------------------
    def register_line(
        self, name: str, capacity: int, *, status: LineStatus = LineStatus.ACTIVE
    ) -> ProductionLine:
        if not name or not name.strip():
            raise ValueError("A production line needs a name")
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 0:
            raise ValueError("Line capacity must be a non-negative integer")
        line = ProductionLine(
            id=str(uuid4()), name=name.strip(), capacity=capacity, status=status
        )
        self.lines.add(line)
        return line

    def update_line_status(self, line_id: str, status: LineStatus) -> ProductionLine:
        line = self.lines.get(line_id)
        line.status = status
        self.lines.upsert(line)
        return line

    def line_loads(self) -> List[ProductionLine]:
        """Every line, active or not, with its current number of occupied slots."""

        loads = count_active_orders(
            self.fabrication_orders.list(), self.options.active_order_statuses
        )
        return [
            replace(line, current_load=loads.get(line.id, 0))
            for line in self.lines.list()
        ]

    # ------------------------------------------------------------------
    # Fabrication orders
    # ------------------------------------------------------------------
    def create_fabrication_order(
        self,
        customer: str,
        line_id: Optional[str],
        *,
        priority: int = 0,
        sap_id: Optional[str] = None,
        status: FabricationOrderStatus = FabricationOrderStatus.PENDING,
    ) -> FabricationOrder:
        if line_id is not None and line_id not in self.lines:
            raise RecordNotFoundError(f"Production line {line_id!r} does not exist")
        order = FabricationOrder(
            id=str(uuid4()),
            customer=customer,
            priority=priority,
            line_id=line_id,
            status=status,
            sap_id=sap_id,
        )
        self.fabrication_orders.add(order)
        return order

    def list_fabrication_orders(
        self, *, line_id: Optional[str] = None
    ) -> List[FabricationOrder]:
        if line_id is None:
            return self.fabrication_orders.list()
        return self.fabrication_orders.filter(lambda order: order.line_id == line_id)

    def update_fabrication_order_status(
        self, order_id: str, status: FabricationOrderStatus
    ) -> FabricationOrder:
        order = self.fabrication_orders.get(order_id)
        order.status = status
        self.fabrication_orders.upsert(order)
        return order


__all__ = [
    "SequencingService",
    "SequencingOptions",
    "Sequencer",
    "CapacitySnapshot",
    "SnapshotLoader",
    "RepositorySnapshotLoader",
    "CommitAdapter",
    "RepositoryCommitAdapter",
    "SequencingError",
    "SnapshotUnavailableError",
    "CommitError",
    "count_active_orders",
    "ACTIVE_ORDER_STATUSES",
]
