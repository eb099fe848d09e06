"""Builders and doubles shared by the sequencing tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Tuple

from production_sequencing.domain import (
    CandidateOrder,
    FabricationOrder,
    LineStatus,
    ProductionLine,
)
from production_sequencing.services import CapacitySnapshot, CommitError

NOW = datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)


def make_line(
    line_id: str, capacity: int, current_load: int = 0, name: str = ""
) -> ProductionLine:
    return ProductionLine(
        id=line_id,
        name=name or f"Line {line_id}",
        capacity=capacity,
        status=LineStatus.ACTIVE,
        current_load=current_load,
    )


def make_order(
    order_id: str,
    priority: int = 5,
    estimated_hours: float = 4.0,
    materials_available: bool = True,
    customer: str = "",
) -> CandidateOrder:
    return CandidateOrder(
        id=order_id,
        customer=customer or f"Customer {order_id}",
        priority=priority,
        estimated_hours=estimated_hours,
        materials_available=materials_available,
    )


def snapshot_of(*lines: ProductionLine) -> CapacitySnapshot:
    return CapacitySnapshot(lines=tuple(lines), taken_at=NOW)


class RecordingCommitAdapter:
    """Records commit calls and fails for the order ids listed in ``failing``."""

    def __init__(self, failing: Tuple[str, ...] = ()) -> None:
        self.failing = set(failing)
        self.calls: List[Tuple[str, str]] = []

    def create_fabrication_order(
        self, order: CandidateOrder, line_id: str
    ) -> FabricationOrder:
        self.calls.append((order.id, line_id))
        if order.id in self.failing:
            raise CommitError("insert rejected by storage")
        return FabricationOrder(
            id=f"fo-{order.id}",
            customer=order.customer,
            priority=order.priority,
            line_id=line_id,
        )
