"""Core data structures for the production order sequencing engine."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from numbers import Real
from typing import Any, Dict, List, Mapping, Optional, Tuple

DEFAULT_ESTIMATED_HOURS = 8.0


class LineStatus(str, Enum):
    """Operating states of a production line."""

    ACTIVE = "active"
    PAUSED = "paused"
    ERROR = "error"


class FabricationOrderStatus(str, Enum):
    """Lifecycle stages for a persisted fabrication order."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    VALIDATED = "validated"
    DELIVERED = "delivered"


class ConflictType(str, Enum):
    """Reasons an order could not be placed, or its placement not persisted."""

    MATERIALS_UNAVAILABLE = "MATERIALS_UNAVAILABLE"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    NO_LINE_AVAILABLE = "NO_LINE_AVAILABLE"
    OF_CREATION_FAILED = "OF_CREATION_FAILED"
    INVALID_ORDER = "INVALID_ORDER"


class ConflictSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


CONFLICT_SEVERITIES: Mapping[ConflictType, ConflictSeverity] = {
    ConflictType.MATERIALS_UNAVAILABLE: ConflictSeverity.CRITICAL,
    ConflictType.CAPACITY_EXCEEDED: ConflictSeverity.WARNING,
    ConflictType.NO_LINE_AVAILABLE: ConflictSeverity.CRITICAL,
    ConflictType.OF_CREATION_FAILED: ConflictSeverity.WARNING,
    ConflictType.INVALID_ORDER: ConflictSeverity.CRITICAL,
}


class InvalidOrderError(ValueError):
    """Raised when a submitted order cannot be turned into a candidate."""

    def __init__(self, message: str, order_ref: str) -> None:
        super().__init__(message)
        self.order_ref = order_ref


def _isoformat(value: datetime) -> str:
    return value.isoformat()


@dataclass(slots=True)
class CandidateOrder:
    """A unit of production work awaiting assignment to a line."""

    id: str
    customer: str
    priority: float = 0
    estimated_hours: float = DEFAULT_ESTIMATED_HOURS
    required_capacity: int = 1
    materials_available: bool = False
    sap_id: Optional[str] = None

    @classmethod
    def from_mapping(
        cls,
        data: Any,
        *,
        index: int = 0,
        default_estimated_hours: float = DEFAULT_ESTIMATED_HOURS,
    ) -> "CandidateOrder":
        """Build a candidate from a request payload entry.

        ``index`` is only used to name the entry in error messages when it
        carries no usable id.
        """

        fallback_ref = f"order[{index}]"
        if not isinstance(data, Mapping):
            raise InvalidOrderError("Order entry must be an object", fallback_ref)

        raw_id = data.get("id")
        order_id = str(raw_id).strip() if raw_id is not None else ""
        if not order_id:
            raise InvalidOrderError("Order is missing an id", fallback_ref)

        customer = data.get("customer")
        if not isinstance(customer, str) or not customer.strip():
            raise InvalidOrderError(
                f"Order {order_id} is missing a customer", order_id
            )

        priority = _number(data.get("priority"), 0, "priority", order_id)
        estimated_hours = _number(
            data.get("estimated_hours"),
            default_estimated_hours,
            "estimated_hours",
            order_id,
        )
        required_capacity = _number(
            data.get("required_capacity"), 1, "required_capacity", order_id
        )
        sap_id = data.get("sap_id")
        return cls(
            id=order_id,
            customer=customer.strip(),
            priority=priority,
            estimated_hours=float(estimated_hours),
            required_capacity=int(required_capacity),
            materials_available=bool(data.get("materials_available", False)),
            sap_id=str(sap_id) if sap_id not in (None, "") else None,
        )


def _number(value: Any, default: float, field_name: str, order_id: str) -> float:
    if value is None:
        return default
    # bool is a Real subclass; "true" as a duration is a client bug
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidOrderError(
            f"Order {order_id} has a non-numeric {field_name}: {value!r}", order_id
        )
    if not math.isfinite(value):
        raise InvalidOrderError(
            f"Order {order_id} has a non-finite {field_name}: {value!r}", order_id
        )
    return value


@dataclass(slots=True)
class ProductionLine:
    """A finite-capacity resource that processes orders slot by slot."""

    id: str
    name: str
    capacity: int
    status: LineStatus = LineStatus.ACTIVE
    current_load: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "capacity": self.capacity,
            "status": self.status.value,
            "current_load": self.current_load,
        }


@dataclass(slots=True)
class FabricationOrder:
    """A persisted order record occupying a slot on a line."""

    id: str
    customer: str
    priority: float
    line_id: Optional[str]
    status: FabricationOrderStatus = FabricationOrderStatus.PENDING
    sap_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "customer": self.customer,
            "priority": self.priority,
            "line_id": self.line_id,
            "status": self.status.value,
            "sap_id": self.sap_id,
            "created_at": _isoformat(self.created_at),
        }


@dataclass(frozen=True, slots=True)
class AssignmentEntry:
    """One scheduled placement of an order on a line."""

    order_id: str
    line_id: str
    position: int
    estimated_start: datetime
    estimated_end: datetime

    def as_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "line_id": self.line_id,
            "position": self.position,
            "estimated_start": _isoformat(self.estimated_start),
            "estimated_end": _isoformat(self.estimated_end),
        }


@dataclass(frozen=True, slots=True)
class Conflict:
    """Why an order could not be (fully) placed."""

    type: ConflictType
    severity: ConflictSeverity
    message: str
    affected_orders: Tuple[str, ...]

    @classmethod
    def of(cls, conflict_type: ConflictType, message: str, *order_ids: str) -> "Conflict":
        return cls(
            type=conflict_type,
            severity=CONFLICT_SEVERITIES[conflict_type],
            message=message,
            affected_orders=tuple(order_ids),
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "affected_orders": list(self.affected_orders),
        }


@dataclass(frozen=True, slots=True)
class SequenceMetrics:
    """Aggregate summary of one sequencing run."""

    total_orders: int
    avg_wait_time: float
    capacity_utilization: float
    estimated_completion: datetime

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_orders": self.total_orders,
            "avg_wait_time": self.avg_wait_time,
            "capacity_utilization": self.capacity_utilization,
            "estimated_completion": _isoformat(self.estimated_completion),
        }


@dataclass(slots=True)
class SequenceResult:
    """Plan, conflicts and metrics returned by a sequencing run."""

    sequence: List[AssignmentEntry]
    conflicts: List[Conflict]
    metrics: SequenceMetrics

    def as_dict(self) -> Dict[str, Any]:
        return {
            "sequence": [entry.as_dict() for entry in self.sequence],
            "conflicts": [conflict.as_dict() for conflict in self.conflicts],
            "metrics": self.metrics.as_dict(),
        }


__all__ = [
    "DEFAULT_ESTIMATED_HOURS",
    "LineStatus",
    "FabricationOrderStatus",
    "ConflictType",
    "ConflictSeverity",
    "CONFLICT_SEVERITIES",
    "InvalidOrderError",
    "CandidateOrder",
    "ProductionLine",
    "FabricationOrder",
    "AssignmentEntry",
    "Conflict",
    "SequenceMetrics",
    "SequenceResult",
]
