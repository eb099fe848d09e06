"""Production order sequencing engine.

This package assigns batches of pending fabrication orders to production
lines with finite capacity, reporting the resulting plan, the conflicts that
prevented placements, and aggregate load metrics.
"""

from .domain import (
    AssignmentEntry,
    CandidateOrder,
    Conflict,
    ConflictSeverity,
    ConflictType,
    FabricationOrder,
    FabricationOrderStatus,
    LineStatus,
    ProductionLine,
    SequenceMetrics,
    SequenceResult,
)
from .services import (
    CapacitySnapshot,
    Sequencer,
    SequencingService,
    SnapshotUnavailableError,
)

__all__ = [
    "AssignmentEntry",
    "CandidateOrder",
    "Conflict",
    "ConflictSeverity",
    "ConflictType",
    "FabricationOrder",
    "FabricationOrderStatus",
    "LineStatus",
    "ProductionLine",
    "SequenceMetrics",
    "SequenceResult",
    "CapacitySnapshot",
    "Sequencer",
    "SequencingService",
    "SnapshotUnavailableError",
]
