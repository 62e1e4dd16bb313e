"""
Tools Package
Clock and reconciliation primitives for the DoseTrack system
"""

from .clock import (
    ReferenceClock,
    parse_time_of_day
)

from .dose_reconciler import (
    DoseReconciler,
    SlotState,
    SlotSnapshot,
    LogEntrySnapshot,
    MedicationSnapshot,
    MissedDose,
    DueDoseEvent,
    ReconciliationResult,
    dose_reconciler
)

__all__ = [
    # Clock
    "ReferenceClock",
    "parse_time_of_day",

    # Dose Reconciler
    "DoseReconciler",
    "SlotState",
    "SlotSnapshot",
    "LogEntrySnapshot",
    "MedicationSnapshot",
    "MissedDose",
    "DueDoseEvent",
    "ReconciliationResult",
    "dose_reconciler"
]
