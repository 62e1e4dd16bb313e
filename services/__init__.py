"""
Services Module
Business logic layer for the DoseTrack application
"""

from services.errors import (
    DoseTrackError,
    MedicationNotFound,
    InvalidSlotIndex,
    PersistenceFailure,
    ConcurrentModification,
)
from services.medication_repository import MedicationRepository, medication_repository
from services.medication_service import MedicationService, medication_service
from services.reminder_service import ReminderService, reminder_service
from services.reconciliation_service import (
    ReconciliationService,
    TickResult,
    ResetResult,
    reconciliation_service,
)
from services.reconciliation_scheduler import ReconciliationScheduler


__all__ = [
    # Errors
    "DoseTrackError",
    "MedicationNotFound",
    "InvalidSlotIndex",
    "PersistenceFailure",
    "ConcurrentModification",
    # Service classes
    "MedicationRepository",
    "MedicationService",
    "ReminderService",
    "ReconciliationService",
    "ReconciliationScheduler",
    "TickResult",
    "ResetResult",
    # Singleton instances
    "medication_repository",
    "medication_service",
    "reminder_service",
    "reconciliation_service",
]
