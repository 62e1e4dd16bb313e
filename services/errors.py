"""
Service Errors
Exceptions raised by the DoseTrack service layer
"""


class DoseTrackError(Exception):
    """Base class for service-layer errors"""


class MedicationNotFound(DoseTrackError, LookupError):
    """Medication does not exist or is not owned by the caller"""

    def __init__(self, medication_id: int, owner_id: str):
        self.medication_id = medication_id
        self.owner_id = owner_id
        super().__init__(f"Medication {medication_id} not found")


class InvalidSlotIndex(DoseTrackError, IndexError):
    """Slot index is outside the medication's schedule"""

    def __init__(self, medication_id: int, slot_index: int, slot_count: int):
        self.medication_id = medication_id
        self.slot_index = slot_index
        self.slot_count = slot_count
        super().__init__(
            f"Slot index {slot_index} out of range for medication "
            f"{medication_id} ({slot_count} slot(s))"
        )


class PersistenceFailure(DoseTrackError):
    """Storage layer rejected or failed a write"""


class ConcurrentModification(PersistenceFailure):
    """Another writer changed the medication since it was loaded"""
