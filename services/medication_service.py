"""
Medication Service
Business logic for medication management and the live mark-taken action
"""

import logging
from typing import Dict, List, Optional, Any
from collections import defaultdict
from datetime import datetime, date
from sqlalchemy.orm import Session

from database import get_db_context
import models
from services.errors import InvalidSlotIndex, MedicationNotFound
from services.medication_repository import MedicationRepository, medication_repository
from tools.clock import ReferenceClock, parse_time_of_day


logger = logging.getLogger(__name__)


EDITABLE_FIELDS = {"name", "dosage", "frequency", "notes", "active", "start_date", "end_date", "times"}


def _normalize_times(times: List[Any]) -> List[str]:
    if not times:
        raise ValueError("A medication needs at least one schedule time")
    return [parse_time_of_day(t) for t in times]


def _normalize_frequency(frequency: Any) -> models.MedicationFrequency:
    try:
        return models.MedicationFrequency(frequency)
    except ValueError:
        choices = ", ".join(f.value for f in models.MedicationFrequency)
        raise ValueError(f"Invalid frequency {frequency!r} (expected one of: {choices})")


class MedicationService:
    """
    Service for medication-related operations
    """

    def __init__(
        self,
        repository: Optional[MedicationRepository] = None,
        clock: Optional[ReferenceClock] = None
    ):
        self.repository = repository or medication_repository
        self.clock = clock or ReferenceClock()

    async def create_medication(
        self,
        owner_id: str,
        name: str,
        dosage: str,
        frequency: str,
        times: List[str],
        notes: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        active: bool = True,
        db: Optional[Session] = None
    ) -> models.Medication:
        """
        Add a new medication for a user

        Args:
            owner_id: Owning user
            name: Medication name
            dosage: Dosage (e.g., "500mg")
            frequency: once_daily, twice_daily, three_times or custom
            times: Daily dose times as "HH:MM"
            notes: Free-form notes
            start_date: Start date (default: today in the reference timezone)
            end_date: End date (if temporary)
            active: Whether reminders run for it
            db: Database session

        Returns:
            Created Medication object
        """
        slot_times = _normalize_times(times)
        frequency_value = _normalize_frequency(frequency)

        def _create(session: Session) -> models.Medication:
            medication = models.Medication(
                owner_id=owner_id,
                name=name,
                dosage=dosage,
                frequency=frequency_value,
                notes=notes,
                active=active,
                start_date=start_date or self.clock.local_date(self.clock.now()),
                end_date=end_date,
                slots=[
                    models.ScheduleSlot(position=i, time_of_day=t, taken_today=False)
                    for i, t in enumerate(slot_times)
                ]
            )
            self.repository.add_medication(session, medication)

            logger.info(
                f"Added medication {medication.id} ({name}) for owner {owner_id} "
                f"at {', '.join(slot_times)}"
            )
            return medication

        if db:
            return _create(db)

        with get_db_context() as session:
            return _create(session)

    async def list_medications(
        self,
        owner_id: str,
        active_only: bool = False,
        db: Optional[Session] = None
    ) -> List[models.Medication]:
        """All medications for a user, newest first"""
        def _list(session: Session) -> List[models.Medication]:
            return self.repository.find_owner_medications(session, owner_id, active_only=active_only)

        if db:
            return _list(db)

        with get_db_context() as session:
            return _list(session)

    async def get_medication(
        self,
        medication_id: int,
        owner_id: str,
        db: Optional[Session] = None
    ) -> models.Medication:
        """Get a medication owned by the user; raises MedicationNotFound"""
        def _get(session: Session) -> models.Medication:
            medication = self.repository.find_medication_by_id_and_owner(session, medication_id, owner_id)
            if medication is None:
                raise MedicationNotFound(medication_id, owner_id)
            return medication

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    def _apply_times(self, medication: models.Medication, slot_times: List[str]):
        """Replace the slot times, keeping taken state for times that survive"""
        previous = defaultdict(list)
        for slot in medication.slots:
            previous[slot.time_of_day].append((slot.taken_today, slot.taken_at))

        existing = list(medication.slots)
        for position, time_of_day in enumerate(slot_times):
            taken_today, taken_at = (
                previous[time_of_day].pop(0) if previous[time_of_day] else (False, None)
            )
            if position < len(existing):
                slot = existing[position]
                slot.time_of_day = time_of_day
                slot.taken_today = taken_today
                slot.taken_at = taken_at
            else:
                medication.slots.append(models.ScheduleSlot(
                    position=position,
                    time_of_day=time_of_day,
                    taken_today=taken_today,
                    taken_at=taken_at
                ))

        for slot in existing[len(slot_times):]:
            medication.slots.remove(slot)

    async def update_medication(
        self,
        medication_id: int,
        owner_id: str,
        updates: Dict[str, Any],
        db: Optional[Session] = None
    ) -> models.Medication:
        """
        Update medication fields

        Only name, dosage, frequency, notes, active, start_date, end_date
        and times can change. The reminder log is never modified.
        """
        unknown = set(updates) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        changes = dict(updates)
        if "times" in changes:
            changes["times"] = _normalize_times(changes["times"])
        if "frequency" in changes:
            changes["frequency"] = _normalize_frequency(changes["frequency"])

        def mutator(medication: models.Medication) -> bool:
            for key, value in changes.items():
                if key == "times":
                    self._apply_times(medication, value)
                else:
                    setattr(medication, key, value)
            return True

        def _update(session: Session) -> models.Medication:
            medication, _ = self.repository.atomic_update(
                session,
                lambda s: self.repository.find_medication_by_id_and_owner(s, medication_id, owner_id),
                mutator
            )
            if medication is None:
                raise MedicationNotFound(medication_id, owner_id)

            logger.info(f"Updated medication {medication_id}: {', '.join(sorted(changes))}")
            return medication

        if db:
            return _update(db)

        with get_db_context() as session:
            return _update(session)

    async def delete_medication(
        self,
        medication_id: int,
        owner_id: str,
        db: Optional[Session] = None
    ) -> bool:
        """Delete a medication together with its slots and log"""
        def _delete(session: Session) -> bool:
            medication = self.repository.find_medication_by_id_and_owner(session, medication_id, owner_id)
            if medication is None:
                raise MedicationNotFound(medication_id, owner_id)

            self.repository.delete_medication(session, medication)
            logger.info(f"Deleted medication {medication_id} for owner {owner_id}")
            return True

        if db:
            return _delete(db)

        with get_db_context() as session:
            return _delete(session)

    async def mark_dose_taken(
        self,
        medication_id: int,
        owner_id: str,
        slot_index: int,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.Medication:
        """
        Mark one slot as taken for today

        Sets the slot's taken flag and timestamp and appends a taken log
        entry in a single versioned write. Succeeds even when the slot was
        already logged as missed today; both entries are kept.

        Raises:
            MedicationNotFound: missing or owned by someone else
            InvalidSlotIndex: slot_index outside the schedule
            PersistenceFailure: the write failed; nothing was changed
        """
        now = self.clock.localize(now) if now is not None else self.clock.now()
        taken_at = self.clock.to_storage(now)

        def mutator(medication: models.Medication) -> bool:
            slot_count = len(medication.slots)
            if not 0 <= slot_index < slot_count:
                raise InvalidSlotIndex(medication_id, slot_index, slot_count)

            slot = medication.slots[slot_index]
            slot.taken_today = True
            slot.taken_at = taken_at
            medication.log_entries.append(models.ReminderLogEntry(
                for_date=taken_at,
                dose_date=now.date(),
                time_of_day=slot.time_of_day,
                status=models.DoseStatus.TAKEN
            ))
            return True

        def _mark(session: Session) -> models.Medication:
            medication, _ = self.repository.atomic_update(
                session,
                lambda s: self.repository.find_medication_by_id_and_owner(s, medication_id, owner_id),
                mutator
            )
            if medication is None:
                raise MedicationNotFound(medication_id, owner_id)

            logger.info(
                f"Dose taken: medication {medication_id} slot {slot_index} "
                f"at {self.clock.wall_clock(now)}"
            )
            return medication

        if db:
            return _mark(db)

        with get_db_context() as session:
            return _mark(session)


# Singleton instance
medication_service = MedicationService()
