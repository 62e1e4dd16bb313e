"""
Reminder Service
Read-side views over a user's schedule slots and reminder log
"""

import logging
from typing import Dict, List, Optional, Any
from datetime import datetime
from sqlalchemy.orm import Session

from database import get_db_context
import models
from services.medication_repository import MedicationRepository, medication_repository
from tools.dose_reconciler import DoseReconciler, LogEntrySnapshot, SlotSnapshot, dose_reconciler


logger = logging.getLogger(__name__)


class ReminderService:
    """
    Service for upcoming reminders, log history and adherence statistics
    """

    def __init__(
        self,
        repository: Optional[MedicationRepository] = None,
        reconciler: Optional[DoseReconciler] = None
    ):
        self.repository = repository or medication_repository
        self.reconciler = reconciler or dose_reconciler
        self.clock = self.reconciler.clock

    async def get_upcoming(
        self,
        owner_id: str,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[Dict[str, Any]]:
        """Every slot of the user's active medications, ordered by time of day"""
        now = self.clock.localize(now) if now is not None else self.clock.now()

        def _upcoming(session: Session) -> List[Dict[str, Any]]:
            reminders = []
            for medication in self.repository.find_owner_medications(session, owner_id, active_only=True):
                log = [
                    LogEntrySnapshot(for_date=e.for_date, time_of_day=e.time_of_day, status=models.DoseStatus(e.status))
                    for e in medication.log_entries
                ]
                for index, slot in enumerate(medication.slots):
                    state = self.reconciler.slot_state(
                        SlotSnapshot(slot.time_of_day, bool(slot.taken_today), slot.taken_at),
                        log,
                        now
                    )
                    reminders.append({
                        "medication_id": medication.id,
                        "medication_name": medication.name,
                        "dosage": medication.dosage,
                        "time": slot.time_of_day,
                        "taken": bool(slot.taken_today),
                        "schedule_index": index,
                        "state": state.value
                    })

            reminders.sort(key=lambda r: r["time"])
            return reminders

        if db:
            return _upcoming(db)

        with get_db_context() as session:
            return _upcoming(session)

    async def get_history(
        self,
        owner_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[Dict[str, Any]]:
        """
        All log entries across the user's medications, newest first

        Naive bounds are read as reference-local wall time.
        """
        start_utc = self.clock.to_storage(self.clock.assume_local(start)) if start is not None else None
        end_utc = self.clock.to_storage(self.clock.assume_local(end)) if end is not None else None

        def _history(session: Session) -> List[Dict[str, Any]]:
            entries = []
            for medication in self.repository.find_owner_medications(session, owner_id):
                for entry in medication.log_entries:
                    if start_utc is not None and entry.for_date < start_utc:
                        continue
                    if end_utc is not None and entry.for_date > end_utc:
                        continue
                    entries.append({
                        "id": entry.id,
                        "medication_id": medication.id,
                        "medication_name": medication.name,
                        "dosage": medication.dosage,
                        "for_date": entry.for_date,
                        "dose_date": entry.dose_date,
                        "time": entry.time_of_day,
                        "status": models.DoseStatus(entry.status).value,
                        "logged_at": entry.logged_at
                    })

            entries.sort(key=lambda e: (e["for_date"], e["id"]), reverse=True)
            return entries

        if db:
            return _history(db)

        with get_db_context() as session:
            return _history(session)

    async def get_stats(
        self,
        owner_id: str,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Adherence statistics over the log of the user's active medications

        Every entry counts on its own, so a dose logged missed and later
        taken contributes to both counts.
        """
        def _stats(session: Session) -> Dict[str, Any]:
            medications = self.repository.find_owner_medications(session, owner_id, active_only=True)

            counts = {status: 0 for status in models.DoseStatus}
            for medication in medications:
                for entry in medication.log_entries:
                    counts[models.DoseStatus(entry.status)] += 1

            total = sum(counts.values())
            taken = counts[models.DoseStatus.TAKEN]
            adherence_rate = round(taken / total * 100, 1) if total else 0.0

            return {
                "total_doses": total,
                "taken_doses": taken,
                "missed_doses": counts[models.DoseStatus.MISSED],
                "skipped_doses": counts[models.DoseStatus.SKIPPED],
                "adherence_rate": adherence_rate,
                "active_medications": len(medications)
            }

        if db:
            return _stats(db)

        with get_db_context() as session:
            return _stats(session)


# Singleton instance
reminder_service = ReminderService()
