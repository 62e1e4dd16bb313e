"""
Reconciliation Service
Background passes that log missed doses, emit due-now reminders and reset
daily taken state
"""

import logging
from contextlib import nullcontext
from typing import Any, Callable, ContextManager, Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime
from sqlalchemy.orm import Session

from database import get_db_context
import models
from actions.reminder_engine import ReminderEngine, reminder_engine as default_reminder_engine
from services.medication_repository import MedicationRepository, medication_repository
from tools.dose_reconciler import (
    DoseReconciler,
    DueDoseEvent,
    MedicationSnapshot,
    MissedDose,
    dose_reconciler,
)


logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """Summary of one missed-dose / due-now pass"""
    triggered_count: int = 0
    missed_count: int = 0
    failed_count: int = 0
    medications_checked: int = 0
    due_events: List[DueDoseEvent] = field(default_factory=list)
    updated_medications: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "triggered_count": self.triggered_count,
            "missed_count": self.missed_count,
            "failed_count": self.failed_count,
            "medications_checked": self.medications_checked,
            "due_events": [e.to_dict() for e in self.due_events],
            "updated_medications": list(self.updated_medications)
        }


@dataclass
class ResetResult:
    """Summary of one daily reset pass"""
    reset_count: int = 0
    medications_updated: int = 0
    failed_count: int = 0
    medications_checked: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reset_count": self.reset_count,
            "medications_updated": self.medications_updated,
            "failed_count": self.failed_count,
            "medications_checked": self.medications_checked
        }


class ReconciliationService:
    """
    Drives the dose reconciler over stored medications.

    Each medication is reconciled in its own versioned write, so a failure
    on one medication is logged and counted without aborting the pass.
    """

    def __init__(
        self,
        reconciler: Optional[DoseReconciler] = None,
        repository: Optional[MedicationRepository] = None,
        reminder_engine: Optional[ReminderEngine] = None,
        session_scope: Optional[Callable[[], ContextManager[Session]]] = None
    ):
        self.reconciler = reconciler or dose_reconciler
        self.clock = self.reconciler.clock
        self.repository = repository or medication_repository
        self.reminder_engine = reminder_engine or default_reminder_engine
        self.session_scope = session_scope or get_db_context

    def _resolve_now(self, now: Optional[datetime]) -> datetime:
        return self.clock.localize(now) if now is not None else self.clock.now()

    def _append_missed(self, medication: models.Medication, missed: List[MissedDose]):
        for dose in missed:
            medication.log_entries.append(models.ReminderLogEntry(
                for_date=self.clock.to_storage(dose.for_date),
                dose_date=dose.dose_date,
                time_of_day=dose.time_of_day,
                status=models.DoseStatus.MISSED
            ))

    def _reconcile_medication(
        self,
        session: Session,
        medication_id: int,
        now: datetime
    ) -> Tuple[Optional[models.Medication], List[DueDoseEvent], List[MissedDose]]:
        due_now: List[DueDoseEvent] = []

        def mutator(medication: models.Medication) -> List[MissedDose]:
            snapshot = MedicationSnapshot.from_model(medication)
            result = self.reconciler.reconcile(snapshot, now)
            due_now[:] = result.due_now
            self._append_missed(medication, result.missed)
            return result.missed

        medication, missed = self.repository.atomic_update(
            session,
            lambda s: self.repository.find_medication(s, medication_id, active_only=True),
            mutator
        )
        return medication, due_now, missed or []

    def _detect_missed(
        self,
        session: Session,
        medication_ids: List[int],
        now: datetime,
        result: TickResult
    ):
        for medication_id in medication_ids:
            try:
                medication, due_now, missed = self._reconcile_medication(session, medication_id, now)
            except Exception as e:
                session.rollback()
                result.failed_count += 1
                logger.warning(f"Reconciliation failed for medication {medication_id}: {e}")
                continue

            if medication is None:
                # Deleted or deactivated since the batch was loaded
                continue

            result.due_events.extend(due_now)
            if missed:
                result.missed_count += len(missed)
                result.updated_medications.append(medication.name)
                for dose in missed:
                    logger.info(f"Marked missed: {medication.name} at {dose.time_of_day}")

    def run_minute_tick(self, now: Optional[datetime] = None) -> TickResult:
        """
        Frequent pass over all active medications.

        Emits due-now events to the reminder engine and appends any newly
        missed entries. Safe to run repeatedly: a second run with no state
        change writes nothing.
        """
        now = self._resolve_now(now)
        result = TickResult()

        with self.session_scope() as session:
            medication_ids = [m.id for m in self.repository.find_active_medications(session)]
            result.medications_checked = len(medication_ids)
            self._detect_missed(session, medication_ids, now, result)

        result.triggered_count = len(result.due_events)
        if result.due_events:
            logger.info(
                f"{result.triggered_count} reminder(s) triggered at "
                f"{self.clock.wall_clock(now)}"
            )
            self.reminder_engine.dispatch(result.due_events)

        if result.missed_count:
            logger.info(f"Logged {result.missed_count} missed dose(s)")
        if result.failed_count:
            logger.warning(f"Minute tick finished with {result.failed_count} failed medication(s)")

        return result

    def check_missed_for_owner(
        self,
        owner_id: str,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> TickResult:
        """Missed-dose detection limited to one owner's active medications"""
        now = self._resolve_now(now)
        result = TickResult()

        with (nullcontext(db) if db is not None else self.session_scope()) as session:
            medication_ids = [
                m.id for m in self.repository.find_owner_medications(session, owner_id, active_only=True)
            ]
            result.medications_checked = len(medication_ids)
            self._detect_missed(session, medication_ids, now, result)

        # Due-now events are only emitted by the scheduled tick
        result.due_events = []
        logger.info(f"Checked missed doses for owner {owner_id}: {result.missed_count} found")
        return result

    def run_daily_reset(self, now: Optional[datetime] = None) -> ResetResult:
        """
        Clear taken state on every slot of every active medication.

        Only medications with at least one dirty slot are written, so a
        second run on the same day is a no-op.
        """
        now = self._resolve_now(now)
        result = ResetResult()

        def mutator(medication: models.Medication) -> int:
            cleared = 0
            for slot in medication.slots:
                if slot.taken_today or slot.taken_at is not None:
                    slot.taken_today = False
                    slot.taken_at = None
                    cleared += 1
                    logger.debug(f"Reset: {medication.name} - slot {slot.position + 1} ({slot.time_of_day})")
            return cleared

        with self.session_scope() as session:
            medication_ids = [m.id for m in self.repository.find_active_medications(session)]
            result.medications_checked = len(medication_ids)

            for medication_id in medication_ids:
                try:
                    _, cleared = self.repository.atomic_update(
                        session,
                        lambda s, mid=medication_id: self.repository.find_medication(s, mid, active_only=True),
                        mutator
                    )
                except Exception as e:
                    session.rollback()
                    result.failed_count += 1
                    logger.warning(f"Daily reset failed for medication {medication_id}: {e}")
                    continue

                if cleared:
                    result.reset_count += cleared
                    result.medications_updated += 1

        logger.info(
            f"Daily reset for {self.clock.local_date(now).isoformat()} completed: "
            f"{result.reset_count} slot(s) reset across {result.medications_updated} medication(s)"
        )
        if result.failed_count:
            logger.warning(f"Daily reset finished with {result.failed_count} failed medication(s)")

        return result


# Singleton instance
reconciliation_service = ReconciliationService()
