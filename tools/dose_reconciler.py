"""
Dose Reconciler
Decides which scheduled doses are due now and which have been missed
"""

import logging
from typing import Dict, List, Optional, Any, Iterable, Set, Tuple
from dataclasses import dataclass, field
from datetime import datetime, date, timedelta
from enum import Enum

from config import settings
from models import DoseStatus
from tools.clock import ReferenceClock


logger = logging.getLogger(__name__)


class SlotState(str, Enum):
    """Where a slot stands for the current calendar day"""
    NOT_DUE = "not_due"
    DUE = "due"             # Due, still within the grace period
    TAKEN = "taken"
    MISSED = "missed"       # Grace period expired without being taken


@dataclass(frozen=True)
class SlotSnapshot:
    """A single daily dose slot"""
    time_of_day: str
    taken_today: bool = False
    taken_at: Optional[datetime] = None


@dataclass(frozen=True)
class LogEntrySnapshot:
    """A reminder log entry as seen by the reconciler"""
    for_date: datetime
    time_of_day: str
    status: DoseStatus


@dataclass
class MedicationSnapshot:
    """In-memory view of a medication, its slots and its log"""
    medication_id: int
    owner_id: str
    name: str
    dosage: str
    slots: List[SlotSnapshot] = field(default_factory=list)
    log: List[LogEntrySnapshot] = field(default_factory=list)
    active: bool = True

    @classmethod
    def from_model(cls, medication) -> "MedicationSnapshot":
        """Copy the reconciliation-relevant fields off an ORM medication"""
        return cls(
            medication_id=medication.id,
            owner_id=medication.owner_id,
            name=medication.name,
            dosage=medication.dosage,
            active=bool(medication.active),
            slots=[
                SlotSnapshot(
                    time_of_day=slot.time_of_day,
                    taken_today=bool(slot.taken_today),
                    taken_at=slot.taken_at
                ) for slot in medication.slots
            ],
            log=[
                LogEntrySnapshot(
                    for_date=entry.for_date,
                    time_of_day=entry.time_of_day,
                    status=DoseStatus(entry.status)
                ) for entry in medication.log_entries
            ]
        )


@dataclass(frozen=True)
class MissedDose:
    """A missed entry the reconciler wants appended to the log"""
    time_of_day: str
    for_date: datetime      # nominal dose instant, reference timezone
    dose_date: date


@dataclass(frozen=True)
class DueDoseEvent:
    """Ephemeral due-now notification for one slot"""
    medication_id: int
    owner_id: str
    name: str
    dosage: str
    time_of_day: str
    due_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "medication_id": self.medication_id,
            "owner_id": self.owner_id,
            "name": self.name,
            "dosage": self.dosage,
            "time_of_day": self.time_of_day,
            "due_at": self.due_at.isoformat()
        }


@dataclass
class ReconciliationResult:
    """Outcome of reconciling one medication at one instant"""
    medication_id: int
    due_now: List[DueDoseEvent] = field(default_factory=list)
    missed: List[MissedDose] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.missed)


class DoseReconciler:
    """
    Pure reconciliation of dose slots against the current instant.

    A slot is overdue once now is strictly past its dose instant plus the
    grace period and it has not been taken today. Each overdue slot yields
    at most one missed entry per calendar day; the reconciler never touches
    slot taken state.
    """

    def __init__(
        self,
        clock: Optional[ReferenceClock] = None,
        grace_period: Optional[timedelta] = None
    ):
        self.clock = clock or ReferenceClock()
        self.grace_period = (
            grace_period if grace_period is not None
            else timedelta(minutes=settings.GRACE_PERIOD_MINUTES)
        )

    def dose_instant(self, time_of_day: str, now: datetime) -> datetime:
        """Today's occurrence of the slot, in the reference timezone"""
        return self.clock.combine(self.clock.local_date(now), time_of_day)

    def grace_end(self, time_of_day: str, now: datetime) -> datetime:
        return self.dose_instant(time_of_day, now) + self.grace_period

    def is_overdue(self, slot: SlotSnapshot, now: datetime) -> bool:
        if slot.taken_today:
            return False
        return self.clock.localize(now) > self.grace_end(slot.time_of_day, now)

    def _missed_index(self, log: Iterable[LogEntrySnapshot]) -> Set[Tuple[str, date]]:
        return {
            (entry.time_of_day, self.clock.local_date(entry.for_date))
            for entry in log
            if entry.status == DoseStatus.MISSED
        }

    def has_missed_entry(
        self,
        log: Iterable[LogEntrySnapshot],
        time_of_day: str,
        now: datetime
    ) -> bool:
        """Whether a missed entry for this slot time already exists on now's calendar day"""
        return (time_of_day, self.clock.local_date(now)) in self._missed_index(log)

    def find_missed_doses(
        self,
        medication: MedicationSnapshot,
        now: datetime
    ) -> List[MissedDose]:
        """Missed entries to append for this medication at this instant"""
        now = self.clock.localize(now)
        today = now.date()
        logged = self._missed_index(medication.log)

        missed = []
        for slot in medication.slots:
            if not self.is_overdue(slot, now):
                continue

            key = (slot.time_of_day, today)
            if key in logged:
                continue

            # Also guards against two slots sharing a time
            logged.add(key)
            missed.append(MissedDose(
                time_of_day=slot.time_of_day,
                for_date=self.dose_instant(slot.time_of_day, now),
                dose_date=today
            ))

        return missed

    def find_due_now(
        self,
        medication: MedicationSnapshot,
        now: datetime
    ) -> List[DueDoseEvent]:
        """Slots whose time of day equals the current wall-clock minute"""
        now = self.clock.localize(now)
        current = self.clock.wall_clock(now)

        return [
            DueDoseEvent(
                medication_id=medication.medication_id,
                owner_id=medication.owner_id,
                name=medication.name,
                dosage=medication.dosage,
                time_of_day=slot.time_of_day,
                due_at=self.dose_instant(slot.time_of_day, now)
            )
            for slot in medication.slots
            if slot.time_of_day == current
        ]

    def slot_state(
        self,
        slot: SlotSnapshot,
        log: Iterable[LogEntrySnapshot],
        now: datetime
    ) -> SlotState:
        """Classify a slot for display purposes"""
        if slot.taken_today:
            return SlotState.TAKEN

        now = self.clock.localize(now)
        if now < self.dose_instant(slot.time_of_day, now):
            return SlotState.NOT_DUE

        if self.is_overdue(slot, now) or self.has_missed_entry(log, slot.time_of_day, now):
            return SlotState.MISSED

        return SlotState.DUE

    def reconcile(
        self,
        medication: MedicationSnapshot,
        now: datetime
    ) -> ReconciliationResult:
        """Run due-now and missed-dose detection for one medication"""
        result = ReconciliationResult(medication_id=medication.medication_id)

        if not medication.active:
            return result

        result.due_now = self.find_due_now(medication, now)
        result.missed = self.find_missed_doses(medication, now)

        if result.missed:
            logger.debug(
                f"Medication {medication.medication_id}: "
                f"{len(result.missed)} newly missed dose(s)"
            )
        return result


# Singleton instance
dose_reconciler = DoseReconciler()
