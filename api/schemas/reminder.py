"""
Reminder Schemas
Pydantic models for reminder views, history and reconciliation results
"""

from typing import Optional, List
from datetime import datetime, date
from pydantic import BaseModel


class UpcomingReminder(BaseModel):
    """One slot of an active medication"""
    medication_id: int
    medication_name: str
    dosage: str
    time: str
    taken: bool
    schedule_index: int
    state: str  # not_due, due, taken, missed


class UpcomingReminderList(BaseModel):
    reminders: List[UpcomingReminder]


class HistoryEntry(BaseModel):
    """A reminder log entry with its medication"""
    id: int
    medication_id: int
    medication_name: str
    dosage: str
    for_date: datetime
    dose_date: date
    time: str
    status: str
    logged_at: Optional[datetime] = None


class HistoryList(BaseModel):
    history: List[HistoryEntry]


class AdherenceStats(BaseModel):
    """Counts over the reminder log of active medications"""
    total_doses: int
    taken_doses: int
    missed_doses: int
    skipped_doses: int
    adherence_rate: float
    active_medications: int


class DueReminder(BaseModel):
    """A due-now event recently handed to the reminder engine"""
    medication_id: int
    name: str
    dosage: str
    time_of_day: str
    due_at: datetime


class DueReminderList(BaseModel):
    reminders: List[DueReminder]


class MissedCheckResponse(BaseModel):
    """Outcome of an on-demand missed-dose check"""
    message: str
    missed_count: int
    failed_count: int
    updated_medications: List[str]
