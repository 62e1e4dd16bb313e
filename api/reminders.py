"""
Reminders API Router
Endpoints for upcoming reminders, reminder history and adherence stats
"""

from typing import Optional
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_owner_id, services
from api.schemas.reminder import (
    UpcomingReminder,
    UpcomingReminderList,
    HistoryEntry,
    HistoryList,
    AdherenceStats,
    DueReminder,
    DueReminderList,
    MissedCheckResponse,
)


router = APIRouter(prefix="/reminders", tags=["reminders"])


@router.get("/upcoming", response_model=UpcomingReminderList)
async def get_upcoming_reminders(
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db)
):
    """
    All dose slots of the user's active medications, ordered by time
    """
    reminder_service = services.get_reminder_service()
    reminders = await reminder_service.get_upcoming(owner_id, db=db)
    return UpcomingReminderList(reminders=[UpcomingReminder(**r) for r in reminders])


@router.get("/history", response_model=HistoryList)
async def get_reminder_history(
    start_date: Optional[datetime] = Query(None, description="Only entries on or after this instant"),
    end_date: Optional[datetime] = Query(None, description="Only entries on or before this instant"),
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db)
):
    """
    Reminder log across all of the user's medications, newest first
    """
    reminder_service = services.get_reminder_service()
    clock = reminder_service.clock
    if start_date and end_date and clock.assume_local(start_date) > clock.assume_local(end_date):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date must not be after end_date"
        )

    history = await reminder_service.get_history(owner_id, start=start_date, end=end_date, db=db)
    return HistoryList(history=[HistoryEntry(**h) for h in history])


@router.get("/stats", response_model=AdherenceStats)
async def get_adherence_stats(
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db)
):
    """
    Taken, missed and skipped counts with the adherence rate
    """
    reminder_service = services.get_reminder_service()
    return AdherenceStats(**await reminder_service.get_stats(owner_id, db=db))


@router.get("/due", response_model=DueReminderList)
async def get_due_reminders(
    owner_id: str = Depends(get_current_owner_id)
):
    """
    Due-now reminders recently emitted by the background tick
    """
    reminder_engine = services.get_reminder_engine()
    events = reminder_engine.get_recent_events(owner_id)
    return DueReminderList(reminders=[
        DueReminder(
            medication_id=e.medication_id,
            name=e.name,
            dosage=e.dosage,
            time_of_day=e.time_of_day,
            due_at=e.due_at
        ) for e in events
    ])


@router.post("/check-missed", response_model=MissedCheckResponse)
async def check_missed_doses(
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db)
):
    """
    Run missed-dose detection now for the user's active medications
    """
    reconciliation_service = services.get_reconciliation_service()
    result = reconciliation_service.check_missed_for_owner(owner_id, db=db)

    return MissedCheckResponse(
        message="Missed doses checked",
        missed_count=result.missed_count,
        failed_count=result.failed_count,
        updated_medications=result.updated_medications
    )
