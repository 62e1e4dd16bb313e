"""
Medication Schemas
Pydantic models for medication-related API requests and responses
"""

from typing import Annotated, Optional, List
from datetime import datetime, date
from pydantic import BaseModel, Field, ConfigDict

from config import reconciliation_config


TimeOfDay = Annotated[str, Field(pattern=reconciliation_config.TIME_OF_DAY_PATTERN, examples=["08:00"])]
FREQUENCY_PATTERN = "^(" + "|".join(reconciliation_config.FREQUENCY_CHOICES) + ")$"


# ==================== BASE SCHEMAS ====================

class MedicationBase(BaseModel):
    """Base medication schema"""
    name: str = Field(..., min_length=1, max_length=255)
    dosage: str = Field(..., min_length=1, max_length=100)
    frequency: str = Field(..., pattern=FREQUENCY_PATTERN)


# ==================== REQUEST SCHEMAS ====================

class MedicationCreate(MedicationBase):
    """Schema for creating a new medication"""
    times: List[TimeOfDay] = Field(..., min_length=1, description="Daily dose times as HH:MM")
    notes: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    active: bool = True


class MedicationUpdate(BaseModel):
    """Schema for updating medication"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    dosage: Optional[str] = Field(None, min_length=1, max_length=100)
    frequency: Optional[str] = Field(None, pattern=FREQUENCY_PATTERN)
    times: Optional[List[TimeOfDay]] = Field(None, min_length=1)
    notes: Optional[str] = None
    active: Optional[bool] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class MarkTakenRequest(BaseModel):
    """Schema for marking a dose as taken"""
    slot_index: int = Field(..., description="Position of the slot in the medication's schedule")


# ==================== RESPONSE SCHEMAS ====================

class ScheduleSlotResponse(BaseModel):
    """One daily dose slot"""
    position: int
    time_of_day: str
    taken_today: bool = False
    taken_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LogEntryResponse(BaseModel):
    """One reminder log entry"""
    id: int
    for_date: datetime
    dose_date: date
    time_of_day: str
    status: str
    logged_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MedicationResponse(MedicationBase):
    """Schema for medication response"""
    id: int
    owner_id: str
    notes: Optional[str] = None
    active: bool = True
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    slots: List[ScheduleSlotResponse] = []
    log_entries: List[LogEntryResponse] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MedicationSummary(BaseModel):
    """Brief medication summary"""
    id: int
    name: str
    dosage: str
    frequency: str
    active: bool
    times: List[str] = []

    model_config = ConfigDict(from_attributes=True)


class MedicationList(BaseModel):
    """List of medications"""
    medications: List[MedicationSummary]
    total: int
    active_count: int
