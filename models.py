"""
Database Models
SQLAlchemy ORM models for DoseTrack
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, Date, Enum, Index, UniqueConstraint, text
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum

from database import Base


# ==================== ENUMS ====================

class DoseStatus(str, PyEnum):
    """Outcome recorded for a scheduled dose"""
    TAKEN = "taken"
    MISSED = "missed"
    SKIPPED = "skipped"


class MedicationFrequency(str, PyEnum):
    """How often a medication is scheduled per day"""
    ONCE_DAILY = "once_daily"
    TWICE_DAILY = "twice_daily"
    THREE_TIMES = "three_times"
    CUSTOM = "custom"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ==================== MODELS ====================

class Medication(Base):
    """A user's medication with its daily dose slots and reminder log"""
    __tablename__ = "medications"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String(64), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    dosage = Column(String(100), nullable=False)  # e.g., "500mg"
    frequency = Column(
        Enum(MedicationFrequency, values_callable=_enum_values, name="medication_frequency"),
        nullable=False,
        default=MedicationFrequency.CUSTOM
    )
    notes = Column(Text)

    # Status
    active = Column(Boolean, nullable=False, default=True)
    start_date = Column(Date)
    end_date = Column(Date)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Optimistic concurrency counter, bumped on every write
    version = Column(Integer, nullable=False)

    # Relationships
    slots = relationship(
        "ScheduleSlot",
        back_populates="medication",
        cascade="all, delete-orphan",
        order_by="ScheduleSlot.position",
        lazy="selectin"
    )
    log_entries = relationship(
        "ReminderLogEntry",
        back_populates="medication",
        cascade="all, delete-orphan",
        order_by="ReminderLogEntry.id",
        lazy="selectin"
    )

    __table_args__ = (
        Index("ix_medications_owner_active", "owner_id", "active"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def times(self) -> list:
        return [slot.time_of_day for slot in self.slots]


class ScheduleSlot(Base):
    """One daily dose time of a medication"""
    __tablename__ = "schedule_slots"

    id = Column(Integer, primary_key=True, index=True)
    medication_id = Column(Integer, ForeignKey("medications.id", ondelete="CASCADE"), nullable=False)

    position = Column(Integer, nullable=False)
    time_of_day = Column(String(5), nullable=False)  # "08:00", reference timezone

    # Cleared by the daily reset; taken_at is set iff taken_today
    taken_today = Column(Boolean, nullable=False, default=False)
    taken_at = Column(DateTime)

    medication = relationship("Medication", back_populates="slots")

    __table_args__ = (
        UniqueConstraint("medication_id", "position", name="uq_schedule_slots_position"),
        Index("ix_schedule_slots_time", "time_of_day"),
    )


class ReminderLogEntry(Base):
    """Immutable audit record of a taken, missed or skipped dose"""
    __tablename__ = "reminder_log"

    id = Column(Integer, primary_key=True, index=True)
    medication_id = Column(Integer, ForeignKey("medications.id", ondelete="CASCADE"), nullable=False)

    for_date = Column(DateTime, nullable=False)  # naive UTC
    dose_date = Column(Date, nullable=False)  # calendar day in the reference timezone
    time_of_day = Column(String(5), nullable=False)
    status = Column(Enum(DoseStatus, values_callable=_enum_values, name="dose_status"), nullable=False)

    logged_at = Column(DateTime, default=datetime.utcnow)

    medication = relationship("Medication", back_populates="log_entries")

    __table_args__ = (
        Index("ix_reminder_log_medication_status", "medication_id", "status"),
        # At most one missed entry per slot time and calendar day
        Index(
            "uq_reminder_log_missed_per_day",
            "medication_id", "time_of_day", "dose_date",
            unique=True,
            sqlite_where=text("status = 'missed'"),
            postgresql_where=text("status = 'missed'")
        ),
    )
