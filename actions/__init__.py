"""
Actions Module
Engines that act on reconciliation output
"""

from .reminder_engine import (
    ReminderEngine,
    ReminderHandler,
    log_reminder_handler,
    reminder_engine
)


__all__ = [
    # Reminder Engine
    "ReminderEngine",
    "ReminderHandler",
    "log_reminder_handler",
    "reminder_engine"
]
