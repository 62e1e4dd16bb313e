"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

from typing import Generator, Optional
from fastapi import Header, HTTPException, status
from sqlalchemy.orm import Session

from database import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency
    Yields a SQLAlchemy session and ensures cleanup
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_current_owner_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id")
) -> str:
    """
    Identity of the calling user

    Authentication happens upstream; the gateway forwards the user id in
    the X-User-Id header.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header required",
        )
    return x_user_id.strip()


class ServiceDependency:
    """
    Dependency injection for services
    """

    @staticmethod
    def get_medication_service():
        from services.medication_service import medication_service
        return medication_service

    @staticmethod
    def get_reminder_service():
        from services.reminder_service import reminder_service
        return reminder_service

    @staticmethod
    def get_reconciliation_service():
        from services.reconciliation_service import reconciliation_service
        return reconciliation_service

    @staticmethod
    def get_reminder_engine():
        from actions.reminder_engine import reminder_engine
        return reminder_engine


# Service dependency instances
services = ServiceDependency()
