"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all DoseTrack tests.
Fixtures include database sessions, test clients, fixed clocks and
sample medications.
"""

import os
import sys
from contextlib import contextmanager
from datetime import datetime, date
from typing import Generator, Dict, Any, List
from zoneinfo import ZoneInfo

# Keep the app from starting background timers or touching a file database
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import api.deps
import database
from database import Base
from models import Medication, ScheduleSlot, ReminderLogEntry, DoseStatus, MedicationFrequency
from actions.reminder_engine import ReminderEngine
from services.medication_repository import MedicationRepository
from services.reconciliation_service import ReconciliationService
from tools.clock import ReferenceClock
from tools.dose_reconciler import DoseReconciler
from app import app


IST = ZoneInfo("Asia/Kolkata")
OWNER_ID = "user-1"
OTHER_OWNER_ID = "user-2"


def ist(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> datetime:
    """Aware instant in the reference timezone"""
    return datetime(year, month, day, hour, minute, second, tzinfo=IST)


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    """Session factory bound to the test engine"""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine
    )


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a test database session"""
    session = session_factory()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def session_scope(session_factory):
    """Stand-in for database.get_db_context bound to the test engine"""

    @contextmanager
    def _scope() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _scope


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client with database override"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[api.deps.get_db] = override_get_db
    app.dependency_overrides[database.get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    """Identity header forwarded by the gateway"""
    return {"X-User-Id": OWNER_ID}


# ==================== RECONCILIATION FIXTURES ====================

@pytest.fixture
def clock() -> ReferenceClock:
    """Clock in the default reference timezone"""
    return ReferenceClock("Asia/Kolkata")


@pytest.fixture
def reconciler(clock: ReferenceClock) -> DoseReconciler:
    return DoseReconciler(clock=clock)


@pytest.fixture
def repository() -> MedicationRepository:
    return MedicationRepository(max_attempts=3)


@pytest.fixture
def engine_spy() -> ReminderEngine:
    """Reminder engine with no handlers registered"""
    return ReminderEngine(buffer_size=50)


@pytest.fixture
def reconciliation(reconciler, repository, engine_spy, session_scope) -> ReconciliationService:
    """Reconciliation service wired to the test database"""
    return ReconciliationService(
        reconciler=reconciler,
        repository=repository,
        reminder_engine=engine_spy,
        session_scope=session_scope
    )


# ==================== SAMPLE DATA FIXTURES ====================

@pytest.fixture
def sample_medication_data() -> Dict[str, Any]:
    """Sample medication data for creating test medications"""
    return {
        "name": "Metformin",
        "dosage": "500mg",
        "frequency": "twice_daily",
        "times": ["08:00", "20:00"],
        "notes": "Take with meals",
    }


def make_medication(
    db_session: Session,
    times: List[str],
    owner_id: str = OWNER_ID,
    name: str = "Metformin",
    dosage: str = "500mg",
    active: bool = True,
    frequency: MedicationFrequency = MedicationFrequency.CUSTOM
) -> Medication:
    """Persist a medication with one slot per time"""
    medication = Medication(
        owner_id=owner_id,
        name=name,
        dosage=dosage,
        frequency=frequency,
        active=active,
        start_date=date(2024, 3, 1),
        slots=[ScheduleSlot(position=i, time_of_day=t, taken_today=False) for i, t in enumerate(times)]
    )
    db_session.add(medication)
    db_session.commit()
    db_session.refresh(medication)
    return medication


@pytest.fixture
def test_medication(db_session: Session) -> Medication:
    """Twice-daily medication at 08:00 and 20:00"""
    return make_medication(db_session, ["08:00", "20:00"], frequency=MedicationFrequency.TWICE_DAILY)


@pytest.fixture
def other_owner_medication(db_session: Session) -> Medication:
    """Medication belonging to a different user"""
    return make_medication(db_session, ["09:00"], owner_id=OTHER_OWNER_ID, name="Lisinopril", dosage="10mg")


@pytest.fixture
def medication_with_history(db_session: Session, test_medication: Medication) -> Medication:
    """Medication with a taken and a missed entry on consecutive days"""
    test_medication.log_entries.extend([
        ReminderLogEntry(
            for_date=datetime(2024, 3, 9, 2, 35),  # 08:05 IST
            dose_date=date(2024, 3, 9),
            time_of_day="08:00",
            status=DoseStatus.TAKEN
        ),
        ReminderLogEntry(
            for_date=datetime(2024, 3, 10, 2, 30),  # 08:00 IST
            dose_date=date(2024, 3, 10),
            time_of_day="08:00",
            status=DoseStatus.MISSED
        ),
    ])
    db_session.commit()
    db_session.refresh(test_medication)
    return test_medication


def reload(db_session: Session, medication_id: int) -> Medication:
    """Fresh copy of a medication written by another session"""
    db_session.expire_all()
    return db_session.get(Medication, medication_id)


def missed_entries(medication: Medication) -> List[ReminderLogEntry]:
    return [e for e in medication.log_entries if e.status == DoseStatus.MISSED]


# ==================== MARKERS ====================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "api: mark test as an API test")
    config.addinivalue_line("markers", "database: mark test as requiring database")
