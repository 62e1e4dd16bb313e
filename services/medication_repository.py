"""
Medication Repository
Storage access for medications with optimistic, versioned writes
"""

import logging
from typing import Any, Callable, List, Optional, Tuple
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

import models
from config import settings
from services.errors import ConcurrentModification, PersistenceFailure


logger = logging.getLogger(__name__)


class MedicationRepository:
    """
    Loads and saves medications.

    Every save bumps the medication's version column, so a write based on
    a snapshot that another writer has since changed fails with
    ConcurrentModification instead of overwriting it.
    """

    def __init__(self, max_attempts: Optional[int] = None):
        self.max_attempts = max_attempts or settings.OPTIMISTIC_LOCK_MAX_ATTEMPTS

    def find_active_medications(self, session: Session) -> List[models.Medication]:
        """All active medications, across owners"""
        return session.query(models.Medication).filter(
            models.Medication.active == True  # noqa: E712
        ).order_by(models.Medication.id).all()

    def find_owner_medications(
        self,
        session: Session,
        owner_id: str,
        active_only: bool = False
    ) -> List[models.Medication]:
        query = session.query(models.Medication).filter(
            models.Medication.owner_id == owner_id
        )
        if active_only:
            query = query.filter(models.Medication.active == True)  # noqa: E712
        return query.order_by(models.Medication.created_at.desc(), models.Medication.id.desc()).all()

    def find_medication_by_id_and_owner(
        self,
        session: Session,
        medication_id: int,
        owner_id: str
    ) -> Optional[models.Medication]:
        """Fresh load of a medication scoped to its owner"""
        return session.query(models.Medication).populate_existing().filter(
            models.Medication.id == medication_id,
            models.Medication.owner_id == owner_id
        ).first()

    def find_medication(
        self,
        session: Session,
        medication_id: int,
        active_only: bool = False
    ) -> Optional[models.Medication]:
        """Fresh load of a medication, bypassing the session's identity map state"""
        query = session.query(models.Medication).populate_existing().filter(
            models.Medication.id == medication_id
        )
        if active_only:
            query = query.filter(models.Medication.active == True)  # noqa: E712
        return query.first()

    def add_medication(self, session: Session, medication: models.Medication) -> models.Medication:
        session.add(medication)
        self.save_medication(session, medication)
        session.refresh(medication)
        return medication

    def delete_medication(self, session: Session, medication: models.Medication) -> None:
        medication_id = medication.id
        try:
            session.delete(medication)
            session.commit()
        except StaleDataError as e:
            session.rollback()
            raise ConcurrentModification(f"Medication {medication_id} changed during delete") from e
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceFailure(f"Failed to delete medication: {e}") from e

    def save_medication(self, session: Session, medication: models.Medication) -> None:
        """Commit pending changes to a medication as one versioned write"""
        medication_id = medication.id
        try:
            # Always touch the parent row so the version check runs even
            # when only slots or log entries changed
            medication.updated_at = datetime.utcnow()
            session.commit()
        except (StaleDataError, IntegrityError) as e:
            session.rollback()
            raise ConcurrentModification(
                f"Medication {medication_id} was modified concurrently"
            ) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceFailure(f"Failed to save medication {medication_id}: {e}") from e

    def atomic_update(
        self,
        session: Session,
        loader: Callable[[Session], Optional[models.Medication]],
        mutator: Callable[[models.Medication], Any]
    ) -> Tuple[Optional[models.Medication], Any]:
        """
        Read-modify-write a single medication.

        The loader must return a freshly loaded medication (or None). The
        mutator applies changes and returns a truthy value when something
        changed; falsy means nothing is written. On a version conflict the
        whole cycle is retried against a new snapshot.

        Returns:
            (medication, mutator result)
        """
        for attempt in range(1, self.max_attempts + 1):
            medication = loader(session)
            if medication is None:
                return None, None
            medication_id = medication.id

            try:
                outcome = mutator(medication)
            except Exception:
                session.rollback()
                raise

            if not outcome:
                return medication, outcome

            try:
                self.save_medication(session, medication)
                return medication, outcome
            except ConcurrentModification:
                if attempt >= self.max_attempts:
                    raise
                logger.warning(
                    f"Version conflict on medication {medication_id}, "
                    f"retrying ({attempt}/{self.max_attempts})"
                )


# Singleton instance
medication_repository = MedicationRepository()
