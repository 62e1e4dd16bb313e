"""
Tests for Medication Service
Tests medication management and the mark-taken action
"""

import pytest
from datetime import date, datetime
from unittest.mock import MagicMock, patch

from sqlalchemy.orm import Session

from models import DoseStatus, Medication, MedicationFrequency, ReminderLogEntry
from services.errors import ConcurrentModification, InvalidSlotIndex, MedicationNotFound
from services.medication_repository import MedicationRepository
from services.medication_service import MedicationService
from tests.conftest import ist, reload, OWNER_ID


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def medication_service(repository, clock):
    """Create medication service instance"""
    return MedicationService(repository=repository, clock=clock)


# =============================================================================
# Create / read
# =============================================================================

class TestCreateMedication:
    """Tests for adding medications"""

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_create_with_slots(self, medication_service, db_session: Session, sample_medication_data):
        medication = await medication_service.create_medication(owner_id=OWNER_ID, db=db_session, **sample_medication_data)

        assert medication.id is not None
        assert medication.owner_id == OWNER_ID
        assert medication.frequency == MedicationFrequency.TWICE_DAILY
        assert medication.times == ["08:00", "20:00"]
        assert [s.position for s in medication.slots] == [0, 1]
        assert all(s.taken_today is False and s.taken_at is None for s in medication.slots)
        assert medication.log_entries == []
        assert medication.version == 1

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_default_start_date_is_reference_today(self, repository, db_session: Session):
        clock = MagicMock()
        clock.now.return_value = ist(2024, 3, 10, 0, 15)
        clock.local_date.return_value = date(2024, 3, 10)
        service = MedicationService(repository=repository, clock=clock)

        medication = await service.create_medication(OWNER_ID, "Aspirin", "81mg", "once_daily", ["09:00"], db=db_session)

        assert medication.start_date == date(2024, 3, 10)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("times", [[], ["8am"], ["25:00"]])
    async def test_invalid_times_rejected(self, medication_service, db_session: Session, times):
        with pytest.raises(ValueError):
            await medication_service.create_medication(OWNER_ID, "Aspirin", "81mg", "custom", times, db=db_session)

        assert db_session.query(Medication).count() == 0

    @pytest.mark.asyncio
    async def test_invalid_frequency_rejected(self, medication_service, db_session: Session):
        with pytest.raises(ValueError, match="frequency"):
            await medication_service.create_medication(OWNER_ID, "Aspirin", "81mg", "hourly", ["09:00"], db=db_session)

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_list_scoped_to_owner(self, medication_service, db_session: Session, test_medication, other_owner_medication):
        medications = await medication_service.list_medications(OWNER_ID, db=db_session)

        assert [m.id for m in medications] == [test_medication.id]

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_list_active_only(self, medication_service, db_session: Session, test_medication):
        test_medication.active = False
        db_session.commit()

        assert await medication_service.list_medications(OWNER_ID, active_only=True, db=db_session) == []
        assert len(await medication_service.list_medications(OWNER_ID, db=db_session)) == 1

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_get_other_owner_not_found(self, medication_service, db_session: Session, other_owner_medication):
        with pytest.raises(MedicationNotFound):
            await medication_service.get_medication(other_owner_medication.id, OWNER_ID, db=db_session)


# =============================================================================
# Update / delete
# =============================================================================

class TestUpdateMedication:
    """Tests for editing medications"""

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_update_fields_bumps_version(self, medication_service, db_session: Session, test_medication):
        medication = await medication_service.update_medication(
            test_medication.id, OWNER_ID, {"dosage": "1000mg", "notes": "After food"}, db=db_session
        )

        assert medication.dosage == "1000mg"
        assert medication.notes == "After food"
        assert medication.version == 2

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_update_times_keeps_taken_state(self, medication_service, db_session: Session, test_medication):
        await medication_service.mark_dose_taken(
            test_medication.id, OWNER_ID, 1, now=ist(2024, 3, 10, 20, 5), db=db_session
        )

        medication = await medication_service.update_medication(
            test_medication.id, OWNER_ID, {"times": ["07:00", "20:00", "13:00"]}, db=db_session
        )

        medication = reload(db_session, medication.id)
        assert medication.times == ["07:00", "20:00", "13:00"]
        assert [s.taken_today for s in medication.slots] == [False, True, False]
        assert len(medication.log_entries) == 1

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_update_times_shrinks_schedule(self, medication_service, db_session: Session, test_medication):
        await medication_service.update_medication(test_medication.id, OWNER_ID, {"times": ["12:00"]}, db=db_session)

        assert reload(db_session, test_medication.id).times == ["12:00"]

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, medication_service, db_session: Session, test_medication):
        with pytest.raises(ValueError):
            await medication_service.update_medication(test_medication.id, OWNER_ID, {"owner_id": "x"}, db=db_session)

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_update_other_owner_not_found(self, medication_service, db_session: Session, other_owner_medication):
        with pytest.raises(MedicationNotFound):
            await medication_service.update_medication(other_owner_medication.id, OWNER_ID, {"dosage": "5mg"}, db=db_session)

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_delete_removes_log(self, medication_service, db_session: Session, medication_with_history):
        medication_id = medication_with_history.id

        assert await medication_service.delete_medication(medication_id, OWNER_ID, db=db_session) is True

        db_session.expire_all()
        assert db_session.get(Medication, medication_id) is None

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_delete_missing(self, medication_service, db_session: Session):
        with pytest.raises(MedicationNotFound):
            await medication_service.delete_medication(999, OWNER_ID, db=db_session)


# =============================================================================
# Mark taken
# =============================================================================

class TestMarkDoseTaken:
    """Tests for the live mark-taken action"""

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_marks_slot_and_appends_entry(self, medication_service, db_session: Session, test_medication):
        medication = await medication_service.mark_dose_taken(
            test_medication.id, OWNER_ID, 0, now=ist(2024, 3, 10, 8, 10), db=db_session
        )

        slot = medication.slots[0]
        assert slot.taken_today is True
        assert slot.taken_at == datetime(2024, 3, 10, 2, 40)
        assert medication.slots[1].taken_today is False

        [entry] = medication.log_entries
        assert entry.status == DoseStatus.TAKEN
        assert entry.time_of_day == "08:00"
        assert entry.for_date == datetime(2024, 3, 10, 2, 40)
        assert entry.dose_date == date(2024, 3, 10)

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_other_owner_not_found(self, medication_service, db_session: Session, other_owner_medication):
        with pytest.raises(MedicationNotFound):
            await medication_service.mark_dose_taken(other_owner_medication.id, OWNER_ID, 0, db=db_session)

        assert reload(db_session, other_owner_medication.id).log_entries == []

    @pytest.mark.asyncio
    @pytest.mark.database
    @pytest.mark.parametrize("slot_index", [2, 5, -1])
    async def test_out_of_range_index(self, medication_service, db_session: Session, test_medication, slot_index):
        with pytest.raises(InvalidSlotIndex) as exc_info:
            await medication_service.mark_dose_taken(test_medication.id, OWNER_ID, slot_index, db=db_session)

        assert exc_info.value.slot_count == 2
        medication = reload(db_session, test_medication.id)
        assert medication.log_entries == []
        assert medication.version == 1

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_inactive_medication_can_be_marked(self, medication_service, db_session: Session, test_medication):
        test_medication.active = False
        db_session.commit()

        medication = await medication_service.mark_dose_taken(
            test_medication.id, OWNER_ID, 0, now=ist(2024, 3, 10, 8, 0), db=db_session
        )

        assert medication.slots[0].taken_today is True

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_marking_twice_logs_twice(self, medication_service, db_session: Session, test_medication):
        await medication_service.mark_dose_taken(test_medication.id, OWNER_ID, 0, now=ist(2024, 3, 10, 8, 0), db=db_session)
        medication = await medication_service.mark_dose_taken(
            test_medication.id, OWNER_ID, 0, now=ist(2024, 3, 10, 8, 5), db=db_session
        )

        assert len(medication.log_entries) == 2
        assert medication.slots[0].taken_at == datetime(2024, 3, 10, 2, 35)


# =============================================================================
# Optimistic concurrency
# =============================================================================

class TestConcurrentWrites:
    """Tests for versioned read-modify-write"""

    @pytest.mark.unit
    def test_atomic_update_retries_on_conflict(self):
        repository = MedicationRepository(max_attempts=3)
        session = MagicMock(spec=Session)
        medication = MagicMock(id=1)
        loader = MagicMock(return_value=medication)
        mutator = MagicMock(return_value=True)

        with patch.object(repository, "save_medication", side_effect=[ConcurrentModification("stale"), None]) as save:
            result = repository.atomic_update(session, loader, mutator)

        assert result == (medication, True)
        assert loader.call_count == 2
        assert mutator.call_count == 2
        assert save.call_count == 2

    @pytest.mark.unit
    def test_atomic_update_gives_up(self):
        repository = MedicationRepository(max_attempts=2)
        session = MagicMock(spec=Session)
        loader = MagicMock(return_value=MagicMock(id=1))

        with patch.object(repository, "save_medication", side_effect=ConcurrentModification("stale")):
            with pytest.raises(ConcurrentModification):
                repository.atomic_update(session, loader, lambda m: True)

        assert loader.call_count == 2

    @pytest.mark.unit
    def test_atomic_update_skips_write_without_changes(self):
        repository = MedicationRepository()
        session = MagicMock(spec=Session)
        medication = MagicMock(id=1)

        with patch.object(repository, "save_medication") as save:
            result = repository.atomic_update(session, lambda s: medication, lambda m: [])

        assert result == (medication, [])
        save.assert_not_called()

    @pytest.mark.unit
    def test_atomic_update_missing_medication(self):
        repository = MedicationRepository()
        mutator = MagicMock()

        assert repository.atomic_update(MagicMock(spec=Session), lambda s: None, mutator) == (None, None)
        mutator.assert_not_called()

    @pytest.mark.integration
    def test_stale_snapshot_retried_against_fresh_state(self, repository, session_factory, test_medication):
        """A write racing another session is retried on the other session's result"""
        medication_id = test_medication.id
        raced = []

        def concurrent_rename():
            other = session_factory()
            try:
                rival = other.get(Medication, medication_id)
                rival.name = "Metformin XR"
                repository.save_medication(other, rival)
            finally:
                other.close()

        def mutator(medication):
            if not raced:
                raced.append(True)
                concurrent_rename()
            medication.notes = "evening"
            return True

        session = session_factory()
        try:
            medication, _ = repository.atomic_update(
                session,
                lambda s: repository.find_medication(s, medication_id),
                mutator
            )
            assert medication.name == "Metformin XR"
            assert medication.notes == "evening"
            assert medication.version == 3
        finally:
            session.close()

    @pytest.mark.integration
    def test_duplicate_missed_entry_is_a_conflict(self, repository, db_session: Session, medication_with_history):
        medication = repository.find_medication(db_session, medication_with_history.id)
        medication.log_entries.append(ReminderLogEntry(
            for_date=datetime(2024, 3, 10, 2, 30),
            dose_date=date(2024, 3, 10),
            time_of_day="08:00",
            status=DoseStatus.MISSED
        ))

        with pytest.raises(ConcurrentModification):
            repository.save_medication(db_session, medication)

        assert len(reload(db_session, medication_with_history.id).log_entries) == 2

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_deleted_before_write_is_not_found(self, medication_service, repository, session_factory, db_session: Session, test_medication):
        """A medication deleted between load and save is reported as missing"""
        medication_id = test_medication.id
        load = repository.find_medication_by_id_and_owner
        deleted = []

        def load_then_delete(session, mid, owner_id):
            medication = load(session, mid, owner_id)
            if not deleted:
                deleted.append(True)
                other = session_factory()
                try:
                    other.delete(other.get(Medication, mid))
                    other.commit()
                finally:
                    other.close()
            return medication

        with patch.object(repository, "find_medication_by_id_and_owner", side_effect=load_then_delete):
            with pytest.raises(MedicationNotFound):
                await medication_service.mark_dose_taken(
                    medication_id, OWNER_ID, 0, now=ist(2024, 3, 10, 8, 5), db=db_session
                )

        assert deleted == [True]
        assert db_session.query(ReminderLogEntry).count() == 0
