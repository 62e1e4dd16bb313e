"""
Medications API Router
Endpoints for medication management and marking doses taken
"""

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_owner_id, services
from api.schemas.medication import (
    MedicationCreate,
    MedicationUpdate,
    MarkTakenRequest,
    MedicationResponse,
    MedicationSummary,
    MedicationList,
)


router = APIRouter(prefix="/medications", tags=["medications"])


@router.post("/", response_model=MedicationResponse, status_code=status.HTTP_201_CREATED)
async def create_medication(
    medication_data: MedicationCreate,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db)
):
    """
    Add a new medication for the current user

    - **name**: Medication name
    - **dosage**: Dosage (e.g., "500mg")
    - **frequency**: once_daily, twice_daily, three_times or custom
    - **times**: Daily dose times as HH:MM
    """
    medication_service = services.get_medication_service()

    try:
        return await medication_service.create_medication(
            owner_id=owner_id,
            name=medication_data.name,
            dosage=medication_data.dosage,
            frequency=medication_data.frequency,
            times=medication_data.times,
            notes=medication_data.notes,
            start_date=medication_data.start_date,
            end_date=medication_data.end_date,
            active=medication_data.active,
            db=db
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.get("/", response_model=MedicationList)
async def list_medications(
    active_only: bool = Query(False, description="Only return active medications"),
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db)
):
    """
    Get all medications for the current user, newest first
    """
    medication_service = services.get_medication_service()

    medications = await medication_service.list_medications(owner_id, active_only=active_only, db=db)

    return MedicationList(
        medications=[MedicationSummary.model_validate(m) for m in medications],
        total=len(medications),
        active_count=sum(1 for m in medications if m.active)
    )


@router.get("/{medication_id}", response_model=MedicationResponse)
async def get_medication(
    medication_id: int,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db)
):
    """
    Get a medication with its slots and reminder log
    """
    medication_service = services.get_medication_service()
    return await medication_service.get_medication(medication_id, owner_id, db=db)


@router.put("/{medication_id}", response_model=MedicationResponse)
async def update_medication(
    medication_id: int,
    update_data: MedicationUpdate,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db)
):
    """
    Update medication details or its dose times
    """
    medication_service = services.get_medication_service()

    updates = update_data.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update"
        )

    try:
        return await medication_service.update_medication(medication_id, owner_id, updates, db=db)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.delete("/{medication_id}")
async def delete_medication(
    medication_id: int,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db)
):
    """
    Delete a medication and its reminder log
    """
    medication_service = services.get_medication_service()
    await medication_service.delete_medication(medication_id, owner_id, db=db)

    return {"success": True, "message": "Medication deleted successfully"}


@router.post("/{medication_id}/take", response_model=MedicationResponse)
async def mark_dose_taken(
    medication_id: int,
    request: MarkTakenRequest,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db)
):
    """
    Mark one of today's doses as taken

    - **slot_index**: Position of the slot in the medication's schedule
    """
    medication_service = services.get_medication_service()
    return await medication_service.mark_dose_taken(
        medication_id,
        owner_id,
        request.slot_index,
        db=db
    )
