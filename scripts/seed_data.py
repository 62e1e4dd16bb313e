#!/usr/bin/env python
"""
Seed Data
Script to seed the database with demo medications for development
"""

import sys
import os
import argparse
import logging
from typing import List

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import SessionLocal, engine, Base
from models import Medication, MedicationFrequency, ScheduleSlot
from tools.clock import ReferenceClock


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


DEMO_MEDICATIONS = [
    {"name": "Metformin", "dosage": "500mg", "frequency": MedicationFrequency.TWICE_DAILY, "times": ["08:00", "20:00"]},
    {"name": "Lisinopril", "dosage": "10mg", "frequency": MedicationFrequency.ONCE_DAILY, "times": ["09:00"]},
    {"name": "Amoxicillin", "dosage": "250mg", "frequency": MedicationFrequency.THREE_TIMES, "times": ["07:00", "15:00", "23:00"]},
]


def create_tables():
    """Create all database tables"""
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Tables created successfully")


def seed_medications(db, owner_id: str) -> List[Medication]:
    """Add demo medications for an owner, skipping ones that already exist"""
    today = ReferenceClock().now().date()
    created = []

    for data in DEMO_MEDICATIONS:
        existing = db.query(Medication).filter(
            Medication.owner_id == owner_id,
            Medication.name == data["name"]
        ).first()
        if existing:
            logger.info(f"{data['name']} already exists for {owner_id}")
            continue

        medication = Medication(
            owner_id=owner_id,
            name=data["name"],
            dosage=data["dosage"],
            frequency=data["frequency"],
            start_date=today,
            active=True,
            slots=[ScheduleSlot(position=i, time_of_day=t) for i, t in enumerate(data["times"])]
        )
        db.add(medication)
        created.append(medication)

    db.commit()
    for medication in created:
        logger.info(f"Created medication: {medication.name} (ID: {medication.id}) at {', '.join(medication.times)}")
    return created


def main():
    parser = argparse.ArgumentParser(description="Seed DoseTrack with demo data")
    parser.add_argument("--owner", default="demo-user", help="Owner id to seed medications for")
    args = parser.parse_args()

    create_tables()
    db = SessionLocal()
    try:
        seed_medications(db, args.owner)
    finally:
        db.close()


if __name__ == "__main__":
    main()
