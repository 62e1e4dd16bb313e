"""
Scripts for DoseTrack
Utility scripts for seeding data and running reconciliation passes
"""

from .seed_data import seed_medications, create_tables

__all__ = [
    "seed_medications",
    "create_tables"
]
