"""
Test Tools Package
Tests for the tools module (reference clock, dose reconciler)
"""

__all__ = [
    "test_clock",
    "test_dose_reconciler",
]
