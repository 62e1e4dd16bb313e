"""
DoseTrack Test Suite
====================

This package contains all tests for the DoseTrack dose tracking system.

Test Structure:
- test_tools/: Reference clock and dose reconciler unit tests
- test_services/: Service, repository and scheduler tests
- test_actions/: Reminder engine tests
- test_api/: API endpoint tests for FastAPI routes
- test_scripts/: Command line entry point tests
- test_database.py: Engine pool selection and session isolation
- conftest.py: Shared pytest fixtures

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_services/

    # Skip the minute-by-minute day simulation
    pytest -m "not slow"

    # Run only marked tests
    pytest -m "unit"
    pytest -m "integration"
"""

# Test configuration
TEST_DATABASE_URL = "sqlite:///:memory:"
TEST_TIMEZONE = "Asia/Kolkata"

__all__ = [
    "TEST_DATABASE_URL",
    "TEST_TIMEZONE",
]
