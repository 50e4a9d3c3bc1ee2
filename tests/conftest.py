"""
Pytest configuration and shared fixtures for the vaccination validity test suite.

This file provides centralized test configuration and reusable fixtures
for testing the validity rules, the input snapshot and the API.
"""

import tempfile
from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.infrastructure.services.vaccination_validity_service import (
    VaccinationValidityService,
    vaccination_validity_service,
)
from app.infrastructure.services.validity_snapshot_service import ValiditySnapshot
from app.main import app
from tests.fixtures.sample_data import (
    create_sample_tables,
    create_snapshot,
    write_sample_csv_files,
)


# ============================================================================
# Test Configuration
# ============================================================================

@pytest.fixture
def test_data_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test data files."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


# ============================================================================
# Sample Data Fixtures
# ============================================================================

@pytest.fixture
def sample_tables() -> dict[str, list[dict]]:
    return create_sample_tables()


@pytest.fixture
def sample_snapshot(sample_tables) -> ValiditySnapshot:
    return create_snapshot(**sample_tables)


@pytest.fixture
def sample_csv_dir(test_data_dir, sample_tables) -> Path:
    """Temporary data directory holding the sample CSV files."""
    return write_sample_csv_files(test_data_dir / "data", sample_tables)


# ============================================================================
# Service and App Fixtures
# ============================================================================

@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def fresh_service(sample_csv_dir) -> VaccinationValidityService:
    """Service instance reading the sample CSV files."""
    return VaccinationValidityService(data_dir=sample_csv_dir)


@pytest.fixture
def service_with_sample_data(sample_csv_dir) -> Generator[None, None, None]:
    """Point the global service at the sample CSV files."""
    with patch.object(vaccination_validity_service, "data_dir", sample_csv_dir):
        vaccination_validity_service.snapshot = None
        vaccination_validity_service.last_computation = None
        yield


# ============================================================================
# Utility Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def reset_service_state():
    """Reset the global service state before each test."""
    vaccination_validity_service.snapshot = None
    vaccination_validity_service.last_computation = None

    yield

    vaccination_validity_service.snapshot = None
    vaccination_validity_service.last_computation = None
