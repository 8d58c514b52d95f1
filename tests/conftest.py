"""
Pytest configuration and fixtures for Nality tests.
"""

import os
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

# Set test environment before importing nality modules
os.environ["NALITY_ENV"] = "development"
os.environ["SUPABASE_URL"] = "https://test.supabase.co"
os.environ["SUPABASE_ANON_KEY"] = "test-anon-key"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-service-key"


@pytest.fixture
def mock_supabase():
    """Mock Supabase client for unit tests."""
    mock_client = MagicMock()

    # Mock table operations
    mock_table = MagicMock()
    mock_table.select.return_value = mock_table
    mock_table.insert.return_value = mock_table
    mock_table.update.return_value = mock_table
    mock_table.delete.return_value = mock_table
    mock_table.eq.return_value = mock_table
    mock_table.is_.return_value = mock_table
    mock_table.gt.return_value = mock_table
    mock_table.limit.return_value = mock_table
    mock_table.execute.return_value = MagicMock(data=[])

    mock_client.table.return_value = mock_table

    return mock_client


@pytest.fixture
def fixed_now():
    return datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def registration_payload():
    """Body of a pending registration as a browser client sends it."""
    return {
        "registration": {
            "firstNameOrNickname": "Max",
            "lastName": "Mustermann",
            "email": "MAX@example.com",
            "method": "password",
        },
        "addressPreference": "du",
        "entry": {"answerId": "entry_1", "path": "A"},
        "path": "A",
        "responses": {
            "entry": "entry_1",
            "A1": ["general_life"],
            "A2": "for_family",
            "ageRange": "30_39",
            "addressingContext": "balanced",
            "languagePreference": "de",
            "A4": "go_registration",
        },
        "neutralBlockVisited": False,
    }
