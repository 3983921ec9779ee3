"""
Pytest configuration and fixtures for web novel importer tests.
"""

import pytest
from hypothesis import settings, Verbosity, HealthCheck
import os

# Configure Hypothesis for faster test runs
settings.register_profile(
    "fast", max_examples=20, deadline=5000, verbosity=Verbosity.quiet,
    suppress_health_check=[HealthCheck.function_scoped_fixture]
)
settings.register_profile(
    "thorough", max_examples=200, deadline=30000, verbosity=Verbosity.normal,
    suppress_health_check=[HealthCheck.function_scoped_fixture]
)

settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "fast"))


@pytest.fixture(scope="function")
def temp_db_path(tmp_path):
    """Create a temporary database path for each test."""
    yield str(tmp_path / "novel_importer_test.db")


@pytest.fixture(scope="function")
def db_manager(temp_db_path):
    """Initialized SQLite database manager on a temporary file."""
    from novel_importer.data.sqlite_database import SQLiteDatabaseManager

    manager = SQLiteDatabaseManager(temp_db_path)
    manager.initialize()
    return manager


@pytest.fixture(scope="function")
def novel_repository(db_manager):
    from novel_importer.data.repository import NovelRepository
    return NovelRepository(db_manager)


@pytest.fixture(scope="function")
def rule_repository(db_manager):
    from novel_importer.data.repository import ParserRuleRepository
    return ParserRuleRepository(db_manager)


def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line("markers", "property: property-based test")
    config.addinivalue_line("markers", "integration: test touching several components")
    config.addinivalue_line("markers", "unit: isolated unit test")

    import logging
    logging.getLogger("business").setLevel(logging.WARNING)
    logging.getLogger("hypothesis").setLevel(logging.WARNING)


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers."""
    for item in items:
        if any(marker.name == "hypothesis" for marker in item.iter_markers()) or "properties" in item.fspath.basename:
            item.add_marker(pytest.mark.property)

        if "integration" in item.fspath.basename:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
