"""Shared fixtures for catalog_import tests."""

import logging
import tempfile
from pathlib import Path

import pytest

from catalog_import.db import init_db
from catalog_import.shutdown import get_shutdown_handler


@pytest.fixture
def temp_db():
    """Create a temporary catalog database."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    init_db(db_path)
    yield db_path
    # Cleanup
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture(autouse=True)
def clear_shutdown_flag():
    """The shutdown handler is process-wide; never leak a stop request between tests."""
    handler = get_shutdown_handler()
    handler.reset()
    yield
    handler.reset()


@pytest.fixture(autouse=True)
def reset_logging():
    """CLI tests attach handlers bound to captured streams; drop them afterwards."""
    yield
    logging.getLogger("catalog_import").handlers.clear()
