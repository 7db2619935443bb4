"""Root conftest: test environment, structlog routing and per-test log context."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from shared.logging import configure_structlog

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# Same processor chain as production, without replacing pytest's handlers.
configure_structlog()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Drop match bindings left behind by clients started in earlier tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
