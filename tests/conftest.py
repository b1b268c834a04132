import os
import sys
from datetime import date
from decimal import Decimal

import pytest

# Add the project root to the path so the top-level packages import
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config.settings import Settings  # noqa: E402
from tests.test_helpers import build_usd_ledger_repository, build_rate_provider  # noqa: E402


@pytest.fixture
def settings():
    """Settings with defaults only, isolated from the developer's .env."""
    return Settings(load_env_file=False)


@pytest.fixture
def repository():
    """In-memory repository with a USD ledger: 100 at 30.5, then 200 at 31.0."""
    return build_usd_ledger_repository()


@pytest.fixture
def rate_provider():
    """Static provider quoting USD/TWD at 32.0 and AAPL at 200."""
    return build_rate_provider()


@pytest.fixture
def purchase_date():
    return date(2024, 3, 1)


@pytest.fixture
def market_rate():
    return Decimal('32.0')
