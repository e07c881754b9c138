"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment for settings validation
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_HOST", "localhost")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("AUTO_ASSIGN_ON_PAYMENT", "true")
os.environ.setdefault("DEFAULT_PAYOUT_THRESHOLD", "500")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
from unittest.mock import AsyncMock, MagicMock


@pytest.fixture
def mock_session():
    """Mock AsyncSession for tests without a database."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    session.delete = AsyncMock()
    session.refresh = AsyncMock()
    return session


@pytest.fixture
def affiliate_policy():
    """Affiliate policy as exported by the admin UI (camelCase)."""
    return {
        "reward": {"type": "PERCENTAGE", "percentage": "0.10"},
        "calculationBase": "FIRST_PAYMENT",
        "duration": {"type": "PERMANENT"},
        "limits": {"maxActiveReferrals": 100, "maxMonthlyCommission": "50"},
        "tiers": [
            {"minReferrals": 0, "percentage": "0.10"},
            {"minReferrals": 5, "percentage": "0.15"},
            {"minReferrals": 20, "percentage": "0.20"},
        ],
        "qualification": {"gracePeriodDays": 30, "minSubscriptionDays": 30},
        "payoutSettings": {"minThreshold": "10", "autoPayoutEnabled": True},
    }


@pytest.fixture
def customer_policy():
    """One-time fixed bill credit."""
    return {
        "reward": {"type": "FIXED", "fixedAmount": "20"},
        "duration": {"type": "ONE_TIME"},
        "qualification": {"gracePeriodDays": 0},
        "payoutSettings": {"minThreshold": "0"},
    }
