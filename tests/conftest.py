"""Pytest configuration and shared fixtures for all tests."""

import itertools
import os
import sys
from pathlib import Path

# Minimal environment for Settings validation
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RPC_URL", "http://localhost:8545")
os.environ.setdefault(
    "PAYOUT_CONTRACT_ADDRESS", "0x1111111111111111111111111111111111111111"
)
os.environ.setdefault(
    "PLATFORM_WALLET_ADDRESS", "0x9999999999999999999999999999999999999999"
)

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from autopool.config.settings import settings
from autopool.models import Base
from autopool.repositories.participant_repository import ParticipantRepository
from autopool.services.placement_queue import InMemoryPlacementQueue

PLATFORM_WALLET = settings.platform_wallet_address


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory):
    """Database session for one test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def queue():
    """In-process placement queue."""
    return InMemoryPlacementQueue()


@pytest.fixture
def make_participant():
    """
    Factory creating participants with unique wallets.

    Usage:
        participant = await make_participant(session, "alice", referrer=bob)
    """
    counter = itertools.count(1)

    async def factory(session, public_id=None, referrer=None, has_retopup=False):
        index = next(counter)
        participant = await ParticipantRepository(session).create(
            public_id=public_id or f"user-{index}",
            wallet_address=f"0x{index:040x}",
            referrer_id=referrer.id if referrer else None,
            has_retopup=has_retopup,
            retopup_count=1 if has_retopup else 0,
        )
        return participant

    return factory


@pytest.fixture
def mock_gateway():
    """Mock PaymentGateway confirming every batch."""
    hashes = itertools.count(1)

    async def send_batch(users, amounts, reward_types):
        return {
            "success": True,
            "tx_hash": f"0x{next(hashes):064x}",
            "error": None,
            "status": "submitted",
        }

    async def wait_for_confirmation(tx_hash, timeout=None):
        return {
            "success": True,
            "tx_hash": tx_hash,
            "block_number": 100,
            "error": None,
            "status": "confirmed",
        }

    gateway = MagicMock()
    gateway.get_platform_wallet = MagicMock(return_value=PLATFORM_WALLET)
    gateway.get_available_balance = AsyncMock(return_value=Decimal("1000000"))
    gateway.send_batch = AsyncMock(side_effect=send_batch)
    gateway.wait_for_confirmation = AsyncMock(side_effect=wait_for_confirmation)
    gateway.get_transaction_status = AsyncMock(return_value=None)
    return gateway


@pytest.fixture
def mock_redis():
    """Mock async Redis client."""
    client = AsyncMock()
    client.lpop = AsyncMock(return_value=None)
    client.rpush = AsyncMock(return_value=1)
    client.lpush = AsyncMock(return_value=1)
    client.llen = AsyncMock(return_value=0)
    return client
