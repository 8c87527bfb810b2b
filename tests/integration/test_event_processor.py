"""
Integration tests for qualifying event processing.

Covers:
- Registration, second referral and retopup events end to end
- Idempotent replay of settled and applied events
- Rollback with queue restore on insufficient funds
- Rejection of invalid events
- Operator progression retry
- Platform statistics
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from autopool.models.enums import ProcessedEventStatus
from autopool.repositories.participant_repository import ParticipantRepository
from autopool.repositories.payout_repository import PayoutBatchRepository
from autopool.repositories.pool_node_repository import PoolNodeRepository
from autopool.repositories.processed_event_repository import ProcessedEventRepository
from autopool.services.autopool import ProgressionStatus, ReservedIncomeLedger
from autopool.services.event_processor import EventStatus, QualifyingEventProcessor
from autopool.services.progression_service import ProgressionService
from autopool.services.statistics import StatisticsService

pytestmark = pytest.mark.integration


@pytest.fixture
def processor(session_factory, mock_gateway, queue):
    return QualifyingEventProcessor(session_factory, mock_gateway, queue)


def registration(event_id, public_id, wallet_index, referrer_id=None):
    payload = {
        "event_type": "registration",
        "event_id": event_id,
        "participant_id": public_id,
        "wallet_address": f"0x{wallet_index:040x}",
    }
    if referrer_id:
        payload["referrer_id"] = referrer_id
    return payload


async def load_participant(session_factory, public_id):
    async with session_factory() as session:
        return await ParticipantRepository(session).get_by_public_id(public_id)


async def load_event(session_factory, event_key):
    async with session_factory() as session:
        return await ProcessedEventRepository(session).get_by_key(event_key)


class TestRegistrationEvents:
    """Registration and second-referral flows."""

    @pytest.mark.asyncio
    async def test_root_registration_without_payout(
        self, processor, session_factory, mock_gateway
    ):
        result = await processor.process_payload(registration("r-1", "alice", 1))

        assert result.status == EventStatus.SETTLED
        assert result.tx_hashes == []
        mock_gateway.send_batch.assert_not_awaited()
        event = await load_event(session_factory, "r-1")
        assert event.status == ProcessedEventStatus.SETTLED.value

    @pytest.mark.asyncio
    async def test_direct_income_settled(self, processor, session_factory, mock_gateway):
        await processor.process_payload(registration("r-1", "alice", 1))

        result = await processor.process_payload(registration("r-2", "bob", 2, "alice"))

        assert result.status == EventStatus.SETTLED
        assert result.payout_total == Decimal("20")
        assert len(result.tx_hashes) == 1
        users, amounts, tags = mock_gateway.send_batch.await_args.args
        assert users == [f"0x{1:040x}", processor.config.platform_wallet_address]
        assert amounts == [Decimal("18"), Decimal("2")]
        assert tags == ["DIRECT_INCOME", "COMPANY_FEE"]

        alice = await load_participant(session_factory, "alice")
        assert alice.total_direct_income == Decimal("18")
        assert alice.direct_referral_count == 1
        event = await load_event(session_factory, "r-2")
        assert event.status == ProcessedEventStatus.SETTLED.value

    @pytest.mark.asyncio
    async def test_second_referral_enters_autopool(
        self, processor, session_factory, mock_gateway
    ):
        await processor.process_payload(registration("r-1", "alice", 1))
        await processor.process_payload(registration("r-2", "bob", 2, "alice"))

        result = await processor.process_payload(registration("r-3", "carol", 3, "alice"))

        assert result.status == EventStatus.SETTLED
        # Only bob's registration paid direct income
        assert mock_gateway.send_batch.await_count == 1
        carol = await load_participant(session_factory, "carol")
        assert carol.has_entered_autopool is True
        async with session_factory() as session:
            node = await PoolNodeRepository(session).get_by_participant_level(carol.id, 1)
        assert node is not None
        assert node.parent_node_id is None

    @pytest.mark.asyncio
    async def test_duplicate_event_applied_once(
        self, processor, session_factory, mock_gateway
    ):
        await processor.process_payload(registration("r-1", "alice", 1))
        payload = registration("r-2", "bob", 2, "alice")

        first = await processor.process_payload(payload)
        second = await processor.process_payload(payload)

        assert first.status == EventStatus.SETTLED
        assert second.status == EventStatus.DUPLICATE
        assert mock_gateway.send_batch.await_count == 1
        alice = await load_participant(session_factory, "alice")
        assert alice.total_direct_income == Decimal("18")
        assert alice.direct_referral_count == 1

    @pytest.mark.asyncio
    async def test_second_referral_event(
        self, processor, session_factory, make_participant, place
    ):
        async with session_factory() as session:
            p1 = await make_participant(session)
            p2 = await make_participant(session)
            await place(session, p1)
            await place(session, p2)
            newcomer = await make_participant(session, referrer=p1)
            await session.commit()

        result = await processor.process_payload(
            {
                "event_type": "SecondReferral",
                "event_id": "sr-1",
                "participant_id": newcomer.public_id,
                "ancestor_id": p1.public_id,
            }
        )

        assert result.status == EventStatus.SETTLED
        assert result.payout_total == Decimal("20")
        owner = await load_participant(session_factory, p1.public_id)
        assert owner.total_autopool_income == Decimal("10")

    @pytest.mark.asyncio
    async def test_second_referral_wrong_ancestor_rejected(
        self, processor, session_factory, make_participant
    ):
        async with session_factory() as session:
            stranger = await make_participant(session)
            newcomer = await make_participant(session)
            await session.commit()

        result = await processor.process_payload(
            {
                "event_type": "second_referral",
                "event_id": "sr-2",
                "participant_id": newcomer.public_id,
                "ancestor_id": stranger.public_id,
            }
        )

        assert result.status == EventStatus.REJECTED
        assert result.replayable is False
        assert "not the referrer" in result.error


class TestRollbackAndReplay:
    """Rejected events leave no trace and can be replayed."""

    @pytest.mark.asyncio
    async def test_insufficient_funds_restores_queue(
        self, processor, session_factory, make_participant, place, queue, mock_gateway
    ):
        async with session_factory() as session:
            p1 = await make_participant(session)
            p2 = await make_participant(session)
            await place(session, p1)
            await place(session, p2)
            newcomer = await make_participant(session, referrer=p1)
            await session.commit()
        queue_before = await queue.snapshot(1)
        payload = {
            "event_type": "second_referral",
            "event_id": "sr-funds",
            "participant_id": newcomer.public_id,
            "ancestor_id": p1.public_id,
        }
        mock_gateway.get_available_balance = AsyncMock(return_value=Decimal("1"))

        rejected = await processor.process_payload(payload)

        assert rejected.status == EventStatus.REJECTED
        assert rejected.replayable is True
        assert "Insufficient" in rejected.error
        assert await queue.snapshot(1) == queue_before
        stored = await load_participant(session_factory, newcomer.public_id)
        assert stored.has_entered_autopool is False
        async with session_factory() as session:
            assert await PoolNodeRepository(session).count_at_level(1) == 2
            assert await PayoutBatchRepository(session).count() == 0
        event = await load_event(session_factory, "sr-funds")
        assert event.status == ProcessedEventStatus.REJECTED.value

        mock_gateway.get_available_balance = AsyncMock(return_value=Decimal("1000"))
        replayed = await processor.process_payload(payload)

        assert replayed.status == EventStatus.SETTLED
        event = await load_event(session_factory, "sr-funds")
        assert event.attempts == 2
        owner = await load_participant(session_factory, p1.public_id)
        assert owner.total_autopool_income == Decimal("10")

    @pytest.mark.asyncio
    async def test_gateway_balance_unavailable(self, processor, mock_gateway):
        await processor.process_payload(registration("r-1", "alice", 1))
        mock_gateway.get_available_balance = AsyncMock(return_value=None)

        result = await processor.process_payload(registration("r-2", "bob", 2, "alice"))

        assert result.status == EventStatus.REJECTED
        assert result.replayable is True
        assert "unavailable" in result.error

    @pytest.mark.asyncio
    async def test_pending_settlement_resumed_on_replay(
        self, processor, session_factory, mock_gateway
    ):
        await processor.process_payload(registration("r-1", "alice", 1))
        mock_gateway.wait_for_confirmation = AsyncMock(
            side_effect=lambda tx_hash, timeout=None: {
                "success": False,
                "tx_hash": tx_hash,
                "block_number": None,
                "error": "Transaction confirmation timeout - check status later",
                "status": "pending",
            }
        )
        payload = registration("r-2", "bob", 2, "alice")

        pending = await processor.process_payload(payload)

        assert pending.status == EventStatus.PENDING_SETTLEMENT
        event = await load_event(session_factory, "r-2")
        assert event.status == ProcessedEventStatus.APPLIED.value
        alice = await load_participant(session_factory, "alice")
        assert alice.total_direct_income == Decimal("0")

        mock_gateway.get_transaction_status = AsyncMock(
            side_effect=lambda tx_hash: {
                "status": "confirmed",
                "success": True,
                "tx_hash": tx_hash,
                "block_number": 101,
                "error": None,
            }
        )
        resumed = await processor.process_payload(payload)

        assert resumed.status == EventStatus.SETTLED
        assert resumed.tx_hashes == pending.tx_hashes
        assert mock_gateway.send_batch.await_count == 1
        alice = await load_participant(session_factory, "alice")
        assert alice.total_direct_income == Decimal("18")
        assert alice.direct_referral_count == 1


class TestRetopupEvents:
    @pytest.mark.asyncio
    async def test_retopup_pays_level_income(
        self, processor, session_factory, make_participant
    ):
        async with session_factory() as session:
            sponsor = await make_participant(session, has_retopup=True)
            buyer = await make_participant(session, referrer=sponsor)
            await session.commit()

        result = await processor.process_payload(
            {
                "event_type": "RetopupAccepted",
                "tx_hash": "0x" + "cd" * 32,
                "log_index": 0,
                "participant_id": buyer.public_id,
            }
        )

        assert result.status == EventStatus.SETTLED
        assert result.event_key == "0x" + "cd" * 32 + ":0"
        sponsor = await load_participant(session_factory, sponsor.public_id)
        assert sponsor.total_level_income == Decimal("12")
        buyer = await load_participant(session_factory, buyer.public_id)
        assert buyer.retopup_count == 1

    @pytest.mark.asyncio
    async def test_unknown_participant_rejected(self, processor):
        result = await processor.process_payload(
            {"event_type": "retopup", "event_id": "t-1", "participant_id": "ghost"}
        )

        assert result.status == EventStatus.REJECTED
        assert result.replayable is False

    @pytest.mark.asyncio
    async def test_malformed_payload_rejected(self, processor, session_factory):
        result = await processor.process_payload(
            {"event_type": "refund", "event_id": "x-1", "participant_id": "a"}
        )

        assert result.status == EventStatus.REJECTED
        assert await load_event(session_factory, "x-1") is None


class TestProgressionService:
    @pytest.mark.asyncio
    async def test_retry_progression(self, processor, session_factory, make_participant):
        async with session_factory() as session:
            participant = await make_participant(session)
            await ReservedIncomeLedger(session).credit(participant.id, 1, Decimal("40"))
            await session.commit()
        service = ProgressionService(processor)

        result, outcome = await service.retry_progression(participant.id, 1)

        assert result.status == EventStatus.SETTLED
        assert outcome.status == ProgressionStatus.PROGRESSED
        async with session_factory() as session:
            node = await PoolNodeRepository(session).get_by_participant_level(
                participant.id, 2
            )
            assert node is not None
            assert await ReservedIncomeLedger(session).balance(participant.id, 1) == (
                Decimal("0")
            )

        again, outcome = await service.retry_progression(participant.id, 1)
        assert again.status == EventStatus.SETTLED
        assert outcome.status == ProgressionStatus.ALREADY_PROGRESSED

    @pytest.mark.asyncio
    async def test_retry_with_top_up_covers_short_reserve(
        self, processor, session_factory, make_participant
    ):
        async with session_factory() as session:
            participant = await make_participant(session)
            # A last-four member reserves only its layer-1 share
            await ReservedIncomeLedger(session).credit(participant.id, 1, Decimal("10"))
            await session.commit()
        service = ProgressionService(processor)

        _, short = await service.retry_progression(participant.id, 1)
        assert short.status == ProgressionStatus.INSUFFICIENT_RESERVE

        result, outcome = await service.retry_progression(
            participant.id, 1, top_up=Decimal("30")
        )

        assert result.status == EventStatus.SETTLED
        assert outcome.status == ProgressionStatus.PROGRESSED
        async with session_factory() as session:
            assert await PoolNodeRepository(session).get_by_participant_level(
                participant.id, 2
            )
            assert await ReservedIncomeLedger(session).balance(participant.id, 1) == (
                Decimal("0")
            )

    @pytest.mark.asyncio
    async def test_retry_unknown_participant(self, processor):
        result, outcome = await ProgressionService(processor).retry_progression(999, 1)

        assert result.status == EventStatus.REJECTED
        assert outcome is None


class TestStatisticsService:
    @pytest.mark.asyncio
    async def test_platform_and_participant_stats(self, processor, session_factory):
        await processor.process_payload(registration("r-1", "alice", 1))
        await processor.process_payload(registration("r-2", "bob", 2, "alice"))

        async with session_factory() as session:
            service = StatisticsService(session)
            stats = await service.get_platform_stats()
            alice = await ParticipantRepository(session).get_by_public_id("alice")
            summary = await service.get_participant_summary(alice)
            level = await service.get_level_stats(1)

        assert stats["total_participants"] == 2
        assert stats["recent_registrations"] == 2
        assert stats["ledger_entries"] == 2
        assert stats["confirmed_ledger_entries"] == 2
        assert stats["payout_batches"] == {"confirmed": 1}
        assert summary["direct_income"] == Decimal("18")
        assert summary["total_reserved"] == Decimal("0")
        assert level["trees"] == 0
