"""
Qualifying event processor.

Processes one qualifying event as a unit:

1. decide (placements, distributions, reservations) into a payout plan
2. pre-flight the plan total against the payment rail balance
3. record the event and its pending payout intent, then commit
4. push the child slots staged by the placement unit
5. settle the payout batches through the payment gateway

Any failure before step 3 rolls back the database and restores popped
queue slots, so a rejected event leaves no trace and can be replayed.
Delivery is at least once; the event key makes replays no-ops.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from functools import partial
from typing import Any

import redis.asyncio as redis
from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autopool.config.settings import Settings, settings
from autopool.models.enums import ProcessedEventStatus
from autopool.models.processed_event import ProcessedEvent
from autopool.repositories.participant_repository import ParticipantRepository
from autopool.repositories.processed_event_repository import ProcessedEventRepository
from autopool.services.autopool import AutoPoolService, PlacementUnit
from autopool.services.direct_income import RegistrationService
from autopool.services.events import (
    QualifyingEvent,
    RegistrationEvent,
    RetopupEvent,
    SecondReferralEvent,
    parse_event,
)
from autopool.services.level_income import LevelIncomeWaterfall
from autopool.services.payment_gateway import PaymentGateway
from autopool.services.payout.plan import PayoutPlan
from autopool.services.payout.settlement import PayoutSettlementService
from autopool.services.placement_queue import PlacementQueue
from autopool.utils.exceptions import (
    REPLAYABLE,
    EventValidationError,
    GatewayUnavailableError,
    InsufficientFundsError,
)

ApplyFn = Callable[[AsyncSession, PlacementUnit, PayoutPlan], Awaitable[None]]


class EventStatus(StrEnum):
    """Outcome of processing one event."""

    SETTLED = "settled"  # Applied and every payout batch confirmed
    PENDING_SETTLEMENT = "pending_settlement"  # Applied, payout left to reconciliation
    DUPLICATE = "duplicate"  # Already settled, nothing done
    REJECTED = "rejected"  # Rolled back


@dataclass
class EventResult:
    """Result returned to the caller instead of raising mid-flow."""

    event_key: str
    status: EventStatus
    error: str | None = None
    replayable: bool = False
    tx_hashes: list[str] = field(default_factory=list)
    payout_total: Decimal = Decimal("0")

    @property
    def success(self) -> bool:
        return self.status != EventStatus.REJECTED


class QualifyingEventProcessor:
    """Applies qualifying events and settles their payouts."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: PaymentGateway,
        queue: PlacementQueue,
        redis_client: redis.Redis | None = None,
        config: Settings | None = None,
    ) -> None:
        """
        Initialize processor.

        Args:
            session_factory: Factory of database sessions (one per event)
            gateway: Payment gateway
            queue: Placement queue shared by all workers
            redis_client: Redis client for placement locks (local locks if None)
            config: Settings override
        """
        self.session_factory = session_factory
        self.gateway = gateway
        self.queue = queue
        self.redis_client = redis_client
        self.config = config or settings

    async def process_payload(self, payload: dict[str, Any]) -> EventResult:
        """Parse an untyped payload and process it."""
        try:
            event = parse_event(payload)
        except EventValidationError as e:
            logger.warning(f"Rejected malformed event payload: {e}")
            return EventResult(
                event_key=str(payload.get("event_id") or payload.get("tx_hash") or ""),
                status=EventStatus.REJECTED,
                error=str(e),
            )
        return await self.process(event)

    async def process(self, event: QualifyingEvent) -> EventResult:
        """
        Process one qualifying event.

        Returns:
            EventResult; errors are reported, not raised
        """
        logger.info(
            f"Processing {event.event_type} event {event.event_key} "
            f"for participant {event.participant_id}"
        )
        return await self.run(
            event_key=event.event_key,
            event_type=str(event.event_type),
            subject_id=event.participant_id,
            apply=partial(self._apply, event),
        )

    async def run(
        self,
        event_key: str,
        event_type: str,
        subject_id: str,
        apply: ApplyFn,
    ) -> EventResult:
        """
        Run an apply step inside one event unit and settle its payouts.

        Args:
            event_key: Idempotency key
            event_type: Recorded event kind
            subject_id: Public id of the participant the event is about
            apply: Coroutine deciding ledger effects into the plan
        """
        async with self.session_factory() as session:
            event_repo = ProcessedEventRepository(session)
            existing = await event_repo.get_by_key(event_key)

            if existing and existing.status == ProcessedEventStatus.SETTLED.value:
                logger.info(f"Event {event_key} already settled, skipping")
                return EventResult(event_key=event_key, status=EventStatus.DUPLICATE)

            if existing and existing.status == ProcessedEventStatus.APPLIED.value:
                logger.info(f"Event {event_key} already applied, resuming settlement")
                return await self._settle(session, event_key)

            plan = PayoutPlan(
                event_key=event_key,
                platform_wallet=self.gateway.get_platform_wallet(),
            )
            try:
                async with PlacementUnit(self.queue, self.redis_client) as unit:
                    try:
                        record = await self._record_applied(
                            event_repo, existing, event_key, event_type, subject_id
                        )
                        await apply(session, unit, plan)
                        await self._preflight(plan)

                        if plan.is_empty:
                            record.status = ProcessedEventStatus.SETTLED.value
                        else:
                            settlement = PayoutSettlementService(
                                session, self.gateway, self.config
                            )
                            await settlement.record_intent(plan)
                        await session.commit()
                    except BaseException:
                        await session.rollback()
                        raise
                    await unit.commit()

            except IntegrityError:
                logger.info(f"Event {event_key} recorded concurrently, treating as duplicate")
                return EventResult(event_key=event_key, status=EventStatus.DUPLICATE)
            except EventValidationError as e:
                return await self._reject(
                    session, event_key, event_type, subject_id, e, replayable=False
                )
            except REPLAYABLE as e:
                return await self._reject(
                    session, event_key, event_type, subject_id, e, replayable=True
                )

            if plan.is_empty:
                logger.info(f"Event {event_key} applied with no payout")
                return EventResult(event_key=event_key, status=EventStatus.SETTLED)

            return await self._settle(session, event_key, plan.total)

    async def _apply(
        self,
        event: QualifyingEvent,
        session: AsyncSession,
        unit: PlacementUnit,
        plan: PayoutPlan,
    ) -> None:
        participant_repo = ParticipantRepository(session)

        if isinstance(event, RegistrationEvent):
            registration = RegistrationService(session, self.config)
            outcome = await registration.register(
                event.participant_id, event.wallet_address, event.referrer_id
            )
            if outcome.is_second_referral:
                # Entry value funds the level 1 placement; no direct income
                autopool = AutoPoolService(session, unit, self.config)
                await autopool.enter_autopool(outcome.participant, plan)
            elif outcome.referrer is not None:
                registration.add_direct_income(
                    outcome.participant, outcome.referrer, plan
                )
            return

        if isinstance(event, SecondReferralEvent):
            participant = await participant_repo.get_by_public_id(event.participant_id)
            if participant is None:
                raise EventValidationError(f"Unknown participant {event.participant_id}")
            ancestor = await participant_repo.get_by_public_id(event.ancestor_id)
            if ancestor is None or participant.referrer_id != ancestor.id:
                raise EventValidationError(
                    f"{event.ancestor_id} is not the referrer of {event.participant_id}"
                )
            if participant.has_entered_autopool:
                raise EventValidationError(
                    f"Participant {event.participant_id} already entered auto-pool"
                )
            autopool = AutoPoolService(session, unit, self.config)
            await autopool.enter_autopool(participant, plan)
            return

        if isinstance(event, RetopupEvent):
            participant = await participant_repo.get_by_public_id(event.participant_id)
            if participant is None:
                raise EventValidationError(f"Unknown participant {event.participant_id}")
            waterfall = LevelIncomeWaterfall(session, self.config)
            await waterfall.distribute_retopup(participant, plan)
            return

        raise EventValidationError(f"Unsupported event: {event!r}")

    async def _record_applied(
        self,
        event_repo: ProcessedEventRepository,
        existing: ProcessedEvent | None,
        event_key: str,
        event_type: str,
        subject_id: str,
    ) -> ProcessedEvent:
        if existing is not None:
            # Replay of a rejected event
            existing.status = ProcessedEventStatus.APPLIED.value
            existing.attempts += 1
            existing.last_error = None
            return existing
        return await event_repo.create(
            event_key=event_key,
            event_type=event_type,
            participant_public_id=subject_id,
            status=ProcessedEventStatus.APPLIED.value,
        )

    async def _preflight(self, plan: PayoutPlan) -> None:
        """
        Check the payment rail can cover the plan.

        Raises:
            GatewayUnavailableError: Balance could not be read
            InsufficientFundsError: Balance below plan total
        """
        if plan.is_empty:
            return
        available = await self.gateway.get_available_balance()
        if available is None:
            raise GatewayUnavailableError("Payment rail balance unavailable")
        if Decimal(str(available)) < plan.total:
            raise InsufficientFundsError(required=plan.total, available=available)

    async def _reject(
        self,
        session: AsyncSession,
        event_key: str,
        event_type: str,
        subject_id: str,
        error: Exception,
        replayable: bool,
    ) -> EventResult:
        logger.warning(
            f"Event {event_key} rejected ({type(error).__name__}): {error}"
            + (" - replayable" if replayable else "")
        )
        event_repo = ProcessedEventRepository(session)
        record = await event_repo.get_by_key(event_key)
        if record is None:
            await event_repo.create(
                event_key=event_key,
                event_type=event_type,
                participant_public_id=subject_id,
                status=ProcessedEventStatus.REJECTED.value,
                last_error=str(error),
            )
        else:
            record.status = ProcessedEventStatus.REJECTED.value
            record.attempts += 1
            record.last_error = str(error)
        await session.commit()
        return EventResult(
            event_key=event_key,
            status=EventStatus.REJECTED,
            error=str(error),
            replayable=replayable,
        )

    async def _settle(
        self,
        session: AsyncSession,
        event_key: str,
        payout_total: Decimal = Decimal("0"),
    ) -> EventResult:
        settlement = PayoutSettlementService(session, self.gateway, self.config)
        try:
            result = await settlement.settle_event(event_key)
        except Exception as e:
            # Intent is committed; reconciliation picks the batches up
            logger.exception(f"Settlement of event {event_key} interrupted: {e}")
            await session.rollback()
            return EventResult(
                event_key=event_key,
                status=EventStatus.PENDING_SETTLEMENT,
                error=str(e),
                payout_total=payout_total,
            )

        status = (
            EventStatus.SETTLED if result.is_settled else EventStatus.PENDING_SETTLEMENT
        )
        logger.info(f"Event {event_key} {status}: tx {result.tx_hashes}")
        return EventResult(
            event_key=event_key,
            status=status,
            error=result.error,
            tx_hashes=result.tx_hashes,
            payout_total=payout_total,
        )
