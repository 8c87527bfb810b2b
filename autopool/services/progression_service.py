"""
Progression operator actions.

Progressions skipped for a short reserve or a full next level are not
retried automatically. An operator re-runs them here once conditions
change, optionally crediting an off-platform top-up of the reserve; the
re-run is processed and settled like any other event.
"""

from decimal import Decimal
from uuid import uuid4

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.repositories.participant_repository import ParticipantRepository
from autopool.services.autopool import (
    AutoPoolService,
    PlacementUnit,
    ProgressionOutcome,
    ReservedIncomeLedger,
)
from autopool.services.event_processor import EventResult, QualifyingEventProcessor
from autopool.services.payout.plan import PayoutPlan
from autopool.utils.exceptions import EventValidationError


class ProgressionService:
    """Operator re-run of skipped progressions."""

    def __init__(self, processor: QualifyingEventProcessor) -> None:
        self.processor = processor

    async def retry_progression(
        self,
        participant_id: int,
        from_level: int,
        top_up: Decimal | None = None,
    ) -> tuple[EventResult, ProgressionOutcome | None]:
        """
        Re-attempt moving a participant from from_level to from_level + 1.

        Args:
            participant_id: Participant database id
            from_level: Level whose tree the participant completed
            top_up: Amount paid in off-platform to cover the reserve shortfall,
                credited to the reserve in the same unit as the re-entry

        Returns:
            Tuple of (event result, progression outcome or None if rejected)
        """
        outcomes: list[ProgressionOutcome] = []

        async def apply(
            session: AsyncSession, unit: PlacementUnit, plan: PayoutPlan
        ) -> None:
            participant = await ParticipantRepository(session).get_by_id(participant_id)
            if participant is None:
                raise EventValidationError(f"Unknown participant {participant_id}")
            if top_up is not None:
                if top_up <= 0:
                    raise EventValidationError(f"Top-up must be positive, got {top_up}")
                await ReservedIncomeLedger(session).credit(
                    participant_id, from_level, top_up
                )
            autopool = AutoPoolService(session, unit, self.processor.config)
            outcomes.append(
                await autopool.progress_participant(participant_id, from_level, plan)
            )

        event_key = f"progression:{participant_id}:{from_level + 1}:{uuid4().hex[:12]}"
        logger.info(
            f"Operator retry of progression for participant {participant_id} "
            f"from level {from_level}"
            + (f" with top-up {top_up}" if top_up is not None else "")
        )
        result = await self.processor.run(
            event_key=event_key,
            event_type="progression",
            subject_id=str(participant_id),
            apply=apply,
        )
        outcome = outcomes[-1] if outcomes and result.success else None
        return result, outcome
