"""
Ancestry chain.

Ordered referrers of a participant, fetched one ancestor at a time up to a
bounded depth.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from autopool.models.participant import Participant
from autopool.repositories.participant_repository import ParticipantRepository


class AncestryChain:
    """Iterative walk up the referral chain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.participant_repo = ParticipantRepository(session)

    async def get_ancestors(
        self, participant: Participant, max_depth: int
    ) -> list[Participant]:
        """
        Get up to max_depth referrers, nearest first.

        Args:
            participant: Starting participant (not included)
            max_depth: Maximum number of ancestors

        Returns:
            List where index 0 is the direct referrer
        """
        ancestors: list[Participant] = []
        seen = {participant.id}
        referrer_id = participant.referrer_id

        while referrer_id is not None and len(ancestors) < max_depth:
            if referrer_id in seen:
                # Corrupted data must not loop forever
                break
            ancestor = await self.participant_repo.get_by_id(referrer_id)
            if ancestor is None:
                break
            ancestors.append(ancestor)
            seen.add(ancestor.id)
            referrer_id = ancestor.referrer_id

        return ancestors
