from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from musterai.domain.models import Membership


async def get_membership(
    session: AsyncSession, subject_id: str, organization_id: str
) -> Membership | None:
    # Primary-key lookup on the (subject, organization) pair.
    return await session.get(Membership, (subject_id, organization_id))
