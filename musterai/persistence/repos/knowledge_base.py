from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from musterai.domain.models import KnowledgeBaseEntry


async def list_recent_entries(
    session: AsyncSession, organization_id: str, limit: int
) -> list[KnowledgeBaseEntry]:
    # Tenant-scoped, most recently updated first, capped at limit.
    result = await session.execute(
        select(KnowledgeBaseEntry)
        .where(KnowledgeBaseEntry.organization_id == organization_id)
        .order_by(KnowledgeBaseEntry.updated_at.desc(), KnowledgeBaseEntry.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())
