from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from musterai.domain.models import DocumentProject, GeneratedDocument


async def get_document(session: AsyncSession, document_id: str) -> GeneratedDocument | None:
    return await session.get(GeneratedDocument, document_id)


async def get_project(session: AsyncSession, project_id: str) -> DocumentProject | None:
    return await session.get(DocumentProject, project_id)


async def touch_document(
    session: AsyncSession,
    document_id: str,
    *,
    at: datetime,
) -> None:
    # Only timestamps are written; section content stays owned by the editor.
    await session.execute(
        update(GeneratedDocument)
        .where(GeneratedDocument.id == document_id)
        .values(updated_at=at, last_ai_interaction_at=at)
        .execution_options(synchronize_session=False)
    )


async def count_documents_for_organization(session: AsyncSession, organization_id: str) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(GeneratedDocument)
        .where(GeneratedDocument.organization_id == organization_id)
    )
    return int(result.scalar_one())
