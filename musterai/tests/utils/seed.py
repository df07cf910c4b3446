from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from musterai.domain.models import DocumentProject, GeneratedDocument, KnowledgeBaseEntry, Membership


DEFAULT_SECTIONS: list[dict[str, Any]] = [
    {"id": "s1", "title": "Normal Procedures", "content": ""},
    {"id": "s2", "title": "Emergency Procedures", "content": "Land immediately."},
]


async def seed_document(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    organization_id: str = "org-1",
    project_id: str = "proj-1",
    document_id: str = "doc-1",
    sections: Sequence[dict[str, Any]] | None = None,
    shared_context: dict[str, Any] | None = None,
    local_context: dict[str, Any] | None = None,
) -> None:
    async with session_factory() as session:
        if await session.get(DocumentProject, project_id) is None:
            session.add(
                DocumentProject(
                    id=project_id,
                    organization_id=organization_id,
                    name="Pipeline Survey",
                    client_name="Northern Energy",
                    description=None,
                    shared_context=dict(shared_context or {}),
                )
            )
            await session.flush()
        session.add(
            GeneratedDocument(
                id=document_id,
                organization_id=organization_id,
                project_id=project_id,
                type="sop",
                title="Standard Operating Procedures",
                sections=list(sections if sections is not None else DEFAULT_SECTIONS),
                local_context=dict(local_context or {}),
                cross_references=[],
            )
        )
        await session.commit()


async def seed_membership(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    subject_id: str,
    organization_id: str = "org-1",
    role: str = "operator",
    status: str = "active",
) -> None:
    async with session_factory() as session:
        session.add(
            Membership(subject_id=subject_id, organization_id=organization_id, role=role, status=status)
        )
        await session.commit()


async def seed_knowledge_base_entry(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    entry_id: str,
    title: str,
    content: str = "",
    tags: Sequence[str] = (),
    organization_id: str = "org-1",
    updated_at: datetime | None = None,
) -> None:
    async with session_factory() as session:
        session.add(
            KnowledgeBaseEntry(
                id=entry_id,
                organization_id=organization_id,
                title=title,
                content=content,
                tags=list(tags),
                updated_at=updated_at or datetime.now(timezone.utc),
            )
        )
        await session.commit()
