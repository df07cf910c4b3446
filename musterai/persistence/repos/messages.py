from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from musterai.domain.models import ConversationMessage, GeneratedDocument


async def add_message(
    session: AsyncSession,
    document_id: str,
    role: str,
    content: str,
    *,
    prompt_tokens: int | None = None,
    completion_tokens: int | None = None,
    context_snapshot: dict[str, Any] | None = None,
    created_at: datetime | None = None,
) -> ConversationMessage:
    message = ConversationMessage(
        document_id=document_id,
        role=role,
        content=content,
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        context_snapshot=context_snapshot,
    )
    if created_at is not None:
        message.created_at = created_at
    session.add(message)
    return message


async def list_recent_messages(
    session: AsyncSession, document_id: str, limit: int
) -> list[ConversationMessage]:
    # Newest first from the database, flipped so callers get chronological order.
    result = await session.execute(
        select(ConversationMessage)
        .where(ConversationMessage.document_id == document_id)
        .order_by(ConversationMessage.created_at.desc(), ConversationMessage.id.desc())
        .limit(limit)
    )
    return list(reversed(result.scalars().all()))


async def usage_totals_for_organization(
    session: AsyncSession, organization_id: str
) -> tuple[int, int, int]:
    # Returns (prompt_tokens, completion_tokens, message_count) across the org's documents.
    result = await session.execute(
        select(
            func.coalesce(func.sum(ConversationMessage.prompt_tokens), 0),
            func.coalesce(func.sum(ConversationMessage.completion_tokens), 0),
            func.count(ConversationMessage.id),
        )
        .select_from(ConversationMessage)
        .join(GeneratedDocument, GeneratedDocument.id == ConversationMessage.document_id)
        .where(GeneratedDocument.organization_id == organization_id)
    )
    prompt_tokens, completion_tokens, message_count = result.one()
    return int(prompt_tokens), int(completion_tokens), int(message_count)
