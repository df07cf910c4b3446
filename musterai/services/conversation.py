from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from musterai.persistence.repos import documents as documents_repo
from musterai.persistence.repos import messages as messages_repo


logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_SYSTEM = "system"

DEFAULT_TAIL_LIMIT = 20


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def as_dict(self) -> dict[str, int]:
        return {"prompt_tokens": self.prompt_tokens, "completion_tokens": self.completion_tokens}


@dataclass(frozen=True)
class Turn:
    role: str
    content: str
    token_usage: TokenUsage | None = None
    context_snapshot: dict[str, Any] | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class UsageTotals:
    prompt_tokens: int
    completion_tokens: int
    message_count: int
    document_count: int

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ConversationLog:
    """Append-only per-document turn history."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        time_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._time_provider = time_provider or _utc_now

    async def append(self, document_id: str, turn: Turn) -> None:
        # User turns never carry token usage.
        usage = turn.token_usage if turn.role != ROLE_USER else None
        async with self._session_factory() as session:
            await messages_repo.add_message(
                session,
                document_id,
                turn.role,
                turn.content,
                prompt_tokens=usage.prompt_tokens if usage else None,
                completion_tokens=usage.completion_tokens if usage else None,
                context_snapshot=turn.context_snapshot,
                created_at=turn.created_at or self._time_provider(),
            )
            await session.commit()
        logger.debug("conversation_append document_id=%s role=%s", document_id, turn.role)

    async def tail(self, document_id: str, limit: int = DEFAULT_TAIL_LIMIT) -> list[Turn]:
        if limit <= 0:
            return []
        async with self._session_factory() as session:
            rows = await messages_repo.list_recent_messages(session, document_id, limit)
        turns: list[Turn] = []
        for row in rows:
            usage = None
            if row.prompt_tokens is not None or row.completion_tokens is not None:
                usage = TokenUsage(
                    prompt_tokens=int(row.prompt_tokens or 0),
                    completion_tokens=int(row.completion_tokens or 0),
                )
            turns.append(
                Turn(
                    role=row.role,
                    content=row.content,
                    token_usage=usage,
                    context_snapshot=row.context_snapshot,
                    created_at=row.created_at,
                )
            )
        return turns

    async def touch_document(self, document_id: str) -> None:
        async with self._session_factory() as session:
            await documents_repo.touch_document(session, document_id, at=self._time_provider())
            await session.commit()

    async def usage_totals(self, organization_id: str) -> UsageTotals:
        async with self._session_factory() as session:
            prompt_tokens, completion_tokens, message_count = (
                await messages_repo.usage_totals_for_organization(session, organization_id)
            )
            document_count = await documents_repo.count_documents_for_organization(
                session, organization_id
            )
        return UsageTotals(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            message_count=message_count,
            document_count=document_count,
        )
