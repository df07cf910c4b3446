from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from musterai.agent.document_prompts import (
    find_section,
    render_section_request,
    render_system_prompt,
    section_search_query,
)
from musterai.core.config import Settings, get_settings
from musterai.core.errors import NotFoundError, PermissionDeniedError, QuotaExceededError
from musterai.domain.models import DocumentProject, GeneratedDocument
from musterai.persistence.repos import documents as documents_repo
from musterai.services.access import require_active_member, require_document_access
from musterai.services.audit import RequestContext, record_event
from musterai.services.completion import CompletionInvoker
from musterai.services.conversation import (
    ROLE_ASSISTANT,
    ROLE_SYSTEM,
    ROLE_USER,
    ConversationLog,
    TokenUsage,
    Turn,
    UsageTotals,
)
from musterai.services.interpreter import text_or_fallback
from musterai.services.quota import (
    ACTION_DOC_GEN,
    QuotaKey,
    QuotaLedgerLike,
    document_generation_policy,
    enforce_quota,
)
from musterai.services.retrieval import CorpusEntry, RelevanceIndex
from musterai.services.validation import require_text


logger = logging.getLogger(__name__)

EMPTY_REPLY_FALLBACK = "I was unable to generate a response. Please try rephrasing your request."

_REPLAYABLE_ROLES = {ROLE_USER, ROLE_ASSISTANT}


@dataclass(frozen=True)
class ChatReply:
    message: str
    token_usage: TokenUsage
    knowledge_base_docs_used: int


@dataclass(frozen=True)
class SectionContent:
    success: bool
    content: str
    section_id: str
    token_usage: TokenUsage


def replayable_turns(history: list[Turn]) -> list[dict[str, str]]:
    # Only user/assistant turns are replayed, and the replay must open with a user turn.
    turns = [{"role": turn.role, "content": turn.content} for turn in history if turn.role in _REPLAYABLE_ROLES]
    while turns and turns[0]["role"] != ROLE_USER:
        turns.pop(0)
    return turns


class DocumentAssistant:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        quota_ledger: QuotaLedgerLike,
        relevance_index: RelevanceIndex,
        conversation_log: ConversationLog,
        invoker: CompletionInvoker,
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._quota_ledger = quota_ledger
        self._relevance_index = relevance_index
        self._conversation_log = conversation_log
        self._invoker = invoker
        self._settings = settings or get_settings()

    def _validate_document_id(self, document_id: str) -> str:
        return require_text(
            document_id,
            max_chars=self._settings.max_identifier_chars,
            message="Valid document ID is required",
        )

    async def _authorize(
        self, document_id: str, subject_id: str, context: RequestContext | None
    ) -> tuple[GeneratedDocument, str]:
        try:
            async with self._session_factory() as session:
                verdict = await require_document_access(session, document_id, subject_id)
        except PermissionDeniedError as exc:
            await record_event(
                self._session_factory,
                organization_id=None,
                actor_type="user",
                actor_id=subject_id,
                event_type="document_assistant.access.denied",
                outcome="failure",
                resource_type="document",
                resource_id=document_id,
                context=context,
                metadata={"reason": str(exc)},
                error_code="AUTH_FORBIDDEN",
            )
            raise
        if verdict.document is None or verdict.organization_id is None:
            raise PermissionDeniedError(verdict.reason or "Document not found")
        return verdict.document, verdict.organization_id

    async def _admit(
        self, organization_id: str, subject_id: str, document_id: str, context: RequestContext | None
    ) -> None:
        try:
            await enforce_quota(
                self._quota_ledger,
                QuotaKey(ACTION_DOC_GEN, organization_id),
                document_generation_policy(self._settings),
            )
        except QuotaExceededError:
            await record_event(
                self._session_factory,
                organization_id=organization_id,
                actor_type="user",
                actor_id=subject_id,
                event_type="document_assistant.quota.exceeded",
                outcome="failure",
                resource_type="document",
                resource_id=document_id,
                context=context,
                error_code="RATE_LIMITED",
            )
            raise

    async def _load_project(self, project_id: str) -> DocumentProject | None:
        async with self._session_factory() as session:
            return await documents_repo.get_project(session, project_id)

    async def send_message(
        self,
        subject_id: str,
        document_id: str,
        message: str,
        *,
        context: RequestContext | None = None,
    ) -> ChatReply:
        self._validate_document_id(document_id)
        require_text(
            message,
            max_chars=self._settings.max_message_chars,
            message=f"Message is required and must be under {self._settings.max_message_chars} characters",
        )
        self._invoker.ensure_configured()

        document, organization_id = await self._authorize(document_id, subject_id, context)
        await self._admit(organization_id, subject_id, document_id, context)

        # Reads are independent; each runs on its own session.
        project, entries, history = await asyncio.gather(
            self._load_project(document.project_id),
            self._relevance_index.search(message, organization_id, self._settings.kb_result_limit),
            self._conversation_log.tail(document_id, self._settings.conversation_history_limit),
        )
        if project is None:
            raise NotFoundError("Project not found")

        system_prompt = render_system_prompt(
            document, project, entries, excerpt_chars=self._settings.kb_excerpt_chars
        )
        entry_ids = _entry_ids(entries)

        # The user turn lands before the completion is requested.
        await self._conversation_log.append(
            document_id,
            Turn(role=ROLE_USER, content=message, context_snapshot={"knowledge_base_docs_used": entry_ids}),
        )
        turns = [*replayable_turns(history), {"role": ROLE_USER, "content": message}]
        completion = await self._invoker.complete(system_prompt, turns)

        reply = text_or_fallback(completion.text, EMPTY_REPLY_FALLBACK)
        usage = TokenUsage(
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
        )
        await self._conversation_log.append(
            document_id,
            Turn(role=ROLE_ASSISTANT, content=reply, token_usage=usage),
        )
        await self._conversation_log.touch_document(document_id)

        logger.info(
            "document_message_done document_id=%s organization_id=%s kb_docs=%s total_tokens=%s",
            document_id,
            organization_id,
            len(entries),
            usage.total_tokens,
        )
        await record_event(
            self._session_factory,
            organization_id=organization_id,
            actor_type="user",
            actor_id=subject_id,
            event_type="document_assistant.message.completed",
            outcome="success",
            resource_type="document",
            resource_id=document_id,
            context=context,
            metadata={**usage.as_dict(), "knowledge_base_docs_used": len(entries)},
        )
        return ChatReply(message=reply, token_usage=usage, knowledge_base_docs_used=len(entries))

    async def generate_section_content(
        self,
        subject_id: str,
        document_id: str,
        section_id: str,
        prompt: str,
        *,
        context: RequestContext | None = None,
    ) -> SectionContent:
        self._validate_document_id(document_id)
        require_text(
            section_id,
            max_chars=self._settings.max_identifier_chars,
            message="Document ID and section ID are required",
        )
        require_text(
            prompt,
            max_chars=self._settings.max_prompt_chars,
            message=f"Prompt is required and must be under {self._settings.max_prompt_chars} characters",
        )
        self._invoker.ensure_configured()

        document, organization_id = await self._authorize(document_id, subject_id, context)
        section = find_section(document, section_id)
        if section is None:
            raise NotFoundError("Section not found")
        await self._admit(organization_id, subject_id, document_id, context)

        project, entries = await asyncio.gather(
            self._load_project(document.project_id),
            self._relevance_index.search(
                section_search_query(section, prompt),
                organization_id,
                self._settings.kb_result_limit,
            ),
        )
        if project is None:
            raise NotFoundError("Project not found")

        system_prompt = render_system_prompt(
            document, project, entries, excerpt_chars=self._settings.kb_excerpt_chars
        )
        completion = await self._invoker.complete(
            system_prompt,
            [{"role": ROLE_USER, "content": render_section_request(section, prompt)}],
        )
        usage = TokenUsage(
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
        )
        await self._conversation_log.append(
            document_id,
            Turn(
                role=ROLE_SYSTEM,
                content=f"Generated content for section: {section.get('title', '')}",
                token_usage=usage,
                context_snapshot={
                    "section_id": section_id,
                    "knowledge_base_docs_used": _entry_ids(entries),
                },
            ),
        )

        logger.info(
            "section_content_done document_id=%s section_id=%s kb_docs=%s total_tokens=%s",
            document_id,
            section_id,
            len(entries),
            usage.total_tokens,
        )
        await record_event(
            self._session_factory,
            organization_id=organization_id,
            actor_type="user",
            actor_id=subject_id,
            event_type="document_assistant.section.generated",
            outcome="success",
            resource_type="document_section",
            resource_id=f"{document_id}/{section_id}",
            context=context,
            metadata={**usage.as_dict(), "knowledge_base_docs_used": len(entries)},
        )
        return SectionContent(
            success=True,
            content=completion.text,
            section_id=section_id,
            token_usage=usage,
        )

    async def get_organization_token_usage(self, subject_id: str, organization_id: str) -> UsageTotals:
        require_text(
            organization_id,
            max_chars=self._settings.max_identifier_chars,
            message="Valid organization ID is required",
        )
        async with self._session_factory() as session:
            await require_active_member(session, subject_id, organization_id)
        return await self._conversation_log.usage_totals(organization_id)


def _entry_ids(entries: list[CorpusEntry]) -> list[str]:
    return [entry.id for entry in entries]
