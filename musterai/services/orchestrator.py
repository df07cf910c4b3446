from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from musterai.core.config import Settings, get_settings
from musterai.providers.llm.base import LLMProvider
from musterai.services.completion import CompletionInvoker
from musterai.services.conversation import ConversationLog
from musterai.services.document_assistant import DocumentAssistant
from musterai.services.quota import QuotaLedgerLike, build_quota_ledger
from musterai.services.retrieval import RelevanceIndex, SqlCandidateSource
from musterai.services.training_content import TrainingContentService


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Orchestrator:
    """Request-facing operations wired to one shared set of components."""

    documents: DocumentAssistant
    training: TrainingContentService
    quota_ledger: QuotaLedgerLike
    invoker: CompletionInvoker


def build_orchestrator(
    session_factory: async_sessionmaker[AsyncSession],
    provider: LLMProvider | None,
    settings: Settings | None = None,
    *,
    quota_ledger: QuotaLedgerLike | None = None,
    relevance_index: RelevanceIndex | None = None,
) -> Orchestrator:
    resolved = settings or get_settings()
    ledger = quota_ledger or build_quota_ledger(session_factory, resolved)
    invoker = CompletionInvoker.from_settings(provider, resolved)
    index = relevance_index or RelevanceIndex(
        SqlCandidateSource(session_factory),
        candidate_limit=resolved.kb_candidate_limit,
    )
    documents = DocumentAssistant(
        session_factory=session_factory,
        quota_ledger=ledger,
        relevance_index=index,
        conversation_log=ConversationLog(session_factory),
        invoker=invoker,
        settings=resolved,
    )
    training = TrainingContentService(
        session_factory=session_factory,
        quota_ledger=ledger,
        invoker=invoker,
        settings=resolved,
    )
    logger.info(
        "orchestrator_ready provider=%s quota_backend=%s",
        provider.name if provider is not None else "none",
        resolved.quota_backend,
    )
    return Orchestrator(documents=documents, training=training, quota_ledger=ledger, invoker=invoker)
