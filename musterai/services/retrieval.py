from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Iterable, Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from musterai.persistence.repos import knowledge_base as knowledge_base_repo


logger = logging.getLogger(__name__)

DEFAULT_CANDIDATE_LIMIT = 20
DEFAULT_RESULT_LIMIT = 5


@dataclass(frozen=True)
class CorpusEntry:
    id: str
    title: str
    content: str
    tags: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RankedEntry:
    entry: CorpusEntry
    score: int


class CandidateSource(Protocol):
    async def fetch_candidates(self, organization_id: str, limit: int) -> list[CorpusEntry]:
        ...


class SqlCandidateSource:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def fetch_candidates(self, organization_id: str, limit: int) -> list[CorpusEntry]:
        async with self._session_factory() as session:
            rows = await knowledge_base_repo.list_recent_entries(session, organization_id, limit)
        return [
            CorpusEntry(
                id=row.id,
                title=row.title or "",
                content=row.content or "",
                tags=tuple(str(tag) for tag in (row.tags or [])),
            )
            for row in rows
        ]


def query_terms(query: str) -> list[str]:
    # Whitespace tokens, lower-cased, first occurrence wins.
    seen: dict[str, None] = {}
    for term in query.lower().split():
        seen.setdefault(term, None)
    return list(seen)


def score_entry(terms: Sequence[str], entry: CorpusEntry) -> int:
    haystack = " ".join([entry.title, entry.content, " ".join(entry.tags)]).lower()
    return sum(1 for term in terms if term in haystack)


def rank_entries(query: str, candidates: Iterable[CorpusEntry], limit: int) -> list[RankedEntry]:
    # Pure scoring stage: drop zero scores, stable sort by score, truncate.
    terms = query_terms(query)
    if not terms or limit <= 0:
        return []
    scored = [RankedEntry(entry=entry, score=score_entry(terms, entry)) for entry in candidates]
    matches = [item for item in scored if item.score > 0]
    matches.sort(key=lambda item: item.score, reverse=True)
    return matches[:limit]


class RelevanceIndex:
    def __init__(
        self,
        candidate_source: CandidateSource,
        *,
        candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
    ) -> None:
        self._candidate_source = candidate_source
        self.candidate_limit = candidate_limit

    async def search(
        self, query: str, organization_id: str, limit: int = DEFAULT_RESULT_LIMIT
    ) -> list[CorpusEntry]:
        # Retrieval is best-effort; failures degrade to no reference material.
        try:
            candidates = await self._candidate_source.fetch_candidates(
                organization_id, self.candidate_limit
            )
        except SQLAlchemyError as exc:
            logger.warning(
                "kb_search_db_error organization_id=%s", organization_id, exc_info=exc
            )
            return []
        except Exception as exc:  # noqa: BLE001 - any candidate source failure means no references
            logger.warning(
                "kb_search_failed organization_id=%s", organization_id, exc_info=exc
            )
            return []
        ranked = rank_entries(query, candidates, limit)
        logger.debug(
            "kb_search organization_id=%s candidates=%s matches=%s",
            organization_id,
            len(candidates),
            len(ranked),
        )
        return [item.entry for item in ranked]
