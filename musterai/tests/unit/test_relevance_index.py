from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from musterai.services.retrieval import (
    CorpusEntry,
    RelevanceIndex,
    SqlCandidateSource,
    query_terms,
    rank_entries,
)
from musterai.tests.utils.seed import seed_knowledge_base_entry


class _StaticSource:
    def __init__(self, entries: list[CorpusEntry]) -> None:
        self.entries = entries
        self.requested_limits: list[int] = []

    async def fetch_candidates(self, organization_id: str, limit: int) -> list[CorpusEntry]:
        self.requested_limits.append(limit)
        return self.entries[:limit]


class _BrokenSource:
    async def fetch_candidates(self, organization_id: str, limit: int) -> list[CorpusEntry]:
        raise RuntimeError("corpus store unavailable")


def _entry(entry_id: str, title: str = "", content: str = "", tags: tuple[str, ...] = ()) -> CorpusEntry:
    return CorpusEntry(id=entry_id, title=title, content=content, tags=tags)


def test_query_terms_are_lowercased_and_distinct() -> None:
    assert query_terms("  Lost LINK lost  procedure ") == ["lost", "link", "procedure"]


def test_blank_query_matches_nothing() -> None:
    candidates = [_entry("kb-1", title="Anything")]
    assert rank_entries("", candidates, 5) == []
    assert rank_entries("   ", candidates, 5) == []


def test_tag_match_ranks_above_non_matching_entry() -> None:
    candidates = [
        _entry("kb-plain", title="Battery storage"),
        _entry("kb-tagged", title="Checklist", tags=("preflight",)),
    ]
    ranked = rank_entries("preflight", candidates, 5)
    assert [item.entry.id for item in ranked] == ["kb-tagged"]
    assert ranked[0].score == 1


def test_ranking_is_stable_and_truncated() -> None:
    candidates = [
        _entry("kb-1", title="lost link"),
        _entry("kb-2", title="lost link return home"),
        _entry("kb-3", title="lost link"),
        _entry("kb-4", content="return"),
    ]
    ranked = rank_entries("lost link return", candidates, 3)
    assert [item.entry.id for item in ranked] == ["kb-2", "kb-1", "kb-3"]
    assert len(rank_entries("lost", candidates, 2)) == 2


@pytest.mark.asyncio
async def test_search_bounds_candidates_and_results() -> None:
    source = _StaticSource([_entry(f"kb-{index}", title="weather minima") for index in range(30)])
    index = RelevanceIndex(source, candidate_limit=20)

    results = await index.search("weather", "org-1", limit=5)

    assert source.requested_limits == [20]
    assert [entry.id for entry in results] == ["kb-0", "kb-1", "kb-2", "kb-3", "kb-4"]


@pytest.mark.asyncio
async def test_search_degrades_to_no_matches_on_source_failure() -> None:
    index = RelevanceIndex(_BrokenSource())
    assert await index.search("weather", "org-1") == []


@pytest.mark.asyncio
async def test_sql_source_reads_most_recent_entries_for_organization(session_factory) -> None:
    now = datetime.now(timezone.utc)
    await seed_knowledge_base_entry(
        session_factory, entry_id="kb-old", title="Old", tags=("a",), updated_at=now - timedelta(days=2)
    )
    await seed_knowledge_base_entry(
        session_factory, entry_id="kb-new", title="New", tags=("b",), updated_at=now
    )
    await seed_knowledge_base_entry(
        session_factory, entry_id="kb-other", title="Other", organization_id="org-2", updated_at=now
    )

    candidates = await SqlCandidateSource(session_factory).fetch_candidates("org-1", 20)

    assert [entry.id for entry in candidates] == ["kb-new", "kb-old"]
    assert candidates[0].tags == ("b",)
