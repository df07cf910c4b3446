from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from musterai.services.conversation import (
    ROLE_ASSISTANT,
    ROLE_SYSTEM,
    ROLE_USER,
    ConversationLog,
    TokenUsage,
    Turn,
)
from musterai.services.document_assistant import replayable_turns
from musterai.tests.utils.seed import seed_document


@pytest.mark.asyncio
async def test_tail_returns_most_recent_turns_in_order(session_factory) -> None:
    await seed_document(session_factory)
    log = ConversationLog(session_factory)
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for index in range(8):
        await log.append(
            "doc-1",
            Turn(role=ROLE_USER, content=f"turn {index}", created_at=start + timedelta(seconds=index)),
        )

    tail = await log.tail("doc-1", 5)

    assert [turn.content for turn in tail] == [f"turn {index}" for index in range(3, 8)]
    stamps = [turn.created_at for turn in tail]
    assert stamps == sorted(stamps)


@pytest.mark.asyncio
async def test_same_instant_turns_keep_append_order(session_factory) -> None:
    await seed_document(session_factory)
    instant = datetime(2026, 1, 1, tzinfo=timezone.utc)
    log = ConversationLog(session_factory, time_provider=lambda: instant)

    await log.append("doc-1", Turn(role=ROLE_USER, content="question"))
    await log.append("doc-1", Turn(role=ROLE_ASSISTANT, content="answer", token_usage=TokenUsage(3, 4)))

    tail = await log.tail("doc-1", 20)
    assert [turn.role for turn in tail] == [ROLE_USER, ROLE_ASSISTANT]


@pytest.mark.asyncio
async def test_user_turns_never_carry_usage(session_factory) -> None:
    await seed_document(session_factory)
    log = ConversationLog(session_factory)

    await log.append("doc-1", Turn(role=ROLE_USER, content="hi", token_usage=TokenUsage(10, 10)))
    await log.append("doc-1", Turn(role=ROLE_SYSTEM, content="generated", token_usage=TokenUsage(5, 7)))

    user_turn, system_turn = await log.tail("doc-1")
    assert user_turn.token_usage is None
    assert system_turn.token_usage == TokenUsage(prompt_tokens=5, completion_tokens=7)


@pytest.mark.asyncio
async def test_usage_totals_aggregate_across_organization_documents(session_factory) -> None:
    await seed_document(session_factory, document_id="doc-1")
    await seed_document(session_factory, document_id="doc-2")
    await seed_document(session_factory, organization_id="org-2", project_id="proj-2", document_id="doc-3")
    log = ConversationLog(session_factory)

    await log.append("doc-1", Turn(role=ROLE_ASSISTANT, content="a", token_usage=TokenUsage(10, 20)))
    await log.append("doc-2", Turn(role=ROLE_SYSTEM, content="b", token_usage=TokenUsage(1, 2)))
    await log.append("doc-2", Turn(role=ROLE_USER, content="c"))
    await log.append("doc-3", Turn(role=ROLE_ASSISTANT, content="d", token_usage=TokenUsage(100, 100)))

    totals = await log.usage_totals("org-1")

    assert (totals.prompt_tokens, totals.completion_tokens, totals.total_tokens) == (11, 22, 33)
    assert totals.message_count == 3
    assert totals.document_count == 2


def test_replay_drops_system_turns_and_leading_assistant_turns() -> None:
    history = [
        Turn(role=ROLE_ASSISTANT, content="orphan"),
        Turn(role=ROLE_USER, content="q1"),
        Turn(role=ROLE_SYSTEM, content="Generated content for section: X"),
        Turn(role=ROLE_ASSISTANT, content="a1"),
    ]
    assert replayable_turns(history) == [
        {"role": ROLE_USER, "content": "q1"},
        {"role": ROLE_ASSISTANT, "content": "a1"},
    ]
