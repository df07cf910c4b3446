from __future__ import annotations

import asyncio
from dataclasses import dataclass

from musterai.providers.llm.base import Completion


@dataclass(frozen=True)
class RecordedCall:
    system: str
    turns: list[dict[str, str]]
    max_tokens: int
    fast: bool


class FakeLLMProvider:
    name = "fake"

    def __init__(
        self,
        response: str = "This is a fake response.",
        *,
        responses: list[str] | None = None,
        error: Exception | None = None,
        delay_s: float = 0.0,
    ) -> None:
        # Deterministic responses keep tests stable without external calls.
        self._response = response
        self._responses = list(responses or [])
        self._error = error
        self._delay_s = delay_s
        self.calls: list[RecordedCall] = []

    async def complete(
        self,
        *,
        system: str,
        turns: list[dict[str, str]],
        max_tokens: int,
        fast: bool = False,
    ) -> Completion:
        self.calls.append(RecordedCall(system=system, turns=list(turns), max_tokens=max_tokens, fast=fast))
        if self._delay_s > 0:
            await asyncio.sleep(self._delay_s)
        if self._error is not None:
            raise self._error
        text = self._responses.pop(0) if self._responses else self._response
        # Word counts stand in for token counts.
        prompt_tokens = len(system.split()) + sum(len(turn.get("content", "").split()) for turn in turns)
        return Completion(
            text=text,
            prompt_tokens=prompt_tokens,
            completion_tokens=len(text.split()),
            model="fake-fast" if fast else "fake",
        )
