from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Completion:
    text: str
    prompt_tokens: int
    completion_tokens: int
    model: str


class LLMProvider(Protocol):
    name: str

    async def complete(
        self,
        *,
        system: str,
        turns: list[dict[str, str]],
        max_tokens: int,
        fast: bool = False,
    ) -> Completion:
        ...
