"""Generative-language completion provider contract."""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel
from pydantic_ai import Agent
from pydantic_ai.models import Model

from ..config import LLMConfig

logger = logging.getLogger(__name__)


class CompletionOptions(BaseModel):
    temperature: float = 0.1
    max_tokens: int = 2000

    @classmethod
    def from_config(cls, config: LLMConfig) -> "CompletionOptions":
        return cls(temperature=config.temperature, max_tokens=config.max_tokens)


@runtime_checkable
class CompletionProvider(Protocol):
    async def complete(self, prompt: str, options: CompletionOptions) -> str: ...


class PydanticAICompletionProvider:
    """Completion provider backed by a plain-text ``pydantic_ai.Agent``.

    ``model`` may be a model string such as ``"anthropic:claude-sonnet-4-0"``
    or any pydantic-ai ``Model`` instance. The agent is built on first use so
    constructing the provider never needs provider credentials.
    """

    def __init__(self, model: Union[str, Model], instructions: Optional[str] = None) -> None:
        self.model = model
        self.instructions = instructions
        self._agent: Optional[Agent[Any, str]] = None

    @property
    def agent(self) -> Agent[Any, str]:
        if self._agent is None:
            self._agent = Agent(self.model, output_type=str, instructions=self.instructions)
        return self._agent

    async def complete(self, prompt: str, options: CompletionOptions) -> str:
        result = await self.agent.run(
            prompt,
            model_settings={
                "temperature": options.temperature,
                "max_tokens": options.max_tokens,
            },
        )
        logger.debug(f"Completion returned {len(result.output)} characters")
        return result.output
