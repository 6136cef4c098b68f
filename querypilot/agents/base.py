"""
Base Agent Framework

Abstract base class for the supervisor and the agent nodes.
Provides consistent interface, timing, logging, error wrapping and bounded
retries of language-model calls.

Usage:
    class MyAgent(BaseAgent):
        def __init__(self, llm_provider):
            super().__init__(name="MyAgent", llm_provider=llm_provider)

        async def execute(self, state: ConversationState) -> str:
            response = await self._generate(LLMRequest(messages=[...]))
            return response.content
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.models import LLMRequest, LLMResponse
from querypilot.models.agent import AgentError, ProviderFailure
from querypilot.models.state import ConversationState

logger = logging.getLogger(__name__)


class BaseAgent(ABC):
    """
    Abstract base class for all agents in the QueryPilot pipeline.

    Responsibilities:
        - Define standard interface via execute() method
        - Provide timing and logging around each execution
        - Retry provider calls a bounded number of times

    Attributes:
        name: Unique identifier for this agent
        llm: Provider used for model calls
        max_retries: Provider retries after the first failed attempt
        retry_backoff_seconds: Linear backoff step between retries
    """

    def __init__(
        self,
        name: str,
        llm_provider: BaseLLMProvider | None,
        max_retries: int = 2,
        retry_backoff_seconds: float = 0.5,
    ):
        self.name = name
        self.llm = llm_provider
        self.max_retries = max_retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self.llm_calls = 0

        logger.debug(
            f"Initialized {self.name}",
            extra={"agent": self.name, "max_retries": max_retries},
        )

    @abstractmethod
    async def execute(self, state: ConversationState) -> Any:
        """
        Execute the agent's core logic against the turn's state.

        Raises:
            AgentError: On failures the caller has to handle
        """
        pass  # pragma: no cover - abstract method

    async def __call__(self, state: ConversationState, **kwargs: Any) -> Any:
        """
        Execute the agent with timing, logging and error wrapping.

        Unexpected exceptions are wrapped in a non-recoverable AgentError;
        cancellation passes through untouched.
        """
        start_time = time.perf_counter()
        logger.info(
            f"Starting {self.name}",
            extra={
                "agent": self.name,
                "data_source_id": state.data_source_id,
                "query": state.latest_user_message[:100],
            },
        )
        try:
            output = await self.execute(state, **kwargs)
        except AgentError as e:
            logger.error(
                f"Failed {self.name}: {e.message}",
                extra={
                    "agent": self.name,
                    "error": e.message,
                    "duration_ms": (time.perf_counter() - start_time) * 1000,
                },
            )
            raise
        except Exception as e:
            logger.error(
                f"Unexpected error in {self.name}",
                extra={
                    "agent": self.name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "duration_ms": (time.perf_counter() - start_time) * 1000,
                },
                exc_info=True,
            )
            raise AgentError(
                agent=self.name,
                message=f"Unexpected error: {str(e)}",
                recoverable=False,
                context={"error_type": type(e).__name__},
            ) from e

        logger.info(
            f"Completed {self.name}",
            extra={
                "agent": self.name,
                "duration_ms": (time.perf_counter() - start_time) * 1000,
                "llm_calls": self.llm_calls,
            },
        )
        return output

    async def _generate(self, request: LLMRequest) -> LLMResponse:
        """
        Call the provider, retrying failures with linear backoff.

        Raises:
            ProviderFailure: After ``max_retries`` retries have failed too
        """
        attempts = 0
        while True:
            attempts += 1
            try:
                response = await self.llm.generate(request)
            except Exception as e:
                if attempts > self.max_retries:
                    raise ProviderFailure(
                        agent=self.name,
                        message=f"Provider failed after {attempts} attempts: {e}",
                        attempts=attempts,
                        context={"error_type": type(e).__name__},
                    ) from e
                wait_time = self.retry_backoff_seconds * attempts
                logger.warning(
                    f"Provider call failed in {self.name}, retrying in {wait_time}s",
                    extra={"agent": self.name, "attempt": attempts, "error": str(e)},
                )
                await self._sleep(wait_time)
                continue

            self.llm_calls += 1
            if response.finish_reason == "error":
                logger.warning(
                    f"Provider reported an error finish in {self.name}",
                    extra={"agent": self.name, "provider": response.provider},
                )
            return response

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
