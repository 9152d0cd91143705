"""
Generation client - obtains an assistant reply across a prioritized list of model candidates.

Each candidate is tried up to max_attempts times with capped exponential
backoff between tries. A non-retryable status abandons that candidate at
once. When every candidate is exhausted the last error propagates.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from cortex_chat.infrastructure.monitoring.logging_service import get_logger, log_model_usage
from cortex_chat.infrastructure.resilience.retry_service import RetryService, get_error_status


class TextGenerator(Protocol):
    """A single model candidate"""
    model_name: str

    async def generate(self, prompt: str) -> str:
        ...


@dataclass
class GenerationResult:
    text: str
    model_used: str
    attempts: int


class GenerationClient:
    """
    Request/response generation with retry and model fallback.
    Holds no state between calls.
    """

    def __init__(
        self,
        candidates: Sequence[TextGenerator],
        retry_service: Optional[RetryService] = None,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 4.0,
        jitter: float = 0.1,
        request_timeout: Optional[float] = 30.0
    ):
        """
        Args:
            candidates: Model candidates, primary first
            retry_service: Retry executor (a default one is created if omitted)
            max_attempts: Tries per candidate
            base_delay: First backoff delay in seconds
            max_delay: Backoff cap in seconds
            jitter: Relative jitter on each delay
            request_timeout: Bound on a single try in seconds; None disables it
        """
        if not candidates:
            raise ValueError("At least one model candidate is required")

        self.candidates: List[TextGenerator] = list(candidates)
        self.retry_service = retry_service or RetryService()
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.request_timeout = request_timeout
        self.logger = get_logger(__name__)

    async def _call(self, candidate: TextGenerator, prompt: str) -> str:
        if self.request_timeout is None:
            return await candidate.generate(prompt)
        return await asyncio.wait_for(candidate.generate(prompt), timeout=self.request_timeout)

    async def generate(self, prompt: str) -> GenerationResult:
        """
        Generate a reply for a prompt

        Returns:
            GenerationResult with the text, the model that produced it and
            the total number of upstream calls made

        Raises:
            The last observed exception when every candidate is exhausted
        """
        attempts = 0
        last_error: Optional[BaseException] = None

        for candidate in self.candidates:
            async def attempt(candidate=candidate):
                nonlocal attempts
                attempts += 1
                return await self._call(candidate, prompt)

            try:
                text = await self.retry_service.retry_with_backoff(
                    attempt,
                    max_attempts=self.max_attempts,
                    base_delay=self.base_delay,
                    max_delay=self.max_delay,
                    jitter=self.jitter,
                )
            except Exception as e:
                last_error = e
                self.logger.warning(
                    f"Model candidate {candidate.model_name} exhausted "
                    f"({e.__class__.__name__}, status {get_error_status(e)})"
                )
                continue

            log_model_usage(self.logger, candidate.model_name, attempts)
            return GenerationResult(text=text, model_used=candidate.model_name, attempts=attempts)

        self.logger.error(f"All {len(self.candidates)} model candidates exhausted after {attempts} attempts")
        raise last_error
