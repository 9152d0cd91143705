"""
Tests for the generation client: retries, candidate fallback and timeouts
"""

import asyncio
from typing import List

import pytest

from cortex_chat.infrastructure.resilience.retry_service import RetryService
from cortex_chat.services.ai_service.generation_client import GenerationClient
from conftest import RecordingSleep


class UpstreamError(Exception):
    def __init__(self, status_code):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class ScriptedModel:
    """Candidate that replays a script of results and errors"""

    def __init__(self, model_name: str, script: List = None, default=None):
        self.model_name = model_name
        self.script = list(script or [])
        self.default = default
        self.calls = 0

    async def generate(self, prompt: str) -> str:
        self.calls += 1
        outcome = self.script.pop(0) if self.script else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class HangingModel:
    model_name = "slow"

    def __init__(self):
        self.calls = 0

    async def generate(self, prompt: str) -> str:
        self.calls += 1
        await asyncio.sleep(3600)
        return "never"


def make_client(candidates, sleep, **kwargs) -> GenerationClient:
    return GenerationClient(candidates, retry_service=RetryService(sleep=sleep), **kwargs)


class TestGenerationClient:

    def setup_method(self):
        self.sleep = RecordingSleep()

    @pytest.mark.asyncio
    async def test_primary_success(self):
        primary = ScriptedModel("primary", default="answer")
        fallback = ScriptedModel("fallback", default="other")

        result = await make_client([primary, fallback], self.sleep).generate("prompt")

        assert result.text == "answer"
        assert result.model_used == "primary"
        assert result.attempts == 1
        assert fallback.calls == 0

    @pytest.mark.asyncio
    async def test_exhaustion_across_two_candidates(self):
        primary = ScriptedModel("primary", default=UpstreamError(503))
        fallback = ScriptedModel("fallback", default=UpstreamError(503))
        client = make_client([primary, fallback], self.sleep, base_delay=1.0, max_delay=4.0)

        with pytest.raises(UpstreamError) as exc_info:
            await client.generate("prompt")

        assert exc_info.value.status_code == 503
        assert primary.calls == 3
        assert fallback.calls == 3

        # Two waits per candidate, none after a candidate's final try
        assert len(self.sleep.delays) == 4
        primary_delays, fallback_delays = self.sleep.delays[:2], self.sleep.delays[2:]
        for delays in (primary_delays, fallback_delays):
            assert delays[0] <= delays[1] <= 4.0

    @pytest.mark.asyncio
    async def test_fallback_candidate_used_after_exhaustion(self):
        primary = ScriptedModel("primary", default=UpstreamError(429))
        fallback = ScriptedModel("fallback", default="from fallback")

        result = await make_client([primary, fallback], self.sleep).generate("prompt")

        assert result.model_used == "fallback"
        assert result.attempts == 4

    @pytest.mark.asyncio
    async def test_non_retryable_status_moves_to_next_candidate(self):
        primary = ScriptedModel("primary", default=UpstreamError(400))
        fallback = ScriptedModel("fallback", default="ok")

        result = await make_client([primary, fallback], self.sleep).generate("prompt")

        assert primary.calls == 1
        assert result.model_used == "fallback"
        assert self.sleep.delays == []

    @pytest.mark.asyncio
    async def test_last_error_propagates(self):
        primary = ScriptedModel("primary", default=UpstreamError(503))
        fallback = ScriptedModel("fallback", default=UpstreamError(401))

        with pytest.raises(UpstreamError) as exc_info:
            await make_client([primary, fallback], self.sleep).generate("prompt")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_recovery_within_candidate(self):
        primary = ScriptedModel("primary", script=[UpstreamError(502), "second try"])

        result = await make_client([primary], self.sleep).generate("prompt")

        assert result.text == "second try"
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_timeout_is_retried(self):
        slow = HangingModel()
        fallback = ScriptedModel("fallback", default="fast")
        client = make_client([slow, fallback], self.sleep, request_timeout=0.01)

        result = await client.generate("prompt")

        assert slow.calls == 3
        assert result.model_used == "fallback"

    def test_requires_candidates(self):
        with pytest.raises(ValueError):
            GenerationClient([])
