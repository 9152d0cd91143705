"""
OpenAI client adapter for the application.
Wraps a LangChain ChatOpenAI model as a generation candidate.
"""

from typing import Optional

from langchain_core.messages import HumanMessage
from langchain_openai import ChatOpenAI

from cortex_chat.config.app_config import AppConfig, get_config
from cortex_chat.infrastructure.monitoring.logging_service import get_logger
from cortex_chat.infrastructure.resilience.retry_service import RetryService
from cortex_chat.services.ai_service.generation_client import GenerationClient


class OpenAIChatModel:
    """
    One OpenAI chat model exposed as a text generator.

    The underlying client never retries on its own; retries and model
    fallback belong to the GenerationClient. Upstream failures surface as
    openai exceptions, whose status errors carry `status_code`.
    """

    def __init__(self, model_name: str, api_key: str, temperature: float = 0.5,
                 max_tokens: int = 1000, timeout: Optional[float] = None):
        if not api_key:
            raise ValueError("OpenAI API key not configured")

        self.model_name = model_name
        self.logger = get_logger(__name__)
        self._chat_client = ChatOpenAI(
            model=model_name,
            temperature=temperature,
            max_tokens=max_tokens,
            openai_api_key=api_key,
            max_retries=0,
            timeout=timeout,
        )
        self.logger.info(f"OpenAI chat client initialized: {model_name}")

    async def generate(self, prompt: str) -> str:
        response = await self._chat_client.ainvoke([HumanMessage(content=prompt)])
        content = response.content
        if isinstance(content, list):
            # Content blocks: keep the text parts
            content = "".join(
                block.get("text", "") if isinstance(block, dict) else str(block)
                for block in content
            )
        return content


def build_generation_client(config: Optional[AppConfig] = None,
                            retry_service: Optional[RetryService] = None) -> GenerationClient:
    """Generation client with one OpenAI candidate per configured model, primary first"""
    config = config or get_config()

    candidates = [
        OpenAIChatModel(
            model_name=name,
            api_key=config.api.openai_api_key,
            temperature=config.llm.temperature,
            max_tokens=config.llm.max_tokens,
        )
        for name in config.llm.candidate_models()
    ]

    return GenerationClient(
        candidates,
        retry_service=retry_service,
        max_attempts=config.retry.max_attempts,
        base_delay=config.retry.base_delay,
        max_delay=config.retry.max_delay,
        jitter=config.retry.jitter,
        request_timeout=config.llm.request_timeout,
    )
