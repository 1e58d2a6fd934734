"""Description: Chat-completions client for the multimodal reasoning service."""

import logging
import time
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from models.agent_config import AgentConfig
from services.openai.response_utils import extract_text, extract_usage, serialize_response

LOGGER = logging.getLogger(__name__)


def create_openai_client(config: AgentConfig) -> AsyncOpenAI:
    """Build an AsyncOpenAI client bound to the configured endpoint and timeout."""
    return AsyncOpenAI(
        api_key=config.api_key,
        base_url=config.base_url,
        timeout=config.request_timeout,
        max_retries=config.max_retries,
    )


class ReasoningClient:
    """Send role-tagged message lists and return the assistant's free text."""

    def __init__(self, client: AsyncOpenAI, config: AgentConfig) -> None:
        """Initialize with a shared OpenAI async client and a config snapshot."""
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        self.client = client
        self.config = config
        self.last_usage: Dict[str, Optional[int]] = {}

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        *,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
    ) -> str:
        """Return the reply text for `messages`.

        Transport and API errors from the OpenAI client propagate unchanged so
        callers can classify them.
        """
        start_time = time.time()
        response = await self._create_response(
            messages,
            max_tokens=max_tokens or self.config.max_tokens,
            temperature=self.config.temperature if temperature is None else temperature,
            top_p=self.config.top_p if top_p is None else top_p,
        )
        self.last_usage = extract_usage(response)
        LOGGER.info(
            "Reasoning call latency: %.3fs (input_tokens=%s, output_tokens=%s)",
            time.time() - start_time,
            self.last_usage.get("input_tokens"),
            self.last_usage.get("output_tokens"),
        )
        LOGGER.debug("Raw response: %r", serialize_response(response))
        return extract_text(response)

    async def _create_response(self, messages: List[Dict[str, Any]], **params: Any) -> Any:
        try:
            return await self.client.chat.completions.create(
                model=self.config.model,
                messages=messages,
                **params,
            )
        except Exception as exc:
            LOGGER.error("Error during reasoning-service call: %s", exc)
            raise
