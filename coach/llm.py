import logging
from typing import Awaitable, Callable, Dict, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from coach.errors import UpstreamFailure

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], Awaitable[None]]


class ChatModelClient:
    """Thin wrapper around an OpenAI-compatible chat-completion endpoint.

    ``generate`` returns the full response text. When ``on_chunk`` is given
    the request is streamed and every non-empty delta is awaited through the
    callback before the next one is read.
    """

    def __init__(self, metrics, openai_client: AsyncOpenAI, model: str = "deepseek/deepseek-v3",
                 temperature: float = 0.7):
        self.metrics = metrics
        self.openai_client = openai_client
        self.model_version = model
        self.temperature = temperature

    @classmethod
    def from_settings(cls, metrics, settings) -> "ChatModelClient":
        openai_client = AsyncOpenAI(api_key=settings.openai_api_key, base_url=settings.openai_base_url)
        return cls(metrics, openai_client, model=settings.llm_model, temperature=settings.llm_temperature)

    async def generate(self, messages: List[Dict[str, str]], on_chunk: Optional[ChunkCallback] = None) -> str:
        try:
            if on_chunk is None:
                text = await self._complete(messages)
            else:
                text = await self._stream(messages, on_chunk)
        except (openai.OpenAIError, httpx.HTTPError) as e:
            # raw transport errors can escape the SDK while a stream is being read
            self.metrics.incr("errors.generate_response")
            raise UpstreamFailure(str(e)) from e

        self.metrics.incr("success.generate_response")
        return text

    async def _complete(self, messages) -> str:
        response = await self.openai_client.chat.completions.create(
            model=self.model_version, messages=messages, temperature=self.temperature
        )
        if not response.choices:
            raise UpstreamFailure("model returned no choices")

        if response.usage is not None:
            logger.debug("completion used %d prompt and %d completion tokens",
                         response.usage.prompt_tokens, response.usage.completion_tokens)
        return response.choices[0].message.content or ""

    async def _stream(self, messages, on_chunk: ChunkCallback) -> str:
        stream = await self.openai_client.chat.completions.create(
            model=self.model_version, messages=messages, temperature=self.temperature, stream=True
        )

        parts = []
        try:
            async for event in stream:
                if not event.choices:
                    continue
                delta = event.choices[0].delta.content
                if not delta:
                    continue
                await on_chunk(delta)
                parts.append(delta)
        finally:
            # release the upstream connection even when the reader went away
            await stream.close()
        return "".join(parts)
