"""
OpenAI provider implementation.
"""
import logging
from typing import Optional, Dict, Any, List
from collections.abc import AsyncIterator
from openai import AsyncOpenAI, APIError

from app.core.config import OPENAI_API_KEY
from app.llm.provider import LLMProvider, LLMResponse, StreamDelta, ToolCall

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI provider using official OpenAI SDK."""

    def __init__(self, api_key: Optional[str] = None):
        """Initialize OpenAI client."""
        self.api_key = api_key or OPENAI_API_KEY
        if not self.api_key:
            raise ValueError("OPENAI_API_KEY not configured")
        self.client = AsyncOpenAI(api_key=self.api_key)
        logger.info("OpenAI provider initialized")

    async def chat(
        self,
        messages: List[Dict[str, Any]],
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> LLMResponse:
        """Generate a chat completion."""
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens or 2000,
                **kwargs
            )

            content = response.choices[0].message.content or ""
            return LLMResponse(
                content=content,
                tokens_in=response.usage.prompt_tokens if response.usage else 0,
                tokens_out=response.usage.completion_tokens if response.usage else 0,
                model=model,
                metadata={
                    "finish_reason": response.choices[0].finish_reason,
                }
            )
        except APIError as e:
            logger.error(f"OpenAI API error: {e}", exc_info=True)
            raise

    async def stream(
        self,
        messages: List[Dict[str, Any]],
        model: str = "gpt-4o-mini",
        tools: Optional[List[Dict[str, Any]]] = None,
        **kwargs
    ) -> AsyncIterator[StreamDelta]:
        """
        Stream one completion step.

        Tool calls arrive as fragments keyed by index; they are yielded only once
        assembled, right before the finish delta.
        """
        params: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            params["tools"] = tools
        params.update(kwargs)

        try:
            stream = await self.client.chat.completions.create(**params)

            pending: Dict[int, Dict[str, str]] = {}
            finish_reason = None
            usage: Dict[str, int] = {}

            async for chunk in stream:
                if chunk.usage:
                    usage = {
                        "promptTokens": chunk.usage.prompt_tokens,
                        "completionTokens": chunk.usage.completion_tokens,
                    }
                if not chunk.choices:
                    continue

                choice = chunk.choices[0]
                delta = choice.delta

                # Some compatible endpoints stream reasoning separately
                reasoning = getattr(delta, "reasoning_content", None)
                if reasoning:
                    yield StreamDelta(reasoning=reasoning)
                if delta.content:
                    yield StreamDelta(text=delta.content)

                for fragment in delta.tool_calls or []:
                    slot = pending.setdefault(fragment.index, {"id": "", "name": "", "arguments": ""})
                    if fragment.id:
                        slot["id"] = fragment.id
                    if fragment.function and fragment.function.name:
                        slot["name"] += fragment.function.name
                    if fragment.function and fragment.function.arguments:
                        slot["arguments"] += fragment.function.arguments

                if choice.finish_reason:
                    finish_reason = choice.finish_reason

            for index in sorted(pending):
                slot = pending[index]
                yield StreamDelta(tool_call=ToolCall(id=slot["id"], name=slot["name"], arguments=slot["arguments"] or "{}"))

            yield StreamDelta(finish_reason=finish_reason or "stop", usage=usage)
        except APIError as e:
            logger.error(f"OpenAI streaming API error: {e}", exc_info=True)
            raise
