"""
LLM Runner: drives one chat turn through the model/tool step loop.

Each step streams one completion. When the model asks for tools, every call is
executed, its result is appended to the conversation and the next step
starts, up to max_steps model rounds. Text is re-chunked at word boundaries
before it reaches the stream.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from collections.abc import AsyncIterator

from app.core.config import MAX_TOOL_STEPS
from app.llm import events
from app.llm.events import StreamEvent
from app.llm.provider import LLMProvider
from app.llm.tools.toolsets import ToolSet

logger = logging.getLogger(__name__)

WORD_PATTERN = re.compile(r"\s*\S+\s+")


class WordChunker:
    """
    Buffers text deltas and releases whole words with their trailing whitespace.

    A word is only released once whitespace follows it, so a chunk never ends in
    the middle of a word; flush() releases whatever is left at the end.
    """

    def __init__(self):
        self._buffer = ""

    def feed(self, delta: str) -> List[str]:
        self._buffer += delta
        chunks = []
        while True:
            match = WORD_PATTERN.match(self._buffer)
            if not match:
                break
            chunks.append(match.group())
            self._buffer = self._buffer[match.end():]
        return chunks

    def flush(self) -> Optional[str]:
        remainder, self._buffer = self._buffer, ""
        return remainder or None


@dataclass
class TurnResult:
    """What a finished turn produced, in the order it was produced."""
    parts: List[Dict[str, Any]] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Dict[str, int] = field(default_factory=dict)
    steps: int = 0

    def add_text(self, text: str) -> None:
        if self.parts and self.parts[-1]["type"] == "text":
            self.parts[-1]["text"] += text
        else:
            self.parts.append({"type": "text", "text": text})

    def add_reasoning(self, text: str) -> None:
        if self.parts and self.parts[-1]["type"] == "reasoning":
            self.parts[-1]["reasoning"] += text
        else:
            self.parts.append({"type": "reasoning", "reasoning": text})

    def add_tool_invocation(self, tool_call_id: str, tool_name: str, args: Any, result: Any) -> None:
        self.parts.append({
            "type": "tool-invocation",
            "toolInvocation": {
                "state": "result",
                "toolCallId": tool_call_id,
                "toolName": tool_name,
                "args": args,
                "result": result,
            },
        })

    @property
    def text(self) -> str:
        return "".join(part["text"] for part in self.parts if part["type"] == "text")


def _parse_arguments(raw: str) -> Any:
    try:
        return json.loads(raw or "{}")
    except json.JSONDecodeError:
        return raw


class LLMRunner:
    """Orchestrates streamed model steps and tool calls for one turn."""

    def __init__(self, provider: LLMProvider, max_steps: int = MAX_TOOL_STEPS):
        self.provider = provider
        self.max_steps = max_steps

    async def run_turn(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        toolset: ToolSet,
        result: TurnResult,
    ) -> AsyncIterator[StreamEvent]:
        """
        Run the step loop, yielding reasoning, text and tool events.

        Model errors propagate to the caller; tool errors never do (tools return
        degraded results).

        Args:
            messages: Provider-format conversation, system prompt first
            model: Provider model identifier
            toolset: Tools the model may call this turn
            result: Accumulates parts, finish reason and usage

        Yields:
            StreamEvent items (never the terminal finish/error events)
        """
        conversation = list(messages)
        usage = {"promptTokens": 0, "completionTokens": 0}

        for step in range(self.max_steps):
            result.steps = step + 1
            chunker = WordChunker()
            step_text = ""
            tool_calls = []
            finish_reason = None

            async for delta in self.provider.stream(conversation, model=model, tools=toolset.schemas()):
                if delta.reasoning:
                    result.add_reasoning(delta.reasoning)
                    yield events.reasoning_event(delta.reasoning)
                if delta.text:
                    step_text += delta.text
                    for chunk in chunker.feed(delta.text):
                        result.add_text(chunk)
                        yield events.text_event(chunk)
                if delta.tool_call:
                    tool_calls.append(delta.tool_call)
                if delta.finish_reason:
                    finish_reason = delta.finish_reason
                    for key, value in delta.usage.items():
                        usage[key] = usage.get(key, 0) + value

            remainder = chunker.flush()
            if remainder:
                result.add_text(remainder)
                yield events.text_event(remainder)

            result.finish_reason = finish_reason
            if not tool_calls:
                break

            conversation.append({
                "role": "assistant",
                "content": step_text or None,
                "tool_calls": [
                    {"id": call.id, "type": "function", "function": {"name": call.name, "arguments": call.arguments}}
                    for call in tool_calls
                ],
            })

            for call in tool_calls:
                args = _parse_arguments(call.arguments)
                yield events.tool_call_event(call.id, call.name, args)

                tool = toolset.get(call.name)
                if tool is None:
                    logger.warning(f"Model requested unavailable tool: {call.name}")
                    output = {"results": [], "error": f"Tool {call.name} is not available"}
                else:
                    output = await tool.invoke(call.arguments)

                result.add_tool_invocation(call.id, call.name, args, output)
                yield events.tool_result_event(call.id, call.name, output)
                conversation.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": json.dumps(output, default=str),
                })
        else:
            logger.info(f"Turn stopped after {self.max_steps} model steps")

        result.usage = usage
