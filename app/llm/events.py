"""
Stream events emitted during a chat turn and their server-sent event encoding.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict

START = "start"
REASONING = "reasoning"
TEXT = "text"
TOOL_CALL = "tool-call"
TOOL_RESULT = "tool-result"
WARNING = "warning"
ERROR = "error"
FINISH = "finish"

TERMINAL_EVENTS = (ERROR, FINISH)

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."


@dataclass
class StreamEvent:
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    def encode(self) -> str:
        """Encode as one SSE frame."""
        return f"event: {self.type}\ndata: {json.dumps(self.data, default=str)}\n\n"


def start_event(stream_id: str, chat_id: str, message_id: str) -> StreamEvent:
    return StreamEvent(START, {"streamId": stream_id, "chatId": chat_id, "messageId": message_id})


def text_event(delta: str) -> StreamEvent:
    return StreamEvent(TEXT, {"delta": delta})


def reasoning_event(delta: str) -> StreamEvent:
    return StreamEvent(REASONING, {"delta": delta})


def tool_call_event(tool_call_id: str, tool_name: str, args: Dict[str, Any]) -> StreamEvent:
    return StreamEvent(TOOL_CALL, {"toolCallId": tool_call_id, "toolName": tool_name, "args": args})


def tool_result_event(tool_call_id: str, tool_name: str, result: Any) -> StreamEvent:
    return StreamEvent(TOOL_RESULT, {"toolCallId": tool_call_id, "toolName": tool_name, "result": result})


def warning_event(message: str) -> StreamEvent:
    return StreamEvent(WARNING, {"message": message})


def error_event(message: str = GENERIC_ERROR_MESSAGE) -> StreamEvent:
    return StreamEvent(ERROR, {"message": message})


def finish_event(finish_reason: str, usage: Dict[str, int]) -> StreamEvent:
    return StreamEvent(FINISH, {"finishReason": finish_reason, "usage": usage})
