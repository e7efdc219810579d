"""
LLM Provider interface for abstracting LLM implementations.
"""
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List
from collections.abc import AsyncIterator
from dataclasses import dataclass, field


@dataclass
class LLMResponse:
    """Standardized LLM response."""
    content: str
    tokens_in: int = 0
    tokens_out: int = 0
    model: str = ""
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}


@dataclass
class ToolCall:
    """A fully assembled tool call requested by the model."""
    id: str
    name: str
    arguments: str  # raw JSON text as sent by the model


@dataclass
class StreamDelta:
    """
    One increment of a streamed completion.

    Exactly one of the payload fields is set, except for the finish delta which
    carries finish_reason and token usage.
    """
    text: Optional[str] = None
    reasoning: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    finish_reason: Optional[str] = None
    usage: Dict[str, int] = field(default_factory=dict)


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def chat(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> LLMResponse:
        """
        Generate a chat completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model identifier
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            **kwargs: Additional provider-specific parameters

        Returns:
            LLMResponse with content and metadata
        """
        pass

    @abstractmethod
    def stream(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        tools: Optional[List[Dict[str, Any]]] = None,
        **kwargs
    ) -> AsyncIterator[StreamDelta]:
        """
        Stream one model step.

        Args:
            messages: Provider-format conversation
            model: Model identifier
            tools: Function schemas the model may call, None for no tools
            **kwargs: Additional provider-specific parameters

        Yields:
            StreamDelta items; the last one carries finish_reason
        """
        pass
