"""
Tool interface for model tool calls.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Type
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolContext:
    """Per-turn context handed to tools that need the caller or storage."""
    user_id: str
    chat_id: str
    session_factory: Optional[Callable[[], Session]] = None
    provider: Any = None  # LLMProvider, for tools that generate content
    model: Optional[str] = None


class Tool(ABC):
    """
    A function the model may call.

    Subclasses declare name, description and a pydantic Args model. Failures
    never escape invoke(); they come back as a degraded result the model can
    read.
    """
    name: str = ""
    description: str = ""
    Args: Type[BaseModel] = BaseModel

    def schema(self) -> Dict[str, Any]:
        """Function schema in the chat-completions tools format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.Args.model_json_schema(),
            },
        }

    @abstractmethod
    async def execute(self, args: BaseModel) -> Dict[str, Any]:
        pass

    def degraded(self, error: str) -> Dict[str, Any]:
        return {"results": [], "error": error}

    async def invoke(self, raw_arguments: str) -> Dict[str, Any]:
        """Parse model-supplied JSON arguments and run the tool."""
        try:
            args = self.Args.model_validate(json.loads(raw_arguments or "{}"))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Invalid arguments for tool {self.name}: {e}")
            return self.degraded(f"Invalid arguments: {e}")

        try:
            return await self.execute(args)
        except Exception as e:
            logger.error(f"Tool {self.name} failed: {e}", exc_info=True)
            return self.degraded(str(e) or "Tool execution failed")
