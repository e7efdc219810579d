"""
Tool policies and per-turn tool sets.
"""
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional

from app.llm.tools.base import Tool, ToolContext
from app.llm.tools.documents import CreateDocumentTool, UpdateDocumentTool
from app.llm.tools.weather import WeatherTool
from app.llm.tools.web_search import DeepWebSearchTool, SearxngClient, WebSearchTool


class ToolPolicy(str, Enum):
    SEARCH = "search"
    DEEP_SEARCH = "deep-search"
    REASONING = "reasoning"


def policy_for(search_mode: str, reasoning_model: bool) -> ToolPolicy:
    """Reasoning models never get tools, whatever the search mode."""
    if reasoning_model:
        return ToolPolicy.REASONING
    if search_mode == ToolPolicy.DEEP_SEARCH.value:
        return ToolPolicy.DEEP_SEARCH
    return ToolPolicy.SEARCH


class ToolSet:
    """Closed, read-only set of tools decided once at the start of a turn."""

    def __init__(self, tools: List[Tool]):
        self._tools: Mapping[str, Tool] = MappingProxyType({tool.name: tool for tool in tools})

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def schemas(self) -> Optional[List[Dict[str, Any]]]:
        """Provider tool schemas, None when the set is empty."""
        if not self._tools:
            return None
        return [tool.schema() for tool in self._tools.values()]

    def __len__(self):
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __contains__(self, name: str) -> bool:
        return name in self._tools


def resolve_toolset(policy: ToolPolicy, context: ToolContext, searxng: Optional[SearxngClient] = None) -> ToolSet:
    """
    Build the tool set for a policy.

    search: weather, documents, web search
    deep-search: weather, documents, deep web search
    reasoning: no tools
    """
    if policy == ToolPolicy.REASONING:
        return ToolSet([])

    searxng = searxng or SearxngClient()
    search_tool = DeepWebSearchTool(searxng) if policy == ToolPolicy.DEEP_SEARCH else WebSearchTool(searxng)
    return ToolSet([
        WeatherTool(),
        CreateDocumentTool(context),
        UpdateDocumentTool(context),
        search_tool,
    ])
