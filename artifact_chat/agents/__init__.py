"""
Model-callable agents.

``AGENT_CLASSES`` is the closed lookup table from agent type to
implementation; adding an agent means adding a row here.
"""

from __future__ import annotations

from artifact_chat.agent_config import AgentType

from .base import AgentDependencies, AgentState, ArtifactToolInput, StreamingArtifactAgent, ToolAgent
from .code_agent import PythonCodeAgent
from .diagram_agent import MermaidDiagramAgent
from .document_agent import DocumentAgent
from .repository_agent import RepositoryAgent
from .web_search_agent import WebSearchAgent

AGENT_CLASSES: dict[AgentType, type[ToolAgent]] = {
    AgentType.DOCUMENT: DocumentAgent,
    AgentType.PYTHON: PythonCodeAgent,
    AgentType.MERMAID: MermaidDiagramAgent,
    AgentType.PROVIDER_TOOLS: WebSearchAgent,
    AgentType.GIT_MCP: RepositoryAgent,
}

__all__ = [
    "AGENT_CLASSES",
    "AgentDependencies",
    "AgentState",
    "ArtifactToolInput",
    "DocumentAgent",
    "MermaidDiagramAgent",
    "PythonCodeAgent",
    "RepositoryAgent",
    "StreamingArtifactAgent",
    "ToolAgent",
    "WebSearchAgent",
]
