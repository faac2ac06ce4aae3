"""
Chat Module

Bounded tool-calling loop, its message models and the output channel.
"""

from .chat_orchestrator import ChatOrchestrator
from .models import AssistantTurn, ConversationHistory, ModelConfig, OutputEvent, RunStatus, ToolDefinition, ToolResult
from .output_channel import ChannelClosed, OutputChannel

__all__ = [
    "AssistantTurn",
    "ChannelClosed",
    "ChatOrchestrator",
    "ConversationHistory",
    "ModelConfig",
    "OutputChannel",
    "OutputEvent",
    "RunStatus",
    "ToolDefinition",
    "ToolResult",
]
