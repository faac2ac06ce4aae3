"""
Tool Execution Handler

Runs the tool calls of one model reply, sequentially and in the order the
model emitted them, and turns every outcome into a ``ToolResult`` so the
conversation can continue.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from artifact_chat.errors import ArtifactChatError, ErrorCode

from .logging_utils import (
    log_tool_args_error,
    log_tool_arguments,
    log_tool_execution_error,
    log_tool_execution_start,
    log_tool_execution_success,
    log_tool_results,
)
from .models import ToolCallRequest, ToolDefinition, ToolExecutionRecord, ToolResult

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Dispatches tool calls to the per-request tool map."""

    def __init__(self, tools: Mapping[str, ToolDefinition], chat_conf: dict[str, Any] | None = None):
        self.tools = tools
        self.chat_conf = chat_conf or {}

    async def execute_tool_calls(self, calls: list[ToolCallRequest], hop: int = 0) -> list[ToolExecutionRecord]:
        """
        Execute ``calls`` one after another.

        Each call yields exactly one record, in emitted order. Malformed
        arguments and unknown tool names become failure results; agents
        already report their own failures as results.
        """
        logger.info("→ Tools: executing %d tool calls", len(calls))
        truncate = self.chat_conf.get("logging", {}).get("tool_arguments_truncate", 500)

        records: list[ToolExecutionRecord] = []
        for i, call in enumerate(calls):
            args: dict[str, Any] = {}
            try:
                parsed = json.loads(call.arguments or "{}")
                if not isinstance(parsed, dict):
                    raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
                args = parsed
            except ValueError as e:
                log_tool_args_error(call.name, e)
                result = ToolResult.failure(
                    f"Arguments for {call.name} are not valid JSON: {e}",
                    ErrorCode.INPUT_VALIDATION_FAILED.value,
                )
            else:
                log_tool_arguments(call.name, args, f"call {i + 1}/{len(calls)}", truncate)
                log_tool_execution_start(call.name, i, len(calls))
                result = await self._execute_one(call.name, args)

            if result.success:
                log_tool_execution_success(call.name, len(result.to_content()))
            else:
                log_tool_execution_error(call.name, result.error or "unknown error")
            log_tool_results(call.name, result.output, f"hop {hop}")

            records.append(
                ToolExecutionRecord(
                    tool_call_id=call.id,
                    name=call.name,
                    arguments=args,
                    result=result,
                    hop=hop,
                )
            )

        logger.info("← Tools: completed all tool executions")
        return records

    async def _execute_one(self, name: str, args: dict[str, Any]) -> ToolResult:
        tool = self.tools.get(name)
        if tool is None:
            return ToolResult.failure(
                f"Unknown tool: {name}. Available tools: {', '.join(sorted(self.tools)) or 'none'}",
                ErrorCode.INPUT_VALIDATION_FAILED.value,
            )

        try:
            return await tool.execute(args)
        except ArtifactChatError as e:
            return ToolResult.failure(e.message, e.code.value, output=e.details)
        except Exception as e:
            logger.exception("Tool %s raised unexpectedly", name)
            return ToolResult.failure(f"Tool execution failed: {e!s}", "tool_error")
