"""
Chat Logging Utilities

Shared logging helpers with per-module feature flags.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

logger = logging.getLogger(__name__)

# module name -> feature name -> enabled; replaced wholesale by configure_logging
_module_features: dict[str, dict[str, bool]] = {}


def set_module_features(features: dict[str, dict[str, bool]]) -> None:
    global _module_features
    _module_features = {module: dict(flags) for module, flags in features.items()}


def should_log_feature(module: str, feature: str) -> bool:
    """Check if a specific logging feature is enabled for a module."""
    return _module_features.get(module, {}).get(feature, False)


def _truncate(value: str, length: int) -> str:
    if len(value) > length:
        return value[:length] + "..."
    return value


def log_llm_reply(
    content: str | None,
    tool_call_names: list[str],
    context: str,
    model: str | None,
    truncate_length: int = 500,
) -> None:
    """Log a completed model reply when the ``chat.llm_replies`` feature is on."""
    if not should_log_feature("chat", "llm_replies"):
        return

    log_parts = [f"LLM Reply ({context}):"]
    if content:
        log_parts.append(f"Content: {_truncate(content, truncate_length)}")
    if tool_call_names:
        log_parts.append(f"Tool calls: {len(tool_call_names)}")
        for i, name in enumerate(tool_call_names):
            log_parts.append(f"  [{i}] {name}")
    log_parts.append(f"Model: {model or 'default'}")

    logger.info(" | ".join(log_parts))


def log_tool_execution_start(
    tool_name: str, call_index: int = 0, total_calls: int = 1
) -> None:
    if total_calls > 1:
        logger.info(
            "→ Tool[%s]: executing tool call %d/%d",
            tool_name,
            call_index + 1,
            total_calls,
        )
    else:
        logger.info("→ Tool[%s]: executing tool", tool_name)


def log_tool_execution_success(tool_name: str, content_length: int) -> None:
    logger.info("← Tool[%s]: success, content length: %d", tool_name, content_length)


def log_tool_execution_error(tool_name: str, error_msg: str) -> None:
    logger.error("← Tool[%s]: failed with error: %s", tool_name, error_msg)


def log_tool_args_error(tool_name: str, error: Exception) -> None:
    """
    Log malformed tool arguments.

    Args:
        tool_name: Name of the tool with malformed arguments
        error: The JSON decode or validation error
    """
    logger.error("Malformed arguments for %s: %s", tool_name, error)


def log_tool_arguments(
    tool_name: str, arguments: dict[str, Any], context: str, truncate_length: int = 500
) -> None:
    if not should_log_feature("chat", "tool_arguments"):
        return
    logger.info(
        "→ Tool[%s]: arguments (%s): %s",
        tool_name,
        context,
        _truncate(str(arguments), truncate_length),
    )


def log_tool_results(
    tool_name: str, results: Any, context: str, truncate_length: int = 200
) -> None:
    if not should_log_feature("chat", "tool_results"):
        return
    logger.info(
        "← Tool[%s]: results (%s): %s",
        tool_name,
        context,
        _truncate(str(results), truncate_length),
    )


@asynccontextmanager
async def log_performance(operation_name: str) -> AsyncIterator[None]:
    """Context manager to log how long an operation took."""
    start_time = time.monotonic()
    try:
        yield
    finally:
        elapsed_ms = (time.monotonic() - start_time) * 1000
        logger.info(f"⏱️ {operation_name} completed in {elapsed_ms:.2f}ms")
