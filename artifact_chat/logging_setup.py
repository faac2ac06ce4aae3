"""
Logging configuration.

Hierarchical loggers with per-module levels and feature flags:
1. Levels are set on parent loggers so child module loggers inherit them
2. Feature flags (``enable_features``) are stored once and checked at call
   sites through ``chat.logging_utils.should_log_feature``
"""

from __future__ import annotations

import logging
from typing import Any

from artifact_chat.chat.logging_utils import set_module_features

LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

MODULE_LOGGER_MAP: dict[str, dict[str, Any]] = {
    "chat": {
        "loggers": ["artifact_chat.chat", "artifact_chat.tool_registry", "artifact_chat.chat_service"],
        "default_level": "INFO",
    },
    "agents": {
        "loggers": ["artifact_chat.agents", "artifact_chat.agent_config"],
        "default_level": "INFO",
    },
    "artifacts": {
        "loggers": ["artifact_chat.artifacts"],
        "default_level": "INFO",
    },
    "clients": {
        "loggers": ["artifact_chat.clients", "httpx", "mcp"],
        "default_level": "WARNING",
    },
}


def configure_logging(logging_config: dict[str, Any]) -> None:
    """Apply the ``logging`` config section to the stdlib logging tree."""
    global_level = logging_config.get("level", "WARNING")
    root = logging.getLogger()
    root.setLevel(LEVEL_MAP.get(global_level, logging.WARNING))

    if "format" in logging_config:
        for handler in root.handlers:
            if isinstance(handler, logging.StreamHandler):
                handler.setFormatter(logging.Formatter(logging_config["format"]))

    features: dict[str, dict[str, bool]] = {}
    for module_name, module_config in logging_config.get("modules", {}).items():
        if not isinstance(module_config, dict):
            continue

        module_level = module_config.get(
            "level",
            MODULE_LOGGER_MAP.get(module_name, {}).get("default_level", global_level),
        )
        level_value = LEVEL_MAP.get(module_level, logging.WARNING)
        for logger_name in MODULE_LOGGER_MAP.get(module_name, {}).get("loggers", []):
            logging.getLogger(logger_name).setLevel(level_value)

        features[module_name] = dict(module_config.get("enable_features", {}))

    set_module_features(features)


def on_logging_config_change(new_config: dict[str, Any]) -> None:
    """Configuration observer: re-apply logging when the config file changes."""
    logging_config = new_config.get("logging", {})
    if not logging_config:
        return
    try:
        configure_logging(logging_config)
    except (TypeError, AttributeError) as e:
        logging.error("❌ Failed to update logging configuration: %s", e)
        return
    logging.info("🔄 Logging configuration updated in real-time")
