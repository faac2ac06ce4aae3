"""Configuration management for the artifact chat core."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import time
from collections.abc import Callable
from typing import Any, cast

import yaml
from dotenv import load_dotenv

_PACKAGE_DIR = os.path.dirname(__file__)


class Configuration:
    """Event-driven configuration manager with observer pattern.

    ``config.yaml`` next to this module holds the defaults. An optional
    runtime file (``ARTIFACT_CHAT_RUNTIME_CONFIG`` or ``runtime_config.yaml``
    next to the module) is deep-merged on top and watched for changes.
    """

    def __init__(
        self,
        config_path: str | None = None,
        runtime_config_path: str | None = None,
    ) -> None:
        self.load_env()
        self._config_path = config_path or os.path.join(_PACKAGE_DIR, "config.yaml")
        self._default_config = self._load_yaml_config(self._config_path)
        self._runtime_config_path = (
            runtime_config_path
            or os.getenv("ARTIFACT_CHAT_RUNTIME_CONFIG")
            or os.path.join(_PACKAGE_DIR, "runtime_config.yaml")
        )
        self._runtime_config_mtime: float | None = None
        self._current_config: dict[str, Any] = {}

        self._config_change_callbacks: list[Callable[[dict[str, Any]], None]] = []
        self._watch_task: asyncio.Task[None] | None = None

        self._reload_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(path: str) -> dict[str, Any]:
        with open(path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError("Configuration file must contain a dictionary")
            return cast(dict[str, Any], config)

    def _load_runtime_config(self) -> dict[str, Any]:
        if not os.path.exists(self._runtime_config_path):
            return {}
        try:
            with open(self._runtime_config_path) as file:
                config = yaml.safe_load(file)
        except (yaml.YAMLError, OSError) as e:
            logging.error(f"Ignoring unreadable runtime config {self._runtime_config_path}: {e}")
            return {}
        if not isinstance(config, dict):
            logging.error("Runtime config must contain a dictionary, ignoring it")
            return {}
        return {k: v for k, v in config.items() if not k.startswith("_runtime_config")}

    def _deep_merge(
        self, base: dict[str, Any], override: dict[str, Any]
    ) -> dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(
                    cast(dict[str, Any], result[key]), cast(dict[str, Any], value)
                )
            else:
                result[key] = value
        return result

    def _reload_config(self) -> bool:
        """Reload if the runtime file changed.

        Returns:
            True if config was reloaded, False if no changes.
        """
        current_mtime = None
        if os.path.exists(self._runtime_config_path):
            current_mtime = os.path.getmtime(self._runtime_config_path)

        if current_mtime == self._runtime_config_mtime and self._current_config:
            return False

        old_config = self._current_config
        self._runtime_config_mtime = current_mtime
        self._current_config = self._deep_merge(self._default_config, self._load_runtime_config())

        if old_config and self._current_config != old_config:
            self._notify_config_change()
        return True

    def _get_current_config(self) -> dict[str, Any]:
        return self._current_config

    def _notify_config_change(self) -> None:
        for callback in list(self._config_change_callbacks):
            try:
                callback(self._current_config.copy())
            except Exception as e:
                logging.error(f"Error in config change callback: {e}")

    def subscribe_to_changes(self, callback: Callable[[dict[str, Any]], None]) -> None:
        """Subscribe to configuration change events.

        Args:
            callback: Called with the new merged config after every change.
        """
        if callback not in self._config_change_callbacks:
            self._config_change_callbacks.append(callback)

    def unsubscribe_from_changes(
        self, callback: Callable[[dict[str, Any]], None]
    ) -> None:
        if callback in self._config_change_callbacks:
            self._config_change_callbacks.remove(callback)

    async def start_watching(self, interval_seconds: float = 1.0) -> None:
        """Start the async file watching task for automatic config updates."""
        if self._watch_task is not None:
            return

        self._watch_task = asyncio.create_task(self._watch_config_file(interval_seconds))
        logging.info("Started watching runtime configuration file for changes")

    async def stop_watching(self) -> None:
        if self._watch_task is not None:
            self._watch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._watch_task
            self._watch_task = None
            logging.info("Stopped watching runtime configuration file")

    async def _watch_config_file(self, interval_seconds: float) -> None:
        while True:
            try:
                await asyncio.sleep(interval_seconds)
                if self._reload_config():
                    logging.info("Runtime configuration file changed - config reloaded")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logging.error(f"Error watching config file: {e}")
                await asyncio.sleep(5)

    def save_runtime_config(self, config: dict[str, Any]) -> None:
        """Write ``config`` as the runtime override file and reload.

        Args:
            config: Partial configuration merged over the defaults.
        """
        runtime_config = config.copy()
        runtime_config["_runtime_config"] = {"last_modified": time.time()}
        with open(self._runtime_config_path, "w") as file:
            yaml.safe_dump(runtime_config, file, default_flow_style=False, indent=2)
        # mtime resolution can hide two writes within the same tick
        self._runtime_config_mtime = None
        self._reload_config()

    def _get_config_value(self, path: list[str], default: Any = None) -> Any:
        current: Any = self._get_current_config()
        for key in path:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default
        return current

    def get_config_dict(self) -> dict[str, Any]:
        return self._get_current_config()

    # ------------------------------------------------------------------
    # LLM provider
    # ------------------------------------------------------------------

    @property
    def active_provider(self) -> str:
        return str(self._get_config_value(["llm", "active"], "openrouter"))

    @property
    def llm_api_key(self) -> str:
        """Get the API key for the active LLM provider.

        Raises:
            ValueError: If the API key is not found in environment variables.
        """
        provider_config = self._get_config_value(["llm", "providers", self.active_provider], {})
        provider_key_map = {
            "openai": "OPENAI_API_KEY",
            "groq": "GROQ_API_KEY",
            "openrouter": "OPENROUTER_API_KEY",
            "google": "GOOGLE_API_KEY",
        }
        env_key = provider_config.get("api_key_env") or provider_key_map.get(self.active_provider)
        if not env_key:
            raise ValueError(
                f"Unknown provider '{self.active_provider}' - no API key mapping found"
            )

        api_key = os.getenv(env_key)
        if not api_key:
            raise ValueError(
                f"API key '{env_key}' not found in environment variables "
                f"for provider '{self.active_provider}'"
            )
        return api_key

    @property
    def github_pat(self) -> str | None:
        env_key = self._get_config_value(["agents", "repository", "pat_env"], "GITHUB_PAT")
        return os.getenv(env_key)

    def get_llm_config(self) -> dict[str, Any]:
        """Get the active provider section of ``llm.providers``."""
        providers = self._get_config_value(["llm", "providers"], {})
        if self.active_provider not in providers:
            raise ValueError(
                f"Active provider '{self.active_provider}' not found in providers config"
            )
        llm_config = providers[self.active_provider]
        if not llm_config.get("base_url") or not llm_config.get("model"):
            raise ValueError(
                f"Provider '{self.active_provider}' needs both base_url and model"
            )
        return dict(llm_config)

    def get_connection_pool_config(self) -> dict[str, Any]:
        pool = self._get_config_value(["llm", "connection_pool"], {})
        result = {
            "max_connections": int(pool.get("max_connections", 50)),
            "max_keepalive_connections": int(pool.get("max_keepalive_connections", 20)),
            "keepalive_expiry_seconds": float(pool.get("keepalive_expiry_seconds", 30.0)),
            "request_timeout_seconds": float(pool.get("request_timeout_seconds", 60.0)),
        }
        for key, value in result.items():
            if value <= 0:
                raise ValueError(f"llm.connection_pool.{key} must be positive, got {value}")
        return result

    # ------------------------------------------------------------------
    # Chat orchestration
    # ------------------------------------------------------------------

    def get_chat_service_config(self) -> dict[str, Any]:
        return self._get_config_value(["chat", "service"], {})

    def get_max_tool_hops(self) -> int:
        """Maximum tool-call round trips per orchestration run.

        Raises:
            ValueError: If the configured value is not a positive integer.
        """
        max_hops = self.get_chat_service_config().get("max_tool_hops", 5)
        if not isinstance(max_hops, int) or isinstance(max_hops, bool) or max_hops < 1:
            raise ValueError(f"max_tool_hops must be a positive integer, got {max_hops!r}")
        return max_hops

    def get_run_timeout_seconds(self) -> float:
        timeout = self.get_chat_service_config().get("run_timeout_seconds", 300)
        if not isinstance(timeout, int | float) or isinstance(timeout, bool) or timeout <= 0:
            raise ValueError(f"run_timeout_seconds must be a positive number, got {timeout!r}")
        return float(timeout)

    def get_chat_model_defaults(self) -> dict[str, Any]:
        """Top-level model settings used when no chat model agent config is stored."""
        defaults = dict(self._get_config_value(["chat", "model"], {}))
        prompt = defaults.get("system_prompt", "")
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValueError("chat.model.system_prompt must be a non-empty string")
        defaults["system_prompt"] = prompt.strip()
        return defaults

    def get_output_channel_config(self) -> dict[str, int]:
        channel = self._get_config_value(["chat", "output_channel"], {})
        capacity = channel.get("capacity", 256)
        chunk_size = channel.get("delta_chunk_size", 400)
        for name, value in (("capacity", capacity), ("delta_chunk_size", chunk_size)):
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"chat.output_channel.{name} must be a positive integer, got {value!r}")
        return {"capacity": capacity, "delta_chunk_size": chunk_size}

    # ------------------------------------------------------------------
    # Agents and artifacts
    # ------------------------------------------------------------------

    def get_agents_config(self) -> dict[str, Any]:
        return self._get_config_value(["agents"], {})

    def get_enabled_agent_types(self) -> list[str]:
        enabled = self.get_agents_config().get("enabled_types", [])
        if not isinstance(enabled, list) or not all(isinstance(t, str) for t in enabled):
            raise ValueError(f"agents.enabled_types must be a list of names, got {enabled!r}")
        return list(enabled)

    def get_agent_config_backend_config(self) -> dict[str, Any]:
        return self._get_config_value(["agents", "backend"], {"type": "yaml"})

    def get_repository_mcp_config(self) -> dict[str, Any]:
        mcp_config = dict(self._get_config_value(["agents", "repository", "mcp"], {}))
        timeout = mcp_config.get("connection_timeout", 30.0)
        if not isinstance(timeout, int | float) or timeout <= 0:
            raise ValueError(f"connection_timeout must be positive, got {timeout!r}")
        mcp_config["connection_timeout"] = float(timeout)
        return mcp_config

    def get_artifact_storage_config(self) -> dict[str, Any]:
        return self._get_config_value(["artifacts", "storage"], {"type": "sqlite"})

    def get_max_rebase_attempts(self) -> int:
        """How often an agent starts an edit over after another writer saved first."""
        attempts = self._get_config_value(["artifacts", "max_rebase_attempts"], 3)
        if not isinstance(attempts, int) or isinstance(attempts, bool) or attempts < 0:
            raise ValueError(f"artifacts.max_rebase_attempts must be a non-negative integer, got {attempts!r}")
        return attempts

    def get_logging_config(self) -> dict[str, Any]:
        return self._get_config_value(["logging"], {})
