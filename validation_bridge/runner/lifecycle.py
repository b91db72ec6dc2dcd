"""Lifecycle of the validation runner client and its typed operations."""

from __future__ import annotations

import atexit
import threading
from enum import Enum
from typing import Any

from loguru import logger

from validation_bridge.config.schema import RunnerConfig
from validation_bridge.errors import ClientNotStartedError, RpcTimeoutError
from validation_bridge.runner.protocol import (
    METHOD_BATCH_FILE_VALIDATE,
    METHOD_BATCH_VALIDATE,
    METHOD_DISCOVER_RULES,
    METHOD_DISCOVER_RULESETS,
    METHOD_GET_CACHE_AGE,
    METHOD_RELOAD_LOGIC,
    METHOD_VALIDATE,
)
from validation_bridge.runner.transport import ClientHandle


class ClientState(Enum):
    """Externally visible client state."""
    NOT_STARTED = "not_started"
    RUNNING = "running"


class ValidationClient:
    """
    Owner of the single active runner handle.

    Construct one per application and pass it to whatever needs validation;
    there is no module-level instance. ``start`` always leaves exactly one
    live runner (restarting if needed), ``stop`` is a no-op when nothing runs,
    and every runner call is serialized so concurrent callers queue instead
    of interleaving on the shared pipes.
    """

    def __init__(self, config: RunnerConfig | None = None):
        self.config = config
        self._handle: ClientHandle | None = None
        self._state_lock = threading.RLock()
        self._call_lock = threading.Lock()
        self._shutdown_hook_installed = False

    def __enter__(self) -> ValidationClient:
        if self.config is None:
            raise ClientNotStartedError("No runner config given; pass one to ValidationClient(config)")
        self.start(self.config)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()

    @property
    def state(self) -> ClientState:
        return ClientState.RUNNING if self._handle is not None else ClientState.NOT_STARTED

    @property
    def is_running(self) -> bool:
        return self._handle is not None

    def start(self, config: RunnerConfig | None = None) -> ClientHandle:
        """Spawn a fresh runner, stopping the current one first if needed."""
        with self._state_lock:
            config = config or self.config
            if config is None:
                raise ClientNotStartedError("No runner config given; pass one to start()")
            if self._handle is not None:
                logger.warning("Client already started, stopping existing runner first")
                self.stop()
            logger.info(
                "Starting validation runner client (python={}, script_path={}, debug={})",
                config.python_executable,
                config.script_path,
                config.debug,
            )
            self._handle = ClientHandle.open(config)
            self.config = config
            logger.info("Validation runner client started (PID {})", self._handle.pid)
            return self._handle

    def stop(self) -> None:
        """Close the active runner and clear it. No-op when not started."""
        with self._state_lock:
            handle = self._handle
            if handle is None:
                return
            logger.info("Stopping validation runner client (PID {})", handle.pid)
            self._handle = None
            handle.close()
            logger.info("Validation runner client stopped")

    def restart(self) -> ClientHandle:
        """Start again with the last config used."""
        if self.config is None:
            raise ClientNotStartedError("Client was never started; nothing to restart")
        return self.start(self.config)

    def ensure_started(self) -> ClientHandle:
        handle = self._handle
        if handle is None:
            raise ClientNotStartedError()
        return handle

    def install_shutdown_hook(self) -> None:
        """Stop the runner at interpreter exit. Registers at most once."""
        with self._state_lock:
            if self._shutdown_hook_installed:
                return
            atexit.register(self.stop)
            self._shutdown_hook_installed = True

    def call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Call a runner method on the active handle, one caller at a time."""
        with self._call_lock:
            handle = self.ensure_started()
            try:
                return handle.call(method, params or {}, timeout=handle.read_timeout)
            except RpcTimeoutError:
                self._discard(handle)
                raise

    def _discard(self, handle: ClientHandle) -> None:
        with self._state_lock:
            if self._handle is handle:
                self._handle = None
        handle.close()

    # High-level operations; results are passed through uninterpreted.

    def validate(self, entity_type: str, entity_data: dict[str, Any], ruleset_name: str) -> Any:
        """Validate a single entity against a ruleset."""
        return self.call(
            METHOD_VALIDATE,
            {"entity_type": entity_type, "entity_data": entity_data, "ruleset_name": ruleset_name},
        )

    def discover_rules(self, entity_type: str, entity_data: dict[str, Any], ruleset_name: str) -> Any:
        """Describe the rules that apply to an entity type within a ruleset."""
        return self.call(
            METHOD_DISCOVER_RULES,
            {"entity_type": entity_type, "entity_data": entity_data, "ruleset_name": ruleset_name},
        )

    def discover_rulesets(self) -> Any:
        return self.call(METHOD_DISCOVER_RULESETS, {})

    def batch_validate(self, entities: list[Any], id_fields: list[str], ruleset_name: str) -> Any:
        """Validate many entities; ``id_fields`` name the fields identifying each entity."""
        return self.call(
            METHOD_BATCH_VALIDATE,
            {"entities": entities, "id_fields": id_fields, "ruleset_name": ruleset_name},
        )

    def batch_file_validate(
        self,
        file_uri: str,
        entity_types: list[str],
        id_fields: list[str],
        ruleset_name: str,
    ) -> Any:
        """Validate the entities stored at ``file_uri``; the runner reads the file itself."""
        return self.call(
            METHOD_BATCH_FILE_VALIDATE,
            {
                "file_uri": file_uri,
                "entity_types": entity_types,
                "id_fields": id_fields,
                "ruleset_name": ruleset_name,
            },
        )

    def reload_logic(self) -> Any:
        return self.call(METHOD_RELOAD_LOGIC, {})

    def get_cache_age(self) -> Any:
        return self.call(METHOD_GET_CACHE_AGE, {})
