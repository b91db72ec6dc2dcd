"""Line-delimited JSON-RPC client over the runner's stdio."""

from __future__ import annotations

import os
import queue
import selectors
import threading
from typing import Any

from loguru import logger

from validation_bridge.config.schema import RunnerConfig
from validation_bridge.errors import (
    ConnectionClosedError,
    RpcError,
    RpcTimeoutError,
    RunnerCommunicationError,
    WriteError,
)
from validation_bridge.runner import supervisor
from validation_bridge.runner.protocol import RpcRequest, decode_response_line, encode_request_line
from validation_bridge.runner.supervisor import RunnerProcess

_POLL_INTERVAL_SECONDS = 0.1
_READ_CHUNK_BYTES = 64 * 1024
_EOF = object()


class ClientHandle:
    """
    One live runner process with its pipes, output reader and request counter.

    A background thread splits the runner's stdout into lines and queues them;
    ``call`` writes one request and takes the next queued line as its answer.
    Exactly one request may be outstanding: the handle itself does not lock,
    the owner (``ValidationClient``) serializes callers.
    """

    def __init__(
        self,
        runner: RunnerProcess,
        *,
        grace_seconds: float = 5.0,
        read_timeout: float | None = None,
    ):
        self.runner = runner
        self.grace_seconds = grace_seconds
        self.read_timeout = read_timeout
        self._request_counter = 0
        self._lines: queue.Queue[Any] = queue.Queue()
        self._closing = threading.Event()
        self._close_lock = threading.Lock()
        self._closed = False
        self._reader_thread = threading.Thread(
            target=self._reader_loop,
            name=f"runner-reader-{runner.pid}",
            daemon=True,
        )
        self._reader_thread.start()

    @classmethod
    def open(cls, config: RunnerConfig) -> ClientHandle:
        """Spawn a runner for ``config`` and wrap it in a fresh handle."""
        return cls(
            supervisor.spawn(config),
            grace_seconds=config.terminate_grace_seconds,
            read_timeout=config.read_timeout_seconds,
        )

    @property
    def pid(self) -> int:
        return self.runner.pid

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def last_request_id(self) -> int:
        return self._request_counter

    def is_alive(self) -> bool:
        return not self._closed and self.runner.process.poll() is None

    def call(self, method: str, params: dict[str, Any] | None = None, timeout: float | None = None) -> Any:
        """Send one JSON-RPC request and return the runner's ``result`` verbatim.

        Args:
            method: Runner method name.
            params: Method parameters (sent as ``{}`` when omitted).
            timeout: Seconds to wait for the response line; None waits forever.

        Raises:
            WriteError: the request could not be written.
            ConnectionClosedError: the runner's output ended before a response.
            RpcTimeoutError: no response within ``timeout``; the handle is closed.
            ResponseParseError: the response line is not JSON.
            InvalidResponseError: the response has no usable result/error shape.
            RpcError: the runner answered with ``error``.
        """
        if self._closed:
            raise ConnectionClosedError(method)
        params = params if params is not None else {}
        self._discard_unsolicited(method)

        self._request_counter += 1
        request = RpcRequest(id=self._request_counter, method=method, params=params)
        logger.debug("Sending JSON-RPC request: {} (id={})", method, request.id)
        self._send(request)

        line = self._next_line(request, timeout)
        logger.debug("Received JSON-RPC response: {} (id={})", method, request.id)
        try:
            return decode_response_line(line, request)
        except RpcError as exc:
            logger.error("JSON-RPC error for {}: {}", method, exc.error)
            raise
        except RunnerCommunicationError as exc:
            logger.error("Bad JSON-RPC response for {}: {}", method, exc.details.get("reason"))
            raise

    def close(self) -> int | None:
        """Stop the reader, close both pipes, then terminate the runner. Idempotent."""
        with self._close_lock:
            if self._closed:
                return self.runner.process.returncode
            self._closed = True
        self._closing.set()
        self._reader_thread.join(timeout=max(1.0, _POLL_INTERVAL_SECONDS * 10))
        return supervisor.terminate(
            self.runner.process,
            self.runner.write_stream,
            self.runner.read_stream,
            grace_seconds=self.grace_seconds,
        )

    def _send(self, request: RpcRequest) -> None:
        stream = self.runner.write_stream
        try:
            stream.write(encode_request_line(request))
            stream.flush()
        except (OSError, ValueError) as exc:
            # ValueError: the pipe was closed by stop() from another thread.
            logger.error("Failed to send JSON-RPC request {} (id={}): {}", request.method, request.id, exc)
            raise WriteError(request.method, request.id, str(exc) or type(exc).__name__) from exc

    def _next_line(self, request: RpcRequest, timeout: float | None) -> str:
        try:
            item = self._lines.get(timeout=timeout)
        except queue.Empty as exc:
            logger.error(
                "Validation runner did not answer {} (id={}) within {}s, terminating it",
                request.method,
                request.id,
                timeout,
            )
            self.close()
            raise RpcTimeoutError(request.method, request.id, timeout) from exc
        if item is _EOF:
            self._lines.put(_EOF)
            logger.error("Validation runner closed its output while waiting for {} (id={})", request.method, request.id)
            raise ConnectionClosedError(request.method, request.id)
        return item

    def _discard_unsolicited(self, method: str) -> None:
        while True:
            try:
                item = self._lines.get_nowait()
            except queue.Empty:
                return
            if item is _EOF:
                self._lines.put(_EOF)
                raise ConnectionClosedError(method)
            logger.warning("Discarding unsolicited runner output: {}", item[:200])

    def _reader_loop(self) -> None:
        stream = self.runner.read_stream
        buffer = bytearray()
        try:
            with selectors.DefaultSelector() as selector:
                selector.register(stream, selectors.EVENT_READ)
                while not self._closing.is_set():
                    if not selector.select(timeout=_POLL_INTERVAL_SECONDS):
                        continue
                    chunk = os.read(stream.fileno(), _READ_CHUNK_BYTES)
                    if not chunk:
                        break
                    buffer.extend(chunk)
                    self._queue_complete_lines(buffer)
            if buffer and not self._closing.is_set():
                # Last line of a runner that exited without a trailing newline.
                self._queue_line(bytes(buffer))
        except (OSError, ValueError) as exc:
            if not self._closing.is_set():
                logger.warning("Runner output reader stopped (PID {}): {}", self.runner.pid, exc)
        finally:
            self._lines.put(_EOF)
            logger.debug("Runner output reader finished (PID {})", self.runner.pid)

    def _queue_complete_lines(self, buffer: bytearray) -> None:
        while True:
            index = buffer.find(b"\n")
            if index < 0:
                return
            raw = bytes(buffer[:index])
            del buffer[: index + 1]
            self._queue_line(raw)

    def _queue_line(self, raw: bytes) -> None:
        # Blank lines are queued too; they answer the pending call as unparseable.
        self._lines.put(raw.decode("utf-8", errors="replace").strip())
