"""Spawn and terminate the validation runner process."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import IO

from loguru import logger

from validation_bridge.config.schema import RunnerConfig
from validation_bridge.errors import ProcessStartError


@dataclass(slots=True)
class RunnerProcess:
    """A spawned runner with its request (stdin) and response (stdout) pipes."""

    write_stream: IO[bytes]
    read_stream: IO[bytes]
    process: subprocess.Popen[bytes]

    @property
    def pid(self) -> int:
        return self.process.pid


def build_command(config: RunnerConfig) -> list[str]:
    command = [config.python_executable, "-m", config.server_module]
    if config.debug:
        command.append("--debug")
    return command


def spawn(config: RunnerConfig) -> RunnerProcess:
    """Start the runner with stdin/stdout piped and stderr inherited.

    Raises:
        ProcessStartError: executable or working directory missing, or the OS
            refused to create the process.
    """
    command = build_command(config)
    logger.info("Starting validation runner: {} (cwd={})", " ".join(command), config.script_path)
    try:
        process = subprocess.Popen(
            command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            cwd=config.script_path,
        )
    except OSError as exc:
        logger.error("Failed to start validation runner: {}", exc)
        raise ProcessStartError(
            f"Failed to start validation runner: {exc}",
            command=command,
            cwd=config.script_path,
        ) from exc
    logger.info("Validation runner started (PID {})", process.pid)
    return RunnerProcess(write_stream=process.stdin, read_stream=process.stdout, process=process)


def terminate(
    process: subprocess.Popen[bytes],
    write_stream: IO[bytes],
    read_stream: IO[bytes],
    grace_seconds: float = 5.0,
) -> int | None:
    """Close both pipes, then SIGTERM the process and SIGKILL it after the grace window.

    Safe to call on a process that already exited. Returns the exit code.
    """
    _close_stream(write_stream, "stdin")
    _close_stream(read_stream, "stdout")

    if process.poll() is None:
        process.terminate()
        try:
            process.wait(timeout=grace_seconds)
        except subprocess.TimeoutExpired:
            logger.warning(
                "Validation runner did not exit within {}s, sending SIGKILL (PID {})",
                grace_seconds,
                process.pid,
            )
            process.kill()
            process.wait()
    logger.info("Validation runner stopped (PID {}, code={})", process.pid, process.returncode)
    return process.returncode


def _close_stream(stream: IO[bytes], name: str) -> None:
    if stream.closed:
        return
    try:
        stream.close()
    except OSError as exc:
        # Flushing stdin of a dead runner raises BrokenPipeError; the fd is released anyway.
        logger.debug("Error closing runner {}: {}", name, exc)
