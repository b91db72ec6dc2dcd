"""Process-backed JSON-RPC client for the validation runner."""

from .lifecycle import ClientState, ValidationClient
from .protocol import RpcRequest, decode_response_line, encode_request_line
from .supervisor import RunnerProcess, build_command, spawn, terminate
from .transport import ClientHandle

__all__ = [
    "ClientHandle",
    "ClientState",
    "RpcRequest",
    "RunnerProcess",
    "ValidationClient",
    "build_command",
    "decode_response_line",
    "encode_request_line",
    "spawn",
    "terminate",
]
