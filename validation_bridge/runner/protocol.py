"""JSON-RPC 2.0 frames and line codec for the validation runner."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from validation_bridge.errors import InvalidResponseError, ResponseParseError, RpcError

JSONRPC_VERSION = "2.0"

METHOD_VALIDATE = "validate"
METHOD_DISCOVER_RULES = "discover_rules"
METHOD_DISCOVER_RULESETS = "discover_rulesets"
METHOD_BATCH_VALIDATE = "batch_validate"
METHOD_BATCH_FILE_VALIDATE = "batch_file_validate"
METHOD_RELOAD_LOGIC = "reload_logic"
METHOD_GET_CACHE_AGE = "get_cache_age"


@dataclass(slots=True)
class RpcRequest:
    """JSON-RPC request frame."""

    id: int
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"jsonrpc": JSONRPC_VERSION, "id": self.id, "method": self.method, "params": self.params}


def encode_request_line(request: RpcRequest) -> bytes:
    """Encode a request frame into one newline-terminated line of UTF-8 JSON."""
    return (json.dumps(request.to_dict(), ensure_ascii=False) + "\n").encode("utf-8")


def decode_response_line(line: str, request: RpcRequest) -> Any:
    """Parse one response line for ``request`` and return its ``result``.

    Raises ResponseParseError for non-JSON lines, RpcError when the runner
    answered with ``error`` and InvalidResponseError for any other shape.
    A response that carries a non-null ``id`` must match the request id;
    responses without one are accepted in line order.
    """
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as exc:
        raise ResponseParseError(request.method, line, str(exc)) from exc

    if not isinstance(payload, dict):
        raise InvalidResponseError(request.method, payload, "response is not a JSON object")

    response_id = payload.get("id")
    # bool and float ids never match, even when they compare equal.
    if response_id is not None and (type(response_id) is not int or response_id != request.id):
        raise InvalidResponseError(
            request.method,
            payload,
            f"response id {response_id!r} does not match request id {request.id}",
        )

    has_result = "result" in payload
    has_error = "error" in payload
    if has_result and has_error:
        raise InvalidResponseError(request.method, payload, "response has both 'result' and 'error'")
    if has_result:
        return payload["result"]
    if has_error:
        raise RpcError(request.method, request.params, payload["error"])
    raise InvalidResponseError(request.method, payload)
