import time
from pathlib import Path

import pytest

from validation_bridge.errors import (
    ConnectionClosedError,
    InvalidResponseError,
    ResponseParseError,
    RpcError,
    RpcTimeoutError,
    WriteError,
)
from validation_bridge.runner.transport import ClientHandle


@pytest.fixture
def handle(runner_config):
    h = ClientHandle.open(runner_config)
    yield h
    h.close()


def test_echo_and_increasing_ids(handle):
    assert handle.call("echo", {"a": [1, 2, {"b": None}], "name": "Zoë"}) == {"a": [1, 2, {"b": None}], "name": "Zoë"}
    assert handle.call("echo_id") == 2
    assert handle.call("echo_id") == 3
    assert handle.last_request_id == 3


def test_runner_runs_in_script_path(handle, script_path):
    assert Path(handle.call("cwd")).resolve() == script_path.resolve()
    assert handle.call("pid") == handle.pid


def test_debug_flag_is_passed(make_config):
    h = ClientHandle.open(make_config(debug=True))
    try:
        assert h.call("debug_flag") is True
    finally:
        h.close()


def test_remote_error(handle):
    with pytest.raises(RpcError) as exc_info:
        handle.call("fail", {"error": {"code": 1, "message": "nope", "data": {"rows": [1, 2]}}})
    assert exc_info.value.error == {"code": 1, "message": "nope", "data": {"rows": [1, 2]}}


def test_garbage_line(handle):
    with pytest.raises(ResponseParseError) as exc_info:
        handle.call("garbage")
    assert exc_info.value.line == "this is not json"


def test_blank_line_is_a_parse_error(handle):
    with pytest.raises(ResponseParseError) as exc_info:
        handle.call("blank")
    assert exc_info.value.line == ""
    assert handle.call("echo", {"after": "blank"}) == {"after": "blank"}


def test_write_to_closed_stdin_is_write_error(handle):
    assert handle.call("close_stdin") == "stdin closed"
    with pytest.raises(WriteError) as exc_info:
        handle.call("echo", {"x": 1})
    assert exc_info.value.details["request_id"] == 2


def test_mismatched_id(handle):
    with pytest.raises(InvalidResponseError):
        handle.call("wrong_id")


def test_unsolicited_lines_are_discarded(handle):
    assert handle.call("chatty") == "first"
    deadline = time.monotonic() + 5
    while handle._lines.empty() and time.monotonic() < deadline:
        time.sleep(0.01)
    assert handle.call("echo", {"x": 1}) == {"x": 1}


def test_runner_exit_is_connection_closed(handle):
    with pytest.raises(ConnectionClosedError):
        handle.call("exit")
    with pytest.raises(ConnectionClosedError):
        handle.call("echo")


def test_timeout_closes_handle(handle):
    started = time.monotonic()
    with pytest.raises(RpcTimeoutError) as exc_info:
        handle.call("hang", timeout=0.5)
    assert time.monotonic() - started < 10
    assert exc_info.value.details["request_id"] == 1
    assert handle.closed
    assert handle.runner.process.poll() is not None


def test_close_is_idempotent(handle):
    assert handle.is_alive()
    first = handle.close()
    assert handle.close() == first
    assert not handle.is_alive()
    with pytest.raises(ConnectionClosedError):
        handle.call("echo")
