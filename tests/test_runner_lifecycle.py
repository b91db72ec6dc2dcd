import threading
import time

import pytest

from validation_bridge.errors import (
    ClientNotStartedError,
    InvalidResponseError,
    ResponseParseError,
    RpcError,
    RpcTimeoutError,
    RunnerCommunicationError,
)
from validation_bridge.runner.lifecycle import ClientState, ValidationClient


def test_echo_params(client):
    params = {"entity": {"id": "L-1", "amount": 12.5, "tags": ["a", "b"], "owner": None}}
    assert client.call("echo", params) == params


def test_ids_are_one_to_n(client):
    assert [client.call("echo_id") for _ in range(5)] == [1, 2, 3, 4, 5]


def test_scenario_discover_rulesets(client):
    assert client.discover_rulesets() == {"rulesets": {}, "total_rulesets": 0}


def test_scenario_runner_exits_immediately(make_config):
    with ValidationClient(make_config(server_module="exit_runner")) as c:
        with pytest.raises(RunnerCommunicationError):
            c.discover_rulesets()


def test_typed_operations_send_expected_params(client):
    entity = {"id": "L-1"}
    assert client.validate("loan", entity, "quick") == {
        "method": "validate",
        "params": {"entity_type": "loan", "entity_data": entity, "ruleset_name": "quick"},
    }
    assert client.discover_rules("loan", {}, "thorough")["params"] == {
        "entity_type": "loan",
        "entity_data": {},
        "ruleset_name": "thorough",
    }
    assert client.batch_validate([entity], ["id"], "quick")["params"] == {
        "entities": [entity],
        "id_fields": ["id"],
        "ruleset_name": "quick",
    }
    assert client.batch_file_validate("file:///data/loans.json", ["loan"], ["id"], "quick")["params"] == {
        "file_uri": "file:///data/loans.json",
        "entity_types": ["loan"],
        "id_fields": ["id"],
        "ruleset_name": "quick",
    }
    assert client.reload_logic() == {"method": "reload_logic", "params": {}}
    assert client.get_cache_age() == {"method": "get_cache_age", "params": {}}


def test_restart_replaces_runner(client):
    first = client.ensure_started()
    second = client.start()
    assert first.closed
    assert first.runner.process.poll() is not None
    assert second.pid != first.pid
    assert client.call("echo_id") == 1
    client.restart()
    assert client.state is ClientState.RUNNING


def test_stop_is_noop_when_not_started(runner_config):
    c = ValidationClient(runner_config)
    c.stop()
    c.stop()
    assert c.state is ClientState.NOT_STARTED


def test_calls_require_start(runner_config):
    c = ValidationClient(runner_config)
    with pytest.raises(ClientNotStartedError):
        c.discover_rulesets()
    c.start()
    c.stop()
    with pytest.raises(ClientNotStartedError):
        c.call("echo")


def test_start_requires_config():
    with pytest.raises(ClientNotStartedError):
        ValidationClient().start()


@pytest.mark.parametrize(
    "error",
    [
        {"code": -32000, "message": "ruleset not found"},
        "plain string error",
        {"code": 1, "message": "nested", "data": {"rows": [{"id": 1, "issues": ["a"]}]}},
    ],
)
def test_remote_errors_pass_through(client, error):
    with pytest.raises(RpcError) as exc_info:
        client.call("fail", {"error": error})
    assert exc_info.value.error == error
    assert exc_info.value.method == "fail"


def test_malformed_responses(client):
    with pytest.raises(ResponseParseError) as exc_info:
        client.call("garbage")
    assert exc_info.value.line == "this is not json"
    with pytest.raises(InvalidResponseError):
        client.call("shapeless")
    with pytest.raises(InvalidResponseError):
        client.call("both")


def test_concurrent_calls_get_their_own_answers(client):
    results: dict[int, object] = {}
    errors: list[BaseException] = []

    def worker(n: int) -> None:
        try:
            results[n] = client.call("echo", {"n": n})
        except BaseException as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    assert errors == []
    assert results == {n: {"n": n} for n in range(16)}
    assert client.call("echo_id") == 17


def test_stop_wakes_blocked_caller(client):
    outcome: list[BaseException] = []

    def blocked() -> None:
        try:
            client.call("hang")
        except BaseException as exc:  # noqa: BLE001
            outcome.append(exc)

    handle = client.ensure_started()
    t = threading.Thread(target=blocked)
    t.start()
    deadline = time.monotonic() + 5
    while handle.last_request_id < 1 and time.monotonic() < deadline:
        time.sleep(0.01)
    time.sleep(0.1)
    client.stop()
    t.join(timeout=15)
    assert not t.is_alive()
    assert len(outcome) == 1
    assert isinstance(outcome[0], RunnerCommunicationError)
    assert client.state is ClientState.NOT_STARTED


def test_read_timeout_stops_client(make_config):
    c = ValidationClient(make_config(read_timeout_seconds=0.5))
    c.start()
    handle = c.ensure_started()
    with pytest.raises(RpcTimeoutError):
        c.call("hang")
    assert c.state is ClientState.NOT_STARTED
    assert handle.runner.process.poll() is not None
    c.start()
    try:
        assert c.call("echo_id") == 1
    finally:
        c.stop()


def test_shutdown_hook_registers_once(runner_config, monkeypatch):
    registered = []
    monkeypatch.setattr("validation_bridge.runner.lifecycle.atexit.register", registered.append)
    c = ValidationClient(runner_config)
    c.install_shutdown_hook()
    c.install_shutdown_hook()
    assert registered == [c.stop]
