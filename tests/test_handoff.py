import warnings
from pathlib import Path

import pytest

import clusterform.deployment.handoff as handoff
from clusterform.deployment.handoff import HandoffError, run_handoff
from clusterform.models.handoff import HandoffResult, HandoffState
from clusterform.models.inventory import Inventory
from clusterform.models.settings import ClusterSettings
from clusterform.utils.async_command_runner import CommandError
from clusterform.utils.net import HostUnreachableError


@pytest.fixture
def settings(tmp_path):
    return ClusterSettings(
        inventory_path=str(tmp_path / "inventory.ini"),
        private_key_path="/keys/id_rsa",
        ssh_poll_interval=0.01,
        ssh_timeout=1.0,
    )


@pytest.fixture
def inventory():
    return Inventory(control_plane=["198.51.100.1"], worker=["198.51.100.2", "198.51.100.3"])


@pytest.fixture
def calls(monkeypatch):
    record = {"waited": [], "playbooks": []}

    async def fake_wait(host, port=22, *, interval, timeout):
        record["waited"].append((host, port, interval, timeout))
        return 3

    async def fake_playbook(invocation, extra_vars=None, *, timeout=None):
        record["playbooks"].append((invocation, extra_vars))
        return "ok=5 changed=2"

    monkeypatch.setattr(handoff, "wait_for_port", fake_wait)
    monkeypatch.setattr(handoff, "run_playbook", fake_playbook)
    return record


@pytest.mark.asyncio
async def test_handoff_success(settings, inventory, calls):
    results = await run_handoff(inventory, settings)

    (result,) = results
    assert result.address == "198.51.100.1"
    assert result.attempts == 3
    assert result.history == [
        HandoffState.waiting_for_network,
        HandoffState.polling_ssh,
        HandoffState.running_playbook,
        HandoffState.done,
    ]
    assert calls["waited"] == [("198.51.100.1", 22, 0.01, 1.0)]

    (invocation, extra_vars) = calls["playbooks"][0]
    assert invocation.inventory_path == settings.inventory_path
    assert invocation.playbook_path == "ansible/playbook.yml"
    assert invocation.remote_user == "ubuntu"
    assert invocation.private_key_path == "/keys/id_rsa"
    assert extra_vars["control_plane_endpoint"] == "198.51.100.1"
    assert extra_vars["worker_addresses"] == ["198.51.100.2", "198.51.100.3"]
    assert extra_vars["project_tag"] == "kubernetes"


@pytest.mark.asyncio
async def test_each_control_replica_is_polled(settings, calls):
    inv = Inventory(control_plane=["10.0.0.1", "10.0.0.2"], worker=[])

    results = await run_handoff(inv, settings, extra_vars={"project_tag": "override"})

    assert sorted(w[0] for w in calls["waited"]) == ["10.0.0.1", "10.0.0.2"]
    assert len(calls["playbooks"]) == 1
    assert calls["playbooks"][0][1]["project_tag"] == "override"
    assert all(r.succeeded() for r in results)


@pytest.mark.asyncio
async def test_unreachable_replica_stops_before_playbook(settings, inventory, calls, monkeypatch):
    async def unreachable(host, port=22, *, interval, timeout):
        raise HostUnreachableError(host, port, attempts=7, elapsed=1.0)

    monkeypatch.setattr(handoff, "wait_for_port", unreachable)

    with pytest.raises(HandoffError, match="unreachable") as excinfo:
        await run_handoff(inventory, settings)

    (result,) = excinfo.value.results
    assert result.state == HandoffState.unreachable
    assert result.attempts == 7
    assert "198.51.100.1:22" in result.error
    assert result.is_terminal()
    assert calls["playbooks"] == []


@pytest.mark.asyncio
async def test_playbook_failure_marks_failed(settings, inventory, calls, monkeypatch):
    async def failing(invocation, extra_vars=None, *, timeout=None):
        raise CommandError("Command failed with return code 2.", 2)

    monkeypatch.setattr(handoff, "run_playbook", failing)

    with pytest.raises(HandoffError, match="failed") as excinfo:
        await run_handoff(inventory, settings)

    (result,) = excinfo.value.results
    assert result.state == HandoffState.failed
    assert result.history[-2:] == [HandoffState.running_playbook, HandoffState.failed]


@pytest.mark.asyncio
async def test_no_control_plane(settings, calls):
    with pytest.raises(HandoffError, match="no control-plane"):
        await run_handoff(Inventory(worker=["1.1.1.1"]), settings)


def test_invalid_transition():
    result = HandoffResult(address="1.1.1.1")

    with pytest.raises(ValueError, match="waiting_for_network -> done"):
        result.transition(HandoffState.done)


def test_terminal_states_cannot_move():
    result = HandoffResult(address="1.1.1.1")
    result.transition(HandoffState.polling_ssh)
    result.transition(HandoffState.unreachable, error="timeout")

    with pytest.raises(ValueError):
        result.transition(HandoffState.running_playbook)
    assert result.error == "timeout"
    assert not result.succeeded()


def test_sources_compile_without_warnings():
    package_root = Path(handoff.__file__).resolve().parents[1]

    for path in sorted(package_root.rglob("*.py")):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            compile(path.read_text(encoding="utf-8"), str(path), "exec")
