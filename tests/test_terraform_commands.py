import json

import pytest

import clusterform.utils.terraform.commands as commands
from clusterform.models.terraform import TerraformState
from clusterform.utils.terraform import (
    apply_terraform,
    destroy_terraform,
    get_output_from_state,
    init_terraform,
    plan_terraform,
    read_terraform_state,
)

STATE = {
    "format_version": "1.0",
    "terraform_version": "1.7.5",
    "values": {
        "outputs": {
            "control_plane_public_ips": {"sensitive": False, "value": ["3.3.3.3"]},
            "instance_names": {"sensitive": False, "value": {"worker": ["k-worker-1"]}},
        },
        "root_module": {
            "resources": [{"address": "aws_vpc.main"}],
            "child_modules": [{"resources": [{"address": "module.x.aws_subnet.a"}]}],
        },
    },
}


@pytest.fixture
def recorded(monkeypatch):
    calls = []

    async def fake_run_command(cmd, **kwargs):
        calls.append((cmd, kwargs))
        return json.dumps(STATE) if cmd[1] == "show" else "done"

    monkeypatch.setattr(commands, "run_command", fake_run_command)
    return calls


def test_base_command_flags():
    make = commands._make_base_command

    assert make("init", reconfigure=True) == [
        "terraform", "init", "-no-color", "-input=false", "-reconfigure"
    ]
    assert make("apply") == [
        "terraform", "apply", "-no-color", "-input=false", "-auto-approve"
    ]
    assert make("destroy", override_lock=True)[-2:] == ["-auto-approve", "-lock=false"]
    assert make("show") == ["terraform", "show", "-no-color", "-json"]
    assert "-auto-approve" not in make("plan")


@pytest.mark.asyncio
async def test_commands_run_in_terraform_dir(tmp_path, recorded):
    tf_dir = str(tmp_path)

    await init_terraform(tf_dir, env={"AWS_PROFILE": "lab"})
    await plan_terraform(tf_dir)
    await apply_terraform(tf_dir, retries=2, timeout=60)
    await destroy_terraform(tf_dir)

    actions = [cmd[1] for cmd, _ in recorded]
    assert actions == ["init", "plan", "apply", "destroy"]
    for _, kwargs in recorded:
        assert kwargs["cwd"] == tf_dir
        assert kwargs["error_parser"] is commands._provider_error_parser
    assert recorded[0][1]["env"] == {"AWS_PROFILE": "lab"}
    assert recorded[0][1]["retries"] == 3
    assert recorded[2][1]["retries"] == 2
    assert recorded[2][1]["timeout"] == 60


@pytest.mark.asyncio
async def test_missing_directory(tmp_path, recorded):
    with pytest.raises(ValueError, match="not found"):
        await apply_terraform(str(tmp_path / "nope"))
    assert recorded == []


@pytest.mark.asyncio
async def test_read_state_and_outputs(tmp_path, recorded):
    state = await read_terraform_state(str(tmp_path))

    assert not state.is_empty()
    assert state.resource_addresses() == ["aws_vpc.main"]
    assert get_output_from_state(state, "control_plane_public_ips", list) == ["3.3.3.3"]
    assert get_output_from_state(state, "instance_names", dict)["worker"] == ["k-worker-1"]
    with pytest.raises(KeyError):
        get_output_from_state(state, "missing", list)
    with pytest.raises(ValueError):
        get_output_from_state(state, "instance_names", list)


@pytest.mark.asyncio
async def test_empty_show_output(tmp_path, monkeypatch):
    async def fake_run_command(cmd, **kwargs):
        return ""

    monkeypatch.setattr(commands, "run_command", fake_run_command)

    with pytest.raises(RuntimeError, match="empty output"):
        await read_terraform_state(str(tmp_path))


def test_state_without_values_is_empty():
    state = TerraformState.model_validate({"format_version": "1.0"})

    assert state.is_empty()
    assert state.outputs() == {}
    assert state.resource_addresses() == []


@pytest.mark.parametrize(
    "stderr,expected",
    [
        ("Error: VcpuLimitExceeded: You have requested more vCPU", "quota"),
        ("Error: Invalid availability zone: [us-east-1z]", "availability zone"),
        ("Error: No valid credential sources found", "credentials"),
        ("Error: something unexpected", None),
    ],
)
def test_provider_error_parser(stderr, expected):
    message = commands._provider_error_parser(stderr)

    if expected is None:
        assert message is None
    else:
        assert expected in message.lower()
