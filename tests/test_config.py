import pytest

from clusterform.models.compute import NodeRole
from clusterform.models.settings import ClusterSettings
from clusterform.utils.config import load_cluster_spec, spec_from_mapping


def test_defaults_from_settings(monkeypatch):
    monkeypatch.setenv("CLUSTERFORM_PROJECT_TAG", "lab")
    monkeypatch.setenv("CLUSTERFORM_REGION", "eu-west-1")

    spec = spec_from_mapping({}, ClusterSettings())

    assert spec.project_tag == "lab"
    assert spec.region == "eu-west-1"
    assert spec.count(NodeRole.control_plane) == 1
    assert spec.count(NodeRole.worker) == 2


def test_file_values_win_over_settings():
    settings = ClusterSettings(project_tag="from-env", key_name="env-key")

    spec = spec_from_mapping({"project_tag": "from-file"}, settings)

    assert spec.project_tag == "from-file"
    assert spec.key_name == "env-key"


def test_image_pin_from_settings():
    spec = spec_from_mapping({}, ClusterSettings(image_id="ami-0123456789abcdef0"))

    assert spec.image.image_id == "ami-0123456789abcdef0"
    assert spec.image.is_pinned()


def test_image_pin_in_file_is_kept():
    spec = spec_from_mapping(
        {"image": {"image_id": "ami-file"}}, ClusterSettings(image_id="ami-env")
    )

    assert spec.image.image_id == "ami-file"


def test_invalid_mapping_raises_value_error():
    with pytest.raises(ValueError):
        spec_from_mapping(
            {"topology": {"vpc_cidr": "10.0.0.0/16", "subnet_cidr": "192.168.0.0/24"}},
            ClusterSettings(),
        )


@pytest.mark.asyncio
async def test_load_yaml_file(tmp_path):
    path = tmp_path / "cluster.yaml"
    path.write_text(
        "project_tag: demo\n"
        "node_groups:\n"
        "  - {role: control_plane, count: 1}\n"
        "  - {role: worker, count: 3, instance_type: t3.large}\n",
        encoding="utf-8",
    )

    spec = await load_cluster_spec(str(path), ClusterSettings())

    assert spec.project_tag == "demo"
    assert spec.display_names()[NodeRole.worker] == [
        "demo-worker-1",
        "demo-worker-2",
        "demo-worker-3",
    ]


@pytest.mark.asyncio
async def test_load_without_file_uses_defaults():
    spec = await load_cluster_spec(None, ClusterSettings())

    assert spec.project_tag == "kubernetes"


@pytest.mark.asyncio
async def test_load_malformed_yaml(tmp_path):
    path = tmp_path / "cluster.yaml"
    path.write_text("project_tag: [unterminated\n", encoding="utf-8")

    with pytest.raises(ValueError):
        await load_cluster_spec(str(path), ClusterSettings())


@pytest.mark.parametrize("raw", ["none", "None", "0", ""])
def test_ssh_timeout_unbounded_from_env(monkeypatch, raw):
    monkeypatch.setenv("CLUSTERFORM_SSH_TIMEOUT", raw)

    assert ClusterSettings().ssh_timeout is None


def test_ssh_timeout_from_env(monkeypatch):
    monkeypatch.setenv("CLUSTERFORM_SSH_TIMEOUT", "45")

    assert ClusterSettings().ssh_timeout == 45.0


def test_ssh_timeout_zero_and_negative():
    assert ClusterSettings(ssh_timeout=0).ssh_timeout is None
    with pytest.raises(ValueError):
        ClusterSettings(ssh_timeout=-5)
