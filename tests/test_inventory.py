import pytest
from pydantic import ValidationError

from clusterform.models.inventory import Inventory
from clusterform.models.terraform import TerraformState
from clusterform.utils.inventory import (
    InventoryError,
    inventory_from_state,
    read_inventory,
    remove_inventory,
    write_inventory,
)


def make_state(control, workers):
    return TerraformState.model_validate(
        {
            "format_version": "1.0",
            "terraform_version": "1.7.5",
            "values": {
                "outputs": {
                    "control_plane_public_ips": {"sensitive": False, "value": control},
                    "worker_public_ips": {"sensitive": False, "value": workers},
                },
                "root_module": {
                    "resources": [
                        {"address": "aws_instance.control_plane_1"},
                        {"address": "aws_instance.worker_1"},
                    ]
                },
            },
        }
    )


def test_render_layout():
    inv = Inventory(control_plane=["203.0.113.10"], worker=["203.0.113.11", "203.0.113.12"])

    assert inv.render() == (
        "[control_plane]\n"
        "203.0.113.10\n"
        "\n"
        "[worker]\n"
        "203.0.113.11\n"
        "203.0.113.12\n"
    )


def test_render_keeps_both_headers_when_empty():
    text = Inventory().render()

    assert text == "[control_plane]\n\n[worker]\n"
    assert text.index("[control_plane]") < text.index("[worker]")


def test_parse_reads_rendered_text():
    inv = Inventory(control_plane=["10.1.1.1"], worker=["10.1.1.2", "10.1.1.3"])

    assert Inventory.parse(inv.render()) == inv


@pytest.mark.parametrize(
    "text",
    [
        "[worker]\n1.1.1.1\n\n[control_plane]\n2.2.2.2\n",
        "[control_plane]\n1.1.1.1\n",
        "1.1.1.1\n[control_plane]\n\n[worker]\n",
        "[control_plane]\n\n[worker]\n\n[etcd]\n",
    ],
)
def test_parse_rejects_bad_layouts(text):
    with pytest.raises(ValueError):
        Inventory.parse(text)


def test_blank_address_rejected():
    with pytest.raises(ValidationError):
        Inventory(control_plane=[""])


def test_inventory_from_state():
    state = make_state(["54.1.1.1"], ["54.1.1.2", "54.1.1.3"])

    inv = inventory_from_state(state)

    assert inv.control_plane == ["54.1.1.1"]
    assert inv.worker == ["54.1.1.2", "54.1.1.3"]


@pytest.mark.parametrize("workers", [["54.1.1.2", ""], ["54.1.1.2", None]])
def test_unresolved_address_raises(workers):
    state = make_state(["54.1.1.1"], workers)

    with pytest.raises(InventoryError, match=r"worker node\(s\) \[2\]"):
        inventory_from_state(state)


def test_missing_output_raises():
    state = TerraformState.model_validate(
        {
            "format_version": "1.0",
            "values": {
                "outputs": {},
                "root_module": {"resources": [{"address": "aws_vpc.main"}]},
            },
        }
    )

    with pytest.raises(InventoryError, match="control_plane_public_ips"):
        inventory_from_state(state)


def test_empty_state_raises():
    state = TerraformState.model_validate({"format_version": "1.0"})

    with pytest.raises(InventoryError, match="empty"):
        inventory_from_state(state)


@pytest.mark.asyncio
async def test_write_then_read(tmp_path):
    path = str(tmp_path / "out" / "inventory.ini")
    inv = Inventory(control_plane=["1.2.3.4"], worker=["5.6.7.8"])

    await write_inventory(inv, path)

    with open(path, encoding="utf-8") as fh:
        assert fh.read() == inv.render()
    assert await read_inventory(path) == inv


@pytest.mark.asyncio
async def test_write_replaces_previous_file(tmp_path):
    path = str(tmp_path / "inventory.ini")
    await write_inventory(Inventory(control_plane=["1.1.1.1"], worker=["2.2.2.2"]), path)

    await write_inventory(Inventory(control_plane=["3.3.3.3"]), path)

    assert (await read_inventory(path)).control_plane == ["3.3.3.3"]


@pytest.mark.asyncio
async def test_read_missing_and_malformed(tmp_path):
    with pytest.raises(InventoryError, match="not found"):
        await read_inventory(str(tmp_path / "missing.ini"))

    bad = tmp_path / "bad.ini"
    bad.write_text("[worker]\n", encoding="utf-8")
    with pytest.raises(InventoryError, match="Malformed"):
        await read_inventory(str(bad))


@pytest.mark.asyncio
async def test_remove_inventory(tmp_path):
    path = tmp_path / "inventory.ini"
    path.write_text("x", encoding="utf-8")

    assert await remove_inventory(str(path)) is True
    assert not path.exists()
    assert await remove_inventory(str(path)) is False
