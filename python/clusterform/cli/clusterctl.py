#!/usr/bin/env python3
"""
clusterform/cli/clusterctl.py

CLI for the provisioning-and-handoff sequence:

  render     Write main.tf.json for the cluster and print its path.
  validate   Check the cluster declaration and print a summary.
  plan       Render, init and show 'terraform plan'.
  apply      Render, init, apply, write inventory.ini, hand off to Ansible.
  inventory  Regenerate inventory.ini from the current Terraform state.
  handoff    Wait for SSH on the control plane and run the playbook.
  destroy    Destroy every declared resource and remove inventory.ini.

Settings come from CLUSTERFORM_* environment variables; flags override them.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from clusterform.deployment.cluster import (
    destroy_cluster,
    provision_cluster,
    refresh_inventory,
)
from clusterform.deployment.handoff import HandoffError, run_handoff
from clusterform.models.cluster import ClusterSpec
from clusterform.models.settings import ClusterSettings
from clusterform.utils.async_command_runner import CommandError
from clusterform.utils.config import load_cluster_spec
from clusterform.utils.inventory import InventoryError, read_inventory
from clusterform.utils.net import HostUnreachableError
from clusterform.utils.terraform import (
    init_terraform,
    plan_terraform,
    render_configuration,
    write_configuration,
)

# flag dest => ClusterSettings field
_SETTINGS_FLAGS = {
    "project_tag": "project_tag",
    "region": "region",
    "key_name": "key_name",
    "image_id": "image_id",
    "terraform_dir": "terraform_dir",
    "inventory": "inventory_path",
    "playbook": "playbook_path",
    "ssh_user": "ssh_user",
    "private_key": "private_key_path",
    "ssh_timeout": "ssh_timeout",
    "ssh_poll_interval": "ssh_poll_interval",
    "reconfigure": "terraform_reconfigure",
    "no_lock": "terraform_override_lock",
}


def build_settings(args: argparse.Namespace) -> ClusterSettings:
    """Environment-derived settings with any explicit flags applied on top."""
    overrides: Dict[str, Any] = {
        field: getattr(args, flag)
        for flag, field in _SETTINGS_FLAGS.items()
        if getattr(args, flag, None) is not None
    }
    return ClusterSettings(**overrides)


async def _load(args: argparse.Namespace) -> Tuple[ClusterSpec, ClusterSettings]:
    settings = build_settings(args)
    spec = await load_cluster_spec(args.cluster_file, settings)
    return spec, settings


def _summary(spec: ClusterSpec) -> Dict[str, Any]:
    topo = spec.topology
    return {
        "project_tag": spec.project_tag,
        "region": spec.region,
        "vpc_cidr": topo.vpc_cidr,
        "subnet_cidr": topo.subnet_cidr,
        "ingress_tcp_ports": topo.ingress_ports(),
        "all_egress": topo.allows_all_egress(),
        "nodes": {role.value: names for role, names in spec.display_names().items()},
        "image": spec.image.image_id or f"lookup: {spec.image.name_pattern}",
    }


async def _run_render(args: argparse.Namespace) -> None:
    spec, settings = await _load(args)
    if args.stdout:
        print(json.dumps(render_configuration(spec), indent=2, sort_keys=True))
        return
    print(await write_configuration(spec, settings.terraform_dir))


async def _run_validate(args: argparse.Namespace) -> None:
    spec, _ = await _load(args)
    print(json.dumps(_summary(spec), indent=2))


async def _run_plan(args: argparse.Namespace) -> None:
    spec, settings = await _load(args)
    await write_configuration(spec, settings.terraform_dir)
    await init_terraform(
        settings.terraform_dir, reconfigure=settings.terraform_reconfigure
    )
    print(
        await plan_terraform(
            settings.terraform_dir,
            override_lock=settings.terraform_override_lock,
            sensitive=False,
        )
    )


async def _run_apply(args: argparse.Namespace) -> None:
    spec, settings = await _load(args)
    await provision_cluster(spec, settings, skip_handoff=args.skip_handoff)


async def _run_inventory(args: argparse.Namespace) -> None:
    settings = build_settings(args)
    inventory = await refresh_inventory(settings)
    print(inventory.render(), end="")


async def _run_handoff(args: argparse.Namespace) -> None:
    settings = build_settings(args)
    inventory = await read_inventory(settings.inventory_path)
    results = await run_handoff(inventory, settings)
    for r in results:
        print(f"{r.address}: {r.state.value} after {r.attempts} SSH attempt(s)")


async def _run_destroy(args: argparse.Namespace) -> None:
    spec, settings = await _load(args)
    await destroy_cluster(spec, settings)


def _add_common_args(p: argparse.ArgumentParser, with_cluster_file: bool) -> None:
    if with_cluster_file:
        p.add_argument(
            "--cluster-file",
            default=None,
            help="YAML cluster declaration (defaults describe 1 control-plane + 2 workers).",
        )
        p.add_argument("--project-tag", default=None, help="Value of the 'project' tag.")
        p.add_argument("--region", default=None, help="Cloud region.")
        p.add_argument("--key-name", default=None, help="Existing key pair name.")
        p.add_argument("--image-id", default=None, help="Pin the machine image.")
    p.add_argument("--terraform-dir", default=None, help="Terraform working directory.")
    p.add_argument("--inventory", default=None, help="Inventory file path.")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")


def _add_handoff_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--playbook", default=None, help="Playbook path.")
    p.add_argument("--ssh-user", default=None, help="Remote SSH user.")
    p.add_argument("--private-key", default=None, help="SSH private key file.")
    p.add_argument(
        "--ssh-timeout",
        type=float,
        default=None,
        help=(
            "Seconds to wait for SSH on each control-plane node; "
            "0 waits without a deadline."
        ),
    )
    p.add_argument(
        "--ssh-poll-interval",
        type=float,
        default=None,
        help="Seconds between SSH reachability attempts.",
    )


def _add_terraform_args(p: argparse.ArgumentParser) -> None:
    # store_true with default None so unset flags leave the env settings alone
    p.add_argument(
        "--reconfigure",
        action="store_true",
        default=None,
        help="Pass -reconfigure to 'terraform init'.",
    )
    p.add_argument(
        "--no-lock",
        action="store_true",
        default=None,
        help="Pass -lock=false to plan/apply/destroy.",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clusterctl",
        description="Provision a cluster with Terraform and configure it with Ansible.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    render_parser = subparsers.add_parser("render", help="Write main.tf.json.")
    _add_common_args(render_parser, with_cluster_file=True)
    render_parser.add_argument(
        "--stdout", action="store_true", help="Print the document instead of writing it."
    )
    render_parser.set_defaults(func=_run_render)

    validate_parser = subparsers.add_parser(
        "validate", help="Validate the cluster declaration."
    )
    _add_common_args(validate_parser, with_cluster_file=True)
    validate_parser.set_defaults(func=_run_validate)

    plan_parser = subparsers.add_parser("plan", help="Show the terraform plan.")
    _add_common_args(plan_parser, with_cluster_file=True)
    _add_terraform_args(plan_parser)
    plan_parser.set_defaults(func=_run_plan)

    apply_parser = subparsers.add_parser(
        "apply", help="Provision, write the inventory and run the playbook."
    )
    _add_common_args(apply_parser, with_cluster_file=True)
    _add_terraform_args(apply_parser)
    _add_handoff_args(apply_parser)
    apply_parser.add_argument(
        "--skip-handoff",
        action="store_true",
        help="Stop after writing the inventory.",
    )
    apply_parser.set_defaults(func=_run_apply)

    inventory_parser = subparsers.add_parser(
        "inventory", help="Regenerate the inventory from Terraform state."
    )
    _add_common_args(inventory_parser, with_cluster_file=False)
    inventory_parser.set_defaults(func=_run_inventory)

    handoff_parser = subparsers.add_parser(
        "handoff", help="Wait for SSH and run the playbook against the inventory."
    )
    _add_common_args(handoff_parser, with_cluster_file=False)
    _add_handoff_args(handoff_parser)
    handoff_parser.set_defaults(func=_run_handoff)

    destroy_parser = subparsers.add_parser("destroy", help="Destroy the cluster.")
    _add_common_args(destroy_parser, with_cluster_file=True)
    _add_terraform_args(destroy_parser)
    destroy_parser.set_defaults(func=_run_destroy)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(args.func(args))
    except HandoffError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        for r in exc.results:
            print(f"  {r.address}: {r.state.value} {r.error or ''}", file=sys.stderr)
        return 1
    except (
        CommandError,
        InventoryError,
        HostUnreachableError,
        ValidationError,
        ValueError,
        OSError,
    ) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
