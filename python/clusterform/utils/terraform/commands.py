"""
clusterform/utils/terraform/commands.py

Implements the Terraform commands clusterform needs (init, plan, apply,
destroy, show) plus helpers for building command arrays. Every call goes
through `run_command`, with an error parser that shortens the provider errors
operators hit most often (quota exceeded, bad availability zone, missing
credentials).

Exports the following primary functions:
    - init_terraform
    - plan_terraform
    - apply_terraform
    - destroy_terraform
    - read_terraform_state
    - get_output_from_state
"""

from __future__ import annotations

import os
import logging
from typing import Dict, List, Optional, Type, TypeVar

from clusterform.utils.async_command_runner import run_command
from clusterform.models.validator import validate_type
from clusterform.models.terraform import TerraformState

T = TypeVar("T")

logger = logging.getLogger(__name__)

TERRAFORM_BINARY = "terraform"

_KNOWN_ERRORS = (
    (
        ("vcpulimitexceeded", "instancelimitexceeded", "limitexceeded", "quota"),
        "Cloud quota exceeded. Request a limit increase or reduce node counts.",
    ),
    (
        (
            "invalid availability zone",
            "invalidparametervalue: value (",
            "unsupported: your requested instance type",
        ),
        "Invalid availability zone or instance type for this region.",
    ),
    (
        (
            "no valid credential sources",
            "invalidclienttokenid",
            "unable to locate credentials",
        ),
        "Cloud credentials are missing or invalid.",
    ),
)


def _provider_error_parser(stderr: str) -> Optional[str]:
    """Map well-known provider errors in stderr to a short message.

    Args:
        stderr (str): The standard error output from Terraform.

    Returns:
        Optional[str]: A short message if a known error was found, otherwise None.
    """
    low = stderr.lower()
    for needles, message in _KNOWN_ERRORS:
        if any(n in low for n in needles):
            return message
    return None


def _make_base_command(
    action: str, override_lock: bool = False, reconfigure: bool = False
) -> List[str]:
    """Builds the Terraform command for `action`, adding the action's flags.

    Args:
        action: "init", "plan", "apply", "destroy" or "show".
        override_lock: If True, add '-lock=false' for plan/apply/destroy.
        reconfigure: If True, add '-reconfigure' for init.

    Returns:
        A list of command tokens, e.g. ["terraform","apply","-no-color",...].
    """
    base = [TERRAFORM_BINARY, action, "-no-color"]

    show_flags = ["-json"] if action == "show" else []
    input_flags = (
        ["-input=false"] if action in ("init", "plan", "apply", "destroy") else []
    )
    approve_flags = ["-auto-approve"] if action in ("apply", "destroy") else []
    lock_flags = (
        ["-lock=false"]
        if (override_lock and action in ("plan", "apply", "destroy"))
        else []
    )
    init_flags = ["-reconfigure"] if (action == "init" and reconfigure) else []

    return base + show_flags + input_flags + approve_flags + lock_flags + init_flags


async def _terraform_command(
    action: str,
    terraform_dir: str,
    *,
    env: Optional[Dict[str, str]] = None,
    override_lock: bool = False,
    reconfigure: bool = False,
    sensitive: bool = True,
    retries: int = 1,
    timeout: Optional[float] = None,
) -> str:
    """
    Internal runner for 'terraform <action>' inside `terraform_dir`.

    Args:
        action (str): The Terraform action.
        terraform_dir (str): Directory holding main.tf.json and the local state.
        env (Optional[Dict[str,str]]): Extra environment (credentials, TF_LOG).
        override_lock (bool): If True => '-lock=false'.
        reconfigure (bool): If True => '-reconfigure' for init.
        sensitive (bool): If True => keep command output out of raised errors.
        retries (int): Total attempts for the command.
        timeout (Optional[float]): Seconds before the process is killed.

    Returns:
        str: Terraform's stdout.

    Raises:
        ValueError: If the directory does not exist.
        CommandError: If the command fails after all attempts.
    """
    if not os.path.isdir(terraform_dir):
        raise ValueError(f"Terraform directory not found: {terraform_dir}")

    cmd = _make_base_command(action, override_lock, reconfigure)
    logger.info("terraform %s in %s", action, terraform_dir)
    return await run_command(
        cmd,
        sensitive=sensitive,
        env=env,
        cwd=terraform_dir,
        retries=retries,
        timeout=timeout,
        error_parser=_provider_error_parser,
    )


async def init_terraform(
    terraform_dir: str,
    env: Optional[Dict[str, str]] = None,
    reconfigure: bool = False,
    sensitive: bool = True,
    retries: int = 3,
    timeout: Optional[float] = None,
) -> None:
    """Run 'terraform init' (downloads the AWS provider on first use).

    Provider downloads fail transiently often enough that init retries
    3 times by default.
    """
    await _terraform_command(
        "init",
        terraform_dir,
        env=env,
        reconfigure=reconfigure,
        sensitive=sensitive,
        retries=retries,
        timeout=timeout,
    )


async def plan_terraform(
    terraform_dir: str,
    env: Optional[Dict[str, str]] = None,
    override_lock: bool = False,
    sensitive: bool = True,
    timeout: Optional[float] = None,
) -> str:
    """Run 'terraform plan' and return its human-readable output."""
    return await _terraform_command(
        "plan",
        terraform_dir,
        env=env,
        override_lock=override_lock,
        sensitive=sensitive,
        retries=1,
        timeout=timeout,
    )


async def apply_terraform(
    terraform_dir: str,
    env: Optional[Dict[str, str]] = None,
    override_lock: bool = False,
    sensitive: bool = True,
    retries: int = 1,
    timeout: Optional[float] = None,
) -> None:
    """Run 'terraform apply -auto-approve'.

    Terraform converges the declared topology; an apply error (quota, bad
    zone) is raised as CommandError and leaves partially created resources
    in the state for the next apply or destroy.
    """
    await _terraform_command(
        "apply",
        terraform_dir,
        env=env,
        override_lock=override_lock,
        sensitive=sensitive,
        retries=retries,
        timeout=timeout,
    )


async def destroy_terraform(
    terraform_dir: str,
    env: Optional[Dict[str, str]] = None,
    override_lock: bool = False,
    sensitive: bool = True,
    retries: int = 1,
    timeout: Optional[float] = None,
) -> None:
    """Run 'terraform destroy -auto-approve'."""
    await _terraform_command(
        "destroy",
        terraform_dir,
        env=env,
        override_lock=override_lock,
        sensitive=sensitive,
        retries=retries,
        timeout=timeout,
    )


async def read_terraform_state(
    terraform_dir: str,
    env: Optional[Dict[str, str]] = None,
    sensitive: bool = True,
    retries: int = 1,
) -> TerraformState:
    """Run 'terraform show -json' and parse the result.

    Returns:
        TerraformState: Parsed JSON state object.

    Raises:
        RuntimeError: If the show output is empty.
    """
    output = await _terraform_command(
        "show",
        terraform_dir,
        env=env,
        sensitive=sensitive,
        retries=retries,
    )
    if not output:
        raise RuntimeError("Failed to retrieve terraform state (empty output).")
    return TerraformState.model_validate_json(output)


def get_output_from_state(
    state: TerraformState, output_name: str, output_type: Type[T]
) -> T:
    """Retrieve a typed output from a TerraformState object.

    Raises:
        KeyError: If the output is missing.
        ValueError: If validation to output_type fails.
    """
    output_val = state.outputs().get(output_name)
    if output_val is None:
        raise KeyError(f"Output '{output_name}' not found in Terraform state.")
    return validate_type(output_val.value, output_type)
