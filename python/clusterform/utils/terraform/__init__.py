"""
clusterform/utils/terraform/__init__.py

Re-exports the Terraform rendering and command helpers so callers can do:

    from clusterform.utils.terraform import write_configuration, apply_terraform
"""

from clusterform.utils.terraform.commands import (
    init_terraform,
    plan_terraform,
    apply_terraform,
    destroy_terraform,
    read_terraform_state,
    get_output_from_state,
)
from clusterform.utils.terraform.render import (
    render_configuration,
    write_configuration,
    iter_resources,
    OUTPUT_NAMES,
    UNTAGGABLE_RESOURCE_TYPES,
)

__all__ = [
    "init_terraform",
    "plan_terraform",
    "apply_terraform",
    "destroy_terraform",
    "read_terraform_state",
    "get_output_from_state",
    "render_configuration",
    "write_configuration",
    "iter_resources",
    "OUTPUT_NAMES",
    "UNTAGGABLE_RESOURCE_TYPES",
]
