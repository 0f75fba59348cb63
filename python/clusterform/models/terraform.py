"""
clusterform/models/terraform.py

Pydantic models for the JSON emitted by 'terraform show -json':
 - OutputValue: a single root-module output.
 - Values: outputs + root_module resources.
 - TerraformState: the top-level document.

A state with no resources (before the first apply, or after destroy) comes back
without a 'values' block, so `values` is optional here.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field


class OutputValue(BaseModel):
    """A Terraform output value.

    Attributes:
        sensitive: True if the output is marked sensitive.
        value: Arbitrary data from the Terraform output.
        type: Optional Terraform type hint (string, list, etc.).
    """

    sensitive: bool = False
    value: Any = None
    type: Union[str, List[Any], None] = None


class Values(BaseModel):
    """The 'values' block of a Terraform JSON state."""

    outputs: Dict[str, OutputValue] = Field(default_factory=dict)
    root_module: Dict[str, Any] = Field(default_factory=dict)


class TerraformState(BaseModel):
    """A Terraform JSON state at a high level.

    Attributes:
        format_version: The format version string of the state document.
        terraform_version: The Terraform version that produced it.
        values: Outputs and resources, absent for an empty state.
    """

    format_version: str
    terraform_version: Optional[str] = None
    values: Optional[Values] = None

    def _count_resources_in_module(self, module_data: Dict[str, Any]) -> int:
        """Recursively count resources in a module, including child modules."""
        resources = module_data.get("resources")
        resources_count = len(resources) if isinstance(resources, list) else 0

        child_modules = module_data.get("child_modules")
        child_sum = (
            sum(
                self._count_resources_in_module(child)
                for child in child_modules
                if isinstance(child, dict)
            )
            if isinstance(child_modules, list)
            else 0
        )
        return resources_count + child_sum

    def is_empty(self) -> bool:
        if self.values is None:
            return True
        return self._count_resources_in_module(self.values.root_module) == 0

    def outputs(self) -> Dict[str, OutputValue]:
        return self.values.outputs if self.values else {}

    def resource_addresses(self) -> List[str]:
        """Addresses of root-module resources, e.g. 'aws_instance.worker_1'."""
        if self.values is None:
            return []
        resources = self.values.root_module.get("resources") or []
        return [r["address"] for r in resources if isinstance(r, dict) and "address" in r]
