"""
clusterform/models/ansible.py

Describes one 'ansible-playbook' invocation against the generated inventory.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, field_validator


class AnsibleInvocation(BaseModel):
    """
    Arguments for running the configuration playbook over SSH.

    Attributes:
        inventory_path: The generated inventory.ini.
        playbook_path: Playbook to run, relative to the working directory.
        remote_user: SSH user on the instances.
        private_key_path: Private key matching the instances' key pair.
        extra_vars_file: Optional JSON file passed as '-e @file'.
        limit: Optional host pattern passed as '--limit'.
        host_key_checking: Keep Ansible's host key checking. Fresh instances
            have unknown keys, so it is off by default.
        binary: The ansible-playbook executable.
    """

    inventory_path: str
    playbook_path: str = "ansible/playbook.yml"
    remote_user: str = "ubuntu"
    private_key_path: str
    extra_vars_file: Optional[str] = None
    limit: Optional[str] = None
    host_key_checking: bool = False
    binary: str = "ansible-playbook"

    @field_validator("inventory_path", "playbook_path", "private_key_path", "remote_user")
    @classmethod
    def validate_non_empty(cls, val: str) -> str:
        if not val.strip():
            raise ValueError("must be a non-empty string")
        return val

    def build_command(self) -> List[str]:
        base = [
            self.binary,
            "-i",
            self.inventory_path,
            "-u",
            self.remote_user,
            "--private-key",
            self.private_key_path,
        ]
        if self.extra_vars_file:
            base += ["-e", f"@{self.extra_vars_file}"]
        if self.limit:
            base += ["--limit", self.limit]
        base.append(self.playbook_path)
        return base

    def build_env(self) -> Dict[str, str]:
        return {"ANSIBLE_HOST_KEY_CHECKING": str(self.host_key_checking)}
