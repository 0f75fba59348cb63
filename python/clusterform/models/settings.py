# clusterform/models/settings.py

import os
from typing import Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from clusterform.models.cluster import DEFAULT_PROJECT_TAG

# CLUSTERFORM_SSH_TIMEOUT / --ssh-timeout values meaning "no deadline"
UNBOUNDED_TIMEOUT_VALUES = ("none", "0", "0.0", "")


class ClusterSettings(BaseSettings):
    """
    Runtime settings for provisioning and handoff.
    Each field maps to an environment variable prefixed with `CLUSTERFORM_`,
    e.g. `CLUSTERFORM_PROJECT_TAG`, `CLUSTERFORM_SSH_TIMEOUT`.

    `ssh_timeout` bounds the SSH wait on each control-plane node. Setting it to
    `0` or `none` (from the environment or `--ssh-timeout`) waits without a
    deadline.
    """

    model_config = SettingsConfigDict(env_prefix="CLUSTERFORM_")

    project_tag: str = DEFAULT_PROJECT_TAG
    region: str = "us-east-1"
    key_name: Optional[str] = None
    image_id: Optional[str] = None  # pins the machine image when set

    terraform_dir: str = "./terraform"
    terraform_retries: int = Field(default=1, ge=0)
    terraform_timeout: Optional[float] = None
    terraform_reconfigure: bool = False  # init -reconfigure
    terraform_override_lock: bool = False  # plan/apply/destroy -lock=false

    inventory_path: str = "./inventory.ini"
    playbook_path: str = "ansible/playbook.yml"
    ssh_user: str = "ubuntu"
    private_key_path: str = "~/.ssh/id_rsa"
    ssh_port: int = Field(default=22, ge=1, le=65535)
    ssh_poll_interval: float = Field(default=5.0, gt=0)
    ssh_timeout: Optional[float] = Field(default=600.0, gt=0)

    @field_validator("ssh_timeout", mode="before")
    @classmethod
    def validate_ssh_timeout(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str) and value.strip().lower() in UNBOUNDED_TIMEOUT_VALUES:
            return None
        is_number = isinstance(value, (int, float)) and not isinstance(value, bool)
        if is_number and value == 0:
            return None
        return value

    def expanded_private_key_path(self) -> str:
        return os.path.expanduser(self.private_key_path)
