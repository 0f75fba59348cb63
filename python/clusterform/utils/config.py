"""
clusterform/utils/config.py

Builds the ClusterSpec from an optional YAML cluster file plus ClusterSettings.
Values in the file win; settings (environment variables) fill project tag,
region, key pair and image pin when the file leaves them out.

Example cluster file:

    project_tag: kubernetes
    region: eu-west-1
    topology:
      availability_zone: eu-west-1a
    node_groups:
      - {role: control_plane, count: 1, instance_type: t3.medium}
      - {role: worker, count: 2, instance_type: t3.large}
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import aiofiles

from clusterform.models.cluster import ClusterSpec
from clusterform.models.settings import ClusterSettings
from clusterform.models.validator import validate_type, validate_yaml


def spec_from_mapping(data: Dict[str, Any], settings: ClusterSettings) -> ClusterSpec:
    """Merge settings defaults into `data` and validate the result.

    Raises:
        ValueError: If the merged data is not a valid ClusterSpec.
    """
    merged = dict(data)
    merged.setdefault("project_tag", settings.project_tag)
    merged.setdefault("region", settings.region)
    if settings.key_name is not None:
        merged.setdefault("key_name", settings.key_name)
    if settings.image_id is not None:
        image = dict(merged.get("image") or {})
        image.setdefault("image_id", settings.image_id)
        merged["image"] = image
    return validate_type(merged, ClusterSpec)


async def load_cluster_spec(
    path: Optional[str], settings: ClusterSettings
) -> ClusterSpec:
    """Load the cluster file at `path` (or none) into a ClusterSpec."""
    if path is None:
        return spec_from_mapping({}, settings)
    async with aiofiles.open(path, "r", encoding="utf-8") as fh:
        text = await fh.read()
    data = validate_yaml(text, Dict[str, Any])
    return spec_from_mapping(data, settings)
