"""
clusterform/utils/ephemeral_file.py

Async context manager for a short-lived file, used for the JSON extra-vars
file handed to ansible-playbook so the variables never persist on disk. The
file is placed in `/dev/shm` when that exists, otherwise in the platform temp
directory.
"""

import os
import tempfile
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import aiofiles

DEFAULT_PARENT_DIR = "/dev/shm"


def _pick_parent_dir(parent_dir: Optional[str]) -> Optional[str]:
    if parent_dir is not None:
        return parent_dir
    return DEFAULT_PARENT_DIR if os.path.isdir(DEFAULT_PARENT_DIR) else None


@asynccontextmanager
async def ephemeral_file(
    file_name: str,
    content: Optional[str] = None,
    *,
    prefix: str = "clusterform-",
    parent_dir: Optional[str] = None,
    mode: int = 0o600,
) -> AsyncGenerator[str, None]:
    """
    Create a private directory holding one file, yield the file path, and
    remove both on exit.

    Args:
        file_name: Name of the file inside the ephemeral directory.
        content: Optional text written to the file before yielding.
        prefix: Prefix for the ephemeral directory name.
        parent_dir: Where to create the directory. Defaults to /dev/shm if present.
        mode: Permission bits applied to the file once written.

    Yields:
        str: Absolute path of the ephemeral file.
    """
    ephemeral_dir = tempfile.mkdtemp(dir=_pick_parent_dir(parent_dir), prefix=prefix)
    ephemeral_path = os.path.join(ephemeral_dir, file_name)

    try:
        if content is not None:
            async with aiofiles.open(ephemeral_path, "w", encoding="utf-8") as fh:
                await fh.write(content)
            os.chmod(ephemeral_path, mode)
        yield ephemeral_path

    finally:
        if os.path.isdir(ephemeral_dir):
            for item in os.listdir(ephemeral_dir):
                item_path = os.path.join(ephemeral_dir, item)
                if os.path.isfile(item_path) or os.path.islink(item_path):
                    os.remove(item_path)
            os.rmdir(ephemeral_dir)
