"""Soundwave - Path and object key utilities.

Workspace paths never include caller-supplied names; only object keys do.
Does NOT create directories.
"""

import uuid
from pathlib import Path


def source_path(workspace: Path) -> Path:
    """Get the path of the downloaded source inside a workspace.

    Returns:
        Path: {workspace}/source
    """
    return workspace / "source"


def output_path(workspace: Path, index: int, fmt: str) -> Path:
    """Get the path of a transcoded output inside a workspace.

    Args:
        workspace: Job workspace directory.
        index: Zero-based output ordinal.
        fmt: Output format (file extension, without leading dot).

    Returns:
        Path: {workspace}/output-{index}.{fmt}
    """
    return workspace / f"output-{index}.{fmt.lstrip('.')}"


def generated_filename(fmt: str) -> str:
    """Unique object filename with the format's extension."""
    return f"{uuid.uuid4()}.{fmt.lstrip('.')}"


def object_key(prefix: str | None, filename: str) -> str:
    """Join a key prefix and a filename.

    Leading and trailing slashes on the prefix are dropped, so "p", "/p/"
    and "p/" all produce "p/<filename>". An empty prefix yields the bare
    filename.
    """
    prefix = (prefix or "").strip("/")
    if not prefix:
        return filename
    return f"{prefix}/{filename}"
