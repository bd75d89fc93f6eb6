"""Soundwave - Per-job workspace.

Each pipeline run owns one private temp directory. It is created on entry
and removed on every exit path: success, failure, cancellation, or an
unexpected exception.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "soundwave-"

# Workspaces older than this are considered orphaned by a crashed worker
STALE_WORKSPACE_SECONDS = 24 * 3600


@contextmanager
def job_workspace(temp_dir: str | Path, job_id: str) -> Iterator[Path]:
    """Create a private workspace for one job and remove it afterwards.

    Args:
        temp_dir: Parent directory for workspaces.
        job_id: Job identifier, used in the directory name for debugging.

    Yields:
        Path of the workspace directory.
    """
    parent = Path(temp_dir)
    parent.mkdir(parents=True, exist_ok=True)
    workspace = Path(tempfile.mkdtemp(prefix=f"{WORKSPACE_PREFIX}{job_id}-", dir=parent))
    logger.debug("Acquired workspace %s", workspace)
    try:
        yield workspace
    finally:
        release_workspace(workspace)


def release_workspace(workspace: Path) -> None:
    """Remove a workspace and everything in it. Never raises."""
    shutil.rmtree(workspace, ignore_errors=True)
    if workspace.exists():
        logger.warning("Workspace %s could not be fully removed", workspace)
    else:
        logger.debug("Released workspace %s", workspace)


def cleanup_stale_workspaces(
    temp_dir: str | Path,
    max_age_seconds: int = STALE_WORKSPACE_SECONDS,
) -> int:
    """Remove workspaces left behind by a hard crash (best-effort).

    Called on worker startup.

    Args:
        temp_dir: Parent directory for workspaces.
        max_age_seconds: Only directories older than this are removed.

    Returns:
        Number of workspaces removed.
    """
    parent = Path(temp_dir)
    if not parent.exists():
        return 0

    cutoff = time.time() - max_age_seconds
    removed = 0
    for entry in parent.glob(f"{WORKSPACE_PREFIX}*"):
        try:
            if not entry.is_dir() or entry.stat().st_mtime > cutoff:
                continue
        except OSError:
            continue
        shutil.rmtree(entry, ignore_errors=True)
        if not entry.exists():
            removed += 1
    return removed


__all__ = ["job_workspace", "release_workspace", "cleanup_stale_workspaces"]
