"""Per-request temporary workspaces.

Concurrent requests share the system temp directory with nothing else to
keep them apart, so every workspace name combines a millisecond timestamp
with a random suffix, and the directory is removed however the block exits.
"""

import logging
import shutil
import tempfile
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

logger = logging.getLogger(__name__)


def workspace_prefix(label: str) -> str:
    """Return a directory-name prefix unique to this call."""
    return f"{label}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}-"


@contextmanager
def temp_workspace(label: str, root: Optional[str] = None) -> Iterator[Path]:
    """Create a private temp directory, removing it recursively on exit.

    Args:
        label: Short name for the workload, e.g. ``"video-trim"``
        root: Parent directory, defaults to the system temp dir

    Yields:
        Path of the created directory
    """
    work_dir = Path(tempfile.mkdtemp(prefix=workspace_prefix(label), dir=root))
    logger.debug("Created workspace %s", work_dir)
    try:
        yield work_dir
    finally:
        shutil.rmtree(work_dir, ignore_errors=True)
        if work_dir.exists():
            logger.warning("Workspace could not be fully removed: %s", work_dir)
        else:
            logger.debug("Cleaned up workspace %s", work_dir)
