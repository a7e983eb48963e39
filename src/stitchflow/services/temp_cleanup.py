"""Removal of stale files left in the media temp directory."""

import logging
import shutil
import time
from pathlib import Path

logger = logging.getLogger(__name__)


def cleanup_old_files(temp_dir: Path, max_age_hours: float, now: float | None = None) -> int:
    """Delete entries of ``temp_dir`` not modified for ``max_age_hours``.

    Per-job work directories are removed as a whole. Returns the number of
    entries deleted.
    """
    temp_dir = Path(temp_dir)
    if not temp_dir.is_dir():
        return 0

    cutoff = (now if now is not None else time.time()) - max_age_hours * 3600
    removed = 0
    for entry in _candidates(temp_dir):
        try:
            if entry.stat().st_mtime >= cutoff:
                continue
            if entry.is_dir():
                shutil.rmtree(entry)
            else:
                entry.unlink()
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("Could not delete temp entry %s: %s", entry, exc)
            continue
        removed += 1

    if removed:
        logger.info("Deleted %d stale temp entries from %s", removed, temp_dir)
    return removed


def _candidates(temp_dir: Path) -> list[Path]:
    # jobs/ holds one directory per in-flight merge; judge those individually.
    entries = []
    for entry in temp_dir.iterdir():
        if entry.is_dir() and entry.name == "jobs":
            entries.extend(entry.iterdir())
        else:
            entries.append(entry)
    return entries
