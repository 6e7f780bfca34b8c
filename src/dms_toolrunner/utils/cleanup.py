"""Safe cleanup of intermediate files in the work directory."""
from __future__ import annotations

import logging
import stat
import time
from pathlib import Path
from typing import Iterable, List, Union

logger = logging.getLogger(__name__)

__all__ = ["safe_file_cleanup", "safe_remove_files"]


def _chmod_w(path: Path) -> None:
    """Make path writable (best-effort)."""
    try:
        mode = path.stat().st_mode
        path.chmod(mode | stat.S_IWUSR)
    except OSError:
        pass


def safe_file_cleanup(
        file_path: Union[str, Path],
        max_retries: int = 3,
        delay_seconds: float = 0.5,
        backoff: float = 2.0,
) -> bool:
    """
    Remove one file, retrying when it is briefly held open.

    Strategy:
        1. If path doesn't exist, return True
        2. Clear the read-only bit after the first failure
        3. Exponential backoff between retries

    Args:
        file_path: File to remove
        max_retries: Maximum number of removal attempts
        delay_seconds: Initial delay between retries
        backoff: Multiplier for exponential backoff

    Returns:
        True if the file is gone, False otherwise

    Raises:
        ValueError: If path exists but is a directory
    """
    path = Path(file_path)

    if not path.exists() and not path.is_symlink():
        return True

    if path.is_dir() and not path.is_symlink():
        raise ValueError(f"{path} is a directory")

    delay = delay_seconds
    for attempt in range(1, max_retries + 1):
        try:
            path.unlink()
            logger.debug("Removed %s (attempt %d)", path.name, attempt)
            return True
        except FileNotFoundError:
            return True
        except OSError as exc:
            if attempt == max_retries:
                logger.error(
                    "Failed to remove %s after %d attempts: %s", path, max_retries, exc
                )
                return False

            logger.warning(
                "Cleanup attempt %d/%d for %s failed: %s",
                attempt, max_retries, path.name, exc,
            )
            _chmod_w(path)
            time.sleep(delay)
            delay *= backoff

    return False


def safe_remove_files(paths: Iterable[Union[str, Path]], **kwargs) -> List[Path]:
    """
    Remove every file in ``paths``; returns the ones that could not be removed.

    Args:
        paths: Files to remove
        **kwargs: Retry options accepted by safe_file_cleanup()
    """
    leftover: List[Path] = []
    for p in map(Path, paths):
        if not safe_file_cleanup(p, **kwargs):
            leftover.append(p)
    return leftover
