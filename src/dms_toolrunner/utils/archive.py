"""Zip packaging of result files."""
from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import Iterable, Union

logger = logging.getLogger(__name__)

__all__ = ["zip_files", "zip_directory"]


def zip_files(
        zip_path: Union[str, Path],
        files: Iterable[Union[str, Path]],
        *,
        delete_sources: bool = False,
) -> Path:
    """
    Store ``files`` (flat, by file name) in a new deflated zip archive.

    Files that do not exist are skipped with a warning. An existing archive
    is replaced. Sources are removed only after the archive is closed.
    """
    zip_path = Path(zip_path)
    stored = []

    with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for f in map(Path, files):
            if not f.is_file():
                logger.warning("Not adding missing file to %s: %s", zip_path.name, f.name)
                continue
            zf.write(f, arcname=f.name)
            stored.append(f)

    logger.info("Zipped %d file(s) into %s", len(stored), zip_path.name)

    if delete_sources:
        for f in stored:
            f.unlink()

    return zip_path


def zip_directory(zip_path: Union[str, Path], directory: Union[str, Path]) -> Path:
    """Store every file below ``directory`` in a deflated zip, keeping relative paths."""
    zip_path = Path(zip_path)
    directory = Path(directory)
    if not directory.is_dir():
        raise NotADirectoryError(f"Not a directory: {directory}")

    count = 0
    with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for f in sorted(directory.rglob("*")):
            if f.is_file():
                zf.write(f, arcname=f.relative_to(directory).as_posix())
                count += 1

    logger.info("Zipped %d file(s) from %s into %s", count, directory.name, zip_path.name)
    return zip_path
