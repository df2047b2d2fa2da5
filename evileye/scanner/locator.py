"""Image Locator: recursive discovery of candidate image files.

Directories are listed by a bounded thread pool (one task per directory,
never one per file). Symlinks to directories are not followed, so the walk
cannot loop. Any entry or directory that cannot be read is skipped with a
debug log: a single bad entry never aborts the walk.
"""

from __future__ import annotations

import os
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Union

from evileye.constants import DEFAULT_DISCOVERY_WORKERS, IMAGE_EXTENSIONS
from evileye.utils.logger import get_logger

logger = get_logger(__name__)


def has_image_extension(name: str) -> bool:
    """True when the lower-cased extension of ``name`` is a known image type."""
    suffix = os.path.splitext(name)[1]
    return suffix[1:].lower() in IMAGE_EXTENSIONS


def _is_readable(path: str) -> bool:
    return os.access(path, os.R_OK)


def _list_directory(directory: str) -> tuple[list[str], list[str]]:
    """List one directory.

    Returns:
        (subdirectories to descend into, candidate image paths)
    """
    subdirs: list[str] = []
    images: list[str] = []
    try:
        with os.scandir(directory) as it:
            entries = list(it)
    except OSError as exc:
        logger.debug("Skipping unreadable directory", path=directory, error=str(exc))
        return subdirs, images

    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                subdirs.append(entry.path)
            elif entry.is_file() and has_image_extension(entry.name):
                if _is_readable(entry.path):
                    images.append(entry.path)
                else:
                    logger.debug("Skipping unreadable file", path=entry.path)
        except OSError as exc:
            logger.debug("Skipping entry", path=entry.path, error=str(exc))
    return subdirs, images


def find_images(
    root: Union[str, Path],
    workers: int = DEFAULT_DISCOVERY_WORKERS,
) -> list[Path]:
    """Find every image file under ``root``.

    Args:
        root:    Directory to walk recursively. A single image file is
                 accepted and returned on its own.
        workers: Maximum number of directories listed concurrently.

    Returns:
        Distinct candidate paths, sorted. Paths are joined onto ``root`` as
        given (absolute when ``root`` is absolute).
    """
    root_str = os.fspath(root)
    if os.path.isfile(root_str):
        if has_image_extension(root_str) and _is_readable(root_str):
            return [Path(root_str)]
        return []
    if not os.path.isdir(root_str):
        logger.warning("Root path is not a directory", path=root_str)
        return []

    found: set[str] = set()
    seen_dirs: set[tuple[int, int]] = set()

    def visit(directory: str) -> bool:
        try:
            st = os.stat(directory)
        except OSError:
            return False
        key = (st.st_dev, st.st_ino)
        if key in seen_dirs:
            return False
        seen_dirs.add(key)
        return True

    with ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="evileye-walk") as executor:
        pending: set[Future] = set()
        if visit(root_str):
            pending.add(executor.submit(_list_directory, root_str))
        while pending:
            done, pending = wait(pending, return_when=FIRST_COMPLETED)
            for future in done:
                subdirs, images = future.result()
                found.update(images)
                for subdir in subdirs:
                    if visit(subdir):
                        pending.add(executor.submit(_list_directory, subdir))

    logger.debug("Image discovery complete", root=root_str, count=len(found))
    return sorted(Path(p) for p in found)
