"""
Config Guardian - Utilities

Hashing and path helpers shared by the manifest builder and the watch loop.
"""
import os
import hashlib
import logging
import fnmatch
from typing import Iterable, List

from .core import FileAccessError, HashResult, Readable, Unreadable

logger = logging.getLogger(__name__)

HASH_ALGORITHM = 'sha256'
CHUNK_SIZE = 65536


def compute_digest(file_path: str, chunk_size: int = CHUNK_SIZE) -> str:
    """
    Calculate the SHA-256 digest of a file.

    The file is streamed in chunks so memory use does not depend on its size.

    Args:
        file_path: Path to the file
        chunk_size: Size of chunks to read from the file (default: 64KB)

    Returns:
        Hex digest of the file's contents

    Raises:
        FileAccessError: if the file could not be read
    """
    try:
        hash_obj = hashlib.new(HASH_ALGORITHM)
        with open(file_path, 'rb') as f:
            while chunk := f.read(chunk_size):
                hash_obj.update(chunk)
        return hash_obj.hexdigest()
    except PermissionError as e:
        raise FileAccessError(file_path, f"permission denied ({e.strerror or e})") from e
    except FileNotFoundError as e:
        raise FileAccessError(file_path, "file disappeared during scan") from e
    except IsADirectoryError as e:
        raise FileAccessError(file_path, "path became a directory during scan") from e
    except OSError as e:
        raise FileAccessError(file_path, f"I/O error ({e.strerror or e})") from e


def hash_file(file_path: str, chunk_size: int = CHUNK_SIZE) -> HashResult:
    """
    Hash a file, turning read failures into the Unreadable marker.

    Never raises for per-file problems so that one bad file cannot abort a
    whole manifest build.
    """
    try:
        return Readable(compute_digest(file_path, chunk_size))
    except FileAccessError as e:
        logger.debug(f"Could not hash {file_path}: {e.cause}")
        return Unreadable(e.cause)


def normalize_path(path: str) -> str:
    """
    Normalize a file system path for consistent comparison.

    Args:
        path: Path to normalize

    Returns:
        Absolute, normalized path
    """
    return os.path.normcase(os.path.normpath(os.path.abspath(path)))


def to_relative(path: str, root: str) -> str:
    """Return ``path`` relative to ``root`` using forward slashes."""
    rel = os.path.relpath(path, root)
    return rel.replace(os.sep, '/')


def is_within(path: str, root: str) -> bool:
    """Check whether ``path`` lies inside ``root`` after resolving symlinks."""
    path = normalize_path(os.path.realpath(path))
    root = normalize_path(os.path.realpath(root))
    try:
        return os.path.commonpath([path, root]) == root
    except ValueError:
        # Different drives on Windows
        return False


def should_ignore_path(relative_path: str, ignore_patterns: Iterable[str]) -> bool:
    """
    Check if a relative path matches any of the ignore patterns.

    Patterns are globs matched against the full relative path and against its
    basename. A pattern ending in ``/**`` matches everything below that
    directory.

    Args:
        relative_path: POSIX-style path relative to the monitored root
        ignore_patterns: List of glob patterns to match against

    Returns:
        True if the path should be ignored, False otherwise
    """
    basename = relative_path.rsplit('/', 1)[-1]
    for pattern in ignore_patterns:
        if pattern.endswith('/**'):
            prefix = pattern[:-3].rstrip('/')
            if relative_path == prefix or relative_path.startswith(prefix + '/'):
                return True
        elif fnmatch.fnmatchcase(relative_path, pattern):
            return True
        elif fnmatch.fnmatchcase(basename, pattern):
            return True
    return False


def excludes_for(root: str, paths: Iterable[str]) -> List[str]:
    """
    Build exclude patterns for tool-owned paths that live under ``root``.

    The baseline store and the event log must never be part of the manifest
    they describe, otherwise every write to them would show up as drift.

    Args:
        root: Monitored root directory
        paths: Files or directories owned by the tool

    Returns:
        Exclude patterns relative to ``root``
    """
    patterns = []
    for path in paths:
        if not path:
            continue
        resolved = normalize_path(os.path.realpath(path))
        resolved_root = normalize_path(os.path.realpath(root))
        if is_within(resolved, resolved_root) and resolved != resolved_root:
            rel = to_relative(resolved, resolved_root)
            patterns.append(rel)
            patterns.append(f"{rel}/**")
    return patterns


def format_size(size_bytes: float) -> str:
    """
    Format a size in bytes to a human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string with appropriate unit
    """
    if size_bytes == 0:
        return "0 B"

    units = ['B', 'KB', 'MB', 'GB', 'TB', 'PB']
    i = 0
    while size_bytes >= 1024 and i < len(units) - 1:
        size_bytes /= 1024
        i += 1

    return f"{size_bytes:.2f} {units[i]}"
