"""
Manifest Builder

Walks a directory tree, hashes every regular file and assembles a Manifest.
Two builds of an unchanged tree produce the same entries regardless of the
number of hashing workers or the order in which they finish.
"""
import os
import stat
import time
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

from .core import (
    ConfigError,
    FileRecord,
    HashResult,
    Manifest,
    OperationCancelled,
    RootNotDirectoryError,
    RootNotFoundError,
    Unreadable,
)
from .handlers import ReportSink
from .utils import hash_file, is_within, normalize_path, should_ignore_path, to_relative

logger = logging.getLogger(__name__)

SYMLINK_POLICIES = ('within_root', 'follow', 'skip')


class ManifestBuilder:
    """Builds manifests of a root directory."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, sink: Optional[ReportSink] = None):
        """
        Initialize the ManifestBuilder.

        Args:
            config: Configuration dictionary with the following keys:
                - workers: Size of the hashing thread pool (default: 4)
                - exclude_patterns: Glob patterns of relative paths to skip
                - symlink_policy: 'within_root' (default), 'follow' or 'skip'
            sink: Receives a warning for every unreadable or skipped file
        """
        self.config = config or {}
        self.sink = sink or ReportSink()
        self.workers = int(self.config.get('workers', 4))
        self.exclude_patterns = list(self.config.get('exclude_patterns') or [])
        self.symlink_policy = self.config.get('symlink_policy', 'within_root')

        if self.workers < 1:
            raise ConfigError(f"workers must be at least 1, got {self.workers}")
        if self.symlink_policy not in SYMLINK_POLICIES:
            raise ConfigError(
                f"Unknown symlink policy {self.symlink_policy!r}; "
                f"expected one of {', '.join(SYMLINK_POLICIES)}"
            )

    def build(self, root_path: str, cancel_event: Optional[threading.Event] = None) -> Manifest:
        """
        Build a manifest of ``root_path``.

        Args:
            root_path: Directory to snapshot
            cancel_event: When set, the build stops and raises OperationCancelled

        Returns:
            A fresh Manifest

        Raises:
            RootNotFoundError: if the root does not exist
            RootNotDirectoryError: if the root is not a directory
            OperationCancelled: if ``cancel_event`` was set during the build
        """
        root = validate_root(root_path)
        taken_at = time.time()
        start_time = time.monotonic()

        candidates = self._collect(root, cancel_event)

        results: Dict[str, Tuple[HashResult, Optional[int], Optional[float]]] = {}
        with ThreadPoolExecutor(max_workers=self.workers,
                                thread_name_prefix='guardian-hash') as pool:
            futures = {
                rel: pool.submit(self._hash_one, root, rel, abs_path, is_link)
                for rel, abs_path, is_link in candidates
            }
            try:
                # Single writer: only this thread touches ``results``
                for rel in sorted(futures):
                    if cancel_event is not None and cancel_event.is_set():
                        raise OperationCancelled(f"Build of {root} cancelled")
                    results[rel] = futures[rel].result()
            except OperationCancelled:
                for future in futures.values():
                    future.cancel()
                raise

        entries: Dict[str, FileRecord] = {}
        for rel in sorted(results):
            result, size, mtime = results[rel]
            if isinstance(result, Unreadable):
                self.sink.warn(os.path.join(root, rel), result.cause)
            entries[rel] = FileRecord(rel, result, size, mtime)

        manifest = Manifest(root_path=root, taken_at=taken_at, entries=entries)
        elapsed = time.monotonic() - start_time
        logger.info(
            f"Manifest of {root} built with {len(manifest)} files "
            f"({manifest.unreadable_count} unreadable) in {elapsed:.2f} seconds"
        )
        return manifest

    def _collect(self, root: str, cancel_event: Optional[threading.Event]) -> List[Tuple[str, str, bool]]:
        """
        Walk ``root`` and list the files to hash.

        Returns:
            (relative path, absolute path, is symlink) tuples in lexicographic order
        """
        candidates = []

        def on_error(error: OSError) -> None:
            logger.warning(f"Could not scan directory {error.filename}: {error.strerror or error}")

        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error, followlinks=False):
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelled(f"Build of {root} cancelled")

            kept_dirs = []
            for name in sorted(dirnames):
                abs_path = os.path.join(dirpath, name)
                rel = to_relative(abs_path, root)
                if should_ignore_path(rel, self.exclude_patterns):
                    continue
                if os.path.islink(abs_path):
                    logger.debug(f"Not following directory symlink: {rel}")
                    continue
                kept_dirs.append(name)
            dirnames[:] = kept_dirs

            for name in sorted(filenames):
                abs_path = os.path.join(dirpath, name)
                rel = to_relative(abs_path, root)
                if should_ignore_path(rel, self.exclude_patterns):
                    continue
                entry = self._classify(root, rel, abs_path)
                if entry is not None:
                    candidates.append(entry)

        candidates.sort(key=lambda item: item[0])
        return candidates

    def _classify(self, root: str, rel: str, abs_path: str) -> Optional[Tuple[str, str, bool]]:
        """Decide whether a directory entry belongs in the manifest."""
        try:
            st = os.lstat(abs_path)
        except FileNotFoundError:
            # Vanished between listing and stat; never existed for this snapshot
            logger.debug(f"File disappeared before stat: {rel}")
            return None
        except OSError as e:
            self.sink.warn(abs_path, f"cannot stat ({e.strerror or e})")
            return None

        if stat.S_ISLNK(st.st_mode):
            if self.symlink_policy == 'skip':
                logger.debug(f"Skipping symlink: {rel}")
                return None
            try:
                target_mode = os.stat(abs_path).st_mode
            except OSError:
                # Dangling link; recorded as Unreadable by the hasher
                return rel, abs_path, True
            if stat.S_ISDIR(target_mode):
                logger.debug(f"Not following directory symlink: {rel}")
                return None
            if not stat.S_ISREG(target_mode):
                self.sink.warn(abs_path, "symlink to special file skipped")
                return None
            return rel, abs_path, True

        if stat.S_ISREG(st.st_mode):
            return rel, abs_path, False

        self.sink.warn(abs_path, "special file skipped")
        return None

    def _hash_one(self, root: str, rel: str, abs_path: str,
                  is_link: bool) -> Tuple[HashResult, Optional[int], Optional[float]]:
        """Hash one file. Runs on a worker thread and touches no shared state."""
        if is_link:
            target = os.path.realpath(abs_path)
            if not os.path.exists(target):
                return Unreadable("dangling symlink"), None, None
            if self.symlink_policy == 'within_root' and not is_within(target, root):
                return Unreadable(f"symlink target outside root: {target}"), None, None

        try:
            st = os.stat(abs_path)
        except OSError:
            return hash_file(abs_path), None, None

        # Replaced since the walk; opening a FIFO here would block the worker
        if not stat.S_ISREG(st.st_mode):
            return Unreadable("not a regular file"), None, None

        return hash_file(abs_path), st.st_size, st.st_mtime


def validate_root(root_path: str) -> str:
    """
    Check that ``root_path`` is an existing directory.

    Returns:
        The normalized absolute root path

    Raises:
        RootNotFoundError: if the root does not exist
        RootNotDirectoryError: if the root is not a directory
    """
    root = normalize_path(root_path)
    if not os.path.exists(root):
        raise RootNotFoundError(f"Root path does not exist: {root_path}")
    if not os.path.isdir(root):
        raise RootNotDirectoryError(f"Root path is not a directory: {root_path}")
    return root
