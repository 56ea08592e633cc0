"""
Config Guardian

Records a cryptographic baseline of a configuration tree and detects drift
from it, either on demand or continuously.
"""

__version__ = "0.1.0"

from .core import (
    GuardianError,
    InputError,
    RootNotFoundError,
    RootNotDirectoryError,
    ConfigError,
    FileAccessError,
    StoreError,
    BaselineNotFoundError,
    CorruptStoreError,
    StoreReadError,
    StoreWriteError,
    WatchError,
    OperationCancelled,
    Readable,
    Unreadable,
    FileRecord,
    Manifest,
    DriftKind,
    DriftRecord,
    DriftReport,
)
from .utils import hash_file
from .baseline import ManifestBuilder
from .store import ManifestStore
from .diff import diff_manifests
from .handlers import ReportSink, ConsoleSink, EventLogSink, CompositeSink
from .watcher import WatchLoop, WatchState

__all__ = [
    'GuardianError',
    'InputError',
    'RootNotFoundError',
    'RootNotDirectoryError',
    'ConfigError',
    'FileAccessError',
    'StoreError',
    'BaselineNotFoundError',
    'CorruptStoreError',
    'StoreReadError',
    'StoreWriteError',
    'WatchError',
    'OperationCancelled',
    'Readable',
    'Unreadable',
    'FileRecord',
    'Manifest',
    'DriftKind',
    'DriftRecord',
    'DriftReport',
    'hash_file',
    'ManifestBuilder',
    'ManifestStore',
    'diff_manifests',
    'ReportSink',
    'ConsoleSink',
    'EventLogSink',
    'CompositeSink',
    'WatchLoop',
    'WatchState',
]
