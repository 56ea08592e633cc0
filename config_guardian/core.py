"""
Config Guardian Core

Data model shared by the builder, store, diff engine and watch loop, plus the
exception hierarchy raised across the package.
"""
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Dict, Optional, Tuple, Union

SCHEMA_VERSION = 1
UNREADABLE_MARKER = 'UNREADABLE'


class GuardianError(Exception):
    """Base exception for Config Guardian errors."""
    pass


class InputError(GuardianError):
    """Bad input to an operation (fatal for that operation)."""
    pass


class RootNotFoundError(InputError):
    """The monitored root path does not exist."""
    pass


class RootNotDirectoryError(InputError):
    """The monitored root path exists but is not a directory."""
    pass


class ConfigError(InputError):
    """Invalid configuration value."""
    pass


class FileAccessError(GuardianError):
    """A single file could not be read. Recovered locally as Unreadable."""

    def __init__(self, path: str, cause: str):
        super().__init__(f"{path}: {cause}")
        self.path = path
        self.cause = cause


class StoreError(GuardianError):
    """Base class for baseline store failures."""
    pass


class BaselineNotFoundError(StoreError):
    """No baseline has been recorded for the requested root."""

    def __init__(self, root_path: str):
        super().__init__(
            f"No baseline found for {root_path}. "
            f"Run 'snapshot' on this directory first."
        )
        self.root_path = root_path


class CorruptStoreError(StoreError):
    """The stored baseline cannot be decoded or has an incompatible schema."""
    pass


class StoreReadError(StoreError):
    """I/O failure while reading a stored baseline."""
    pass


class StoreWriteError(StoreError):
    """I/O failure while writing a baseline."""
    pass


class WatchError(GuardianError):
    """Filesystem notification failure that could not be recovered."""
    pass


class OperationCancelled(GuardianError):
    """Raised when a build is interrupted by the cancellation signal."""
    pass


@dataclass(frozen=True)
class Readable:
    """Hash result for a file whose contents were read in full."""
    digest: str


@dataclass(frozen=True)
class Unreadable:
    """Hash result for a file whose contents could not be read.

    The cause is informational; any two Unreadable results are treated as
    the same state when diffing.
    """
    cause: str = ''


HashResult = Union[Readable, Unreadable]


@dataclass(frozen=True)
class FileRecord:
    """One regular file (or symlink target) seen during a walk.

    Attributes:
        relative_path: POSIX-style path relative to the monitored root
        result: Readable digest or the Unreadable marker
        size: Byte length at hash time (informational)
        modified_at: Modification timestamp at hash time (informational)
    """
    relative_path: str
    result: HashResult
    size: Optional[int] = None
    modified_at: Optional[float] = None

    def __post_init__(self):
        path = self.relative_path
        if not path or path.startswith('/') or os.path.isabs(path):
            raise ValueError(f"Invalid relative path: {path!r}")
        if '..' in path.split('/'):
            raise ValueError(f"Relative path escapes root: {path!r}")

    @property
    def readable(self) -> bool:
        return isinstance(self.result, Readable)

    @property
    def digest(self) -> Optional[str]:
        """Hex digest, or None when the file was unreadable."""
        if isinstance(self.result, Readable):
            return self.result.digest
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to its persisted form."""
        data = {
            'relative_path': self.relative_path,
            'digest': self.digest if self.readable else UNREADABLE_MARKER,
            'size': self.size,
            'modified_at': self.modified_at,
        }
        if isinstance(self.result, Unreadable) and self.result.cause:
            data['cause'] = self.result.cause
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileRecord':
        """Rebuild a record from its persisted form.

        Raises:
            KeyError, TypeError, ValueError: if the document is malformed
        """
        digest = data['digest']
        if digest == UNREADABLE_MARKER:
            result: HashResult = Unreadable(data.get('cause', ''))
        elif isinstance(digest, str) and len(digest) == 64:
            result = Readable(digest)
        else:
            raise ValueError(f"Invalid digest for {data.get('relative_path')!r}")
        return cls(
            relative_path=data['relative_path'],
            result=result,
            size=data.get('size'),
            modified_at=data.get('modified_at'),
        )


@dataclass
class Manifest:
    """Snapshot of a root path at one instant.

    Attributes:
        root_path: Absolute path of the monitored directory
        taken_at: Timestamp of snapshot creation (seconds since the epoch)
        entries: Mapping of relative path to FileRecord, keys sorted
    """
    root_path: str
    taken_at: float
    entries: Dict[str, FileRecord] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def unreadable_count(self) -> int:
        return sum(1 for record in self.entries.values() if not record.readable)

    @property
    def taken_at_iso(self) -> str:
        return datetime.fromtimestamp(self.taken_at).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert the manifest to the persisted logical schema."""
        return {
            'schema_version': SCHEMA_VERSION,
            'root_path': self.root_path,
            'taken_at': self.taken_at,
            'entries': [self.entries[key].to_dict() for key in sorted(self.entries)],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Manifest':
        """Rebuild a manifest from the persisted schema.

        Raises:
            KeyError, TypeError, ValueError: if the document is malformed
        """
        if data.get('schema_version') != SCHEMA_VERSION:
            raise ValueError(
                f"Unsupported schema version: {data.get('schema_version')!r} "
                f"(expected {SCHEMA_VERSION})"
            )
        entries: Dict[str, FileRecord] = {}
        for item in data['entries']:
            record = FileRecord.from_dict(item)
            if record.relative_path in entries:
                raise ValueError(f"Duplicate entry: {record.relative_path}")
            entries[record.relative_path] = record
        return cls(
            root_path=str(data['root_path']),
            taken_at=float(data['taken_at']),
            entries={key: entries[key] for key in sorted(entries)},
        )


class DriftKind(Enum):
    """Classification of a single change. Declaration order is report order."""
    NEW = auto()
    MODIFIED = auto()
    DELETED = auto()
    BECAME_UNREADABLE = auto()
    BECAME_READABLE = auto()

    @property
    def label(self) -> str:
        return _KIND_LABELS[self]


_KIND_LABELS = {
    DriftKind.NEW: 'New',
    DriftKind.MODIFIED: 'Changed',
    DriftKind.DELETED: 'Deleted',
    DriftKind.BECAME_UNREADABLE: 'Unreadable',
    DriftKind.BECAME_READABLE: 'Readable',
}


@dataclass(frozen=True)
class DriftRecord:
    """One classified change between a baseline and a current manifest."""
    relative_path: str
    kind: DriftKind
    previous_digest: Optional[str] = None
    current_digest: Optional[str] = None

    def to_line(self) -> str:
        return f"{self.kind.label}: {self.relative_path}"

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'relative_path': self.relative_path,
            'kind': self.kind.name,
            'previous_digest': self.previous_digest,
            'current_digest': self.current_digest,
        }
        return {k: v for k, v in result.items() if v is not None}


@dataclass(frozen=True)
class DriftReport:
    """Ordered drift records produced by one comparison."""
    records: Tuple[DriftRecord, ...]
    baseline_taken_at: float
    current_taken_at: float

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    @property
    def has_drift(self) -> bool:
        return bool(self.records)

    def summary(self) -> Dict[str, int]:
        """Count of records per kind, in report order, omitting empty kinds."""
        counts: Dict[str, int] = {}
        for record in self.records:
            counts[record.kind.name] = counts.get(record.kind.name, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            'baseline_taken_at': self.baseline_taken_at,
            'current_taken_at': self.current_taken_at,
            'records': [record.to_dict() for record in self.records],
        }
