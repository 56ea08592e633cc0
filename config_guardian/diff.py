"""
Diff Engine

Compares a baseline manifest with a current one and classifies every change.
"""
from typing import Dict, List

from .core import DriftKind, DriftRecord, DriftReport, Manifest


def diff_manifests(baseline: Manifest, current: Manifest) -> DriftReport:
    """
    Compare two manifests.

    Pure and deterministic: records are grouped by kind in the order NEW,
    MODIFIED, DELETED, BECAME_UNREADABLE, BECAME_READABLE and sorted by path
    within each group.

    Args:
        baseline: The trusted reference manifest
        current: A freshly built manifest of the same root

    Returns:
        DriftReport; empty when nothing changed
    """
    groups: Dict[DriftKind, List[DriftRecord]] = {kind: [] for kind in DriftKind}
    old = baseline.entries
    new = current.entries

    for path in new.keys() - old.keys():
        groups[DriftKind.NEW].append(
            DriftRecord(path, DriftKind.NEW, current_digest=new[path].digest)
        )

    for path in old.keys() - new.keys():
        groups[DriftKind.DELETED].append(
            DriftRecord(path, DriftKind.DELETED, previous_digest=old[path].digest)
        )

    for path in old.keys() & new.keys():
        before, after = old[path], new[path]
        if not before.readable and not after.readable:
            continue
        if not before.readable:
            kind = DriftKind.BECAME_READABLE
        elif not after.readable:
            kind = DriftKind.BECAME_UNREADABLE
        elif before.digest != after.digest:
            kind = DriftKind.MODIFIED
        else:
            continue
        groups[kind].append(DriftRecord(path, kind, before.digest, after.digest))

    records = []
    for kind in DriftKind:
        records.extend(sorted(groups[kind], key=lambda record: record.relative_path))

    return DriftReport(
        records=tuple(records),
        baseline_taken_at=baseline.taken_at,
        current_taken_at=current.taken_at,
    )
