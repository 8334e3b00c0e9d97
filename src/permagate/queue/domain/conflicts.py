"""Conflict classification and resolution rules.

Classes and valid resolutions:
| Conflict          | Meaning                                   | Valid resolutions                         |
|-------------------|-------------------------------------------|-------------------------------------------|
| NONE              | No remote counterpart / new content       | (proceed)                                 |
| DUPLICATE         | Identical content already present         | SKIP (default), KEEP_LOCAL, KEEP_BOTH     |
| FILENAME_CONFLICT | Same name, different parent               | KEEP_LOCAL, USE_REMOTE, KEEP_BOTH, SKIP   |
| CONTENT_CONFLICT  | Same path, divergent content hash         | KEEP_LOCAL, USE_REMOTE, KEEP_BOTH, SKIP   |

Resolution effects:
- KEEP_LOCAL: publish local version, pays its estimated cost
- USE_REMOTE: nothing is published, local file is reconciled to remote
- KEEP_BOTH: local is renamed and published as a new item
- SKIP: item leaves this queue cycle, no cost
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from permagate.core.types import ApprovalStatus, ConflictType, Resolution

if TYPE_CHECKING:
    from permagate.queue.types import LocalChange, PendingUpload, RemoteDescriptor

_ALL_RESOLUTIONS = frozenset(Resolution)

VALID_RESOLUTIONS: dict[ConflictType, frozenset[Resolution]] = {
    ConflictType.NONE: frozenset(),
    ConflictType.DUPLICATE: frozenset(
        {Resolution.SKIP, Resolution.KEEP_LOCAL, Resolution.KEEP_BOTH}
    ),
    ConflictType.FILENAME_CONFLICT: _ALL_RESOLUTIONS,
    ConflictType.CONTENT_CONFLICT: _ALL_RESOLUTIONS,
}

# Resolutions after which the item is still published
PUBLISHING_RESOLUTIONS = frozenset({Resolution.KEEP_LOCAL, Resolution.KEEP_BOTH})


def valid_resolutions(conflict_type: ConflictType) -> frozenset[Resolution]:
    """Resolutions an operator may choose for a conflict class."""
    return VALID_RESOLUTIONS[conflict_type]


def default_resolution(conflict_type: ConflictType) -> Resolution | None:
    """Natural default for a conflict class, if it has one."""
    if conflict_type is ConflictType.DUPLICATE:
        return Resolution.SKIP
    return None


def _normalize(path: str) -> str:
    return path.replace("\\", "/").rstrip("/")


class ConflictClassifier:
    """Compares a local change with known remote state and queued siblings."""

    def classify(
        self,
        change: LocalChange,
        remote: RemoteDescriptor | None,
        queued: Iterable[PendingUpload] = (),
    ) -> tuple[ConflictType, str | None]:
        """Classify a local change.

        Args:
            change: The detected local change
            remote: Remote state found for its path/hash, or None
            queued: Items already open in the queue

        Returns:
            (conflict_type, conflict_details); details is None iff NONE.
        """
        local_path = _normalize(change.local_path)

        # Same change already waiting in this queue cycle
        if change.content_hash:
            for item in queued:
                if item.status is ApprovalStatus.REJECTED:
                    continue
                if (
                    _normalize(item.local_path) == local_path
                    and item.content_hash == change.content_hash
                ):
                    return (
                        ConflictType.DUPLICATE,
                        f"Identical change to {change.local_path} is already queued",
                    )

        if remote is None or change.operation_type.is_metadata_only:
            return ConflictType.NONE, None

        remote_path = _normalize(remote.path)
        same_path = remote_path == local_path
        same_content = (
            change.content_hash is not None
            and remote.content_hash is not None
            and change.content_hash == remote.content_hash
        )

        if same_content:
            where = "at this path" if same_path else f"at {remote.path}"
            return (
                ConflictType.DUPLICATE,
                f"Identical content is already published {where}",
            )

        if same_path:
            return (
                ConflictType.CONTENT_CONFLICT,
                f"{change.file_name} differs from the published version",
            )

        if remote.file_name == change.file_name:
            return (
                ConflictType.FILENAME_CONFLICT,
                f"A different file named {change.file_name} exists at {remote.path}",
            )

        return ConflictType.NONE, None


def keep_both_name(file_name: str, when: datetime | None = None) -> str:
    """Name for the local copy published alongside the remote one.

    Format: "<stem> (conflict YYYYMMDD-HHMMSS)<suffix>"

    Args:
        file_name: Original file name
        when: Timestamp to embed (defaults to now)

    Returns:
        The renamed file name
    """
    moment = when or datetime.now()
    path = PurePosixPath(file_name)
    return f"{path.stem} (conflict {moment.strftime('%Y%m%d-%H%M%S')}){path.suffix}"
