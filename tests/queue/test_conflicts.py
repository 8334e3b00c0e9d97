"""Tests for conflict classification and resolution rules."""

from __future__ import annotations

from datetime import datetime

import pytest

from permagate.core.types import ApprovalStatus, ConflictType, OperationType, Resolution
from permagate.queue.domain.conflicts import (
    ConflictClassifier,
    default_resolution,
    keep_both_name,
    valid_resolutions,
)
from permagate.queue.types import LocalChange, PendingUpload, RemoteDescriptor


@pytest.fixture
def classifier() -> ConflictClassifier:
    return ConflictClassifier()


class TestClassify:
    """Tests for ConflictClassifier.classify against remote state."""

    def test_no_remote_is_none(self, classifier: ConflictClassifier) -> None:
        """No remote counterpart means no conflict."""
        change = LocalChange("docs/a.pdf", 1000, content_hash="h1")

        conflict, details = classifier.classify(change, None)

        assert conflict is ConflictType.NONE
        assert details is None

    def test_same_hash_is_duplicate(self, classifier: ConflictClassifier) -> None:
        """Identical content already published is a duplicate."""
        change = LocalChange("docs/a.pdf", 1000, content_hash="h1")
        remote = RemoteDescriptor("archive/a.pdf", content_hash="h1")

        conflict, details = classifier.classify(change, remote)

        assert conflict is ConflictType.DUPLICATE
        assert details is not None
        assert "archive/a.pdf" in details

    def test_same_path_different_hash_is_content_conflict(
        self, classifier: ConflictClassifier
    ) -> None:
        """Same path with divergent content is a content conflict."""
        change = LocalChange("docs/a.pdf", 1000, content_hash="h1")
        remote = RemoteDescriptor("docs/a.pdf", content_hash="h2")

        conflict, _ = classifier.classify(change, remote)

        assert conflict is ConflictType.CONTENT_CONFLICT

    def test_same_name_other_folder_is_filename_conflict(
        self, classifier: ConflictClassifier
    ) -> None:
        """Same name under a different parent is a filename conflict."""
        change = LocalChange("docs/a.pdf", 1000, content_hash="h1")
        remote = RemoteDescriptor("other/a.pdf", content_hash="h2")

        conflict, details = classifier.classify(change, remote)

        assert conflict is ConflictType.FILENAME_CONFLICT
        assert details is not None

    def test_unrelated_remote_is_none(self, classifier: ConflictClassifier) -> None:
        """A remote with another name and hash does not conflict."""
        change = LocalChange("docs/a.pdf", 1000, content_hash="h1")
        remote = RemoteDescriptor("other/b.pdf", content_hash="h2")

        assert classifier.classify(change, remote) == (ConflictType.NONE, None)

    def test_metadata_operation_never_conflicts_with_remote(
        self, classifier: ConflictClassifier
    ) -> None:
        """Metadata-only operations are not compared with remote content."""
        change = LocalChange(
            "docs/b.pdf", 0, OperationType.RENAME, previous_path="docs/a.pdf"
        )
        remote = RemoteDescriptor("docs/b.pdf", content_hash="h2")

        assert classifier.classify(change, remote)[0] is ConflictType.NONE

    def test_windows_separators_normalized(self, classifier: ConflictClassifier) -> None:
        """Backslash paths compare equal to forward-slash paths."""
        change = LocalChange("docs\\a.pdf", 1000, content_hash="h1")
        remote = RemoteDescriptor("docs/a.pdf", content_hash="h2")

        assert classifier.classify(change, remote)[0] is ConflictType.CONTENT_CONFLICT


class TestQueuedDuplicates:
    """Tests for duplicates already waiting in the queue."""

    def _queued(self, path: str, content_hash: str) -> PendingUpload:
        return PendingUpload(
            local_path=path, file_name=path.rsplit("/", 1)[-1], file_size=1000,
            content_hash=content_hash,
        )

    def test_same_path_and_hash_queued(self, classifier: ConflictClassifier) -> None:
        """A second identical change to the same path is a duplicate."""
        queued = [self._queued("docs/a.pdf", "h1")]
        change = LocalChange("docs/a.pdf", 1000, content_hash="h1")

        conflict, details = classifier.classify(change, None, queued)

        assert conflict is ConflictType.DUPLICATE
        assert details is not None
        assert "already queued" in details

    def test_rejected_items_ignored(self, classifier: ConflictClassifier) -> None:
        """Rejected items no longer count as queued."""
        item = self._queued("docs/a.pdf", "h1")
        item.status = ApprovalStatus.REJECTED
        change = LocalChange("docs/a.pdf", 1000, content_hash="h1")

        assert classifier.classify(change, None, [item])[0] is ConflictType.NONE

    def test_different_hash_not_duplicate(self, classifier: ConflictClassifier) -> None:
        """A newer edit of a queued file is not a duplicate."""
        queued = [self._queued("docs/a.pdf", "h1")]
        change = LocalChange("docs/a.pdf", 1000, content_hash="h2")

        assert classifier.classify(change, None, queued)[0] is ConflictType.NONE

    def test_no_hash_never_duplicate(self, classifier: ConflictClassifier) -> None:
        """Changes without a content hash are never queued duplicates."""
        queued = [self._queued("docs/a.pdf", "h1")]
        change = LocalChange("docs/a.pdf", 1000)

        assert classifier.classify(change, None, queued)[0] is ConflictType.NONE


class TestResolutionRules:
    """Tests for valid and default resolutions."""

    def test_duplicate_cannot_use_remote(self) -> None:
        """USE_REMOTE is meaningless for identical content."""
        allowed = valid_resolutions(ConflictType.DUPLICATE)
        assert Resolution.USE_REMOTE not in allowed
        assert Resolution.SKIP in allowed

    @pytest.mark.parametrize(
        "conflict", [ConflictType.FILENAME_CONFLICT, ConflictType.CONTENT_CONFLICT]
    )
    def test_real_conflicts_allow_everything(self, conflict: ConflictType) -> None:
        """Filename and content conflicts accept every resolution."""
        assert valid_resolutions(conflict) == frozenset(Resolution)

    def test_none_has_no_resolutions(self) -> None:
        """Conflict-free items are not resolvable."""
        assert valid_resolutions(ConflictType.NONE) == frozenset()

    def test_defaults(self) -> None:
        """Only duplicates have a default (skip)."""
        assert default_resolution(ConflictType.DUPLICATE) is Resolution.SKIP
        assert default_resolution(ConflictType.CONTENT_CONFLICT) is None
        assert default_resolution(ConflictType.FILENAME_CONFLICT) is None


class TestKeepBothName:
    """Tests for keep_both_name."""

    def test_suffix_preserved(self) -> None:
        """Timestamp goes between stem and extension."""
        when = datetime(2025, 3, 4, 5, 6, 7)
        assert keep_both_name("report.pdf", when) == "report (conflict 20250304-050607).pdf"

    def test_no_extension(self) -> None:
        """Names without an extension get the marker appended."""
        when = datetime(2025, 3, 4, 5, 6, 7)
        assert keep_both_name("Makefile", when) == "Makefile (conflict 20250304-050607)"
