"""
Tests for Archive Scanning and Classification
"""

import io
import json
import zipfile

import pytest

from conftest import build_zip, followers_json, following_json
from follower_insights.errors import ArchiveReadError
from follower_insights.models.entities import FragmentKind, IngestDiagnostics
from follower_insights.pipeline.ingest import (
    ArchiveEntry,
    classify_entry,
    classify_path,
    iter_text_entries,
    open_archive,
    scan_archive,
)
from follower_insights.utils.config import IngestConfig


class TestClassifyPath:
    """Tests for path-based classification."""

    @pytest.mark.parametrize("path,kind", [
        ("followers_and_following/followers_1.json", FragmentKind.FOLLOWERS),
        ("followers_and_following/followers_2.json", FragmentKind.FOLLOWERS),
        ("followers_and_following/following.json", FragmentKind.FOLLOWING),
        ("followers_and_following/pending_follow_requests.json", FragmentKind.PENDING_REQUESTS),
        ("followers_and_following/recently_unfollowed_profiles.json", FragmentKind.UNFOLLOWED),
        ("personal_information/personal_information.json", FragmentKind.UNCLASSIFIED),
    ])
    def test_known_names(self, path, kind):
        """Test each conventional file name maps to its kind."""
        assert classify_path(path) == kind

    def test_case_insensitive(self):
        """Test matching ignores case."""
        assert classify_path("Connections/FOLLOWERS_1.JSON") == FragmentKind.FOLLOWERS
        assert classify_path("Following.JSON") == FragmentKind.FOLLOWING

    def test_directory_name_ignored(self):
        """Test the followers_and_following directory does not make everything a follower list."""
        path = "connections/followers_and_following/close_friends.json"
        assert classify_path(path) == FragmentKind.UNCLASSIFIED

    def test_windows_separators(self):
        """Test backslash separators are handled."""
        assert classify_path("connections\\followers_and_following\\following.json") == FragmentKind.FOLLOWING


class TestClassifyEntry:
    """Tests for content-shape fallback classification."""

    def test_path_wins(self):
        """Test path classification is used when it matches."""
        entry = ArchiveEntry(path="followers_1.json", content="[]")
        assert classify_entry(entry) == FragmentKind.FOLLOWERS

    def test_shape_fallback(self):
        """Test an unrecognised file name is classified by its top-level key."""
        entry = ArchiveEntry(
            path="export/renamed.json",
            content=json.dumps({"relationships_following": []}),
        )
        assert classify_entry(entry) == FragmentKind.FOLLOWING

    def test_shape_fallback_pending(self):
        """Test pending requests are recognised by shape."""
        entry = ArchiveEntry(
            path="export/data.html",
            content='<script>var d = {"relationships_follow_requests_sent": []}</script>',
        )
        assert classify_entry(entry) == FragmentKind.PENDING_REQUESTS

    def test_text_file_not_shape_checked(self):
        """Test plain text files are not classified by content."""
        entry = ArchiveEntry(path="notes.txt", content='{"relationships_followers": []}')
        assert classify_entry(entry) == FragmentKind.UNCLASSIFIED


class TestOpenArchive:
    """Tests for archive opening."""

    def test_from_bytes(self):
        """Test opening raw archive bytes."""
        with open_archive(build_zip({"a.json": "[]"})) as archive:
            assert archive.namelist() == ["a.json"]

    def test_from_path(self, tmp_path):
        """Test opening an archive on disk."""
        path = tmp_path / "export.zip"
        path.write_bytes(build_zip({"a.json": "[]"}))
        with open_archive(path) as archive:
            assert archive.namelist() == ["a.json"]

    def test_from_file_object(self):
        """Test opening a binary file object."""
        with open_archive(io.BytesIO(build_zip({"a.json": "[]"}))) as archive:
            assert len(archive.namelist()) == 1

    def test_not_a_zip(self):
        """Test garbage input raises ArchiveReadError."""
        with pytest.raises(ArchiveReadError):
            open_archive(b"this is not a zip file")

    def test_missing_file(self, tmp_path):
        """Test a missing path raises ArchiveReadError."""
        with pytest.raises(ArchiveReadError):
            open_archive(tmp_path / "missing.zip")


class TestIterTextEntries:
    """Tests for textual entry enumeration."""

    def _entries(self, files, config=None):
        diagnostics = IngestDiagnostics()
        with zipfile.ZipFile(io.BytesIO(build_zip(files))) as archive:
            entries = list(iter_text_entries(archive, config, diagnostics))
        return entries, diagnostics

    def test_skips_binary_extensions(self):
        """Test images are skipped without being read."""
        entries, diagnostics = self._entries({
            "photo.JPG": b"\xff\xd8",
            "followers_1.json": "[]",
        })
        assert [e.path for e in entries] == ["followers_1.json"]
        assert diagnostics.binary_entries_skipped == 1

    def test_skips_non_utf8(self):
        """Test undecodable content is skipped as non-text."""
        entries, diagnostics = self._entries({"data.bin": b"\xff\xfe\xfa\x80"})
        assert entries == []
        assert diagnostics.non_text_entries_skipped == 1

    def test_skips_nul_bytes(self):
        """Test content containing NUL bytes is skipped."""
        entries, diagnostics = self._entries({"data.dat": b"abc\x00def"})
        assert entries == []
        assert diagnostics.non_text_entries_skipped == 1

    def test_strips_bom(self):
        """Test a UTF-8 BOM is removed."""
        entries, _ = self._entries({"following.json": "\ufeff[]".encode("utf-8")})
        assert entries[0].content == "[]"

    def test_skips_oversized(self):
        """Test entries above the size limit are skipped."""
        config = IngestConfig(max_entry_bytes=10)
        entries, diagnostics = self._entries({"followers_1.json": "[" + " " * 20 + "]"}, config)
        assert entries == []
        assert diagnostics.oversized_entries_skipped == 1

    def test_counts_entries(self):
        """Test every file entry is counted."""
        _, diagnostics = self._entries({"a.json": "[]", "b.png": b"x", "c.txt": "hi"})
        assert diagnostics.entries_scanned == 3


class TestScanArchive:
    """Tests for full archive scanning."""

    def test_sample_archive(self, sample_archive):
        """Test followers and following fragments are found and the rest dropped."""
        result = scan_archive(sample_archive)

        assert [f.kind for f in result.fragments] == [FragmentKind.FOLLOWERS, FragmentKind.FOLLOWING]
        assert [f.index for f in result.fragments] == [0, 1]
        assert result.diagnostics.unclassified_entries == 1
        assert result.diagnostics.binary_entries_skipped == 1
        assert result.diagnostics.fragments_by_kind == {"followers": 1, "following": 1}
        assert result.has_relationship_data

    def test_multiple_fragments_kept(self):
        """Test several fragments of the same kind are all kept in archive order."""
        archive = build_zip({
            "followers_1.json": followers_json(("a", 1)),
            "followers_2.json": followers_json(("b", 2)),
        })
        result = scan_archive(archive)

        followers = result.by_kind(FragmentKind.FOLLOWERS)
        assert [f.path for f in followers] == ["followers_1.json", "followers_2.json"]

    def test_empty_archive(self):
        """Test an archive without relevant entries yields no fragments."""
        result = scan_archive(build_zip({"readme.txt": "hello"}))
        assert result.fragments == []
        assert not result.has_relationship_data

    def test_unfollowed_only_is_not_relationship_data(self):
        """Test unfollowed fragments alone do not count as relationship data."""
        archive = build_zip({
            "recently_unfollowed_profiles.json": json.dumps({"relationships_unfollowed_users": []}),
        })
        result = scan_archive(archive)
        assert len(result.fragments) == 1
        assert not result.has_relationship_data

    def test_directories_skipped(self):
        """Test directory entries are not counted."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            zf.writestr("connections/", b"")
            zf.writestr("connections/following.json", following_json(("x", 1)))
        result = scan_archive(buffer.getvalue())
        assert result.diagnostics.entries_scanned == 1
        assert len(result.fragments) == 1

    def test_unreadable_archive(self):
        """Test a corrupt archive raises ArchiveReadError."""
        with pytest.raises(ArchiveReadError):
            scan_archive(b"PK\x03\x04 truncated")
