"""
Unit tests for archive pairing.
"""

import tempfile
from pathlib import Path

import pytest

from sorty.archives import archive_base_name, find_archive_pairs, pair_archive
from sorty.config import OrganizerConfig
from sorty.scanner import scan_directory
from sorty.types import DirectoryEntry, FileEntry, PairStatus


class TestArchiveBaseName:
    """Tests for archive_base_name."""

    @pytest.mark.parametrize("name,base", [
        ("photos.zip", "photos"),
        ("photos.tar.gz", "photos"),
        ("Backup.ZIP", "Backup"),
        ("release.1.2.tar", "release.1.2"),
        ("data.7z", "data"),
    ])
    def test_recognized(self, name, base):
        """Known archive extensions are stripped, longest first."""
        assert archive_base_name(name) == base

    @pytest.mark.parametrize("name", ["photo.jpg", "zip", ".zip", "notes"])
    def test_not_an_archive(self, name):
        """Other files are not archives."""
        assert archive_base_name(name) is None

    def test_custom_extensions(self):
        """Only the configured extensions are recognized."""
        assert archive_base_name("a.zip", ["rar"]) is None
        assert archive_base_name("a.rar", ["rar"]) == "a"


class TestPairArchive:
    """Tests for pair_archive."""

    ARCHIVE = FileEntry(path="/d/photos.zip", name="photos.zip", size=10, mtime=0.0)

    def test_single_exact_match(self):
        """One exact sibling is a redundant pair."""
        siblings = [DirectoryEntry("photos", "/d/photos"), DirectoryEntry("docs", "/d/docs")]
        pair = pair_archive(self.ARCHIVE, "photos", siblings)
        assert pair.status == PairStatus.REDUNDANT
        assert pair.directory == "/d/photos"

    def test_case_variants_are_ambiguous(self):
        """Several case variants are reported with every candidate."""
        siblings = [DirectoryEntry("photos", "/d/photos"), DirectoryEntry("Photos", "/d/Photos")]
        pair = pair_archive(self.ARCHIVE, "photos", siblings)
        assert pair.status == PairStatus.AMBIGUOUS
        assert pair.directory is None
        assert pair.candidates == ("/d/Photos", "/d/photos")

    def test_only_case_variant(self):
        """A single case-insensitive match is still ambiguous."""
        pair = pair_archive(self.ARCHIVE, "photos", [DirectoryEntry("PHOTOS", "/d/PHOTOS")])
        assert pair.status == PairStatus.AMBIGUOUS
        assert pair.candidates == ("/d/PHOTOS",)

    def test_no_match(self):
        """No same-named sibling means no pair."""
        assert pair_archive(self.ARCHIVE, "photos", [DirectoryEntry("docs", "/d/docs")]) is None


class TestFindArchivePairs:
    """Tests for find_archive_pairs over a scanned tree."""

    def test_pairs_sibling_directory(self):
        """An archive next to its extracted folder is paired."""
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "photos").mkdir()
            (Path(tmp) / "photos.zip").write_bytes(b"PK")
            (Path(tmp) / "other.zip").write_bytes(b"PK")

            catalog = scan_directory(tmp)
            pairs = find_archive_pairs(catalog)

            assert len(pairs) == 1
            assert pairs[0].archive.name == "photos.zip"
            assert pairs[0].status == PairStatus.REDUNDANT
            assert pairs[0].directory == str(Path(catalog.root) / "photos")

    def test_directory_elsewhere_not_paired(self):
        """Only directories in the archive's own folder count."""
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "sub" / "photos").mkdir(parents=True)
            (Path(tmp) / "photos.zip").write_bytes(b"PK")

            catalog = scan_directory(tmp, OrganizerConfig(recursive=True))

            assert find_archive_pairs(catalog) == []

    def test_nested_archive_paired_when_recursive(self):
        """Archives in subfolders pair with their own siblings."""
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "sub" / "backup").mkdir(parents=True)
            (Path(tmp) / "sub" / "backup.tar.gz").write_bytes(b"\x1f\x8b")

            catalog = scan_directory(tmp, OrganizerConfig(recursive=True))
            pairs = find_archive_pairs(catalog)

            assert [p.archive.name for p in pairs] == ["backup.tar.gz"]
