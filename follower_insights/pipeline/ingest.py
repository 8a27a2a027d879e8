"""
Follower Export Ingestion

Scans an uploaded export archive and classifies its textual entries.
"""

import io
import logging
import zipfile
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterator, Optional, Union

from pydantic import BaseModel, Field

from follower_insights.errors import ArchiveReadError
from follower_insights.models.entities import FragmentKind, IngestDiagnostics
from follower_insights.utils.config import IngestConfig

logger = logging.getLogger(__name__)

ArchiveSource = Union[bytes, str, Path, BinaryIO]

# Case-insensitive file name substrings, checked in order
PATH_RULES: list[tuple[str, FragmentKind]] = [
    ("pending_follow_requests.json", FragmentKind.PENDING_REQUESTS),
    ("recently_unfollowed_profiles.json", FragmentKind.UNFOLLOWED),
    ("followers_", FragmentKind.FOLLOWERS),
    ("following.json", FragmentKind.FOLLOWING),
]

# Top-level keys that identify a fragment by shape
SHAPE_KEYS: dict[str, FragmentKind] = {
    "relationships_followers": FragmentKind.FOLLOWERS,
    "relationships_following": FragmentKind.FOLLOWING,
    "relationships_follow_requests_sent": FragmentKind.PENDING_REQUESTS,
    "relationships_unfollowed_users": FragmentKind.UNFOLLOWED,
}


class ArchiveEntry(BaseModel):
    """A textual entry read from the archive."""
    path: str
    content: str


class Fragment(BaseModel):
    """A classified archive entry awaiting normalization."""
    path: str
    kind: FragmentKind
    content: str
    index: int = Field(description="Position among classified fragments, in archive order")


class ScanResult(BaseModel):
    """Classified fragments plus scan diagnostics."""
    fragments: list[Fragment] = Field(default_factory=list)
    diagnostics: IngestDiagnostics = Field(default_factory=IngestDiagnostics)

    def by_kind(self, kind: FragmentKind) -> list[Fragment]:
        return [f for f in self.fragments if f.kind == kind]

    @property
    def has_relationship_data(self) -> bool:
        return any(
            f.kind in (FragmentKind.FOLLOWERS, FragmentKind.FOLLOWING, FragmentKind.PENDING_REQUESTS)
            for f in self.fragments
        )


def open_archive(source: ArchiveSource) -> zipfile.ZipFile:
    """Open an export archive from raw bytes, a path or a binary file object.

    Raises:
        ArchiveReadError: If the archive cannot be opened
    """
    try:
        if isinstance(source, (bytes, bytearray)):
            return zipfile.ZipFile(io.BytesIO(source))
        return zipfile.ZipFile(source)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError) as e:
        logger.error(f"Could not open archive: {e}")
        raise ArchiveReadError(f"Could not open archive: {e}") from e


def _has_binary_extension(path: str, binary_extensions: list[str]) -> bool:
    suffix = PurePosixPath(path).suffix.lower()
    return suffix in {ext.lower() for ext in binary_extensions}


def _decode_text(raw: bytes) -> Optional[str]:
    """Decode entry bytes as UTF-8, returning None for non-textual content."""
    if b"\x00" in raw:
        return None
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return None


def iter_text_entries(
    archive: zipfile.ZipFile,
    config: Optional[IngestConfig] = None,
    diagnostics: Optional[IngestDiagnostics] = None,
) -> Iterator[ArchiveEntry]:
    """Yield plausibly textual entries one at a time.

    Directories and known binary extensions are skipped without reading.
    Entries larger than the configured limit are skipped before reading.
    """
    config = config or IngestConfig()
    diagnostics = diagnostics if diagnostics is not None else IngestDiagnostics()

    for info in archive.infolist():
        if info.is_dir():
            continue

        diagnostics.entries_scanned += 1

        if _has_binary_extension(info.filename, config.binary_extensions):
            diagnostics.binary_entries_skipped += 1
            continue

        if info.file_size > config.max_entry_bytes:
            diagnostics.oversized_entries_skipped += 1
            logger.warning(
                f"Skipping {info.filename}: {info.file_size} bytes exceeds "
                f"limit of {config.max_entry_bytes}"
            )
            continue

        try:
            with archive.open(info) as handle:
                raw = handle.read()
        except (zipfile.BadZipFile, OSError, RuntimeError, NotImplementedError) as e:
            diagnostics.non_text_entries_skipped += 1
            logger.warning(f"Could not read {info.filename}: {e}")
            continue

        content = _decode_text(raw)
        if content is None:
            diagnostics.non_text_entries_skipped += 1
            logger.debug(f"Skipping non-text entry {info.filename}")
            continue

        yield ArchiveEntry(path=info.filename, content=content)


def classify_path(path: str) -> FragmentKind:
    """Classify an entry by its file name (case-insensitive substring match).

    Only the final path component is matched: exports keep every list under
    a ``followers_and_following/`` directory.
    """
    lowered = PurePosixPath(path.replace("\\", "/")).name.lower()
    for needle, kind in PATH_RULES:
        if needle in lowered:
            return kind
    return FragmentKind.UNCLASSIFIED


def _classify_by_shape(content: str) -> FragmentKind:
    """Look for a relationship key near the start of a JSON-looking entry."""
    head = content[:4096]
    if "{" not in head:
        return FragmentKind.UNCLASSIFIED
    for key, kind in SHAPE_KEYS.items():
        if f'"{key}"' in head:
            return kind
    return FragmentKind.UNCLASSIFIED


def classify_entry(entry: ArchiveEntry) -> FragmentKind:
    """Classify an entry by path, falling back to its content shape."""
    kind = classify_path(entry.path)
    if kind != FragmentKind.UNCLASSIFIED:
        return kind
    if entry.path.lower().endswith((".json", ".html", ".htm", ".js")):
        return _classify_by_shape(entry.content)
    return FragmentKind.UNCLASSIFIED


def scan_archive(
    source: ArchiveSource,
    config: Optional[IngestConfig] = None,
) -> ScanResult:
    """Scan an export archive and collect classified fragments.

    Args:
        source: Archive bytes, path or binary file object
        config: Ingestion configuration

    Returns:
        ScanResult with every classified fragment in archive order

    Raises:
        ArchiveReadError: If the archive cannot be opened
    """
    config = config or IngestConfig()
    result = ScanResult()
    diagnostics = result.diagnostics

    with open_archive(source) as archive:
        for entry in iter_text_entries(archive, config, diagnostics):
            kind = classify_entry(entry)
            if kind == FragmentKind.UNCLASSIFIED:
                diagnostics.unclassified_entries += 1
                logger.debug(f"Unclassified entry dropped: {entry.path}")
                continue

            logger.info(f"Found {kind.value} fragment: {entry.path}")
            diagnostics.fragments_by_kind[kind.value] = (
                diagnostics.fragments_by_kind.get(kind.value, 0) + 1
            )
            result.fragments.append(Fragment(
                path=entry.path,
                kind=kind,
                content=entry.content,
                index=len(result.fragments),
            ))

    logger.info(
        f"Archive scanned: {diagnostics.entries_scanned} entries, "
        f"{len(result.fragments)} fragments classified, "
        f"{diagnostics.unclassified_entries} unclassified, "
        f"{diagnostics.binary_entries_skipped + diagnostics.non_text_entries_skipped} skipped"
    )

    return result
