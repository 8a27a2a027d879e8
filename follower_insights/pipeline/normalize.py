"""
Record Normalization

Decodes classified fragments into Contact records and merges them per kind.
"""

import json
import logging
import math
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from follower_insights.errors import InvalidTimestampError, MalformedRecordError
from follower_insights.models.entities import Contact, FragmentKind, IngestDiagnostics
from follower_insights.pipeline.ingest import Fragment
from follower_insights.utils.config import Config, IngestConfig

logger = logging.getLogger(__name__)

# Conventional list key per fragment kind
CONVENTIONAL_KEYS = {
    FragmentKind.FOLLOWERS: "relationships_followers",
    FragmentKind.FOLLOWING: "relationships_following",
    FragmentKind.PENDING_REQUESTS: "relationships_follow_requests_sent",
    FragmentKind.UNFOLLOWED: "relationships_unfollowed_users",
}

# Epoch seconds of 9999-12-31T23:59:59Z
MAX_TIMESTAMP = 253402300799

_json_decoder = json.JSONDecoder()

_SCRIPT_OPEN = re.compile(r"<script\b[^>]*>", re.IGNORECASE)
_SCRIPT_CLOSE = re.compile(r"</script\s*>", re.IGNORECASE)
_ASSIGNMENT = re.compile(r"=\s*(?=[\[{])")
_MAX_ASSIGNMENTS_PER_BLOCK = 4


# -- Fragment decoding ---------------------------------------------------

def _next_json_start(content: str, start: int) -> int:
    """Index of the next '{' or '[' at or after start, or -1."""
    brace = content.find("{", start)
    bracket = content.find("[", start)
    candidates = [i for i in (brace, bracket) if i != -1]
    return min(candidates) if candidates else -1


def decode_direct(content: str, config: IngestConfig) -> Optional[Any]:
    """Parse the whole fragment as a JSON object or array."""
    stripped = content.strip()
    if not stripped or stripped[0] not in "{[":
        return None
    try:
        data = json.loads(stripped)
    except (ValueError, RecursionError):
        return None
    return data if isinstance(data, (dict, list)) else None


def decode_embedded(content: str, config: IngestConfig) -> Optional[Any]:
    """Parse a balanced JSON prefix starting at a '{' or '[' inside markup.

    Tries at most ``max_embedded_scan_attempts`` start positions.
    """
    position = _next_json_start(content, 0)
    attempts = 0
    while position != -1 and attempts < config.max_embedded_scan_attempts:
        attempts += 1
        try:
            data, _ = _json_decoder.raw_decode(content, position)
            if isinstance(data, (dict, list)) and data:
                return data
        except (ValueError, RecursionError):
            pass
        position = _next_json_start(content, position + 1)
    return None


def decode_script_assignment(content: str, config: IngestConfig) -> Optional[Any]:
    """Parse a JSON literal assigned to a variable inside a <script> block."""
    for block_number, opening in enumerate(_SCRIPT_OPEN.finditer(content)):
        if block_number >= config.max_script_blocks:
            break
        closing = _SCRIPT_CLOSE.search(content, opening.end())
        body = content[opening.end():closing.start() if closing else len(content)]

        for assignment_number, assignment in enumerate(_ASSIGNMENT.finditer(body)):
            if assignment_number >= _MAX_ASSIGNMENTS_PER_BLOCK:
                break
            try:
                data, _ = _json_decoder.raw_decode(body, assignment.end())
            except (ValueError, RecursionError):
                continue
            if isinstance(data, (dict, list)):
                return data
    return None


DECODE_STRATEGIES: list[tuple[str, Callable[[str, IngestConfig], Optional[Any]]]] = [
    ("direct", decode_direct),
    ("embedded", decode_embedded),
    ("script", decode_script_assignment),
]


def decode_fragment(
    content: str,
    config: Optional[IngestConfig] = None,
) -> tuple[Optional[Any], Optional[str]]:
    """Decode fragment content, trying each strategy in order.

    Returns:
        Tuple of (decoded data, strategy name), or (None, None) if all fail
    """
    config = config or IngestConfig()
    for name, strategy in DECODE_STRATEGIES:
        data = strategy(content, config)
        if data is not None:
            return data, name
    return None, None


# -- Record extraction ---------------------------------------------------

def extract_entries(data: Any, kind: FragmentKind) -> list:
    """Locate the list of entries inside a decoded structure.

    Priority: root array, the conventional key for the kind, then the first
    array-valued property.
    """
    if isinstance(data, list):
        return data

    if isinstance(data, dict):
        key = CONVENTIONAL_KEYS.get(kind)
        if key and isinstance(data.get(key), list):
            return data[key]

        for value in data.values():
            if isinstance(value, list):
                return value

    logger.warning(f"Unexpected {kind.value} structure, no entry list found")
    return []


def parse_timestamp(value: Any) -> Optional[int]:
    """Parse an export timestamp into epoch seconds.

    Accepts ints, floats, digit strings and ISO-8601 strings. Missing values
    and zero return None. Values past the last representable datetime
    (such as millisecond epochs) are rejected.

    Raises:
        InvalidTimestampError: If the value is present but unparsable
    """
    if value is None or value == "":
        return None

    if isinstance(value, bool):
        raise InvalidTimestampError(value)

    if isinstance(value, int):
        if value < 0 or value > MAX_TIMESTAMP:
            raise InvalidTimestampError(value)
        return value or None

    if isinstance(value, float):
        if not math.isfinite(value) or value < 0 or value > MAX_TIMESTAMP:
            raise InvalidTimestampError(value)
        return math.floor(value) or None

    if isinstance(value, str):
        text = value.strip()
        try:
            return parse_timestamp(float(text)) if "." in text else parse_timestamp(int(text))
        except ValueError:
            pass

        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise InvalidTimestampError(value) from None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parse_timestamp(math.floor(parsed.timestamp()))

    raise InvalidTimestampError(value)


def _clean_handle(value: Any) -> Optional[str]:
    """Normalize a handle value, returning None when unusable."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        return None
    handle = value.strip()
    return handle or None


def _clean_url(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


RawRecord = tuple[str, Optional[str], Any]


def _structured_items(entry: dict):
    """Dict items of list-valued properties, string_list_data first."""
    lists = []
    if isinstance(entry.get("string_list_data"), list):
        lists.append(entry["string_list_data"])
    lists.extend(
        value for key, value in entry.items()
        if key != "string_list_data" and isinstance(value, list)
    )
    for items in lists:
        for item in items:
            if isinstance(item, dict):
                yield item


def _from_structured_list(entry: dict) -> Optional[RawRecord]:
    """First populated item nested one level under a list.

    Newer following exports omit ``value`` from the item and carry the
    handle in the entry's ``title`` instead.
    """
    titled_item = None
    for item in _structured_items(entry):
        handle = _clean_handle(item.get("value"))
        if handle:
            return handle, _clean_url(item.get("href")), item.get("timestamp")
        if titled_item is None and ("href" in item or "timestamp" in item):
            titled_item = item

    title = _clean_handle(entry.get("title"))
    if titled_item is not None and title:
        return title, _clean_url(titled_item.get("href")), titled_item.get("timestamp")
    return None


def _from_flat_fields(entry: dict) -> Optional[RawRecord]:
    """Older exports put value/username directly on the entry."""
    handle = _clean_handle(entry.get("value")) or _clean_handle(entry.get("username"))
    if not handle:
        return None
    url = _clean_url(entry.get("href")) or _clean_url(entry.get("profile_url"))
    return handle, url, entry.get("timestamp")


ENTRY_STRATEGIES: list[Callable[[dict], Optional[RawRecord]]] = [
    _from_structured_list,
    _from_flat_fields,
]


def extract_contact(
    entry: Any,
    diagnostics: Optional[IngestDiagnostics] = None,
) -> Optional[Contact]:
    """Build a Contact from a single export entry.

    Returns None for entries without an extractable handle.

    Raises:
        MalformedRecordError: If the entry is not an object
    """
    if not isinstance(entry, dict):
        raise MalformedRecordError(f"Entry is not an object: {type(entry).__name__}", entry)

    raw = None
    for strategy in ENTRY_STRATEGIES:
        raw = strategy(entry)
        if raw is not None:
            break
    if raw is None:
        return None

    handle, profile_url, raw_timestamp = raw
    try:
        observed_at = parse_timestamp(raw_timestamp)
    except InvalidTimestampError as e:
        if diagnostics is not None:
            diagnostics.invalid_timestamps += 1
        logger.debug(f"{e} for {handle}, using processing time")
        observed_at = None

    return Contact(handle=handle, profile_url=profile_url, observed_at=observed_at)


# -- Per-fragment normalization and merging ------------------------------

class FragmentRecords(BaseModel):
    """Contacts decoded from a single fragment."""
    path: str
    kind: FragmentKind
    index: int
    contacts: list[Contact] = Field(default_factory=list)
    decode_strategy: Optional[str] = None
    diagnostics: IngestDiagnostics = Field(default_factory=IngestDiagnostics)


def normalize_fragment(
    fragment: Fragment,
    config: Optional[IngestConfig] = None,
) -> FragmentRecords:
    """Decode one fragment into contacts. Never raises for bad content."""
    config = config or IngestConfig()
    records = FragmentRecords(path=fragment.path, kind=fragment.kind, index=fragment.index)
    diagnostics = records.diagnostics

    data, strategy = decode_fragment(fragment.content, config)
    if data is None:
        diagnostics.undecodable_fragments += 1
        logger.warning(f"Could not decode {fragment.path}, no records extracted")
        return records

    records.decode_strategy = strategy
    if strategy != "direct":
        diagnostics.degraded_decodes += 1
        logger.warning(f"Recovered JSON from {fragment.path} using {strategy} extraction")

    for entry in extract_entries(data, fragment.kind):
        try:
            contact = extract_contact(entry, diagnostics)
        except MalformedRecordError as e:
            diagnostics.malformed_records += 1
            logger.debug(f"Skipping malformed entry in {fragment.path}: {e}")
            continue

        if contact is None:
            diagnostics.records_without_handle += 1
            continue
        records.contacts.append(contact)

    logger.debug(f"Decoded {len(records.contacts)} {fragment.kind.value} records from {fragment.path}")
    return records


class ContactMerger:
    """Keeps one Contact per handle, preferring the earliest known timestamp.

    Ties keep the first-seen contact; a known timestamp beats a missing one.
    Output order is the order in which handles were first seen.
    """

    def __init__(self):
        self._contacts: dict[str, Contact] = {}
        self.duplicates = 0

    @staticmethod
    def _is_earlier(candidate: Optional[int], current: Optional[int]) -> bool:
        if candidate is None:
            return False
        return current is None or candidate < current

    def add(self, contact: Contact) -> None:
        existing = self._contacts.get(contact.handle)
        if existing is None:
            self._contacts[contact.handle] = contact
            return

        self.duplicates += 1
        if self._is_earlier(contact.observed_at, existing.observed_at):
            self._contacts[contact.handle] = contact

    def add_all(self, contacts: list[Contact]) -> None:
        for contact in contacts:
            self.add(contact)

    def contacts(self) -> list[Contact]:
        return list(self._contacts.values())


class NormalizedExport(BaseModel):
    """Merged, deduplicated contact lists for one upload."""
    followers: list[Contact] = Field(default_factory=list)
    following: list[Contact] = Field(default_factory=list)
    pending_requests: list[Contact] = Field(default_factory=list)
    unfollowed: list[Contact] = Field(default_factory=list)
    source_files: list[str] = Field(default_factory=list)
    diagnostics: IngestDiagnostics = Field(default_factory=IngestDiagnostics)

    @property
    def is_empty(self) -> bool:
        return not (self.followers or self.following or self.pending_requests)

    def for_kind(self, kind: FragmentKind) -> list[Contact]:
        return getattr(self, kind.value)


def normalize_fragments(
    fragments: list[Fragment],
    config: Optional[Config] = None,
) -> NormalizedExport:
    """Normalize every fragment and merge the results per kind.

    Fragments are decoded independently (in a thread pool when more than one
    worker is configured); results are gathered and merged in fragment order.

    Args:
        fragments: Classified fragments from the scanner
        config: Root configuration

    Returns:
        NormalizedExport with merged contact lists and diagnostics
    """
    config = config or Config()
    workers = config.processing.parallel_workers

    def _normalize(fragment: Fragment) -> FragmentRecords:
        return normalize_fragment(fragment, config.ingest)

    if workers > 1 and len(fragments) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(_normalize, fragments))
    else:
        results = [_normalize(fragment) for fragment in fragments]

    results.sort(key=lambda r: r.index)

    mergers = {kind: ContactMerger() for kind in CONVENTIONAL_KEYS}
    diagnostics = IngestDiagnostics()
    for records in results:
        diagnostics = diagnostics.merge(records.diagnostics)
        if records.kind in mergers:
            mergers[records.kind].add_all(records.contacts)

    diagnostics.duplicate_handles_merged = sum(m.duplicates for m in mergers.values())

    export = NormalizedExport(
        followers=mergers[FragmentKind.FOLLOWERS].contacts(),
        following=mergers[FragmentKind.FOLLOWING].contacts(),
        pending_requests=mergers[FragmentKind.PENDING_REQUESTS].contacts(),
        unfollowed=mergers[FragmentKind.UNFOLLOWED].contacts(),
        source_files=[r.path for r in results],
        diagnostics=diagnostics,
    )

    logger.info(
        f"Records normalized: {len(export.followers)} followers, "
        f"{len(export.following)} following, "
        f"{len(export.pending_requests)} pending requests, "
        f"{len(export.unfollowed)} unfollowed"
    )

    return export
