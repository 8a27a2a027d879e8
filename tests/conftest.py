"""
Pytest Configuration and Shared Fixtures
"""

import io
import json
import zipfile
from typing import Optional

import pytest

from follower_insights.models.entities import Contact
from follower_insights.storage.sqlite import SQLiteSessionStore
from follower_insights.utils.config import Config, ProcessingConfig

# 2024-01-15 12:00:00 UTC
NOW = 1705320000
DAY = 24 * 60 * 60


def string_list_entry(
    handle: str,
    timestamp: Optional[int] = None,
    href: Optional[str] = None,
) -> dict:
    """Build one entry in the export's string_list_data shape."""
    item = {
        "href": href if href is not None else f"https://www.instagram.com/{handle}",
        "value": handle,
    }
    if timestamp is not None:
        item["timestamp"] = timestamp
    return {"title": "", "media_list_data": [], "string_list_data": [item]}


def followers_json(*entries: tuple) -> str:
    """followers_1.json content: a root array of entries."""
    return json.dumps([string_list_entry(*e) for e in entries])


def following_json(*entries: tuple) -> str:
    """following.json content: entries under relationships_following."""
    return json.dumps({"relationships_following": [string_list_entry(*e) for e in entries]})


def build_zip(files: dict[str, object]) -> bytes:
    """Write a ZIP archive in memory; str values are UTF-8 encoded."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in files.items():
            if isinstance(content, str):
                content = content.encode("utf-8")
            zf.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def contacts() -> dict[str, Contact]:
    """Sample contacts keyed by handle."""
    return {
        "alice": Contact(handle="alice", profile_url="https://www.instagram.com/alice", observed_at=10),
        "bob": Contact(handle="bob", profile_url="https://www.instagram.com/bob", observed_at=20),
        "carol": Contact(handle="carol", profile_url="https://www.instagram.com/carol", observed_at=30),
        "dave": Contact(handle="dave", observed_at=None),
    }


@pytest.fixture
def sample_archive() -> bytes:
    """Archive with followers alice@10, bob@20 and following bob@20, carol@30."""
    return build_zip({
        "connections/followers_and_following/followers_1.json": followers_json(
            ("alice", 10), ("bob", 20),
        ),
        "connections/followers_and_following/following.json": following_json(
            ("bob", 20), ("carol", 30),
        ),
        "media/posts/photo.jpg": b"\xff\xd8\xff\xe0binary",
        "personal_information/personal_information.json": json.dumps({"profile_user": []}),
    })


@pytest.fixture
def store(tmp_path) -> SQLiteSessionStore:
    """Empty SQLite session store in a temporary directory."""
    return SQLiteSessionStore(tmp_path / "sessions.db")


@pytest.fixture
def config() -> Config:
    """Default configuration running fragment decoding inline."""
    return Config(processing=ProcessingConfig(parallel_workers=1))
