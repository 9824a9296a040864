"""Shared fixtures for lucap tests."""

import sqlite3
import zipfile
from collections import Counter
from ipaddress import IPv4Address
from pathlib import Path

import pytest

from lucap.data.components import ComponentResolver
from lucap.protocol.codec import ServiceId, SystemAddress
from lucap.protocol.messages import (
    AUTH_SERVER_MESSAGES, WORLD_CLIENT_MESSAGES, WORLD_SERVER_MESSAGES,
    ClientConnection, encode_message,
)


class CountingRegistry:
    """In-memory registry that counts lookups per template id."""

    def __init__(self, rows: dict[int, list[int]] | None = None):
        self.rows = rows or {}
        self.calls: Counter = Counter()

    def components_for(self, template_id: int) -> list[int]:
        self.calls[template_id] += 1
        return list(self.rows.get(template_id, []))


# Template ids used across the tests
PLAYER_LOT = 1
CRATE_LOT = 4000
UNKNOWN_COMP_LOT = 5000

REGISTRY_ROWS = {
    PLAYER_LOT: [1, 4, 7, 17],
    CRATE_LOT: [3, 7, 23],
    UNKNOWN_COMP_LOT: [1, 108],
}


@pytest.fixture
def registry() -> CountingRegistry:
    return CountingRegistry(dict(REGISTRY_ROWS))


@pytest.fixture
def resolver(registry) -> ComponentResolver:
    return ComponentResolver(registry)


def write_registry_db(path: Path) -> Path:
    """Write a client database with a ComponentsRegistry table."""
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.execute("create table ComponentsRegistry (id integer, component_type integer, component_id integer)")
    for lot, comps in REGISTRY_ROWS.items():
        conn.executemany(
            "insert into ComponentsRegistry values (?, ?, ?)",
            [(lot, comp, i) for i, comp in enumerate(comps)],
        )
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def registry_db(tmp_path) -> Path:
    return write_registry_db(tmp_path / "cdclient.sqlite")


@pytest.fixture
def make_archive(tmp_path):
    """Build a capture archive from (tag, payload) pairs, in order."""
    def _make(name: str, entries: list[tuple[str, bytes]], directory: Path | None = None) -> Path:
        directory = directory or tmp_path
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        with zipfile.ZipFile(path, "w") as zf:
            for tag, payload in entries:
                zf.writestr(tag, payload)
        return path
    return _make


# ---- Payload builders ----

def auth_login_payload() -> bytes:
    return encode_message(ServiceId.AUTH, AUTH_SERVER_MESSAGES[(ServiceId.AUTH, 0x00)], {
        "username": "tester",
        "password": "hunter2",
        "locale_id": 1033,
        "client_os": 1,
        "memory_stats": "",
        "video_card": "GeForce",
    })


def world_validation_payload() -> bytes:
    return encode_message(ServiceId.WORLD, WORLD_SERVER_MESSAGES[(ServiceId.WORLD, 0x01)], {
        "username": "tester",
        "session_key": "abcdef",
        "fdb_checksum": "0123456789abcdef0123456789abcdef",
    })


def client_zone_payload() -> bytes:
    return encode_message(ClientConnection.CLIENT, WORLD_CLIENT_MESSAGES[(ClientConnection.CLIENT, 0x02)], {
        "zone_id": 1000,
        "instance_id": 0,
        "clone_id": 0,
        "map_checksum": 0x20b8087c,
        "editor_enabled": 0,
        "editor_level": 0,
        "x": -627.0,
        "y": 613.5,
        "z": -47.25,
        "instance_type": 0,
    })


def chat_payload() -> bytes:
    return encode_message(ClientConnection.CHAT, WORLD_CLIENT_MESSAGES[(ClientConnection.CHAT, 0x01)], {
        "sender_address": SystemAddress(IPv4Address("10.0.0.2"), 2002),
        "chat_channel": 4,
        "sender_name": "Friend",
        "sender_id": 0x1de0b6b5,
    })


AUTH_TAG = "0000_[53-01-00-00]_[LoginRequest].bin"
WORLD_SERVER_TAG = "0001_[53-04-00-01]_[ClientValidation].bin"
WORLD_CLIENT_TAG = "0002_[53-05-00-02]_[LoadStaticZone].bin"


@pytest.fixture
def session_entries() -> list[tuple[str, bytes]]:
    """One decodable entry per category."""
    return [
        (AUTH_TAG, auth_login_payload()),
        (WORLD_SERVER_TAG, world_validation_payload()),
        (WORLD_CLIENT_TAG, client_zone_payload()),
    ]
