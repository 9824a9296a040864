"""Tests for the capture source and the replay driver."""

import io
from pathlib import Path

import pytest
from rich.console import Console

from conftest import (
    AUTH_TAG, CRATE_LOT, WORLD_SERVER_TAG,
    auth_login_payload, chat_payload, world_validation_payload,
)
from lucap.capture.archive import CaptureEntry, is_archive, iter_archive
from lucap.capture.main import CaptureReplay, RunConfig
from lucap.capture.replayer import ConsistencyError
from lucap.protocol.codec import DecodeError, ReplayError
from lucap.protocol.replica import encode_construction, encode_serialization


def _replay(path: Path, resolver, **kwargs) -> CaptureReplay:
    config = RunConfig(capture_path=path, registry_path=Path("unused"), **kwargs)
    return CaptureReplay(config, resolver, console=Console(file=io.StringIO()))


# ---- Capture source ----

def test_iter_archive_order(make_archive, session_entries):
    path = make_archive("session.zip", session_entries)
    entries = list(iter_archive(path))
    assert [e.tag for e in entries] == [tag for tag, _ in session_entries]
    assert [e.index for e in entries] == [0, 1, 2]
    assert entries[0].payload == auth_login_payload()
    assert entries[0].size == len(auth_login_payload())


def test_iter_archive_skips_fragments(make_archive):
    path = make_archive("frag.zip", [
        ("0000_[53-05-00-0c]_1of2.bin", b"\x53\x05"),
        ("0001_[53-05-00-0c]_2of2.bin", b"\x00"),
        (AUTH_TAG, auth_login_payload()),
    ])
    entries = list(iter_archive(path))
    assert len(entries) == 1
    assert entries[0].tag == AUTH_TAG
    assert entries[0].index == 2


def test_iter_archive_is_lazy(make_archive, session_entries):
    path = make_archive("session.zip", session_entries)
    it = iter_archive(path)
    first = next(it)
    assert first.tag == AUTH_TAG
    it.close()


def test_capture_entry_dump():
    entry = CaptureEntry(tag="x", payload=b"\x53Hello", size=6, index=4)
    assert entry.hex_dump == "5348656c6c6f"
    assert "SHello" in entry.pretty_hex
    assert "6 bytes" in repr(entry)


def test_is_archive(tmp_path, make_archive):
    path = make_archive("a.zip", [])
    other = tmp_path / "notes.txt"
    other.write_text("hi")
    assert is_archive(path)
    assert not is_archive(other)
    assert not is_archive(tmp_path)


# ---- Replay driver ----

def test_end_to_end_three_categories(make_archive, session_entries, resolver):
    path = make_archive("session.zip", session_entries)
    replay = _replay(path, resolver)
    assert replay.run() == 3
    assert replay.stats.total == 3
    assert replay.stats.by_category == {"AuthServer": 1, "WorldServer": 1, "WorldClient": 1}
    assert "Replayed 3 messages from 1 archives" in replay.stats.summary()


def test_ignored_entries_are_not_counted(make_archive, session_entries, resolver):
    entries = session_entries + [
        ("0003_[53-04-00-16].bin", b"garbage"),
        ("0004_[53-05-00-0c]_[e6-00]_[230].bin", b"garbage"),
        ("0005_[53-01-00-00]_1of3.bin", b"garbage"),
        ("readme.txt", b"garbage"),
    ]
    replay = _replay(make_archive("session.zip", entries), resolver)
    assert replay.run() == 3
    assert replay.stats.ignored == 3


def test_directory_tree(tmp_path, make_archive, session_entries, resolver):
    root = tmp_path / "captures"
    make_archive("a.zip", session_entries, root)
    make_archive("b.zip", session_entries[:1], root / "day1")
    make_archive("c.zip", session_entries[1:], root / "day1" / "late")
    (root / "notes.txt").write_text("not an archive")
    replay = _replay(root, resolver)
    assert replay.run() == 6
    assert replay.stats.archives == 3


def test_single_non_archive_file(tmp_path, resolver):
    path = tmp_path / "capture.bin"
    path.write_bytes(b"\x00")
    assert _replay(path, resolver).run() == 0


def test_missing_capture_path(tmp_path, resolver):
    with pytest.raises(FileNotFoundError):
        _replay(tmp_path / "nope", resolver).run()


def test_decode_error_is_located(make_archive, resolver):
    bad = b"\x53\x04\x00" + b"\x01\x00\x00\x00\x00"  # service id 4, truncated body
    path = make_archive("bad.zip", [(AUTH_TAG, auth_login_payload()), (WORLD_SERVER_TAG, bad)])
    with pytest.raises(DecodeError) as exc_info:
        _replay(path, resolver).run()
    err = exc_info.value
    assert err.archive == str(path)
    assert err.tag == WORLD_SERVER_TAG
    assert err.size == len(bad)


def test_consistency_error_aborts(make_archive, resolver):
    path = make_archive("trailing.zip", [
        (WORLD_SERVER_TAG, world_validation_payload() + b"\x00"),
        (AUTH_TAG, auth_login_payload()),
    ])
    replay = _replay(path, resolver)
    with pytest.raises(ConsistencyError):
        replay.run()
    assert replay.stats.total == 0


def test_consistency_check_disabled(make_archive, resolver):
    path = make_archive("trailing.zip", [(WORLD_SERVER_TAG, world_validation_payload() + b"\x00")])
    assert _replay(path, resolver, assert_fully_read=False).run() == 1


def test_object_table_is_per_archive(tmp_path, make_archive, resolver):
    comps = resolver.resolve(CRATE_LOT)
    root = tmp_path / "captures"
    make_archive("a.zip", [
        ("0000_[24]_(4000).bin", encode_construction(10, CRATE_LOT, "Crate", comps)),
        ("0001_[27].bin", encode_serialization(10, comps)),
    ], root)
    assert _replay(root / "a.zip", resolver).run() == 2

    make_archive("b.zip", [("0000_[27].bin", encode_serialization(10, comps))], root)
    with pytest.raises(DecodeError) as exc_info:
        _replay(root, resolver).run()
    assert exc_info.value.tag == "0000_[27].bin"


def test_print_messages(make_archive, resolver):
    path = make_archive("chat.zip", [("0000_[53-02-00-01].bin", chat_payload())])
    buf = io.StringIO()
    config = RunConfig(capture_path=path, registry_path=Path("unused"), print_messages=True)
    replay = CaptureReplay(config, resolver, console=Console(file=buf, width=120))
    assert replay.run() == 1
    out = buf.getvalue()
    assert "GeneralChatMessage" in out
    assert "WorldClient" in out
    assert "sender_address" in out


def test_quiet_by_default(make_archive, session_entries, resolver):
    buf = io.StringIO()
    config = RunConfig(capture_path=make_archive("s.zip", session_entries), registry_path=Path("unused"))
    CaptureReplay(config, resolver, console=Console(file=buf)).run()
    assert buf.getvalue() == ""


def test_archive_closed_after_decode_error(monkeypatch, make_archive, resolver):
    closed = []

    def tracked(path, fragment_marker):
        try:
            yield from iter_archive(path, fragment_marker)
        finally:
            closed.append(Path(path).name)

    monkeypatch.setattr("lucap.capture.main.iter_archive", tracked)
    path = make_archive("bad.zip", [(WORLD_SERVER_TAG, world_validation_payload()[:-1])])
    with pytest.raises(DecodeError):
        _replay(path, resolver).run()
    assert closed == ["bad.zip"]


def test_corrupt_archive(tmp_path, resolver):
    path = tmp_path / "broken.zip"
    path.write_bytes(b"not a zip file at all")
    with pytest.raises(ReplayError) as exc_info:
        _replay(path, resolver).run()
    assert str(path) in str(exc_info.value)
