"""
Message Catalog — registry of decodable message layouts per category.

Every user message starts with the same 8-byte header:
  [0x53][connection type:u16le][packet id:u32le][padding:u8]
followed by a fixed field list. The server-side categories key their
catalogs on ServiceId; the client side also receives chat-server traffic,
so it has its own closed connection enum.

Game messages (client connection, packet 0x0c) add a second level:
  [object id:u64le][game message id:u16le][body]

Replica construction/serialization (raw 0x24/0x27) live in replica.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from lucap.protocol.codec import (
    AsciiStr33, WideStr33, WideStr41, WideStr128, WideStr256,
    ByteReader, ByteWriter, DecodeError, ServiceId, SystemAddress, decode_enum,
)
from lucap.protocol.opcode_rules import MessageCategory

LU_MESSAGE_ID = 0x53
HEADER_SIZE = 8
GAME_MESSAGE_PACKET = 0x0c


class ClientConnection(IntEnum):
    GENERAL = 0
    CHAT = 2
    CLIENT = 5


@dataclass
class FieldDef:
    """A field within a message body."""
    name: str
    type: str  # "u8", "u16", "u32", "u64", "i32", "f32", "service_id", "address", "str33", "wstr33", ...
    description: str = ""


@dataclass
class MessageDef:
    """Definition of a known message layout."""
    key: int  # packet id, or game message id for game messages
    name: str
    description: str = ""
    fields: list[FieldDef] = field(default_factory=list)


@dataclass
class Message:
    """A decoded message. `complete` is False when trailing data could not be accounted for."""
    name: str
    category: MessageCategory
    fields: dict[str, Any] = field(default_factory=dict)
    complete: bool = True

    def __repr__(self) -> str:
        return f"{self.category.value}::{self.name}({len(self.fields)} fields)"


FIXED_STRINGS = {
    "str33": AsciiStr33,
    "wstr33": WideStr33,
    "wstr41": WideStr41,
    "wstr128": WideStr128,
    "wstr256": WideStr256,
}


def decode_field(reader: ByteReader, f: FieldDef) -> Any:
    """Decode a single field at the reader's position."""
    match f.type:
        case "u8":
            return reader.u8(f.name)
        case "u16":
            return reader.u16(f.name)
        case "u32":
            return reader.u32(f.name)
        case "u64":
            return reader.u64(f.name)
        case "i32":
            return reader.i32(f.name)
        case "f32":
            return reader.f32(f.name)
        case "service_id":
            return ServiceId.decode(reader)
        case "address":
            return SystemAddress.decode(reader)
        case t if t in FIXED_STRINGS:
            return FIXED_STRINGS[t].decode(reader)
        case _:
            raise ValueError(f"unknown field type {f.type!r} for {f.name}")


def encode_field(writer: ByteWriter, f: FieldDef, value: Any) -> None:
    match f.type:
        case "u8" | "u16" | "u32" | "u64" | "i32" | "f32":
            getattr(writer, f.type)(value)
        case "service_id":
            ServiceId(value).encode(writer)
        case "address":
            value.encode(writer)
        case t if t in FIXED_STRINGS:
            if isinstance(value, str):
                value = FIXED_STRINGS[t].from_str(value)
            value.encode(writer)
        case _:
            raise ValueError(f"unknown field type {f.type!r} for {f.name}")


def decode_fields(reader: ByteReader, fields: list[FieldDef]) -> dict[str, Any]:
    return {f.name: decode_field(reader, f) for f in fields}


def encode_fields(writer: ByteWriter, fields: list[FieldDef], values: dict[str, Any]) -> None:
    for f in fields:
        encode_field(writer, f, values[f.name])


# ---- Shared layouts ----

HANDSHAKE = MessageDef(
    key=0x00,
    name="Handshake",
    description="Connection handshake, sent by both peers",
    fields=[
        FieldDef("network_version", "u32"),
        FieldDef("unknown", "u32"),
        FieldDef("service_id", "service_id", "Service of the sending peer"),
        FieldDef("unknown2", "u16"),
        FieldDef("process_id", "u32"),
        FieldDef("port", "u16"),
        FieldDef("local_ip", "str33"),
    ],
)

_POSITION = [FieldDef("x", "f32"), FieldDef("y", "f32"), FieldDef("z", "f32")]


# ---- Auth server (messages the auth server receives) ----

AUTH_SERVER_MESSAGES: dict[tuple[ServiceId, int], MessageDef] = {
    (ServiceId.GENERAL, 0x00): HANDSHAKE,
    (ServiceId.AUTH, 0x00): MessageDef(
        key=0x00,
        name="LoginRequest",
        fields=[
            FieldDef("username", "wstr33"),
            FieldDef("password", "wstr41"),
            FieldDef("locale_id", "u16"),
            FieldDef("client_os", "u8", "0=unknown, 1=windows, 2=mac"),
            FieldDef("memory_stats", "wstr256"),
            FieldDef("video_card", "wstr128"),
        ],
    ),
}


# ---- World server (messages the world server receives) ----

WORLD_SERVER_MESSAGES: dict[tuple[ServiceId, int], MessageDef] = {
    (ServiceId.GENERAL, 0x00): HANDSHAKE,
    (ServiceId.WORLD, 0x01): MessageDef(
        key=0x01,
        name="ClientValidation",
        fields=[
            FieldDef("username", "wstr33"),
            FieldDef("session_key", "wstr33"),
            FieldDef("fdb_checksum", "str33", "Hex MD5 of the client database"),
        ],
    ),
    (ServiceId.WORLD, 0x02): MessageDef(key=0x02, name="CharacterListRequest"),
    (ServiceId.WORLD, 0x03): MessageDef(
        key=0x03,
        name="CharacterCreateRequest",
        fields=[
            FieldDef("char_name", "wstr33"),
            FieldDef("first_name_id", "u32"),
            FieldDef("middle_name_id", "u32"),
            FieldDef("last_name_id", "u32"),
            FieldDef("shirt_color", "u32"),
            FieldDef("pants_color", "u32"),
        ],
    ),
    (ServiceId.WORLD, 0x04): MessageDef(
        key=0x04,
        name="CharacterLoginRequest",
        fields=[FieldDef("char_id", "u64")],
    ),
    (ServiceId.WORLD, 0x06): MessageDef(
        key=0x06,
        name="CharacterDeleteRequest",
        fields=[FieldDef("char_id", "u64")],
    ),
    (ServiceId.WORLD, 0x13): MessageDef(
        key=0x13,
        name="LevelLoadComplete",
        fields=[
            FieldDef("zone_id", "u16"),
            FieldDef("instance_id", "u16"),
            FieldDef("clone_id", "u32"),
        ],
    ),
}


# ---- World client (messages the client receives from a world server) ----

WORLD_CLIENT_MESSAGES: dict[tuple[ClientConnection, int], MessageDef] = {
    (ClientConnection.GENERAL, 0x00): HANDSHAKE,
    (ClientConnection.CHAT, 0x01): MessageDef(
        key=0x01,
        name="GeneralChatMessage",
        fields=[
            FieldDef("sender_address", "address"),
            FieldDef("chat_channel", "u8"),
            FieldDef("sender_name", "wstr33"),
            FieldDef("sender_id", "u64"),
        ],
    ),
    (ClientConnection.CLIENT, 0x02): MessageDef(
        key=0x02,
        name="LoadStaticZone",
        fields=[
            FieldDef("zone_id", "u16"),
            FieldDef("instance_id", "u16"),
            FieldDef("clone_id", "u32"),
            FieldDef("map_checksum", "u32"),
            FieldDef("editor_enabled", "u8"),
            FieldDef("editor_level", "u8"),
            *_POSITION,
            FieldDef("instance_type", "u32"),
        ],
    ),
    (ClientConnection.CLIENT, 0x07): MessageDef(
        key=0x07,
        name="CharacterCreateResponse",
        fields=[FieldDef("result", "u8")],
    ),
    (ClientConnection.CLIENT, 0x0b): MessageDef(
        key=0x0b,
        name="CharacterDeleteResponse",
        fields=[FieldDef("success", "u8")],
    ),
    (ClientConnection.CLIENT, 0x0e): MessageDef(
        key=0x0e,
        name="TransferToWorld",
        fields=[
            FieldDef("redirect_ip", "str33"),
            FieldDef("redirect_port", "u16"),
            FieldDef("is_maintenance_transfer", "u8"),
        ],
    ),
}

GAME_MESSAGE_HEADER = [FieldDef("object_id", "u64"), FieldDef("message_id", "u16")]

GAME_MESSAGES: dict[int, MessageDef] = {
    19: MessageDef(
        key=19,
        name="Teleport",
        fields=[*_POSITION, FieldDef("no_gravity", "u8")],
    ),
    37: MessageDef(
        key=37,
        name="Die",
        fields=[FieldDef("killer_id", "u64"), FieldDef("loot_owner_id", "u64")],
    ),
    154: MessageDef(
        key=154,
        name="PlayFxEffect",
        fields=[
            FieldDef("effect_id", "i32"),
            FieldDef("priority", "f32"),
            FieldDef("secondary_id", "u64"),
        ],
    ),
    155: MessageDef(key=155, name="StopFxEffect", fields=[FieldDef("kill_immediate", "u8")]),
    160: MessageDef(key=160, name="Resurrect", fields=[FieldDef("rez_immediately", "u8")]),
    1642: MessageDef(key=1642, name="ServerDoneLoadingAllObjects"),
}


# ---- Decoding ----

def _read_header(reader: ByteReader) -> tuple[int, int]:
    """Read the LU header after the message id byte. Returns (raw connection, packet id)."""
    conn = reader.u16("connection type")
    packet_id = reader.u32("packet id")
    reader.u8("header padding")
    return conn, packet_id


def _lookup(catalog: dict, conn, packet_id: int) -> MessageDef:
    mdef = catalog.get((conn, packet_id))
    if mdef is None:
        raise DecodeError(f"{conn.name.lower()} packet id", packet_id)
    return mdef


def _decode_lu_message(
    reader: ByteReader,
    category: MessageCategory,
    catalog: dict,
    conn_enum: type[IntEnum],
) -> Message:
    raw_conn, packet_id = _read_header(reader)
    field_name = "service id" if conn_enum is ServiceId else "connection type"
    conn = decode_enum(conn_enum, raw_conn, field_name)
    if conn_enum is ClientConnection and conn == ClientConnection.CLIENT and packet_id == GAME_MESSAGE_PACKET:
        return decode_game_message(reader)
    mdef = _lookup(catalog, conn, packet_id)
    return Message(mdef.name, category, decode_fields(reader, mdef.fields))


def decode_server_message(reader: ByteReader, category: MessageCategory) -> Message:
    """AuthServer / WorldServer message: 0x53 header + fixed body."""
    msg_id = reader.u8("message id")
    if msg_id != LU_MESSAGE_ID:
        raise DecodeError("message id", msg_id)
    catalog = AUTH_SERVER_MESSAGES if category == MessageCategory.AUTH_SERVER else WORLD_SERVER_MESSAGES
    return _decode_lu_message(reader, category, catalog, ServiceId)


def decode_client_lu_message(reader: ByteReader) -> Message:
    """WorldClient message whose 0x53 id byte has already been consumed."""
    return _decode_lu_message(reader, MessageCategory.WORLD_CLIENT, WORLD_CLIENT_MESSAGES, ClientConnection)


def decode_game_message(reader: ByteReader) -> Message:
    header = decode_fields(reader, GAME_MESSAGE_HEADER)
    mdef = GAME_MESSAGES.get(header["message_id"])
    if mdef is None:
        raise DecodeError("game message id", header["message_id"])
    fields = {**header, **decode_fields(reader, mdef.fields)}
    return Message(mdef.name, MessageCategory.WORLD_CLIENT, fields)


# ---- Encoding (used to build captures) ----

def encode_header(writer: ByteWriter, conn: int, packet_id: int) -> None:
    writer.u8(LU_MESSAGE_ID)
    writer.u16(int(conn))
    writer.u32(packet_id)
    writer.u8(0)


def encode_message(conn: int, mdef: MessageDef, values: dict[str, Any]) -> bytes:
    writer = ByteWriter()
    encode_header(writer, conn, mdef.key)
    encode_fields(writer, mdef.fields, values)
    return writer.getvalue()


def encode_game_message(object_id: int, mdef: MessageDef, values: dict[str, Any]) -> bytes:
    writer = ByteWriter()
    encode_header(writer, ClientConnection.CLIENT, GAME_MESSAGE_PACKET)
    encode_fields(writer, GAME_MESSAGE_HEADER, {"object_id": object_id, "message_id": mdef.key})
    encode_fields(writer, mdef.fields, values)
    return writer.getvalue()
