"""
Codec Primitives — little-endian wire types shared by every message.

ByteReader/ByteWriter are the cursor pair the message catalog decodes with.
The primitive types (SystemAddress, ServiceId, FixedString) each expose
decode(reader) and encode(writer) over an exactly-sized span, no length
prefixes.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from functools import lru_cache
from ipaddress import IPv4Address
from typing import ClassVar, TypeVar


class ReplayError(Exception):
    """Base class for failures that abort a replay run."""


class DecodeError(ReplayError, ValueError):
    """Malformed or truncated payload, or a value outside a closed enum."""

    def __init__(self, field: str, value: object, truncated: bool = False):
        self.field = field
        self.value = value
        self.truncated = truncated
        self.archive: str | None = None
        self.tag: str | None = None
        self.size: int | None = None
        super().__init__(self._describe())

    def locate(self, archive: str, tag: str, size: int) -> DecodeError:
        """Attach the capture location the failing payload came from."""
        self.archive = archive
        self.tag = tag
        self.size = size
        return self

    def _describe(self) -> str:
        if self.truncated:
            return f"truncated {self.field}: {self.value} bytes short"
        return f"unknown {self.field} {self.value!r}"

    def __str__(self) -> str:
        msg = self._describe()
        if self.archive is not None:
            msg += f" (Zip: {self.archive}, Filename: {self.tag}, {self.size} bytes)"
        return msg


# ---- Byte cursor ----

_U8 = struct.Struct("<B")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")
_I32 = struct.Struct("<i")
_F32 = struct.Struct("<f")


class ByteReader:
    """Read cursor over a payload. Never reads past the end silently."""

    def __init__(self, data: bytes):
        self._data = bytes(data)
        self._pos = 0

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def read(self, n: int, field: str = "bytes") -> bytes:
        """Consume exactly n bytes."""
        if n > self.remaining:
            raise DecodeError(field, n - self.remaining, truncated=True)
        data = self._data[self._pos:self._pos + n]
        self._pos += n
        return data

    def rest(self) -> bytes:
        """Consume everything left."""
        return self.read(self.remaining)

    def _unpack(self, fmt: struct.Struct, field: str):
        return fmt.unpack(self.read(fmt.size, field))[0]

    def u8(self, field: str = "u8") -> int:
        return self._unpack(_U8, field)

    def u16(self, field: str = "u16") -> int:
        return self._unpack(_U16, field)

    def u32(self, field: str = "u32") -> int:
        return self._unpack(_U32, field)

    def u64(self, field: str = "u64") -> int:
        return self._unpack(_U64, field)

    def i32(self, field: str = "i32") -> int:
        return self._unpack(_I32, field)

    def f32(self, field: str = "f32") -> float:
        return self._unpack(_F32, field)


class ByteWriter:
    """Append-only little-endian writer."""

    def __init__(self):
        self._buf = bytearray()

    def write(self, data: bytes) -> None:
        self._buf.extend(data)

    def u8(self, value: int) -> None:
        self._buf.extend(_U8.pack(value))

    def u16(self, value: int) -> None:
        self._buf.extend(_U16.pack(value))

    def u32(self, value: int) -> None:
        self._buf.extend(_U32.pack(value))

    def u64(self, value: int) -> None:
        self._buf.extend(_U64.pack(value))

    def i32(self, value: int) -> None:
        self._buf.extend(_I32.pack(value))

    def f32(self, value: float) -> None:
        self._buf.extend(_F32.pack(value))

    def getvalue(self) -> bytes:
        return bytes(self._buf)

    def __len__(self) -> int:
        return len(self._buf)


# ---- Closed enums ----

E = TypeVar("E", bound=IntEnum)


def decode_enum(enum_cls: type[E], raw: int, field: str) -> E:
    """Map a raw integer through a closed enum, failing on anything else."""
    try:
        return enum_cls(raw)
    except ValueError:
        raise DecodeError(field, raw) from None


class ServiceId(IntEnum):
    GENERAL = 0
    AUTH = 1
    WORLD = 4
    CLIENT = 5

    @classmethod
    def decode(cls, reader: ByteReader) -> ServiceId:
        return decode_enum(cls, reader.u16("service id"), "service id")

    def encode(self, writer: ByteWriter) -> None:
        writer.u16(int(self))


# ---- System address ----

@dataclass(frozen=True)
class SystemAddress:
    """IPv4 address + port. Wire: 4 address octets, then u16le port."""
    ip: IPv4Address
    port: int

    WIRE_SIZE: ClassVar[int] = 6

    @classmethod
    def decode(cls, reader: ByteReader) -> SystemAddress:
        ip = IPv4Address(reader.read(4, "system address"))
        port = reader.u16("system address port")
        return cls(ip, port)

    def encode(self, writer: ByteWriter) -> None:
        writer.write(self.ip.packed)
        writer.u16(self.port)

    def __str__(self) -> str:
        return f"{self.ip}:{self.port}"


# ---- Fixed-capacity strings ----

@dataclass(frozen=True)
class FixedString:
    """Fixed-capacity, null-terminated text buffer.

    One implementation for every capacity and character width; concrete
    types come from fixed_string(capacity, char_width). Decode copies the raw
    bytes without validation, validate() is the optional check.
    """
    raw: bytes

    capacity: ClassVar[int] = 0
    char_width: ClassVar[int] = 1

    def __post_init__(self):
        if len(self.raw) != self.wire_size():
            raise ValueError(
                f"{type(self).__name__} needs {self.wire_size()} bytes, got {len(self.raw)}"
            )

    @classmethod
    def wire_size(cls) -> int:
        return cls.capacity * cls.char_width

    @property
    def _encoding(self) -> str:
        return "ascii" if self.char_width == 1 else "utf-16-le"

    @classmethod
    def from_str(cls, text: str) -> FixedString:
        """Copy at most capacity-1 code units so a terminator always fits."""
        if cls.char_width == 1:
            units = text.encode("ascii", errors="replace")[:cls.capacity - 1]
        else:
            units = text.encode("utf-16-le")[:(cls.capacity - 1) * 2]
        return cls(units.ljust(cls.wire_size(), b"\x00"))

    def _units(self) -> list[bytes]:
        w = self.char_width
        return [self.raw[i:i + w] for i in range(0, len(self.raw), w)]

    def _terminator(self) -> int | None:
        zero = b"\x00" * self.char_width
        for i, unit in enumerate(self._units()):
            if unit == zero:
                return i
        return None

    @property
    def text(self) -> str:
        """Content up to the first terminator (whole buffer if there is none)."""
        end = self._terminator()
        if end is None:
            end = self.capacity
        return self.raw[:end * self.char_width].decode(self._encoding, errors="replace")

    def validate(self) -> None:
        """Check the terminator and encoding; raises DecodeError."""
        name = type(self).__name__
        end = self._terminator()
        if end is None:
            raise DecodeError(f"{name} terminator", self.raw[-self.char_width:].hex())
        try:
            self.raw[:end * self.char_width].decode(self._encoding)
        except UnicodeDecodeError as e:
            raise DecodeError(f"{name} encoding", self.raw[e.start:e.end].hex()) from None

    @classmethod
    def decode(cls, reader: ByteReader) -> FixedString:
        return cls(reader.read(cls.wire_size(), cls.__name__))

    def encode(self, writer: ByteWriter) -> None:
        writer.write(self.raw)

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.text!r})"


@lru_cache(maxsize=None)
def fixed_string(capacity: int, char_width: int = 1) -> type[FixedString]:
    """Concrete FixedString type for a capacity and width (1=ascii, 2=UTF-16LE)."""
    if capacity < 1 or char_width not in (1, 2):
        raise ValueError(f"bad fixed string shape: capacity={capacity} width={char_width}")
    prefix = "AsciiStr" if char_width == 1 else "WideStr"
    return type(
        f"{prefix}{capacity}",
        (FixedString,),
        {"capacity": capacity, "char_width": char_width, "__module__": __name__},
    )


AsciiStr33 = fixed_string(33)
WideStr33 = fixed_string(33, 2)
WideStr41 = fixed_string(41, 2)
WideStr128 = fixed_string(128, 2)
WideStr256 = fixed_string(256, 2)
