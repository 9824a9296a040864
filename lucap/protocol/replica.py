"""
Replica Messages — object construction (0x24) and serialization (0x27).

Construction:   [0x24][object id:u64][lot:i32][name:wstr33][sections...]
Serialization:  [0x27][object id:u64][sections...]

There is one section per component of the object's template, in the order
the ComponentResolver returns. A section is a list of optional groups, each
written as a u8 presence flag followed by the group's fields when the flag
is set. Serialization only knows the object id, so the template comes from
the archive's object table filled in by earlier constructions.

Components with no known layout end section decoding; the message is then
marked incomplete and its trailing bytes are not checked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from lucap.data.components import component_name
from lucap.protocol.codec import ByteReader, ByteWriter, DecodeError
from lucap.protocol.messages import FieldDef, Message, decode_fields, encode_fields
from lucap.protocol.opcode_rules import MessageCategory

if TYPE_CHECKING:
    from lucap.capture.replayer import ArchiveContext

log = logging.getLogger(__name__)

REPLICA_CONSTRUCTION = 0x24
REPLICA_SERIALIZATION = 0x27

CONSTRUCTION_HEADER = [
    FieldDef("object_id", "u64"),
    FieldDef("lot", "i32", "Template id"),
    FieldDef("name", "wstr33"),
]
SERIALIZATION_HEADER = [FieldDef("object_id", "u64")]


@dataclass
class SectionGroup:
    """Flag-guarded group of fields inside a component section."""
    name: str
    fields: list[FieldDef]


@dataclass
class ComponentLayout:
    construction: list[SectionGroup] = field(default_factory=list)
    serialization: list[SectionGroup] = field(default_factory=list)


def _g(name: str, *fields: tuple[str, str]) -> SectionGroup:
    return SectionGroup(name, [FieldDef(n, t) for n, t in fields])


_POSITION = (("x", "f32"), ("y", "f32"), ("z", "f32"))
_ROTATION = (("rx", "f32"), ("ry", "f32"), ("rz", "f32"), ("rw", "f32"))
_VELOCITY = (("vx", "f32"), ("vy", "f32"), ("vz", "f32"))


def _both(*groups: SectionGroup) -> ComponentLayout:
    return ComponentLayout(list(groups), list(groups))


def _construction_only(*groups: SectionGroup) -> ComponentLayout:
    return ComponentLayout(list(groups), [])


COMPONENT_LAYOUTS: dict[int, ComponentLayout] = {
    1: _both(_g("position", *_POSITION), _g("rotation", *_ROTATION)),
    2: _construction_only(_g("effect", ("effect_id", "i32"), ("effect_type", "u32"))),
    3: _both(_g("velocity", *_VELOCITY), _g("position", *_POSITION)),
    4: ComponentLayout(
        construction=[
            _g("vehicle", ("vehicle_id", "u64")),
            _g("level", ("level", "u32")),
            _g("account", ("account_id", "u64"), ("gm_level", "u8")),
        ],
        serialization=[
            _g("vehicle", ("vehicle_id", "u64")),
            _g("level", ("level", "u32")),
        ],
    ),
    5: _construction_only(_g("script", ("script_id", "u32"))),
    6: _both(_g("pet", ("pet_required", "u8"))),
    7: ComponentLayout(
        construction=[
            _g("stats", ("health", "u32"), ("max_health", "u32"), ("armor", "u32"), ("imagination", "u32")),
            _g("faction", ("faction_id", "i32"), ("is_smashable", "u8")),
        ],
        serialization=[
            _g("stats", ("health", "u32"), ("max_health", "u32"), ("armor", "u32"), ("imagination", "u32")),
        ],
    ),
    9: _construction_only(_g("skill", ("skill_id", "u32"))),
    16: _both(_g("vendor", ("has_standard_items", "u8"), ("has_multi_cost_items", "u8"))),
    17: _both(_g("equipped", ("item_lot", "i32"), ("item_count", "u32"))),
    23: _both(_g("collectible", ("collectible_id", "u16"))),
    40: _both(_g("position", *_POSITION)),
    44: ComponentLayout(),
    48: _both(_g("rebuild", ("state", "u32"), ("success", "u8"), ("enabled", "u8"), ("time_since_start", "f32"))),
    60: _both(_g("ai", ("state", "u32"), ("target_id", "u64"))),
    98: _construction_only(_g("buff", ("buff_id", "u32"), ("duration_ms", "u32"))),
    106: _both(_g("forced_movement", ("player_on_rail", "u8"), ("show_billboard", "u8"))),
    107: _both(_g("blueprint", ("blueprint_id", "u64"))),
    109: _both(_g("level", ("level", "u32"))),
    110: _both(_g("possessing", ("object_id", "u64"))),
}


def _decode_sections(
    reader: ByteReader, components: tuple[int, ...], construction: bool,
) -> tuple[dict[str, Any], bool]:
    """Decode component sections in order. Returns (sections, complete)."""
    sections: dict[str, Any] = {}
    for comp in components:
        name = component_name(comp)
        layout = COMPONENT_LAYOUTS.get(comp)
        if layout is None:
            log.debug("No layout for component %d (%s), rest of payload unchecked", comp, name)
            return sections, False
        groups = layout.construction if construction else layout.serialization
        section: dict[str, Any] = {}
        for group in groups:
            flag = reader.u8(f"{name}.{group.name} flag")
            if flag not in (0, 1):
                raise DecodeError(f"{name}.{group.name} flag", flag)
            section[group.name] = decode_fields(reader, group.fields) if flag else None
        sections[name] = section
    return sections, True


def decode_construction(reader: ByteReader, ctx: ArchiveContext) -> Message:
    """Replica construction; the 0x24 id byte has already been consumed."""
    header = decode_fields(reader, CONSTRUCTION_HEADER)
    components = ctx.resolver.resolve(header["lot"])
    sections, complete = _decode_sections(reader, components, construction=True)
    ctx.objects[header["object_id"]] = header["lot"]
    return Message(
        "ReplicaConstruction",
        MessageCategory.WORLD_CLIENT,
        {**header, "components": sections},
        complete=complete,
    )


def decode_serialization(reader: ByteReader, ctx: ArchiveContext) -> Message:
    """Replica serialization; the 0x27 id byte has already been consumed."""
    header = decode_fields(reader, SERIALIZATION_HEADER)
    lot = ctx.objects.get(header["object_id"])
    if lot is None:
        raise DecodeError("replica object id", header["object_id"])
    components = ctx.resolver.resolve(lot)
    sections, complete = _decode_sections(reader, components, construction=False)
    return Message(
        "ReplicaSerialization",
        MessageCategory.WORLD_CLIENT,
        {**header, "lot": lot, "components": sections},
        complete=complete,
    )


# ---- Encoding (used to build captures) ----

def encode_sections(
    writer: ByteWriter,
    components: tuple[int, ...],
    values: dict[int, dict[str, dict | None]],
    construction: bool,
) -> None:
    """Write sections for `components`; groups missing from `values` are written absent."""
    for comp in components:
        layout = COMPONENT_LAYOUTS[comp]
        groups = layout.construction if construction else layout.serialization
        present = values.get(comp, {})
        for group in groups:
            group_values = present.get(group.name)
            writer.u8(1 if group_values is not None else 0)
            if group_values is not None:
                encode_fields(writer, group.fields, group_values)


def encode_construction(
    object_id: int, lot: int, name: str, components: tuple[int, ...],
    values: dict[int, dict[str, dict | None]] | None = None,
) -> bytes:
    writer = ByteWriter()
    writer.u8(REPLICA_CONSTRUCTION)
    encode_fields(writer, CONSTRUCTION_HEADER, {"object_id": object_id, "lot": lot, "name": name})
    encode_sections(writer, components, values or {}, construction=True)
    return writer.getvalue()


def encode_serialization(
    object_id: int, components: tuple[int, ...],
    values: dict[int, dict[str, dict | None]] | None = None,
) -> bytes:
    writer = ByteWriter()
    writer.u8(REPLICA_SERIALIZATION)
    encode_fields(writer, SERIALIZATION_HEADER, {"object_id": object_id})
    encode_sections(writer, components, values or {}, construction=False)
    return writer.getvalue()
