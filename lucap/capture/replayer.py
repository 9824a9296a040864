"""
Message Replayer — decode one capture payload for its category.

A successful decode must consume the whole payload: leftover bytes mean the
classifier routed the entry to the wrong catalog, or a layout is wrong.
Either way the run cannot be trusted, so it is reported as a
ConsistencyError instead of being skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from lucap.capture.archive import pretty_hex
from lucap.data.components import ComponentResolver
from lucap.protocol import messages, replica
from lucap.protocol.codec import ByteReader, DecodeError, ReplayError
from lucap.protocol.messages import Message
from lucap.protocol.opcode_rules import MessageCategory

if TYPE_CHECKING:
    from lucap.capture.main import RunConfig

log = logging.getLogger(__name__)


class ConsistencyError(ReplayError):
    """Decode succeeded but left bytes unconsumed."""

    def __init__(self, archive: str, tag: str, size: int, remaining: bytes):
        self.archive = archive
        self.tag = tag
        self.size = size
        self.remaining = remaining
        super().__init__(
            f"{len(remaining)} unread bytes (Zip: {archive}, Filename: {tag}, {size} bytes)\n"
            f"{pretty_hex(remaining)}"
        )


@dataclass
class ArchiveContext:
    """Per-archive replay state.

    `objects` maps runtime object ids to the template they were constructed
    with; later serializations in the same archive look their template up
    here.
    """
    archive: Path
    resolver: ComponentResolver
    objects: dict[int, int] = field(default_factory=dict)


def decode_message(category: MessageCategory, reader: ByteReader, ctx: ArchiveContext) -> Message:
    """Decode one message of `category` from the reader's position."""
    match category:
        case MessageCategory.AUTH_SERVER | MessageCategory.WORLD_SERVER:
            return messages.decode_server_message(reader, category)
        case MessageCategory.WORLD_CLIENT:
            msg_id = reader.u8("message id")
            match msg_id:
                case messages.LU_MESSAGE_ID:
                    return messages.decode_client_lu_message(reader)
                case replica.REPLICA_CONSTRUCTION:
                    return replica.decode_construction(reader, ctx)
                case replica.REPLICA_SERIALIZATION:
                    return replica.decode_serialization(reader, ctx)
                case _:
                    raise DecodeError("message id", msg_id)
        case _:
            raise ValueError(f"{category.value} entries are not replayable")


class Replayer:
    """Decodes payloads and enforces full consumption."""

    def __init__(self, config: RunConfig | None = None):
        self.assert_fully_read = config.assert_fully_read if config else True

    def replay(
        self,
        category: MessageCategory,
        payload: bytes,
        ctx: ArchiveContext,
        tag: str = "",
    ) -> Message:
        reader = ByteReader(payload)
        msg = decode_message(category, reader, ctx)

        if not msg.complete:
            log.debug("%s: %s not fully checked, %d bytes left", tag, msg.name, reader.remaining)
        elif self.assert_fully_read and reader.remaining:
            raise ConsistencyError(str(ctx.archive), tag, len(payload), reader.rest())
        return msg
