"""
Opcode Rule Table — which capture tags belong to which message category.

Capture members are named after the recorded message, e.g.
  "0042_[53-05-00-0c]_[e6-00]_[230].bin"
The markers are not self-describing, and some opcodes inside a family are
not decodable with the current catalog, so every family carries a frozen
exception set for the protocol version the captures were taken with.

Rules are checked in order; the first matching rule decides the category.
The table can be replaced from a JSON file (load_rules) without touching
the classifier.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class MessageCategory(Enum):
    AUTH_SERVER = "AuthServer"
    WORLD_SERVER = "WorldServer"
    WORLD_CLIENT = "WorldClient"
    IGNORED = "Ignored"


# Member names of split payloads carry e.g. "_1of3"; only the reassembled
# message is decodable.
FRAGMENT_MARKER = "of"


@dataclass(frozen=True)
class Rule:
    """Tag contains `marker` and none of `exceptions` -> `category`."""
    category: MessageCategory
    marker: str
    exceptions: frozenset[str] = field(default_factory=frozenset)

    def matches(self, tag: str) -> bool:
        if self.marker not in tag:
            return False
        return not any(exc in tag for exc in self.exceptions)

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "marker": self.marker,
            "exceptions": sorted(self.exceptions),
        }


@dataclass(frozen=True)
class RuleTable:
    """Versioned, ordered rule list plus the fragment marker."""
    version: str
    rules: tuple[Rule, ...]
    fragment_marker: str = FRAGMENT_MARKER

    def is_fragment(self, tag: str) -> bool:
        return self.fragment_marker in tag

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "fragment_marker": self.fragment_marker,
            "rules": [r.to_dict() for r in self.rules],
        }

    @classmethod
    def from_dict(cls, data: dict) -> RuleTable:
        rules = tuple(
            Rule(
                category=MessageCategory(r["category"]),
                marker=r["marker"],
                exceptions=frozenset(r.get("exceptions", ())),
            )
            for r in data["rules"]
        )
        return cls(
            version=data["version"],
            rules=rules,
            fragment_marker=data.get("fragment_marker", FRAGMENT_MARKER),
        )


def load_rules(path: str | Path) -> RuleTable:
    """Load a rule table saved as JSON (same shape as RuleTable.to_dict)."""
    return RuleTable.from_dict(json.loads(Path(path).read_text()))


# ---- Reference table (client 1.10.64 captures) ----

WORLD_SERVER_EXCEPTIONS = frozenset({
    "[53-04-00-16]",
    "[e6-00]", "[6b-03]", "[16-04]", "[49-04]", "[ad-04]", "[1c-05]",
    "[230]", "[875]", "[1046]", "[1097]", "[1197]", "[1308]",
})

WORLD_CLIENT_EXCEPTIONS = frozenset({
    "[53-05-00-00]", "[53-05-00-15]", "[53-05-00-31]",
    "[76-00]", "[e6-00]", "[ff-00]", "[a1-01]", "[7f-02]", "[a3-02]",
    "[cc-02]", "[35-03]", "[36-03]", "[4d-03]", "[6d-03]", "[91-03]",
    "[1a-05]", "[e6-05]", "[16-06]", "[1c-06]", "[6f-06]", "[70-06]",
    "[118]", "[230]", "[255]", "[417]", "[639]", "[675]", "[716]",
    "[821]", "[822]", "[845]", "[877]", "[913]", "[1306]", "[1510]",
    "[1558]", "[1564]", "[1647]", "[1648]",
})

# Replica constructions of these templates are keyed on the LOT sub-code.
REPLICA_CONSTRUCTION_EXCEPTIONS = frozenset({
    "(2365)", "(4930)", "(5635)", "(5958)", "(6007)", "(6010)",
    "(6209)", "(6267)", "(6289)", "(6319)", "(7282)", "(8304)",
})

DEFAULT_RULES = RuleTable(
    version="1.10.64",
    rules=(
        Rule(MessageCategory.AUTH_SERVER, "[53-01-"),
        Rule(MessageCategory.WORLD_SERVER, "[53-04-", WORLD_SERVER_EXCEPTIONS),
        Rule(MessageCategory.WORLD_CLIENT, "[53-02-"),
        Rule(MessageCategory.WORLD_CLIENT, "[53-05-", WORLD_CLIENT_EXCEPTIONS),
        Rule(MessageCategory.WORLD_CLIENT, "[24]", REPLICA_CONSTRUCTION_EXCEPTIONS),
        Rule(MessageCategory.WORLD_CLIENT, "[27]"),
    ),
)
