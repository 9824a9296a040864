"""
Opcode Classifier — capture tag -> message category.

Pure function over (tag, rule table): no I/O, no state.
"""

from __future__ import annotations

from lucap.protocol.opcode_rules import DEFAULT_RULES, MessageCategory, RuleTable

__all__ = ["MessageCategory", "classify"]


def classify(tag: str, rules: RuleTable = DEFAULT_RULES) -> MessageCategory:
    """Category for a capture tag. No matching rule -> IGNORED.

    Fragment entries are IGNORED before any opcode rule is looked at, even
    when they carry a decodable marker.
    """
    if rules.is_fragment(tag):
        return MessageCategory.IGNORED
    for rule in rules.rules:
        if rule.matches(tag):
            return rule.category
    return MessageCategory.IGNORED
