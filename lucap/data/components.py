"""
Component Resolver — implied, ordered component set per template id.

Replica payloads serialize one section per component, in a fixed priority
order, and some components drag others along with them. Both rules are
applied here once per template and memoized for the resolver's lifetime
(the registry does not change while a run is in progress).
"""

from __future__ import annotations

import logging

from lucap.data.registry import ComponentRegistry

log = logging.getLogger(__name__)


# ---- Component types ----

COMPONENT_NAMES: dict[int, str] = {
    1: "ControllablePhysics",
    2: "Render",
    3: "SimplePhysics",
    4: "Character",
    5: "Script",
    6: "Bouncer",
    7: "Destroyable",
    9: "Skill",
    16: "Vendor",
    17: "Inventory",
    23: "Collectible",
    40: "PhantomPhysics",
    44: "Fx",
    48: "QuickBuild",
    60: "BaseCombatAI",
    98: "Buff",
    106: "PlayerForcedMovement",
    107: "Bbb",
    109: "LevelProgression",
    110: "Possessor",
}

# Raw row -> components present on the wire without a row of their own.
# Expansion is single pass: implied types are not expanded again.
IMPLIED_COMPONENTS: dict[int, tuple[int, ...]] = {
    2: (44,),
    4: (110, 109, 106),
    7: (98,),
    23: (7,),
    48: (7,),
}

# Serialization order of replica sections.
COMPONENT_ORDER: tuple[int, ...] = (
    1, 3, 40, 98, 7, 23, 110, 109, 106, 4, 17, 5, 9, 60, 48, 16, 6, 2, 44, 107,
)

_PRIORITY: dict[int, int] = {comp: i for i, comp in enumerate(COMPONENT_ORDER)}


def component_name(comp: int) -> str:
    return COMPONENT_NAMES.get(comp, f"Component{comp}")


def order_components(raw: list[int]) -> tuple[int, ...]:
    """Expand implied components, dedupe, and sort by serialization priority.

    Types missing from COMPONENT_ORDER go last, in ascending numeric order.
    """
    comps: list[int] = []
    for value in raw:
        comps.append(value)
        comps.extend(IMPLIED_COMPONENTS.get(value, ()))
    unique = sorted(set(comps))
    unique.sort(key=lambda c: _PRIORITY.get(c, len(COMPONENT_ORDER)))
    return tuple(unique)


class ComponentResolver:
    """Memoized template id -> ordered component types."""

    def __init__(self, registry: ComponentRegistry):
        self.registry = registry
        self._cache: dict[int, tuple[int, ...]] = {}

    def resolve(self, template_id: int) -> tuple[int, ...]:
        cached = self._cache.get(template_id)
        if cached is not None:
            return cached

        raw = list(self.registry.components_for(template_id))
        comps = order_components(raw)
        if not raw:
            log.debug("No registry rows for template %d", template_id)
        else:
            log.debug(
                "Template %d: rows=%s -> %s",
                template_id, raw, [component_name(c) for c in comps],
            )
        self._cache[template_id] = comps
        return comps

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, template_id: int) -> bool:
        return template_id in self._cache
