from .registry import ComponentRegistry, SqliteComponentRegistry
from .components import ComponentResolver, order_components, component_name

__all__ = [
    "ComponentRegistry", "SqliteComponentRegistry",
    "ComponentResolver", "order_components", "component_name",
]
