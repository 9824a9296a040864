"""
Registry Store — read-only lookup of raw component rows per template.

Backed by the client database (SQLite). The resolver only needs
components_for(); anything with that method can stand in for the store.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Iterable, Protocol

log = logging.getLogger(__name__)

COMPONENTS_QUERY = "select component_type from ComponentsRegistry where id = ?"


class ComponentRegistry(Protocol):
    def components_for(self, template_id: int) -> Iterable[int]: ...


class SqliteComponentRegistry:
    """ComponentsRegistry table of a client database, opened read-only."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        if not self.path.is_file():
            raise FileNotFoundError(f"registry database not found: {self.path}")
        self.conn = sqlite3.connect(f"{self.path.resolve().as_uri()}?mode=ro", uri=True)
        log.debug("Opened registry %s", self.path)

    def components_for(self, template_id: int) -> list[int]:
        rows = self.conn.execute(COMPONENTS_QUERY, (template_id,)).fetchall()
        return [row[0] for row in rows]

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> SqliteComponentRegistry:
        return self

    def __exit__(self, *exc) -> None:
        self.close()
