"""
lucap — Capture Replay Entry Point

Replays every recorded message in a capture archive (or a directory tree of
archives) through the classifier and the message catalog, and checks that
each payload decodes completely. The first failure aborts the run.

Usage:
    lucap-replay captures/ cdclient.sqlite
    lucap-replay captures/session.zip cdclient.sqlite --print-messages
    lucap-replay captures/ cdclient.sqlite --rules rules-1.10.64.json -v
"""

from __future__ import annotations

import argparse
import logging
import sqlite3
import sys
import time
import zipfile
from collections import defaultdict
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console
from rich.pretty import Pretty

from lucap.capture.archive import CaptureEntry, is_archive, iter_archive
from lucap.capture.replayer import ArchiveContext, Replayer
from lucap.data.components import ComponentResolver
from lucap.data.registry import SqliteComponentRegistry
from lucap.protocol.classifier import classify
from lucap.protocol.codec import DecodeError, ReplayError
from lucap.protocol.messages import Message
from lucap.protocol.opcode_rules import DEFAULT_RULES, MessageCategory, RuleTable, load_rules

log = logging.getLogger("lucap")


# ---- Configuration ----

@dataclass(frozen=True)
class RunConfig:
    """Everything a replay run needs to know, fixed for the whole run."""
    capture_path: Path
    registry_path: Path
    # Print each decoded message
    print_messages: bool = False
    rules: RuleTable = DEFAULT_RULES
    # Fail on unread trailing bytes
    assert_fully_read: bool = True


# ---- Counters ----

_CATEGORY_COLORS: dict[MessageCategory, str] = {
    MessageCategory.AUTH_SERVER: "yellow",
    MessageCategory.WORLD_SERVER: "cyan",
    MessageCategory.WORLD_CLIENT: "green",
}


@dataclass
class ReplayStats:
    total: int = 0
    ignored: int = 0
    archives: int = 0
    by_category: defaultdict[str, int] = field(default_factory=lambda: defaultdict(int))
    by_message: defaultdict[str, int] = field(default_factory=lambda: defaultdict(int))

    def record(self, msg: Message) -> None:
        self.total += 1
        self.by_category[msg.category.value] += 1
        self.by_message[msg.name] += 1

    def summary(self) -> str:
        lines = [f"Replayed {self.total} messages from {self.archives} archives ({self.ignored} ignored)"]
        for name, count in sorted(self.by_category.items()):
            lines.append(f"  {name:<12} {count:>6}")
        top = sorted(self.by_message.items(), key=lambda x: -x[1])[:10]
        if top:
            lines.append("  Top messages: " + ", ".join(f"{n}={c}" for n, c in top))
        return "\n".join(lines)


# ---- Replay driver ----

class CaptureReplay:
    """Walks captures and replays every classified entry."""

    def __init__(
        self,
        config: RunConfig,
        resolver: ComponentResolver,
        console: Console | None = None,
    ):
        self.config = config
        self.resolver = resolver
        self.replayer = Replayer(config)
        self.console = console or Console()
        self.stats = ReplayStats()

    def run(self) -> int:
        """Replay the configured capture path. Returns the number of decoded entries."""
        path = self.config.capture_path
        if not path.exists():
            raise FileNotFoundError(f"capture path not found: {path}")
        if path.is_dir():
            return self.replay_tree(path)
        return self.replay_archive(path) if is_archive(path) else 0

    def replay_tree(self, directory: Path, level: int = 0) -> int:
        """Depth-first walk; subdirectories and archives in sorted order."""
        count = 0
        for path in sorted(directory.iterdir()):
            if path.is_dir():
                count += self.replay_tree(path, level + 1)
            elif is_archive(path):
                count += self.replay_archive(path)
            else:
                continue
            log.info("packet count = %s", str(count).rjust(level * 6))
        return count

    def replay_archive(self, path: Path) -> int:
        ctx = ArchiveContext(archive=path, resolver=self.resolver)
        rules = self.config.rules
        count = 0
        try:
            with closing(iter_archive(path, rules.fragment_marker)) as entries:
                for entry in entries:
                    category = classify(entry.tag, rules)
                    if category is MessageCategory.IGNORED:
                        self.stats.ignored += 1
                        continue
                    try:
                        msg = self.replayer.replay(category, entry.payload, ctx, tag=entry.tag)
                    except DecodeError as e:
                        e.locate(str(path), entry.tag, entry.size)
                        raise
                    self.stats.record(msg)
                    if self.config.print_messages:
                        self._print_message(entry, msg)
                    count += 1
        except zipfile.BadZipFile as e:
            raise ReplayError(f"bad capture archive {path}: {e}") from e
        self.stats.archives += 1
        log.debug("%s: %d messages, %d objects constructed", path.name, count, len(ctx.objects))
        return count

    def _print_message(self, entry: CaptureEntry, msg: Message) -> None:
        color = _CATEGORY_COLORS.get(msg.category, "white")
        self.console.print(f"[{color}]{msg.category.value}[/{color}] [bold]{msg.name}[/bold] [dim]{entry.tag}[/dim]")
        self.console.print(Pretty(msg.fields))


# ---- CLI ----

def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Replay LU capture archives through the message catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("capture", type=Path,
                        help="Capture archive (.zip) or directory of archives")
    parser.add_argument("registry", type=Path,
                        help="Client database (SQLite) with the ComponentsRegistry table")
    parser.add_argument("--print-messages", action="store_true",
                        help="Print every decoded message")
    parser.add_argument("--rules", type=Path, default=None,
                        help="JSON opcode rule table (default: built-in table)")
    parser.add_argument("--no-assert-fully-read", action="store_true",
                        help="Do not fail on unread trailing bytes")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging")
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        rules = load_rules(args.rules) if args.rules else DEFAULT_RULES
    except (OSError, ValueError, KeyError) as e:
        log.error("Cannot load rule table %s: %s", args.rules, e)
        sys.exit(1)
    config = RunConfig(
        capture_path=args.capture.resolve(),
        registry_path=args.registry,
        print_messages=args.print_messages,
        rules=rules,
        assert_fully_read=not args.no_assert_fully_read,
    )
    log.debug("Opcode rules version %s", rules.version)

    start = time.perf_counter()
    try:
        with SqliteComponentRegistry(config.registry_path) as registry:
            replay = CaptureReplay(config, ComponentResolver(registry))
            packet_count = replay.run()
    except (ReplayError, FileNotFoundError) as e:
        log.error("%s", e)
        sys.exit(1)
    except sqlite3.DatabaseError as e:
        log.error("Registry %s: %s", config.registry_path, e)
        sys.exit(1)
    elapsed = time.perf_counter() - start

    log.info("%s", replay.stats.summary())
    print()
    print(f"Number of parsed packets: {packet_count}")
    print(f"Time taken: {elapsed:.3f}s")


if __name__ == "__main__":
    main()
