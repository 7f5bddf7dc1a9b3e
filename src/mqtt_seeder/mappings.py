"""
Topic mappings: JSON files that name the topics to seed and their tags.

Each *.json file in the config directory holds an array. Elements are either a
bare topic string or an object {"topic": "...", "tag": "..."} where tag is
optional and defaults to the topic.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional, Union

logger = logging.getLogger(__name__)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


def strict_loads(text: str) -> Any:
    """json.loads without the NaN/Infinity extensions."""
    return json.loads(text, parse_constant=_reject_constant)


class MappingLoadError(RuntimeError):
    """Raised when the config directory cannot be enumerated at all."""


@dataclass(frozen=True, slots=True)
class Mapping:
    tag: str
    topic: str


@dataclass(frozen=True, slots=True)
class TopicEntry:
    """Bare string element: the topic is its own tag."""

    topic: str

    def to_mapping(self) -> Mapping:
        return Mapping(tag=self.topic, topic=self.topic)


@dataclass(frozen=True, slots=True)
class ObjectEntry:
    """Object element with a required topic and an optional tag."""

    topic: str
    tag: Optional[str] = None

    def to_mapping(self) -> Mapping:
        return Mapping(tag=self.tag or self.topic, topic=self.topic)


RawEntry = Union[TopicEntry, ObjectEntry]


def parse_entry(item: Any) -> Optional[RawEntry]:
    """Validate one array element. Returns None when the shape is invalid."""
    if isinstance(item, str):
        return TopicEntry(item) if item else None
    if isinstance(item, dict):
        topic = item.get("topic")
        if not isinstance(topic, str) or not topic:
            return None
        tag = item.get("tag")
        return ObjectEntry(topic=topic, tag=tag if isinstance(tag, str) else None)
    return None


def parse_source(name: str, text: str) -> Optional[list[Mapping]]:
    """
    Parse the text of one source into mappings.

    Returns None (after logging) when the source is not a JSON array; invalid
    elements are logged and skipped.
    """
    try:
        data = strict_loads(text)
    except ValueError as exc:
        logger.error("Invalid JSON in %s: %s", name, exc)
        return None

    if not isinstance(data, list):
        logger.error("Invalid mapping source %s: expected a JSON array, got %s", name, type(data).__name__)
        return None

    logger.info("Loaded %s: %d entries", name, len(data))
    out: list[Mapping] = []
    for index, item in enumerate(data):
        entry = parse_entry(item)
        if entry is None:
            logger.warning("Skipping invalid entry in %s [%d]: %r", name, index, item)
            continue
        out.append(entry.to_mapping())
    return out


def _list_sources(config_dir: Path) -> list[Path]:
    try:
        return sorted(p for p in config_dir.iterdir() if p.name.endswith(".json") and p.is_file())
    except OSError as exc:
        raise MappingLoadError(f"cannot read config directory {config_dir}: {exc}") from exc


def load_mappings(config_dir: Path) -> list[Mapping]:
    """
    Load all mapping sources from config_dir, in file name order.

    Unreadable or malformed sources are logged and skipped. Duplicate topics
    are kept; see unique_mappings().
    Raises MappingLoadError if the directory itself cannot be listed.
    """
    mappings: list[Mapping] = []

    for path in _list_sources(Path(config_dir)):
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Failed to read %s: %s", path.name, exc)
            continue

        parsed = parse_source(path.name, text)
        if parsed is not None:
            mappings.extend(parsed)

    logger.info("Loaded %d mappings from %s", len(mappings), config_dir)
    return mappings


def unique_mappings(mappings: Iterable[Mapping]) -> list[Mapping]:
    """Keep the first mapping per topic, in input order."""
    seen: set[str] = set()
    out: list[Mapping] = []
    for m in mappings:
        if m.topic in seen:
            continue
        seen.add(m.topic)
        out.append(m)
    return out
