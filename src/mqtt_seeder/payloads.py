"""
Seed payload builders.

Pure functions that build the retained init message published to each topic.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

SEED_QOS = 1


def now_iso8601() -> str:
    """Return current UTC time as ISO8601 string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True, slots=True)
class SeedMessage:
    tag: str
    init: str

    def to_dict(self) -> dict:
        return {"tag": self.tag, "init": self.init, "value": None}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def to_bytes(self) -> bytes:
        return self.to_json().encode("utf-8")


def build_seed(tag: str, ts: Optional[str] = None) -> SeedMessage:
    """Build the init message for a topic. Contract: tag, init, value=null."""
    return SeedMessage(tag=tag, init=ts or now_iso8601())
