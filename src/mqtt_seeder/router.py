"""
Inbound message routing: resolve a topic back to its tag and log the payload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import paho.mqtt.client as mqtt

from mqtt_seeder.mappings import Mapping, strict_loads

logger = logging.getLogger(__name__)


def is_filter(topic: str) -> bool:
    return "+" in topic or "#" in topic


@dataclass(frozen=True, slots=True)
class RoutedMessage:
    tag: str
    topic: str
    payload: Any


def decode_payload(raw: bytes) -> Any:
    """JSON value if the payload parses, else the UTF-8 text unchanged."""
    text = raw.decode("utf-8", errors="replace")
    try:
        return strict_loads(text)
    except ValueError:
        return text


class MessageRouter:
    """
    Tags inbound messages using the full (non-deduplicated) mapping list.

    Exact topic matches win, first in load order. Wildcard mappings are tried
    next, also first in load order. Unmapped topics are tagged with the topic.
    """

    def __init__(self, mappings: Iterable[Mapping]) -> None:
        self._exact: dict[str, str] = {}
        self._filters: list[Mapping] = []
        for m in mappings:
            self._exact.setdefault(m.topic, m.tag)
            if is_filter(m.topic):
                self._filters.append(m)

    def resolve_tag(self, topic: str) -> str:
        tag = self._exact.get(topic)
        if tag is not None:
            return tag
        for m in self._filters:
            if mqtt.topic_matches_sub(m.topic, topic):
                return m.tag
        return topic

    def route(self, topic: Optional[str], raw_payload: bytes) -> Optional[RoutedMessage]:
        if not topic:
            logger.warning("Received message with undefined topic")
            return None

        payload = decode_payload(raw_payload or b"")
        msg = RoutedMessage(tag=self.resolve_tag(topic), topic=topic, payload=payload)
        logger.info("[%s] %s -> %s", msg.tag, msg.topic, msg.payload)
        return msg

    def on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        self.route(msg.topic, msg.payload)
