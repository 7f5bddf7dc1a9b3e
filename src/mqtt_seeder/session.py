"""
MQTT session for the seeder.

Owns the paho client: connect with a fixed-interval reconnect policy, and on
every successful connection subscribe to each unique mapped topic and publish
its retained init message. Inbound messages are handed to the MessageRouter.
"""

from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import paho.mqtt.client as mqtt

from mqtt_seeder.config import BrokerAddress
from mqtt_seeder.mappings import Mapping, unique_mappings
from mqtt_seeder.payloads import SEED_QOS, build_seed
from mqtt_seeder.router import MessageRouter, is_filter

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str], Any]


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """Fixed delay between attempts, retried until the process exits."""

    interval_s: float = 1.0


def _default_client_factory(client_id: str, transport: str) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        protocol=mqtt.MQTTv311,
        transport=transport,
    )


class _PendingAcks:
    """
    Futures for in-flight requests keyed by message id.

    Only the issuing side creates futures. Seeding runs on paho's network
    thread, so a request is always tracked before its ack is read. Acks for
    untracked ids (dropped by cancel_all) are ignored.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._futures: dict[int, Future] = {}

    def track(self, mid: int) -> Future:
        fut: Future = Future()
        with self._lock:
            self._futures[mid] = fut
        return fut

    def resolve(self, mid: int, result: Any) -> bool:
        with self._lock:
            fut = self._futures.pop(mid, None)
        if fut is None or not fut.set_running_or_notify_cancel():
            return False
        fut.set_result(result)
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._futures)

    def cancel_all(self) -> int:
        with self._lock:
            futures = list(self._futures.values())
            self._futures.clear()
        return sum(1 for f in futures if f.cancel())


class SeederSession:
    """
    Broker session that seeds and watches the mapped topics.

    Build with the already-loaded mapping list; call open() once at startup and
    close() at shutdown. Reconnects are driven by paho's network loop.
    """

    def __init__(
        self,
        broker: BrokerAddress,
        mappings: Sequence[Mapping],
        router: MessageRouter,
        *,
        client_id: str = "",
        keepalive: int = 60,
        subscribe_qos: int = 0,
        reconnect: ReconnectPolicy = ReconnectPolicy(),
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.broker = broker
        self.mappings = tuple(mappings)
        self.router = router
        self.client_id = client_id
        self.keepalive = keepalive
        self.subscribe_qos = subscribe_qos
        self.reconnect = reconnect

        self._client_factory = client_factory or _default_client_factory
        self._client: Optional[Any] = None
        self._state = SessionState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._subscribes = _PendingAcks()
        self._publishes = _PendingAcks()

    @property
    def state(self) -> SessionState:
        return self._state

    def _set_state(self, state: SessionState) -> SessionState:
        with self._state_lock:
            prev = self._state
            if prev is SessionState.CLOSED:
                return prev
            self._state = state
        if prev is not state:
            logger.debug("Session state %s -> %s", prev.value, state.value)
        return prev

    # -------------------------
    # Connection lifecycle
    # -------------------------
    def open(self) -> bool:
        """Configure the client and start the network loop. Returns False on failure."""
        if self._client is not None:
            return True
        try:
            client = self._client_factory(self.client_id, self.broker.transport)
            if self.broker.username:
                client.username_pw_set(self.broker.username, self.broker.password)
            if self.broker.tls:
                client.tls_set()
            if self.broker.transport == "websockets":
                client.ws_set_options(path=self.broker.path)

            interval = self.reconnect.interval_s
            client.reconnect_delay_set(min_delay=interval, max_delay=interval)

            client.on_connect = self._on_connect
            client.on_connect_fail = self._on_connect_fail
            client.on_disconnect = self._on_disconnect
            client.on_subscribe = self._on_subscribe
            client.on_publish = self._on_publish
            client.on_message = self.router.on_message

            self._set_state(SessionState.CONNECTING)
            logger.info("Connecting to MQTT broker at %s", self.broker.display_url)
            client.connect_async(self.broker.host, self.broker.port, keepalive=self.keepalive)
            client.loop_start()

            self._client = client
            return True
        except Exception:
            logger.exception("Failed to start MQTT session")
            self._set_state(SessionState.DISCONNECTED)
            return False

    def close(self) -> None:
        if not self._client:
            return
        client = self._client
        self._set_state(SessionState.CLOSED)
        try:
            client.disconnect()
            client.loop_stop()
        finally:
            self._client = None
            self._subscribes.cancel_all()
            self._publishes.cancel_all()
        logger.info("MQTT session closed")

    def is_connected(self) -> bool:
        return bool(self._client and self._client.is_connected())

    # -------------------------
    # paho callbacks
    # -------------------------
    def _on_connect(self, client: Any, userdata: Any, flags: Any, reason_code: Any, properties: Any = None) -> None:
        if reason_code.is_failure:
            logger.error("MQTT connect refused: %s", reason_code)
            return

        self._set_state(SessionState.CONNECTED)
        logger.info("Connected to MQTT broker at %s", self.broker.display_url)
        self.seed_all(client)

    def _on_connect_fail(self, client: Any, userdata: Any) -> None:
        logger.warning(
            "Connection to %s failed; retrying in %ss",
            self.broker.display_url,
            self.reconnect.interval_s,
        )

    def _on_disconnect(
        self,
        client: Any,
        userdata: Any,
        disconnect_flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        if self._state is SessionState.CLOSED:
            logger.info("Disconnected cleanly")
            return

        self._set_state(SessionState.DISCONNECTED)
        logger.warning("Unexpected disconnect: %s", reason_code)
        dropped = self._subscribes.cancel_all()
        if dropped:
            logger.debug("Abandoned %d pending subscriptions", dropped)
        self._set_state(SessionState.RECONNECTING)
        logger.info("Reconnecting every %ss", self.reconnect.interval_s)

    def _on_subscribe(self, client: Any, userdata: Any, mid: int, reason_code_list: Any, properties: Any = None) -> None:
        self._subscribes.resolve(mid, list(reason_code_list))

    def _on_publish(self, client: Any, userdata: Any, mid: int, reason_code: Any, properties: Any = None) -> None:
        self._publishes.resolve(mid, reason_code)

    # -------------------------
    # Seeding
    # -------------------------
    def seed_all(self, client: Any) -> int:
        """
        Subscribe and publish the init message for every unique topic.

        Requests are fire-and-forget; each completion is logged on its own.
        Returns the number of unique topics handled.
        """
        pairs = unique_mappings(self.mappings)
        logger.info("Seeding %d unique topics (%d mappings)", len(pairs), len(self.mappings))
        for m in pairs:
            self._subscribe(client, m)
            self._publish_seed(client, m)
        return len(pairs)

    def _subscribe(self, client: Any, m: Mapping) -> None:
        topic = m.topic
        try:
            rc, mid = client.subscribe(topic, qos=self.subscribe_qos)
        except ValueError as exc:
            logger.error('Subscribe failed for "%s": %s', topic, exc)
            return
        if rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error('Subscribe failed for "%s": %s', topic, mqtt.error_string(rc))
            return

        def _done(fut: Future) -> None:
            if fut.cancelled():
                return
            codes = fut.result()
            granted = codes[0] if codes else None
            if granted is None or granted.is_failure:
                logger.error('Subscribe failed for "%s": %s', topic, granted)
            else:
                logger.info('Subscribed to "%s" [QoS %s]', topic, granted.value)

        self._subscribes.track(mid).add_done_callback(_done)

    def _publish_seed(self, client: Any, m: Mapping) -> None:
        topic = m.topic
        if is_filter(topic):
            logger.warning('Not seeding "%s": cannot publish to a wildcard filter', topic)
            return

        payload = build_seed(m.tag).to_bytes()
        try:
            info = client.publish(topic, payload=payload, qos=SEED_QOS, retain=True)
        except ValueError as exc:
            logger.error('Publish failed for "%s": %s', topic, exc)
            return
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error('Publish failed for "%s": %s', topic, mqtt.error_string(info.rc))
            return

        mid = info.mid

        def _done(fut: Future) -> None:
            if fut.cancelled():
                return
            rc = fut.result()
            if rc is not None and rc.is_failure:
                logger.error('Publish failed for "%s": %s', topic, rc)
            else:
                logger.info('Retained init for "%s"', topic)

        self._publishes.track(mid).add_done_callback(_done)
