"""
Publish sinks.

Every sink implements publish(topic, payload) -> bool. Topics are short
names ("ranges", "points", "imu", "cir"); the sink decides how they map
onto its transport.
"""

import logging
import sys
import threading
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, TextIO, runtime_checkable

import paho.mqtt.client as mqtt

from magic_loc.metrics import get_metrics

logger = logging.getLogger(__name__)


@runtime_checkable
class Publisher(Protocol):
    """Sink for serialized topic payloads; False means the message was dropped."""

    def publish(self, topic: str, payload: bytes) -> bool: ...


@dataclass(frozen=True)
class MqttConfig:
    """
    MQTT broker configuration.

    Attributes:
        broker: Broker host
        port: Broker port
        client_id: Client identifier
        base_topic: Prefix for every published topic
        qos: QoS level for published messages
        keepalive: Keepalive interval (seconds)
        max_queued_messages: Outgoing queue high-water mark; 0 is unbounded
        username: Optional broker username
        password: Optional broker password
    """

    broker: str = "localhost"
    port: int = 1883
    client_id: str = "magic_loc_central"
    base_topic: str = "magic_loc"
    qos: int = 0
    keepalive: int = 60
    max_queued_messages: int = 4
    username: Optional[str] = None
    password: Optional[str] = None

    def __post_init__(self):
        if self.qos not in (0, 1, 2):
            raise ValueError(f"QoS must be 0, 1 or 2: {self.qos}")
        if self.max_queued_messages < 0:
            raise ValueError(f"Queue limit cannot be negative: {self.max_queued_messages}")

    def topic(self, name: str) -> str:
        """Full wire topic for a short topic name."""
        return f"{self.base_topic}/{name}" if self.base_topic else name


class MqttPublisher:
    """
    Publish sink backed by a paho-mqtt client.

    The client runs its network loop in a background thread. Once the
    outgoing queue holds max_queued_messages, further publishes are rejected
    by paho; the rejection is logged and counted, never raised.
    """

    def __init__(self, config: Optional[MqttConfig] = None):
        self.config = config or MqttConfig()
        self.metrics = get_metrics()

        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.config.client_id,
        )
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.max_queued_messages_set(self.config.max_queued_messages)
        self._client.reconnect_delay_set(min_delay=1, max_delay=5)

        if self.config.username and self.config.password:
            self._client.username_pw_set(self.config.username, self.config.password)

        self._connected = False
        self._connection_lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        with self._connection_lock:
            return self._connected

    def start(self):
        """Connect to the broker and start the network loop."""
        try:
            self._client.connect(self.config.broker, self.config.port, self.config.keepalive)
        except OSError as e:
            logger.error(f"MQTT connect to {self.config.broker}:{self.config.port} failed: {e}")
            raise
        self._client.loop_start()
        logger.info(f"MQTT publisher started ({self.config.broker}:{self.config.port})")

    def stop(self):
        """Disconnect and stop the network loop."""
        self._client.disconnect()
        self._client.loop_stop()
        logger.info("MQTT publisher stopped")

    def publish(self, topic: str, payload: bytes) -> bool:
        """
        Queue a message for the broker.

        Returns:
            True if paho accepted the message
        """
        wire_topic = self.config.topic(topic)
        info = self._client.publish(wire_topic, payload, qos=self.config.qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.warning(f"Publish to {wire_topic} failed: {mqtt.error_string(info.rc)}")
            self.metrics.increment_drop('publish_failed')
            return False
        self.metrics.increment('messages_published')
        return True

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            with self._connection_lock:
                self._connected = False
            logger.error(f"MQTT connection refused: {reason_code}")
            return
        with self._connection_lock:
            self._connected = True
        logger.info(f"MQTT connected to {self.config.broker}:{self.config.port}")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        with self._connection_lock:
            self._connected = False
        logger.warning(f"MQTT disconnected: {reason_code}")


class ConsolePublisher:
    """
    Publish sink printing one payload per line.

    Used by the CIR stream tool. Payloads must be UTF-8 text (JSON);
    topics outside `topics` are ignored.
    """

    def __init__(self, topics: Optional[Iterable[str]] = None, output: Optional[TextIO] = None):
        self.topics = frozenset(topics) if topics is not None else None
        self.output = output
        self.metrics = get_metrics()

    def publish(self, topic: str, payload: bytes) -> bool:
        if self.topics is not None and topic not in self.topics:
            return True
        output = self.output or sys.stdout
        print(payload.decode('utf-8'), file=output, flush=True)
        self.metrics.increment('messages_published')
        return True
