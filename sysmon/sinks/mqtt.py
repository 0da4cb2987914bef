"""MQTT sink: publishes every snapshot to ``<base_topic>/state``.

The sink owns the paho client: Last Will and Testament on the availability
topic, connect with exponential backoff, background network loop and a clean
"offline" on close.

MQTT Topics Structure:
    <base_topic>/availability     online / offline (LWT)
    <base_topic>/state            full snapshot JSON
    <base_topic>/health           Good / Warning / Critical
"""

import logging
import threading
from typing import Optional

import paho.mqtt.client as mqtt

from sysmon.core.messaging import ConnectionState, MessageBroker, connect_with_retry
from sysmon.core.models import Snapshot

logger = logging.getLogger(__name__)


class MqttSink:
    """Publishes snapshots to an MQTT broker.

    Attributes:
        broker: MessageBroker bound to the sink's client and base topic.
        state: Connection state shared with the paho callbacks.

    Example:
        >>> sink = MqttSink("localhost", 1883, "sysmon/my_pc")
        >>> if sink.start():
        ...     sink.write(snapshot)
        >>> sink.close()
    """

    def __init__(
        self,
        host: str,
        port: int,
        base_topic: str,
        username: str = "",
        password: str = "",
        client: Optional[mqtt.Client] = None,
        connection_timeout: float = 30,
        max_retries: Optional[int] = 10,
    ):
        self.host = host
        self.port = port
        self.connection_timeout = connection_timeout
        self.max_retries = max_retries
        self.client = client or mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        self.broker = MessageBroker(self.client, base_topic)
        self.state = ConnectionState()

        if username:
            self.client.username_pw_set(username, password or None)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        # Published by the broker automatically on unexpected disconnect
        self.client.will_set(
            self.broker.availability_topic, payload="offline", qos=1, retain=True
        )
        self.client.reconnect_delay_set(min_delay=1, max_delay=60)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code == 0:
            logger.info(f"MQTT connected to {self.host}:{self.port}")
            self.state.on_connected()
            self.broker.publish_availability("online")
            return
        logger.error(f"MQTT connection refused: {reason_code}")
        self.state.on_disconnected()

    def _on_disconnect(self, client, userdata, flags, reason_code=0, properties=None):
        self.state.on_disconnected()
        if reason_code == 0:
            logger.info("MQTT client disconnected cleanly")
        else:
            logger.warning(f"MQTT disconnected unexpectedly ({reason_code}), reconnecting...")

    def start(self, stop_event: Optional[threading.Event] = None) -> bool:
        """Connect and start the network loop; False when the broker is unreachable."""
        if not connect_with_retry(
            self.client,
            self.host,
            self.port,
            max_retries=self.max_retries,
            stop_event=stop_event,
        ):
            return False
        self.client.loop_start()
        if not self.state.wait_for_connection(timeout=self.connection_timeout):
            logger.error("Timed out waiting for MQTT connection")
            self.client.loop_stop()
            return False
        return True

    def write(self, snapshot: Snapshot) -> None:
        if not self.state.is_connected():
            logger.debug("MQTT not connected, skipping publish")
            return
        self.broker.publish_state(snapshot.to_dict())
        self.broker.publish_value("health", snapshot.health)

    def close(self) -> None:
        try:
            self.broker.publish_availability("offline")
        except Exception as e:
            logger.error(f"Error publishing offline status: {e}")
        self.client.loop_stop()
        self.client.disconnect()
