"""MQTT messaging abstraction layer for sysmon.

This module wraps the paho-mqtt client so the MQTT sink only deals with
topics and payloads, and tests can substitute a mocked client.
"""

import json
import logging
import socket
import threading
import time
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)


class MessageBroker:
    """Publishes snapshot state and availability under one base topic.

    Attributes:
        client: The underlying paho-mqtt client instance.
        base_topic: Base MQTT topic for all device messages.

    Example:
        >>> broker = MessageBroker(client, "sysmon/my_pc")
        >>> broker.publish_state(snapshot_dict)
        >>> broker.publish_availability("online")
    """

    def __init__(self, client: mqtt.Client, base_topic: str):
        self.client = client
        self.base_topic = base_topic
        logger.debug(f"MessageBroker initialized with base_topic='{base_topic}'")

    @property
    def state_topic(self) -> str:
        return f"{self.base_topic}/state"

    @property
    def availability_topic(self) -> str:
        return f"{self.base_topic}/availability"

    def publish_state(
        self, state: Dict[str, Any], qos: int = 1, retain: bool = True
    ) -> None:
        """Publish the full snapshot as JSON to ``<base_topic>/state``.

        Args:
            state: Snapshot dictionary.
            qos: Quality of Service level (0, 1, or 2).
            retain: Whether to retain the message on the broker.
        """
        payload = json.dumps(state)
        self.client.publish(self.state_topic, payload=payload, qos=qos, retain=retain)
        logger.debug(f"Published state to {self.state_topic} ({len(payload)} bytes)")

    def publish_value(
        self, entity: str, value: Any, qos: int = 1, retain: bool = True
    ) -> None:
        """Publish a single scalar to ``<base_topic>/<entity>``.

        Example:
            >>> broker.publish_value("health", "Warning")
        """
        topic = f"{self.base_topic}/{entity}"
        self.client.publish(topic, payload=str(value), qos=qos, retain=retain)
        logger.debug(f"Published {entity}: {value}")

    def publish_availability(
        self, status: str = "online", qos: int = 1, retain: bool = True
    ) -> None:
        """Publish device availability ("online" or "offline")."""
        self.client.publish(self.availability_topic, payload=status, qos=qos, retain=retain)
        logger.debug(f"Published availability: {status}")


class ConnectionState:
    """Track MQTT connection state for thread coordination."""

    def __init__(self):
        self.connected = threading.Event()
        self.connection_count = 0
        self.last_disconnect_time: Optional[float] = None
        self.lock = threading.Lock()

    def on_connected(self) -> None:
        with self.lock:
            self.connected.set()
            self.connection_count += 1
            logger.info(f"MQTT connection established (total connections: {self.connection_count})")

    def on_disconnected(self) -> None:
        with self.lock:
            self.connected.clear()
            self.last_disconnect_time = time.time()
            logger.warning("MQTT connection lost")

    def wait_for_connection(self, timeout: Optional[float] = None) -> bool:
        """Block until connected or timeout. Returns True if connected."""
        return self.connected.wait(timeout)

    def is_connected(self) -> bool:
        return self.connected.is_set()


def connect_with_retry(
    client: mqtt.Client,
    broker: str,
    port: int,
    max_retries: Optional[int] = 10,
    initial_delay: float = 1,
    max_delay: float = 60,
    stop_event: Optional[threading.Event] = None,
) -> bool:
    """
    Connect to an MQTT broker with exponential backoff.

    Args:
        client: MQTT client instance
        broker: MQTT broker hostname/IP
        port: MQTT broker port
        max_retries: Maximum attempts (None = infinite)
        initial_delay: Initial retry delay in seconds
        max_delay: Maximum retry delay in seconds
        stop_event: Abandons the retry loop when set

    Returns:
        bool: True if the connection was initiated
    """
    retry_count = 0
    delay = initial_delay

    while max_retries is None or retry_count < max_retries:
        try:
            logger.info(f"Attempting to connect to MQTT broker at {broker}:{port}...")
            client.connect(broker, port, keepalive=60)
            logger.info("MQTT connection initiated successfully")
            return True
        except (ConnectionRefusedError, OSError, socket.error) as e:
            retry_count += 1
            if max_retries is not None and retry_count >= max_retries:
                logger.error(f"Failed to connect after {retry_count} attempts: {e}")
                return False

            logger.warning(f"Connection attempt {retry_count} failed: {e}")
            logger.info(f"Retrying in {delay} seconds...")
            if stop_event is not None:
                if stop_event.wait(delay):
                    return False
            else:
                time.sleep(delay)

            # Exponential backoff with max cap
            delay = min(delay * 2, max_delay)

    return False
