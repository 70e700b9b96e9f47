"""
Realtime event publisher.

Domain events are published to channels on a hosted pub/sub broker over MQTT.
The connection is a process-wide object with an explicit ``init()``/``dispose()``
lifecycle; tests swap in a recording transport through ``init(transport=...)``.
Publishing is best-effort: failures are logged and reported as ``False``.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from typing import Any, Protocol
from uuid import uuid4

from paho.mqtt import client as mqtt_client
from paho.mqtt.client import MQTTMessageInfo

from ..settings import REALTIME_TOPIC_PREFIX

logger = logging.getLogger(__name__)

# Gallery channel events
IMAGE_UPLOADED = "image-uploaded"
IMAGE_STARRED = "image-starred"
COMMENT_ADDED = "comment-added"
MEMBER_ADDED = "member-added"
MEMBER_REMOVED = "member-removed"
GALLERY_UPDATED = "gallery-updated"

# User channel events
NOTIFICATION_CREATED = "notification-created"
NOTIFICATION_UPDATED = "notification-updated"


def gallery_channel(slug: str) -> str:
    return f"presence-gallery-{slug}"


def user_channel(user_id: str) -> str:
    return f"private-user-{user_id}"


class Transport(Protocol):
    def publish(self, topic: str, payload: dict[str, Any]) -> bool: ...

    def close(self) -> None: ...


class MQTTTransport:
    """MQTT transport with a lazily connected client and bounded publish retries."""

    def __init__(self, max_retries: int = 3, backoff_seconds: float = 0.5) -> None:
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._lock = threading.Lock()
        self._client: mqtt_client.Client | None = None

    def _build_client(self) -> mqtt_client.Client:
        client = mqtt_client.Client(
            callback_api_version=mqtt_client.CallbackAPIVersion.VERSION2,
            client_id=f"beam-api-{uuid4().hex[:8]}",
            protocol=mqtt_client.MQTTv5,
            transport="tcp",
        )

        username = os.getenv("MQTT_USERNAME", "beam-api")
        password = os.getenv("MQTT_PASSWORD", "")
        if username:
            client.username_pw_set(username, password)

        if os.getenv("MQTT_TLS_ENABLED", "false").lower() == "true":
            ca_file = os.getenv("MQTT_CA_FILE")
            if ca_file and os.path.exists(ca_file):
                client.tls_set(ca_certs=ca_file)
            else:
                client.tls_set()

        def on_connect(client, userdata, flags, rc, properties=None):
            if rc == 0:
                logger.info("Realtime publisher connected")
            else:
                logger.error(f"Realtime publisher connection failed with code {rc}")

        def on_disconnect(client, userdata, flags, rc, properties=None):
            logger.warning(f"Realtime publisher disconnected (rc={rc})")

        client.on_connect = on_connect
        client.on_disconnect = on_disconnect
        return client

    def _ensure_connected(self) -> mqtt_client.Client:
        with self._lock:
            if self._client is None:
                self._client = self._build_client()
            client = self._client

            if not client.is_connected():
                host = os.getenv("MQTT_BROKER_HOST", "mqtt")
                port = int(os.getenv("MQTT_BROKER_PORT", "1883"))
                logger.info(f"Connecting realtime publisher to {host}:{port}")
                client.connect(host, port, keepalive=60)
                client.loop_start()

                # Wait for connection (max 5 seconds)
                for _ in range(50):
                    if client.is_connected():
                        break
                    time.sleep(0.1)
                if not client.is_connected():
                    raise RuntimeError("MQTT connection timeout")
            return client

    def publish(self, topic: str, payload: dict[str, Any]) -> bool:
        try:
            client = self._ensure_connected()
        except (OSError, RuntimeError) as e:
            logger.error(f"Realtime connection failed: {e}")
            return False

        payload_json = json.dumps(payload, default=str)
        for attempt in range(self.max_retries):
            try:
                info: MQTTMessageInfo = client.publish(topic, payload_json, qos=1, retain=False)
                info.wait_for_publish(timeout=5.0)
                if info.rc == mqtt_client.MQTT_ERR_SUCCESS:
                    logger.debug(f"Published realtime message to {topic}")
                    return True
                logger.warning(
                    f"Realtime publish failed with rc={info.rc} (attempt {attempt + 1}/{self.max_retries})"
                )
            except (OSError, RuntimeError, ValueError) as e:
                logger.warning(f"Realtime publish error (attempt {attempt + 1}/{self.max_retries}): {e}")

            if attempt < self.max_retries - 1:
                time.sleep(self.backoff_seconds)

        logger.error(f"Failed to publish realtime message to {topic} after {self.max_retries} attempts")
        return False

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.loop_stop()
                self._client.disconnect()
                self._client = None


class RealtimeConnection:
    """Process-wide handle on the realtime transport."""

    def __init__(self, topic_prefix: str = REALTIME_TOPIC_PREFIX) -> None:
        self.topic_prefix = topic_prefix
        self._transport: Transport | None = None

    @property
    def is_initialized(self) -> bool:
        return self._transport is not None

    def init(self, transport: Transport | None = None) -> None:
        if self._transport is not None:
            self.dispose()
        self._transport = transport or MQTTTransport()
        logger.info(f"Realtime connection initialized ({type(self._transport).__name__})")

    def dispose(self) -> None:
        if self._transport is None:
            return
        self._transport.close()
        self._transport = None
        logger.info("Realtime connection disposed")

    def topic(self, channel: str, event: str) -> str:
        return f"{self.topic_prefix}/{channel}/{event}"

    def trigger(self, channel: str, event: str, payload: dict[str, Any]) -> bool:
        """Publish ``event`` on ``channel``. Never raises."""
        if self._transport is None:
            logger.debug(f"Realtime not initialized, dropping {event} on {channel}")
            return False
        try:
            return self._transport.publish(self.topic(channel, event), payload)
        except Exception as e:
            logger.error(f"Realtime trigger {event} on {channel} failed: {e}")
            return False


realtime = RealtimeConnection()
