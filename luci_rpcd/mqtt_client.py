from __future__ import annotations

import json
import logging
import ssl
from typing import Any

import paho.mqtt.client as mqtt

from luci_rpcd.config import MqttConfig
from luci_rpcd.dispatcher import Dispatcher, RpcReply
from luci_rpcd.errors import Status


class MqttRpcServer:
    """Serve dispatcher calls over MQTT.

    Requests arrive on ``<base>/call/<object>/<method>`` as
    ``{"id": ..., "params": {...}}`` and replies are published to
    ``<base>/reply/<id>``.
    """

    def __init__(self, config: MqttConfig, dispatcher: Dispatcher) -> None:
        self.config = config
        self.dispatcher = dispatcher
        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=mqtt.MQTTv311,
        )
        self.logger = logging.getLogger(self.__class__.__name__)
        self._connected = False

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        if config.username:
            self.client.username_pw_set(config.username, config.password)
        if config.tls_enabled:
            self.client.tls_set(
                ca_certs=config.ca_cert,
                cert_reqs=ssl.CERT_REQUIRED,
            )

        self.client.will_set(
            self._availability_topic,
            payload="offline",
            qos=1,
            retain=True,
        )
        self.client.reconnect_delay_set(min_delay=1, max_delay=120)

    @property
    def _availability_topic(self) -> str:
        return f"{self.config.base_topic}/status"

    @property
    def _call_topic(self) -> str:
        return f"{self.config.base_topic}/call/#"

    @property
    def connected(self) -> bool:
        return self._connected

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        if reason_code.is_failure:
            self._connected = False
            self.logger.error("Failed to connect to MQTT broker: %s", reason_code)
            return
        self._connected = True
        self.logger.info(
            "Connected to MQTT broker %s:%s", self.config.host, self.config.port
        )
        # Subscribing here also restores the subscription after a reconnect.
        client.subscribe(self._call_topic, qos=self.config.qos)
        client.publish(self._availability_topic, payload="online", qos=1, retain=True)

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        self._connected = False
        if reason_code.is_failure:
            self.logger.warning(
                "Unexpectedly disconnected from MQTT broker: %s. Will attempt to reconnect.",
                reason_code,
            )
        else:
            self.logger.info("Disconnected from MQTT broker (clean)")

    def _on_message(self, client: mqtt.Client, userdata: Any, message: Any) -> None:
        self.handle_request(message.topic, message.payload)

    def parse_topic(self, topic: str) -> tuple[str, str] | None:
        prefix = f"{self.config.base_topic}/call/"
        if not topic.startswith(prefix):
            return None
        object_name, sep, method = topic[len(prefix):].rpartition("/")
        if not sep or not object_name or not method:
            return None
        return object_name, method

    def handle_request(self, topic: str, payload: bytes) -> RpcReply | None:
        """Dispatch one request and publish its reply; returns the reply sent."""
        route = self.parse_topic(topic)
        try:
            request = json.loads(payload or b"{}")
        except (UnicodeDecodeError, json.JSONDecodeError):
            self.logger.warning("Dropping request on %s: payload is not JSON.", topic)
            return None
        if not isinstance(request, dict) or request.get("id") is None:
            self.logger.warning("Dropping request on %s: missing request id.", topic)
            return None

        request_id = request["id"]
        if not isinstance(request_id, (str, int)) or any(c in str(request_id) for c in "+#"):
            self.logger.warning("Dropping request on %s: unusable request id %r.", topic, request_id)
            return None
        if route is None:
            reply = RpcReply(Status.INVALID_COMMAND, message=f"Malformed call topic: {topic}")
        else:
            object_name, method = route
            reply = self.dispatcher.call(object_name, method, request.get("params"))
        self.publish_reply(request_id, reply)
        return reply

    def publish_reply(self, request_id: Any, reply: RpcReply) -> bool:
        topic = f"{self.config.base_topic}/reply/{request_id}"
        self.logger.debug("Publishing %s reply to %s", reply.status.name, topic)
        result = self.client.publish(
            topic,
            payload=json.dumps(reply.to_dict(request_id)),
            qos=self.config.qos,
        )
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.error("Failed to publish reply, error code: %s", result.rc)
            return False
        return True

    def connect(self) -> None:
        self.logger.info(
            "Connecting to MQTT broker %s:%s", self.config.host, self.config.port
        )
        # The network loop retries until the broker is reachable.
        self.client.connect_async(
            self.config.host,
            self.config.port,
            keepalive=self.config.keepalive,
        )

    def serve_forever(self) -> None:
        """Process requests on the calling thread, one at a time."""
        self.client.loop_forever(retry_first_connection=True)

    def disconnect(self) -> None:
        if self._connected:
            self.client.publish(
                self._availability_topic,
                payload="offline",
                qos=1,
                retain=True,
            )
        self.client.disconnect()
        self.logger.info("Disconnected from MQTT broker")
