"""LuCI system and network RPC service."""

from luci_rpcd.config import AppConfig, load_config
from luci_rpcd.dispatcher import Dispatcher, RpcReply
from luci_rpcd.errors import RpcError, Status, classify_errno
from luci_rpcd.mqtt_client import MqttRpcServer
from luci_rpcd.schema import validate_params, validate_response

__all__ = [
    "AppConfig",
    "Dispatcher",
    "MqttRpcServer",
    "RpcError",
    "RpcReply",
    "Status",
    "classify_errno",
    "load_config",
    "validate_params",
    "validate_response",
]
