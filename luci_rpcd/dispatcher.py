from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import Any

from luci_rpcd.config import PathsConfig
from luci_rpcd.errors import RpcError, Status
from luci_rpcd.network import NetworkHandlers
from luci_rpcd.response import ResponseBuilder
from luci_rpcd.schema import validate_params, validate_response
from luci_rpcd.system import SystemHandlers
from luci_rpcd.uci import UciConfig

Handler = Callable[[dict[str, Any], ResponseBuilder], ResponseBuilder]

METHODS: dict[str, tuple[str, ...]] = {
    SystemHandlers.OBJECT: (
        "syslog",
        "dmesg",
        "process_list",
        "process_signal",
        "init_list",
        "init_action",
        "sshkeys_get",
        "sshkeys_set",
    ),
    NetworkHandlers.OBJECT: (
        "conntrack_count",
        "conntrack_table",
        "arp_table",
        "dhcp_leases",
        "dhcp6_leases",
        "routes",
        "routes6",
    ),
}


@dataclass(frozen=True)
class RpcReply:
    status: Status
    result: dict[str, Any] | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == Status.OK

    def to_dict(self, request_id: Any = None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "status": int(self.status),
            "status_name": self.status.name,
        }
        if request_id is not None:
            payload["id"] = request_id
        if self.result is not None:
            payload["result"] = self.result
        if self.message:
            payload["message"] = self.message
        return payload


class Dispatcher:
    """Route ``(object, method, params)`` calls to the matching handler."""

    def __init__(
        self,
        system: SystemHandlers,
        network: NetworkHandlers,
        check_responses: bool = True,
    ) -> None:
        self.objects: dict[str, Any] = {
            SystemHandlers.OBJECT: system,
            NetworkHandlers.OBJECT: network,
        }
        self.check_responses = check_responses
        self.logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_paths(cls, paths: PathsConfig) -> Dispatcher:
        uci = UciConfig(paths.uci_dir)
        return cls(SystemHandlers(paths, uci), NetworkHandlers(paths, uci))

    def lookup(self, object_name: str, method: str) -> Handler | None:
        target = self.objects.get(object_name)
        if target is None or method not in METHODS.get(object_name, ()):
            return None
        return getattr(target, method)

    def call(
        self, object_name: str, method: str, params: dict[str, Any] | None = None
    ) -> RpcReply:
        if object_name not in self.objects:
            self.logger.debug("Unknown object %s.", object_name)
            return RpcReply(Status.NOT_FOUND, message=f"Unknown object: {object_name}")
        handler = self.lookup(object_name, method)
        if handler is None:
            self.logger.debug("Unknown method %s.%s.", object_name, method)
            return RpcReply(Status.METHOD_NOT_FOUND, message=f"Unknown method: {method}")

        if params is None:
            params = {}
        key = f"{object_name}.{method}"
        if not isinstance(params, dict):
            return RpcReply(Status.INVALID_ARGUMENT, message="params must be an object")
        param_errors = validate_params(key, params)
        if param_errors:
            self.logger.debug("Rejected %s params: %s", key, param_errors)
            return RpcReply(Status.INVALID_ARGUMENT, message="; ".join(param_errors))

        self.logger.debug("Calling %s.", key)
        try:
            result = handler(params, ResponseBuilder()).build()
        except RpcError as exc:
            self.logger.info("%s failed: %s (%s)", key, exc.status.name, exc)
            return RpcReply(exc.status, message=str(exc))
        except Exception:
            self.logger.exception("Unexpected failure in %s.", key)
            return RpcReply(Status.UNKNOWN_ERROR, message="internal error")

        if self.check_responses:
            schema_errors = validate_response(key, result)
            if schema_errors:
                self.logger.warning(
                    "Reply of %s failed schema validation with %s errors.",
                    key,
                    len(schema_errors),
                )
                self.logger.debug("Schema errors: %s", schema_errors)
        return RpcReply(Status.OK, result)
