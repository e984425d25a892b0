from __future__ import annotations

from dataclasses import dataclass
from typing import Any


def _compact(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


@dataclass(frozen=True)
class ProcessRecord:
    pid: int
    ppid: int
    user: str
    state: str
    vsize_kb: int
    vsize_pct: int
    cpu_pct: int
    command: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "pid": self.pid,
            "ppid": self.ppid,
            "user": self.user,
            "stat": self.state,
            "vsize": self.vsize_kb * 1024,
            "vsize_percent": self.vsize_pct,
            "cpu_percent": self.cpu_pct,
            "command": self.command,
        }


@dataclass(frozen=True)
class InitScriptRecord:
    name: str
    start: int | None = None
    stop: int | None = None
    enabled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "name": self.name,
                "start": self.start,
                "stop": self.stop,
                "enabled": self.enabled,
            }
        )


@dataclass(frozen=True)
class SshKeyRecord:
    key: str

    def to_dict(self) -> str:
        # Keys travel as a bare string array.
        return self.key


@dataclass(frozen=True)
class LeaseRecord:
    expires_sec: int
    macaddr: str
    ipaddr: str
    hostname: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "expires": self.expires_sec,
                "macaddr": self.macaddr,
                "ipaddr": self.ipaddr,
                "hostname": self.hostname,
            }
        )


@dataclass(frozen=True)
class Lease6Record:
    expires_sec: int
    ip6addr: str
    duid: str | None = None
    hostname: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "expires": self.expires_sec,
                "duid": self.duid,
                "ip6addr": self.ip6addr,
                "hostname": self.hostname,
            }
        )


@dataclass(frozen=True)
class ArpRecord:
    ipaddr: str
    macaddr: str
    device: str

    def to_dict(self) -> dict[str, Any]:
        return {"ipaddr": self.ipaddr, "macaddr": self.macaddr, "device": self.device}


@dataclass(frozen=True)
class RouteRecord:
    target: str
    nexthop: str
    metric: int
    device: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "nexthop": self.nexthop,
            "metric": self.metric,
            "device": self.device,
        }


@dataclass(frozen=True)
class Route6Record:
    target: str
    source: str
    nexthop: str
    metric: int
    device: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "source": self.source,
            "nexthop": self.nexthop,
            "metric": self.metric,
            "device": self.device,
        }


@dataclass(frozen=True)
class ConntrackRecord:
    ipv6: bool
    protocol: int
    expires: int
    src: str | None = None
    dest: str | None = None
    sport: int | None = None
    dport: int | None = None
    rx_packets: int | None = None
    tx_packets: int | None = None
    rx_bytes: int | None = None
    tx_bytes: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "ipv6": self.ipv6,
                "protocol": self.protocol,
                "expires": self.expires,
                "src": self.src,
                "dest": self.dest,
                "sport": self.sport,
                "dport": self.dport,
                "rx_packets": self.rx_packets,
                "tx_packets": self.tx_packets,
                "rx_bytes": self.rx_bytes,
                "tx_bytes": self.tx_bytes,
            }
        )


@dataclass(frozen=True)
class ConntrackCounters:
    count: int | None = None
    limit: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({"count": self.count, "limit": self.limit})
