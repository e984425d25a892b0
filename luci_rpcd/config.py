from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import configparser
import shlex


@dataclass(frozen=True)
class MqttConfig:
    host: str
    port: int
    base_topic: str
    client_id: str
    username: str | None
    password: str | None
    qos: int
    tls_enabled: bool
    ca_cert: str | None
    keepalive: int


@dataclass(frozen=True)
class LoggingConfig:
    level: str
    syslog: bool


@dataclass(frozen=True)
class PathsConfig:
    uci_dir: str = "/etc/config"
    top_command: tuple[str, ...] = ("/bin/busybox", "top", "-bn1")
    dmesg_command: tuple[str, ...] = ("dmesg",)
    logread_command: tuple[str, ...] = ("logread",)
    init_dir: str = "/etc/init.d"
    rc_dir: str = "/etc/rc.d"
    authorized_keys: str = "/etc/dropbear/authorized_keys"
    relay_leases: str = "/tmp/hosts/6relayd"
    conntrack_count: str = "/proc/sys/net/netfilter/nf_conntrack_count"
    conntrack_max: str = "/proc/sys/net/netfilter/nf_conntrack_max"
    conntrack_table: str = "/proc/net/nf_conntrack"
    arp_table: str = "/proc/net/arp"
    route_table: str = "/proc/net/route"
    ipv6_route_table: str = "/proc/net/ipv6_route"


@dataclass(frozen=True)
class AppConfig:
    mqtt: MqttConfig
    logging: LoggingConfig
    paths: PathsConfig


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def _get_command(value: str | None, fallback: tuple[str, ...]) -> tuple[str, ...]:
    if value is None or not value.strip():
        return fallback
    return tuple(shlex.split(value))


def load_config(path: str | Path) -> AppConfig:
    parser = configparser.ConfigParser()
    read_files = parser.read(path)
    if not read_files:
        raise FileNotFoundError(f"Config file not found: {path}")

    mqtt = MqttConfig(
        host=parser.get("mqtt", "host", fallback="localhost"),
        port=parser.getint("mqtt", "port", fallback=1883),
        base_topic=parser.get("mqtt", "base_topic", fallback="luci-rpcd").rstrip("/"),
        client_id=parser.get("mqtt", "client_id", fallback="luci-rpcd"),
        username=_get_optional(parser.get("mqtt", "username", fallback=None)),
        password=_get_optional(parser.get("mqtt", "password", fallback=None)),
        qos=parser.getint("mqtt", "qos", fallback=0),
        tls_enabled=parser.getboolean("mqtt", "tls", fallback=False),
        ca_cert=_get_optional(parser.get("mqtt", "ca_cert", fallback=None)),
        keepalive=parser.getint("mqtt", "keepalive", fallback=60),
    )

    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        syslog=parser.getboolean("logging", "syslog", fallback=False),
    )

    # Every [paths] entry is optional; the defaults are the OpenWrt locations.
    defaults = PathsConfig()
    paths = PathsConfig(
        uci_dir=parser.get("paths", "uci_dir", fallback=defaults.uci_dir),
        top_command=_get_command(
            parser.get("paths", "top_command", fallback=None), defaults.top_command
        ),
        dmesg_command=_get_command(
            parser.get("paths", "dmesg_command", fallback=None), defaults.dmesg_command
        ),
        logread_command=_get_command(
            parser.get("paths", "logread_command", fallback=None), defaults.logread_command
        ),
        init_dir=parser.get("paths", "init_dir", fallback=defaults.init_dir),
        rc_dir=parser.get("paths", "rc_dir", fallback=defaults.rc_dir),
        authorized_keys=parser.get("paths", "authorized_keys", fallback=defaults.authorized_keys),
        relay_leases=parser.get("paths", "relay_leases", fallback=defaults.relay_leases),
        conntrack_count=parser.get("paths", "conntrack_count", fallback=defaults.conntrack_count),
        conntrack_max=parser.get("paths", "conntrack_max", fallback=defaults.conntrack_max),
        conntrack_table=parser.get("paths", "conntrack_table", fallback=defaults.conntrack_table),
        arp_table=parser.get("paths", "arp_table", fallback=defaults.arp_table),
        route_table=parser.get("paths", "route_table", fallback=defaults.route_table),
        ipv6_route_table=parser.get(
            "paths", "ipv6_route_table", fallback=defaults.ipv6_route_table
        ),
    )

    return AppConfig(mqtt=mqtt, logging=logging_config, paths=paths)
