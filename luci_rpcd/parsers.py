"""Parsers for the text tables exposed by the kernel and system daemons.

Every ``parse_*_line`` function turns one raw line into a record or
``None`` when the line does not carry a complete entry. The list-level
``parse_*`` functions keep the source order and drop the ``None`` results.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import asdict, dataclass
import logging
import re
import socket
import struct
from typing import TypeVar

from luci_rpcd.logging_utils import TRACE_LEVEL
from luci_rpcd.records import (
    ArpRecord,
    ConntrackRecord,
    InitScriptRecord,
    Lease6Record,
    LeaseRecord,
    ProcessRecord,
    Route6Record,
    RouteRecord,
    SshKeyRecord,
)

INIT_MARKER = "/etc/rc.common"
RTF_UP = 0x0001

T = TypeVar("T")

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"\s*([+-]?[0-9]+)")
_DIGITS = re.compile(r"[0-9]+")
_PROCESS_ROW = re.compile(r"[ \t]*([0-9]+)[ \t]+(\S+)[ \t]+(\S+)[ \t]+(?=\S)")
_SIZE_KIB = re.compile(r"([0-9]+(?:\.[0-9]+)?)([kmgt]?)", re.IGNORECASE)
_SIZE_SCALE = {"": 1, "k": 1, "m": 1024, "g": 1024 ** 2, "t": 1024 ** 3}
_INIT_TOKENS = re.compile(r"[= \t\r\n]+")
_NO_HOSTNAME = {"*", "-"}


def leading_int(token: str) -> int:
    """Parse leading decimal digits the way ``atoi`` does, 0 when there are none."""
    match = _LEADING_INT.match(token)
    return int(match.group(1)) if match else 0


def _collect(lines: Iterable[str], parse_line: Callable[[str], T | None]) -> list[T]:
    records: list[T] = []
    for line in lines:
        record = parse_line(line)
        if record is None:
            if line.strip():
                logger.log(TRACE_LEVEL, "Skipping line: %r", line)
            continue
        records.append(record)
    return records


def _skip_header(lines: Iterable[str]) -> Iterator[str]:
    iterator = iter(lines)
    next(iterator, None)
    return iterator


# --- address decoding -------------------------------------------------------


def _host_word_to_bytes(addr_hex: str) -> bytes:
    value = int(addr_hex, 16)
    if not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"Not a 32-bit hex word: {addr_hex!r}")
    # The kernel prints the network-order word as a host-order integer.
    return struct.pack("=I", value)


def prefix_length(mask_hex: str) -> int:
    """Count the leading set bits of a kernel hex netmask."""
    word = int.from_bytes(_host_word_to_bytes(mask_hex), "big")
    bits = 0
    while word & 0x80000000:
        bits += 1
        word = (word << 1) & 0xFFFFFFFF
    return bits


def decode_hexaddr(addr_hex: str, mask_hex: str | None = None) -> str:
    """Decode a ``/proc/net/route`` address, optionally as CIDR with its mask."""
    text = socket.inet_ntop(socket.AF_INET, _host_word_to_bytes(addr_hex))
    if mask_hex is not None:
        text = f"{text}/{prefix_length(mask_hex)}"
    return text


def decode_hex6addr(addr_hex: str, prefix_hex: str | None = None) -> str:
    """Decode a 32 hex digit ``/proc/net/ipv6_route`` address."""
    raw = bytes.fromhex(addr_hex)
    if len(raw) != 16:
        raise ValueError(f"Not a 128-bit hex address: {addr_hex!r}")
    text = socket.inet_ntop(socket.AF_INET6, raw)
    if prefix_hex is not None:
        text = f"{text}/{int(prefix_hex, 16)}"
    return text


# --- processes ----------------------------------------------------------------


def _parse_kib(token: str) -> int:
    # busybox switches to "12.3m" style units for large sizes
    match = _SIZE_KIB.match(token)
    if not match:
        return 0
    return int(float(match.group(1)) * _SIZE_SCALE[match.group(2).lower()])


def parse_process_line(line: str) -> ProcessRecord | None:
    # "  PID  PPID USER     STAT   VSZ %VSZ %CPU COMMAND"
    # " 1445  1444 root     R     1364   1%   9% top -bn1"
    match = _PROCESS_ROW.match(line)
    if not match:
        return None
    pid, ppid, user = match.groups()
    start = match.end()
    # STAT is a fixed three character column that may contain spaces.
    state = line[start:start + 3].replace("\n", " ").ljust(3)
    parts = line[start + 4:].split(None, 3)
    if len(parts) < 4:
        return None
    vsize, vsize_pct, cpu_pct, command = parts
    return ProcessRecord(
        pid=int(pid),
        ppid=leading_int(ppid),
        user=user,
        state=state,
        vsize_kb=_parse_kib(vsize),
        vsize_pct=leading_int(vsize_pct),
        cpu_pct=leading_int(cpu_pct),
        command=command.rstrip("\r\n"),
    )


def parse_process_table(lines: Iterable[str]) -> list[ProcessRecord]:
    return _collect(lines, parse_process_line)


# --- init scripts ---------------------------------------------------------------


def parse_init_assignments(lines: Iterable[str]) -> tuple[int | None, int | None]:
    """Return the START and STOP values of an init script body."""
    start: int | None = None
    stop: int | None = None
    for line in lines:
        tokens = [token for token in _INIT_TOKENS.split(line) if token]
        if len(tokens) < 2:
            continue
        if tokens[0] == "START":
            start = leading_int(tokens[1])
        elif tokens[0] == "STOP":
            stop = leading_int(tokens[1])
            break
    return start, stop


def parse_init_script(
    name: str,
    lines: Iterable[str],
    is_enabled: Callable[[str, int], bool],
) -> InitScriptRecord | None:
    """Build an init script record, or ``None`` for files not using rc.common.

    ``is_enabled`` receives the script name and its START order and reports
    whether the matching start link is installed.
    """
    iterator = iter(lines)
    header = next(iterator, None)
    if header is None or INIT_MARKER not in header:
        return None
    start, stop = parse_init_assignments(iterator)
    enabled = start is not None and is_enabled(name, start)
    return InitScriptRecord(name=name, start=start, stop=stop, enabled=enabled)


# --- ssh keys ---------------------------------------------------------------------


def parse_sshkeys(lines: Iterable[str]) -> list[SshKeyRecord]:
    return [SshKeyRecord(key=line.strip()) for line in lines if line.strip()]


def format_sshkeys(keys: Iterable[object]) -> str:
    """Render keys as authorized_keys content, skipping non-strings and blanks."""
    entries = []
    for key in keys:
        if not isinstance(key, str):
            logger.debug("Ignoring non-string key entry: %r", key)
            continue
        key = key.strip()
        if key:
            entries.append(f"{key}\n")
    return "".join(entries)


# --- DHCP leases ------------------------------------------------------------------


def _hostname(token: str) -> str | None:
    return None if token in _NO_HOSTNAME else token


def parse_lease_line(line: str, now: int) -> LeaseRecord | None:
    # "1700000000 aa:bb:cc:dd:ee:ff 192.168.1.10 laptop 01:aa:bb:cc:dd:ee:ff"
    parts = line.split()
    if len(parts) < 4:
        return None
    ts, mac, addr, name = parts[:4]
    if ":" in addr:
        return None
    try:
        expires = int(ts) - now
    except ValueError:
        return None
    return LeaseRecord(expires_sec=expires, macaddr=mac, ipaddr=addr, hostname=_hostname(name))


def parse_leases(lines: Iterable[str], now: int) -> list[LeaseRecord]:
    return _collect(lines, lambda line: parse_lease_line(line, now))


def parse_relay_lease_line(line: str, now: int) -> Lease6Record | None:
    # "# br-lan 000100011c3e8f3a001122334455 1 laptop 1700000000 8 128 2001:db8::8"
    if not line.startswith("# "):
        return None
    parts = line[2:].split()
    if len(parts) < 8:
        return None
    _iface, duid, _iaid, name, ts, _id, _length, addr = parts[:8]
    try:
        expires = int(ts) - now
    except ValueError:
        return None
    return Lease6Record(expires_sec=expires, ip6addr=addr, duid=duid, hostname=_hostname(name))


def parse_relay_leases(lines: Iterable[str], now: int) -> list[Lease6Record]:
    return _collect(lines, lambda line: parse_relay_lease_line(line, now))


def parse_lease6_line(line: str, now: int) -> Lease6Record | None:
    # "1700000000 1234567 2001:db8::10 laptop 00:01:00:01:1c:3e:8f:3a"
    parts = line.split()
    if len(parts) < 5:
        return None
    ts, _iaid, addr, name, duid = parts[:5]
    if ":" not in addr:
        return None
    try:
        expires = int(ts) - now
    except ValueError:
        return None
    return Lease6Record(
        expires_sec=expires,
        ip6addr=addr,
        duid=None if duid == "*" else duid,
        hostname=_hostname(name),
    )


def parse_leases6(lines: Iterable[str], now: int) -> list[Lease6Record]:
    return _collect(lines, lambda line: parse_lease6_line(line, now))


# --- ARP and routes ---------------------------------------------------------------


def parse_arp_line(line: str) -> ArpRecord | None:
    # "192.168.1.2  0x1  0x2  aa:bb:cc:dd:ee:ff  *  br-lan"
    parts = line.split()
    if len(parts) < 6:
        return None
    return ArpRecord(ipaddr=parts[0], macaddr=parts[3], device=parts[5])


def parse_arp_table(lines: Iterable[str]) -> list[ArpRecord]:
    return _collect(_skip_header(lines), parse_arp_line)


def parse_route_line(line: str) -> RouteRecord | None:
    # "eth0  00000000  0101A8C0  0003  0  0  0  00000000  0  0  0"
    parts = line.split()
    if len(parts) < 8:
        return None
    device, dest, gateway, _flags, _refcnt, _use, metric, mask = parts[:8]
    try:
        return RouteRecord(
            target=decode_hexaddr(dest, mask),
            nexthop=decode_hexaddr(gateway),
            metric=int(metric),
            device=device,
        )
    except ValueError:
        return None


def parse_route_table(lines: Iterable[str]) -> list[RouteRecord]:
    return _collect(_skip_header(lines), parse_route_line)


def parse_route6_line(line: str) -> Route6Record | None:
    parts = line.split()
    if len(parts) < 10:
        return None
    dest, dest_len, src, src_len, nexthop, metric, _refcnt, _use, flags, device = parts[:10]
    try:
        if not int(flags, 16) & RTF_UP:
            return None
        return Route6Record(
            target=decode_hex6addr(dest, dest_len),
            source=decode_hex6addr(src, src_len),
            nexthop=decode_hex6addr(nexthop),
            metric=int(metric, 16),
            device=device,
        )
    except ValueError:
        return None


def parse_route6_table(lines: Iterable[str]) -> list[Route6Record]:
    return _collect(lines, parse_route6_line)


# --- conntrack ----------------------------------------------------------------------


@dataclass
class _ConntrackFields:
    """Key/value fields of one conntrack line, each filled at most once."""

    src: str | None = None
    dest: str | None = None
    sport: int | None = None
    dport: int | None = None
    rx_packets: int | None = None
    tx_packets: int | None = None
    rx_bytes: int | None = None
    tx_bytes: int | None = None

    def feed(self, token: str) -> None:
        key, sep, value = token.partition("=")
        if not sep:
            return
        if key == "src":
            if self.src is None:
                self.src = value
        elif key == "dst":
            if self.dest is None:
                self.dest = value
        elif key == "sport":
            if self.sport is None:
                self.sport = int(value)
        elif key == "dport":
            if self.dport is None:
                self.dport = int(value)
        elif key == "packets":
            # original direction first, reply direction second
            if self.rx_packets is None:
                self.rx_packets = int(value)
            elif self.tx_packets is None:
                self.tx_packets = int(value)
        elif key == "bytes":
            if self.rx_bytes is None:
                self.rx_bytes = int(value)
            elif self.tx_bytes is None:
                self.tx_bytes = int(value)


def parse_conntrack_line(line: str) -> ConntrackRecord | None:
    # "ipv4 2 tcp 6 431999 ESTABLISHED src=10.0.0.2 dst=10.0.0.1 sport=5000 ..."
    parts = line.split()
    if len(parts) < 5:
        return None
    fields = _ConntrackFields()
    try:
        protocol = int(parts[3])
        expires = int(parts[4])
        for token in parts[5:]:
            if token.startswith("["):
                continue
            fields.feed(token)
    except ValueError:
        return None
    return ConntrackRecord(
        ipv6=parts[0] == "ipv6",
        protocol=protocol,
        expires=expires,
        **asdict(fields),
    )


def parse_conntrack_table(lines: Iterable[str]) -> list[ConntrackRecord]:
    return _collect(lines, parse_conntrack_line)


def parse_counter(text: str | None) -> int | None:
    """Parse the unsigned value of a single-line ``/proc/sys`` counter file."""
    if not text:
        return None
    lines = text.splitlines()
    if not lines:
        return None
    value = lines[0].strip()
    if not _DIGITS.fullmatch(value):
        return None
    return int(value)
