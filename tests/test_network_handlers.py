"""Tests for the luci2.network handlers."""
from __future__ import annotations

from pathlib import Path
import socket
import struct
from unittest.mock import patch

import pytest

from luci_rpcd.config import PathsConfig
from luci_rpcd.errors import RpcError, Status
from luci_rpcd.network import NetworkHandlers
from luci_rpcd.response import ResponseBuilder
from luci_rpcd.schema import validate_response
from luci_rpcd.uci import UciConfig

NOW = 1700000000

ARP_TABLE = """IP address       HW type     Flags       HW address            Mask     Device
192.168.1.20     0x1         0x2         aa:bb:cc:dd:ee:01     *        br-lan
192.168.1.21     0x1         0x0         00:00:00:00:00:00     *        br-lan
"""

CONNTRACK_TABLE = (
    "ipv4     2 tcp      6 7439 ESTABLISHED src=192.168.1.20 dst=93.184.216.34 "
    "sport=51000 dport=443 packets=10 bytes=1200 src=93.184.216.34 dst=203.0.113.5 "
    "sport=443 dport=51000 packets=8 bytes=5400 [ASSURED] mark=0 zone=0 use=2\n"
    "ipv6     10 udp      17 29 src=fd00::2 dst=fd00::1 sport=5353 dport=53 "
    "[UNREPLIED] src=fd00::1 dst=fd00::2 sport=53 dport=5353 mark=0 zone=0 use=2\n"
)

IPV6_ROUTE = (
    "20010db8000000000000000000000000 40 00000000000000000000000000000000 00 "
    "00000000000000000000000000000000 00000100 00000001 00000000 00000001 br-lan\n"
    "00000000000000000000000000000000 00 00000000000000000000000000000000 00 "
    "00000000000000000000000000000000 ffffffff 00000001 00000000 00200200 lo\n"
)


def kernel_hex(address: str) -> str:
    """Render an IPv4 address the way /proc/net/route prints it on this host."""
    return "%08X" % struct.unpack("=I", socket.inet_aton(address))[0]


def route_line(device: str, dest: str, gateway: str, metric: int, mask: str) -> str:
    return (
        f"{device}\t{kernel_hex(dest)}\t{kernel_hex(gateway)}\t0003\t0\t0\t{metric}\t"
        f"{kernel_hex(mask)}\t0\t0\t0\n"
    )


@pytest.fixture
def handlers(paths):
    return NetworkHandlers(paths, UciConfig(paths.uci_dir))


@pytest.fixture
def dnsmasq_config(fake_root):
    def configure(leasefile):
        (fake_root / "config" / "dhcp").write_text(
            f"config dnsmasq\n\toption domain 'lan'\n\toption leasefile '{leasefile}'\n"
        )
    return configure


def call(handler, params=None):
    with patch("luci_rpcd.network.time.time", return_value=NOW + 0.75):
        return handler(params or {}, ResponseBuilder()).build()


class TestConntrack:
    """Tests for conntrack_count and conntrack_table."""

    def test_counters(self, handlers, fake_root):
        (fake_root / "proc" / "nf_conntrack_count").write_text("42\n")
        (fake_root / "proc" / "nf_conntrack_max").write_text("16384\n")

        assert call(handlers.conntrack_count) == {"count": 42, "limit": 16384}

    def test_missing_counter_files_are_omitted(self, handlers, fake_root):
        (fake_root / "proc" / "nf_conntrack_max").write_text("16384\n")

        assert call(handlers.conntrack_count) == {"limit": 16384}

    def test_no_counters(self, handlers):
        assert call(handlers.conntrack_count) == {}

    def test_table(self, handlers, fake_root):
        (fake_root / "proc" / "nf_conntrack").write_text(CONNTRACK_TABLE)

        entries = call(handlers.conntrack_table)["entries"]

        assert entries == [
            {
                "ipv6": False,
                "protocol": 6,
                "expires": 7439,
                "src": "192.168.1.20",
                "dest": "93.184.216.34",
                "sport": 51000,
                "dport": 443,
                "rx_packets": 10,
                "tx_packets": 8,
                "rx_bytes": 1200,
                "tx_bytes": 5400,
            },
            {
                "ipv6": True,
                "protocol": 17,
                "expires": 29,
                "src": "fd00::2",
                "dest": "fd00::1",
                "sport": 5353,
                "dport": 53,
            },
        ]

    def test_table_missing(self, handlers):
        with pytest.raises(RpcError) as excinfo:
            call(handlers.conntrack_table)
        assert excinfo.value.status is Status.NOT_FOUND


class TestArp:
    def test_arp_table(self, handlers, fake_root):
        (fake_root / "proc" / "arp").write_text(ARP_TABLE)

        assert call(handlers.arp_table) == {
            "entries": [
                {"ipaddr": "192.168.1.20", "macaddr": "aa:bb:cc:dd:ee:01", "device": "br-lan"},
                {"ipaddr": "192.168.1.21", "macaddr": "00:00:00:00:00:00", "device": "br-lan"},
            ]
        }

    def test_header_only(self, handlers, fake_root):
        (fake_root / "proc" / "arp").write_text(ARP_TABLE.splitlines(keepends=True)[0])

        assert call(handlers.arp_table) == {"entries": []}


class TestDhcpLeases:
    """Tests for dhcp_leases and dhcp6_leases."""

    def test_ipv4_leases(self, handlers, fake_root, dnsmasq_config):
        leasefile = fake_root / "dhcp.leases"
        leasefile.write_text(
            f"{NOW + 3600} aa:bb:cc:dd:ee:01 192.168.1.20 laptop 01:aa:bb:cc:dd:ee:01\n"
            f"{NOW + 60} aa:bb:cc:dd:ee:02 192.168.1.21 * *\n"
            f"{NOW + 60} 1234 2001:db8::10 phone 00:01:00:01\n"
            "garbage\n"
        )
        dnsmasq_config(leasefile)

        assert call(handlers.dhcp_leases) == {
            "leases": [
                {
                    "expires": 3600,
                    "macaddr": "aa:bb:cc:dd:ee:01",
                    "ipaddr": "192.168.1.20",
                    "hostname": "laptop",
                },
                {"expires": 60, "macaddr": "aa:bb:cc:dd:ee:02", "ipaddr": "192.168.1.21"},
            ]
        }

    def test_no_leasefile_configured(self, handlers, fake_root):
        (fake_root / "config" / "dhcp").write_text("config dnsmasq\n\toption domain 'lan'\n")

        assert call(handlers.dhcp_leases) == {"leases": []}

    def test_no_dhcp_config(self, handlers):
        assert call(handlers.dhcp_leases) == {"leases": []}

    def test_configured_leasefile_missing(self, handlers, fake_root, dnsmasq_config):
        dnsmasq_config(fake_root / "missing.leases")

        with pytest.raises(RpcError) as excinfo:
            call(handlers.dhcp_leases)
        assert excinfo.value.status is Status.NOT_FOUND

    def test_ipv6_leases_from_dnsmasq(self, handlers, fake_root, dnsmasq_config):
        leasefile = fake_root / "dhcp.leases"
        leasefile.write_text(
            f"{NOW + 60} aa:bb:cc:dd:ee:02 192.168.1.21 tablet *\n"
            f"{NOW + 7200} 1234567 2001:db8::10 phone 00:01:00:01:1c:3e:8f:3a\n"
            f"{NOW + 100} 7654321 2001:db8::11 - *\n"
        )
        dnsmasq_config(leasefile)

        assert call(handlers.dhcp6_leases) == {
            "leases": [
                {
                    "expires": 7200,
                    "duid": "00:01:00:01:1c:3e:8f:3a",
                    "ip6addr": "2001:db8::10",
                    "hostname": "phone",
                },
                {"expires": 100, "ip6addr": "2001:db8::11"},
            ]
        }

    def test_relay_leases_take_precedence(self, handlers, fake_root, dnsmasq_config):
        leasefile = fake_root / "dhcp.leases"
        leasefile.write_text(f"{NOW + 7200} 1234567 2001:db8::10 phone *\n")
        dnsmasq_config(leasefile)
        (fake_root / "hosts" / "6relayd").write_text(
            f"# br-lan 000100011c3e8f3a001122334455 1 laptop {NOW + 300} 8 128 2001:db8::8\n"
            "2001:db8::8 laptop\n"
        )

        assert call(handlers.dhcp6_leases) == {
            "leases": [
                {
                    "expires": 300,
                    "duid": "000100011c3e8f3a001122334455",
                    "ip6addr": "2001:db8::8",
                    "hostname": "laptop",
                }
            ]
        }

    def test_ipv6_without_any_source(self, handlers):
        assert call(handlers.dhcp6_leases) == {"leases": []}


class TestRoutes:
    """Tests for routes and routes6."""

    def test_ipv4_routes(self, handlers, fake_root):
        (fake_root / "proc" / "route").write_text(
            "Iface\tDestination\tGateway \tFlags\tRefCnt\tUse\tMetric\tMask\t\tMTU\tWindow\tIRTT\n"
            + route_line("eth0", "0.0.0.0", "192.168.0.1", 0, "0.0.0.0")
            + route_line("br-lan", "192.168.1.0", "0.0.0.0", 10, "255.255.255.0")
        )

        assert call(handlers.routes) == {
            "routes": [
                {"target": "0.0.0.0/0", "nexthop": "192.168.0.1", "metric": 0, "device": "eth0"},
                {
                    "target": "192.168.1.0/24",
                    "nexthop": "0.0.0.0",
                    "metric": 10,
                    "device": "br-lan",
                },
            ]
        }

    def test_ipv6_routes_skip_routes_that_are_down(self, handlers, fake_root):
        (fake_root / "proc" / "ipv6_route").write_text(IPV6_ROUTE)

        assert call(handlers.routes6) == {
            "routes": [
                {
                    "target": "2001:db8::/64",
                    "source": "::/0",
                    "nexthop": "::",
                    "metric": 256,
                    "device": "br-lan",
                }
            ]
        }

    def test_route_table_missing(self, handlers):
        with pytest.raises(RpcError) as excinfo:
            call(handlers.routes)
        assert excinfo.value.status is Status.NOT_FOUND


@pytest.mark.linux
@pytest.mark.skipif(not Path("/proc/net/route").exists(), reason="Requires Linux /proc")
class TestLiveTables:
    """Read the running kernel's tables with the default paths."""

    @pytest.fixture
    def live_handlers(self, fake_root):
        return NetworkHandlers(PathsConfig(), UciConfig(fake_root / "config"))

    @pytest.mark.parametrize("method", ["routes", "routes6", "arp_table"])
    def test_live_table_matches_schema(self, live_handlers, method):
        if method == "routes6" and not Path(live_handlers.paths.ipv6_route_table).exists():
            pytest.skip("IPv6 disabled")

        result = call(getattr(live_handlers, method))

        assert validate_response(f"luci2.network.{method}", result) == []
