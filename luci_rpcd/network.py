from __future__ import annotations

import logging
import time
from typing import Any

from luci_rpcd import sources
from luci_rpcd.config import PathsConfig
from luci_rpcd.parsers import (
    parse_arp_table,
    parse_conntrack_table,
    parse_counter,
    parse_leases,
    parse_leases6,
    parse_relay_leases,
    parse_route6_table,
    parse_route_table,
)
from luci_rpcd.records import ConntrackCounters
from luci_rpcd.response import ResponseBuilder
from luci_rpcd.uci import UciConfig


class NetworkHandlers:
    """Handlers of the ``luci2.network`` object."""

    OBJECT = "luci2.network"

    def __init__(self, paths: PathsConfig, uci: UciConfig) -> None:
        self.paths = paths
        self.uci = uci
        self.logger = logging.getLogger(self.__class__.__name__)

    def conntrack_count(self, params: dict[str, Any], reply: ResponseBuilder) -> ResponseBuilder:
        counters = ConntrackCounters(
            count=parse_counter(sources.read_text_optional(self.paths.conntrack_count)),
            limit=parse_counter(sources.read_text_optional(self.paths.conntrack_max)),
        )
        return reply.add_record(counters)

    def conntrack_table(self, params: dict[str, Any], reply: ResponseBuilder) -> ResponseBuilder:
        lines = sources.read_lines(self.paths.conntrack_table)
        return reply.add_array("entries", parse_conntrack_table(lines))

    def arp_table(self, params: dict[str, Any], reply: ResponseBuilder) -> ResponseBuilder:
        lines = sources.read_lines(self.paths.arp_table)
        return reply.add_array("entries", parse_arp_table(lines))

    def _leasefile(self) -> str | None:
        return self.uci.get("dhcp", "dnsmasq", "leasefile")

    def dhcp_leases(self, params: dict[str, Any], reply: ResponseBuilder) -> ResponseBuilder:
        leasefile = self._leasefile()
        if not leasefile:
            self.logger.debug("No dnsmasq lease file configured.")
            return reply.add_array("leases", [])
        lines = sources.read_lines(leasefile)
        return reply.add_array("leases", parse_leases(lines, int(time.time())))

    def dhcp6_leases(self, params: dict[str, Any], reply: ResponseBuilder) -> ResponseBuilder:
        now = int(time.time())
        relay_lines = sources.read_lines_optional(self.paths.relay_leases)
        if relay_lines is not None:
            return reply.add_array("leases", parse_relay_leases(relay_lines, now))

        leasefile = self._leasefile()
        if not leasefile:
            self.logger.debug("No relay leases and no dnsmasq lease file configured.")
            return reply.add_array("leases", [])
        lines = sources.read_lines(leasefile)
        return reply.add_array("leases", parse_leases6(lines, now))

    def routes(self, params: dict[str, Any], reply: ResponseBuilder) -> ResponseBuilder:
        lines = sources.read_lines(self.paths.route_table)
        return reply.add_array("routes", parse_route_table(lines))

    def routes6(self, params: dict[str, Any], reply: ResponseBuilder) -> ResponseBuilder:
        lines = sources.read_lines(self.paths.ipv6_route_table)
        return reply.add_array("routes", parse_route6_table(lines))
