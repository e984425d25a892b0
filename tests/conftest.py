"""Pytest configuration and shared fixtures."""
from __future__ import annotations

from pathlib import Path
import sys

import pytest

from luci_rpcd.config import PathsConfig
from luci_rpcd.dispatcher import Dispatcher


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "linux: mark test as reading live Linux /proc tables"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


@pytest.fixture
def fake_root(tmp_path: Path) -> Path:
    """Directory tree standing in for /etc, /proc and /tmp."""
    for directory in ("config", "init.d", "rc.d", "dropbear", "proc", "hosts"):
        (tmp_path / directory).mkdir()
    return tmp_path


@pytest.fixture
def paths(fake_root: Path) -> PathsConfig:
    return PathsConfig(
        uci_dir=str(fake_root / "config"),
        top_command=(sys.executable, "-c", "print('no processes')"),
        dmesg_command=(sys.executable, "-c", "print('dmesg')"),
        logread_command=(sys.executable, "-c", "print('logread')"),
        init_dir=str(fake_root / "init.d"),
        rc_dir=str(fake_root / "rc.d"),
        authorized_keys=str(fake_root / "dropbear" / "authorized_keys"),
        relay_leases=str(fake_root / "hosts" / "6relayd"),
        conntrack_count=str(fake_root / "proc" / "nf_conntrack_count"),
        conntrack_max=str(fake_root / "proc" / "nf_conntrack_max"),
        conntrack_table=str(fake_root / "proc" / "nf_conntrack"),
        arp_table=str(fake_root / "proc" / "arp"),
        route_table=str(fake_root / "proc" / "route"),
        ipv6_route_table=str(fake_root / "proc" / "ipv6_route"),
    )


@pytest.fixture
def dispatcher(paths: PathsConfig) -> Dispatcher:
    return Dispatcher.from_paths(paths)
