from __future__ import annotations

import logging
import os
from pathlib import Path
import stat
from typing import Any

import psutil

from luci_rpcd import sources
from luci_rpcd.config import PathsConfig
from luci_rpcd.errors import RpcError, Status
from luci_rpcd.logread import MAX_LOGSIZE
from luci_rpcd.parsers import (
    format_sshkeys,
    leading_int,
    parse_init_script,
    parse_process_table,
    parse_sshkeys,
)
from luci_rpcd.records import InitScriptRecord
from luci_rpcd.response import ResponseBuilder
from luci_rpcd.uci import UciConfig

DEFAULT_LOGFILE = "/var/log/messages"
INIT_ACTIONS = ("start", "stop", "reload", "restart", "enable", "disable")


def _int_param(params: dict[str, Any], key: str) -> int:
    value = params.get(key)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise RpcError(Status.INVALID_ARGUMENT, f"{key} must be an integer")
    return value


class SystemHandlers:
    """Handlers of the ``luci2.system`` object."""

    OBJECT = "luci2.system"

    def __init__(self, paths: PathsConfig, uci: UciConfig) -> None:
        self.paths = paths
        self.uci = uci
        self.logger = logging.getLogger(self.__class__.__name__)

    def syslog(self, params: dict[str, Any], reply: ResponseBuilder) -> ResponseBuilder:
        if not self.uci.has_package("system"):
            raise RpcError(Status.NOT_FOUND, "system configuration not found")

        log_type = self.uci.get("system", "system", "log_type")
        if log_type == "file":
            logfile = self.uci.get("system", "system", "log_file") or DEFAULT_LOGFILE
            self.logger.debug("Reading system log file %s.", logfile)
            blob = sources.read_file_tail(logfile)
        else:
            log_size = self.uci.get("system", "system", "log_size")
            # log_size is configured in KiB; 0 selects the reader default
            size = leading_int(log_size) * 1024 if log_size else 0
            self.logger.debug("Reading system log from %s.", " ".join(self.paths.logread_command))
            blob = sources.command_tail(self.paths.logread_command, size)
        return reply.add("log", blob.text)

    def dmesg(self, params: dict[str, Any], reply: ResponseBuilder) -> ResponseBuilder:
        blob = sources.command_tail(self.paths.dmesg_command, MAX_LOGSIZE)
        return reply.add("log", blob.text)

    def process_list(self, params: dict[str, Any], reply: ResponseBuilder) -> ResponseBuilder:
        lines = sources.command_lines(self.paths.top_command)
        processes = parse_process_table(lines)
        self.logger.debug("Parsed %s processes.", len(processes))
        return reply.add_array("processes", processes)

    def process_signal(self, params: dict[str, Any], reply: ResponseBuilder) -> ResponseBuilder:
        pid = _int_param(params, "pid")
        sig = _int_param(params, "signal")
        self.logger.info("Sending signal %s to pid %s.", sig, pid)
        try:
            psutil.Process(pid).send_signal(sig)
        except psutil.NoSuchProcess as exc:
            raise RpcError(Status.NOT_FOUND, f"No such process: {pid}") from exc
        except psutil.AccessDenied as exc:
            raise RpcError(Status.PERMISSION_DENIED, f"Not allowed to signal {pid}") from exc
        except (ValueError, OverflowError) as exc:
            raise RpcError(Status.INVALID_ARGUMENT, str(exc)) from exc
        except OSError as exc:
            raise RpcError.from_os_error(exc) from exc
        return reply

    def init_list(self, params: dict[str, Any], reply: ResponseBuilder) -> ResponseBuilder:
        try:
            with os.scandir(self.paths.init_dir) as entries:
                names = sorted(entry.name for entry in entries)
        except OSError as exc:
            raise RpcError.from_os_error(exc) from exc

        scripts: list[InitScriptRecord] = []
        for name in names:
            path = os.path.join(self.paths.init_dir, name)
            try:
                st = os.stat(path)
            except OSError:
                continue
            if not stat.S_ISREG(st.st_mode) or not st.st_mode & stat.S_IXUSR:
                continue
            try:
                with open(path, encoding="utf-8", errors="replace") as handle:
                    record = parse_init_script(name, handle, self._is_enabled)
            except OSError as exc:
                self.logger.debug("Failed to read init script %s: %s", path, exc)
                continue
            if record is not None:
                scripts.append(record)
        return reply.add_array("initscripts", scripts)

    def _is_enabled(self, name: str, start: int) -> bool:
        link = Path(self.paths.rc_dir) / f"S{start:02d}{name}"
        try:
            return bool(link.stat().st_mode & stat.S_IXUSR)
        except OSError:
            return False

    def init_action(self, params: dict[str, Any], reply: ResponseBuilder) -> ResponseBuilder:
        name = params.get("name")
        action = params.get("action")
        if action not in INIT_ACTIONS:
            raise RpcError(Status.INVALID_ARGUMENT, f"Unsupported action: {action!r}")
        if not isinstance(name, str) or not name or "/" in name or name in (".", ".."):
            raise RpcError(Status.INVALID_ARGUMENT, f"Invalid init script name: {name!r}")

        path = os.path.join(self.paths.init_dir, name)
        try:
            st = os.stat(path)
        except OSError as exc:
            raise RpcError.from_os_error(exc) from exc
        if not st.st_mode & stat.S_IXUSR:
            raise RpcError(Status.PERMISSION_DENIED, f"{path} is not executable")

        pid = sources.spawn_detached([path, action])
        self.logger.info("Started %s %s (pid %s).", path, action, pid)
        return reply

    def sshkeys_get(self, params: dict[str, Any], reply: ResponseBuilder) -> ResponseBuilder:
        lines = sources.read_lines(self.paths.authorized_keys)
        return reply.add_array("keys", parse_sshkeys(lines))

    def sshkeys_set(self, params: dict[str, Any], reply: ResponseBuilder) -> ResponseBuilder:
        keys = params.get("keys")
        if not isinstance(keys, list):
            raise RpcError(Status.INVALID_ARGUMENT, "keys must be an array")
        content = format_sshkeys(keys)
        sources.write_atomic(self.paths.authorized_keys, content)
        self.logger.info(
            "Wrote %s authorized keys to %s.", content.count("\n"), self.paths.authorized_keys
        )
        return reply
