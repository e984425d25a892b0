from __future__ import annotations

import argparse
import json
import logging
import sys

from luci_rpcd.config import load_config
from luci_rpcd.dispatcher import Dispatcher
from luci_rpcd.logging_utils import configure_logging, resolve_log_level
from luci_rpcd.mqtt_client import MqttRpcServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="LuCI system and network RPC service")
    parser.add_argument(
        "--config",
        default="config/example.cfg",
        help="Path to CFG configuration file",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (TRACE, DEBUG, INFO, WARNING, ERROR); overrides [logging] level",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    parser.add_argument(
        "--call",
        metavar="OBJECT.METHOD",
        help="Run a single call locally (e.g. luci2.network.routes), print the reply and exit",
    )
    parser.add_argument(
        "--params",
        default="{}",
        help="JSON object with the arguments for --call",
    )
    parser.add_argument(
        "--dump-json",
        help="Also write the --call reply to a file",
    )
    return parser


def split_call(target: str) -> tuple[str, str]:
    object_name, sep, method = target.rpartition(".")
    if not sep or not object_name or not method:
        raise ValueError(f"Expected OBJECT.METHOD, got {target!r}")
    return object_name, method


def run_call(dispatcher: Dispatcher, args: argparse.Namespace, pretty: bool) -> int:
    logger = logging.getLogger("luci_rpcd")
    try:
        object_name, method = split_call(args.call)
        params = json.loads(args.params)
    except ValueError as exc:
        logger.error("Invalid call: %s", exc)
        return 2

    reply = dispatcher.call(object_name, method, params)
    reply_json = json.dumps(reply.to_dict(), indent=2 if pretty else None)
    if args.dump_json:
        with open(args.dump_json, "w", encoding="utf-8") as handle:
            handle.write(reply_json)
    print(reply_json)
    return 0 if reply.ok else 1


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    config = load_config(args.config)
    level = resolve_log_level(args.verbose, args.log_level or config.logging.level)
    configure_logging(level, use_syslog=config.logging.syslog)
    logger = logging.getLogger("luci_rpcd")

    dispatcher = Dispatcher.from_paths(config.paths)

    if args.call:
        sys.exit(run_call(dispatcher, args, pretty=level <= logging.DEBUG))

    server = MqttRpcServer(config.mqtt, dispatcher)
    server.connect()
    logger.info("luci-rpcd started. Serving calls on %s/call/#.", config.mqtt.base_topic)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("luci-rpcd stopped.")
    finally:
        server.disconnect()


if __name__ == "__main__":
    main()
