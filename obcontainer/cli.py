"""Command line helper that holds an OceanBase instance open for manual testing."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from .config import load_settings
from .container import OceanBaseContainer
from .descriptor import ConnectionDescriptor
from .errors import InvalidConfigurationError, StartupError
from .readiness import LoggingConsumer
from .runtime import InstanceRuntime

LOG = logging.getLogger(__name__)


def _url_param(value: str) -> tuple[str, str]:
    key, sep, param = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got '{value}'")
    return key, param


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="obcontainer", description=__doc__)
    parser.add_argument("--config", type=Path, default=None, help="Settings TOML file")
    parser.add_argument("--image", default=None, help="oceanbase/oceanbase-ce image reference")
    parser.add_argument("--mode", default=None, help="Deployment mode: normal, mini or slim")
    parser.add_argument("--tenant", dest="tenant_name", default=None, help="Tenant created for testing")
    parser.add_argument("--password", dest="root_password", default=None, help="Root password of the tenant")
    parser.add_argument("--dialect", default=None, help="generic, native or auto")
    parser.add_argument(
        "--param",
        dest="params",
        type=_url_param,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra connection URL parameter (repeatable)",
    )
    parser.add_argument("--timeout", dest="startup_timeout", type=float, default=None, help="Startup timeout in seconds")
    parser.add_argument("--host-network", action="store_true", help="Share the host network namespace")
    parser.add_argument("--no-hold", dest="hold", action="store_false", help="Print the descriptor and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log instance output and debug details")
    return parser.parse_args(argv)


def format_descriptor(descriptor: ConnectionDescriptor) -> str:
    lines = [
        f"url      = {descriptor.url}",
        f"driver   = {descriptor.driver}",
        f"host     = {descriptor.host}",
        f"port     = {descriptor.port}",
        f"database = {descriptor.database}",
        f"username = {descriptor.username}",
        f"password = {descriptor.password}",
    ]
    if descriptor.rpc_port is not None:
        lines.append(f"rpc_port = {descriptor.rpc_port.resolved_port}")
    return "\n".join(lines)


def main(argv: list[str] | None = None, *, runtime: InstanceRuntime | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        settings = load_settings(args.config).with_overrides(
            image=args.image,
            mode=args.mode,
            tenant_name=args.tenant_name,
            root_password=args.root_password,
            dialect=args.dialect,
            startup_timeout=args.startup_timeout,
            network_mode="host" if args.host_network else None,
        )
        for key, value in args.params:
            settings = settings.with_url_param(key, value)
        container = OceanBaseContainer(settings=settings, runtime=runtime)
    except InvalidConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    if args.verbose:
        container.with_log_consumer(LoggingConsumer(level=logging.DEBUG))

    try:
        with container:
            print(format_descriptor(container.descriptor()))
            if args.hold:
                print("Instance is running. Press Ctrl+C to stop.")
                while True:
                    time.sleep(3600)
    except StartupError as exc:
        print(f"Startup failed: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        LOG.info("Interrupted; instance destroyed")
    return 0


__all__ = ["format_descriptor", "main", "parse_args"]
