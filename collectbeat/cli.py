from __future__ import annotations

import argparse
import logging
import socket
import sys
from pathlib import Path

from collectbeat import __version__
from collectbeat.collectors import available_collectors, build_collector
from collectbeat.config import BeatDocument, default_config_path, init_config, load_config
from collectbeat.outputs import ConsoleOutput, build_output
from libbeat.errors import ConfigurationError, SetupError
from libbeat.lifecycle import LifecycleController
from libbeat.logging import configure_logging
from libbeat.signals import SignalBridge

logger = logging.getLogger("beat.cli")


def _config_path(args: argparse.Namespace) -> Path | None:
    return Path(args.config).expanduser() if args.config else None


def _load(args: argparse.Namespace) -> BeatDocument | None:
    try:
        return load_config(_config_path(args))
    except ConfigurationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return None


def cmd_init(args: argparse.Namespace) -> int:
    path = init_config(_config_path(args))
    print(f"initialized config: {path}")
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    del args
    print(f"collectbeat version {__version__} (collectors: {', '.join(available_collectors())})")
    return 0


def cmd_test_config(args: argparse.Namespace) -> int:
    document = _load(args)
    if document is None:
        return 1
    try:
        collector = build_collector(document.beat.collector)
    except ConfigurationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    output = ConsoleOutput(
        stream=sys.stderr,
        beat_name=document.beat.name,
        hostname=socket.gethostname(),
        version=__version__,
    )
    controller = LifecycleController(
        collector,
        name=document.beat.name,
        version=__version__,
        publisher=output,
        config=document.collector_section(),
    )
    try:
        controller.initialize()
    except ConfigurationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return controller.exit_status
    except SetupError as exc:
        print(f"error: {exc}", file=sys.stderr)
    controller.shutdown()
    if controller.exit_status == 0:
        print("config OK")
    return controller.exit_status


def cmd_run(args: argparse.Namespace) -> int:
    document = _load(args)
    if document is None:
        return 1
    configure_logging(document.logging, verbose=bool(args.verbose), to_stderr=bool(args.log_stderr))

    try:
        collector = build_collector(document.beat.collector)
        output = build_output(
            document.output,
            beat_name=document.beat.name,
            hostname=socket.gethostname(),
            version=__version__,
            tags=document.beat.tags,
        )
    except (ConfigurationError, OSError) as exc:
        logger.error("startup failed: %s", exc)
        return 1

    controller = LifecycleController(
        collector,
        name=document.beat.name,
        version=__version__,
        publisher=output,
        config=document.collector_section(),
    )
    logger.info("starting %s collector=%s output=%s", document.beat.name, document.beat.collector, document.output.type)
    try:
        with SignalBridge(controller.request_stop):
            status = controller.run()
    finally:
        output.close()
    return status


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="collectbeat", description="periodic data collection daemon")
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="write a default config file")
    init_parser.add_argument("-c", "--config", type=str, default=str(default_config_path()))
    init_parser.set_defaults(func=cmd_init)

    run_parser = subparsers.add_parser("run", help="run the collector until stopped")
    run_parser.add_argument("-c", "--config", type=str, default=str(default_config_path()))
    run_parser.add_argument("-e", "--log-stderr", action="store_true", help="log to stderr instead of files")
    run_parser.set_defaults(func=cmd_run)

    test_parser = subparsers.add_parser("test-config", help="validate the config file and exit")
    test_parser.add_argument("-c", "--config", type=str, default=str(default_config_path()))
    test_parser.set_defaults(func=cmd_test_config)

    version_parser = subparsers.add_parser("version", help="print version information")
    version_parser.set_defaults(func=cmd_version)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.func is not cmd_run:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    return int(args.func(args))
