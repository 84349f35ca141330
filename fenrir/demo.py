"""Command-line demo that sends a handful of log messages to a Loki endpoint."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from fenrir.backends import BackendError
from fenrir.logger import DEFAULT_ENDPOINT, ConfigurationError, Fenrir, FenrirBuilder
from fenrir.types import AuthenticationMethod, NetworkingBackend, SerializationFormat

TRACE = 5
CONSOLE_FORMAT = "[%(asctime)s %(levelname)s %(name)s] %(message)s"

MESSAGES = (
    (TRACE, "This is a TRACE message", {}),
    (logging.DEBUG, "This is a DEBUG message", {}),
    (logging.INFO, "This is a INFO message", {}),
    (logging.WARNING, "This is a WARN message", {"critical": True}),
    (logging.ERROR, "This is a ERROR message", {"fatal": False}),
)


def build_parser() -> argparse.ArgumentParser:
    """Return the parser for the demo's command line."""
    parser = argparse.ArgumentParser(
        prog="fenrir-demo", description="Send a few log messages to a Loki endpoint."
    )
    parser.add_argument("--endpoint", default=DEFAULT_ENDPOINT, help="Loki base URL")
    parser.add_argument(
        "--network",
        choices=[backend.value for backend in NetworkingBackend],
        default=NetworkingBackend.HTTP.value,
        help="transport used to deliver the logs",
    )
    parser.add_argument("--username", help="user name for basic authentication")
    parser.add_argument("--password", help="password for basic authentication")
    parser.add_argument("--service", default="simple-logging", help="value of the service label")
    parser.add_argument(
        "--console", action="store_true", help="also print the messages to standard output"
    )
    parser.add_argument(
        "--structured", action="store_true", help="attach per-message labels"
    )
    return parser


def configure_logging(handler: logging.Handler, console: bool) -> list[logging.Handler]:
    """Install the handler on the root logger and return the handlers added."""
    root = logging.getLogger()
    installed = [handler]
    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        installed.append(console_handler)
        root.setLevel(logging.DEBUG)
    else:
        root.setLevel(TRACE)
    for installed_handler in installed:
        root.addHandler(installed_handler)
    return installed


def _builder(args: argparse.Namespace) -> FenrirBuilder:
    builder = Fenrir.builder().endpoint(args.endpoint).network(NetworkingBackend(args.network))
    if args.username is not None:
        builder = builder.with_authentication(
            AuthenticationMethod.BASIC, args.username, args.password
        )
    return builder.format(SerializationFormat.JSON).include_level().tag("service", args.service)


def _log_messages(args: argparse.Namespace) -> None:
    log = logging.getLogger(__name__)
    for level, text, extra_labels in MESSAGES:
        if args.structured:
            log.log(level, text, extra={"labels": {"app": args.service, **extra_labels}})
        else:
            log.log(level, text)


def _run(args: argparse.Namespace, handler: Fenrir) -> None:
    root = logging.getLogger()
    previous_level = root.level
    installed = configure_logging(handler, args.console)
    try:
        _log_messages(args)
        handler.flush()
    finally:
        for installed_handler in installed:
            root.removeHandler(installed_handler)
        root.setLevel(previous_level)
        handler.close()


async def _run_async(args: argparse.Namespace) -> None:
    handler = _builder(args).event_loop_current().build()
    _run(args, handler)
    await asyncio.sleep(0)
    current = asyncio.current_task()
    deliveries = [task for task in asyncio.all_tasks() if task is not current]
    results = await asyncio.gather(*deliveries)
    if not all(results):
        raise BackendError("could not deliver logs to Loki")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the demo and return the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if (args.username is None) != (args.password is None):
        parser.error("--username and --password must be given together")
    logging.addLevelName(TRACE, "TRACE")
    try:
        if NetworkingBackend(args.network).is_async():
            asyncio.run(_run_async(args))
        else:
            _run(args, _builder(args).build())
    except (BackendError, ConfigurationError) as exc:
        print(f"fenrir-demo: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())