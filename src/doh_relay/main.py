from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import List, Optional

from .config.config_parser import load_config
from .config.logging_config import init_logging
from .errors import BootstrapError
from .server import DoHRelayServer


def main(argv: List[str] | None = None) -> int:
    """
    Main entry point for the relay.
    Parses arguments, loads configuration, starts the server and waits for a
    termination signal or a fatal listener error.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code: 0 on clean shutdown, 1 on configuration error, bootstrap
        failure, bind failure or fatal listener error.

    Example use:
        CLI:
            doh-relay --config /etc/doh-relay.yaml
            doh-relay --port 5353
    """
    parser = argparse.ArgumentParser(
        description="Local UDP DNS proxy forwarding to a DNS-over-HTTPS upstream"
    )
    parser.add_argument("--config", default="config.yaml", help="Path to YAML config")
    parser.add_argument("--host", default=None, help="Listen address (overrides config)")
    parser.add_argument(
        "--port", type=int, default=None, help="Listen UDP port (overrides config)"
    )
    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.config)
    except ValueError as exc:
        print(str(exc))
        return 1

    init_logging(cfg.logging)
    logger = logging.getLogger("doh_relay.main")
    logger.info("Loaded config from %s", args.config)

    done = threading.Event()
    fatal: List[BaseException] = []

    def _on_fatal_error(exc: BaseException) -> None:
        fatal.append(exc)
        done.set()

    server = DoHRelayServer(
        cfg, host=args.host, port=args.port, on_fatal_error=_on_fatal_error
    )
    try:
        server.start()
    except BootstrapError:
        # Already logged by the server.
        return 1
    except OSError as exc:
        logger.error("Could not bind %s:%d: %s", server.host, server.port, exc)
        return 1

    def _on_signal(signum, frame):
        logger.info("Received signal %d, shutting down", signum)
        done.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, _on_signal)

    try:
        while not done.wait(1.0):
            pass
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    try:
        server.stop()
    except OSError as exc:
        logger.error("Error while shutting down: %s", exc)
        return 1

    if fatal:
        logger.error("Exiting after listener failure: %s", fatal[0])
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
