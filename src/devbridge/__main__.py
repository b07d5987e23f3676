"""Run the device bridge with its HTTP front end.

Configuration comes from ``BRIDGE_*`` environment variables; command-line
flags override them.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from typing import Any

from aiohttp import web

from devbridge.bridge import DeviceBridge
from devbridge.config import BridgeConfig
from devbridge.exceptions import BridgeConfigError
from devbridge.server import create_app

_LOG = logging.getLogger("devbridge")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="devbridge",
        description="Bridge HTTP device control calls onto MQTT devices.",
    )
    parser.add_argument("--host", help="HTTP bind address (default: BRIDGE_HTTP_HOST or 0.0.0.0).")
    parser.add_argument("--port", type=int, help="HTTP port (default: BRIDGE_HTTP_PORT or 3000).")
    parser.add_argument("--broker", help="MQTT broker host (default: BRIDGE_BROKER_HOST or localhost).")
    parser.add_argument("--broker-port", type=int, help="MQTT broker port (default: BRIDGE_BROKER_PORT or 1883).")
    parser.add_argument(
        "--command-timeout",
        type=float,
        help="Seconds to wait for a device response (default: 10).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    mapping = {
        "host": "http_host",
        "port": "http_port",
        "broker": "broker_host",
        "broker_port": "broker_port",
        "command_timeout": "command_timeout",
    }
    overrides: dict[str, Any] = {}
    for arg_name, field_name in mapping.items():
        value = getattr(args, arg_name)
        if value is not None:
            overrides[field_name] = value
    return overrides


async def _serve(config: BridgeConfig) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, stop.set)

    async with DeviceBridge(config) as bridge:
        runner = web.AppRunner(create_app(bridge))
        await runner.setup()
        site = web.TCPSite(runner, config.http_host, config.http_port)
        await site.start()
        _LOG.info("Bridge server running on %s:%s", config.http_host, config.http_port)
        _LOG.info("Waiting for devices on %s/+/heartbeat ...", config.topic_prefix)
        try:
            await stop.wait()
        finally:
            await runner.cleanup()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = BridgeConfig.from_env(**_overrides(args))
    except BridgeConfigError as exc:
        print(f"[devbridge] Invalid configuration: {exc}", file=sys.stderr)
        return 2

    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
