"""
Command-line entry point for the eToro trading client.

    etoro-trading stream 1001 1002       print live prices until Ctrl+C
    etoro-trading wait-order 123456      wait for an order to complete

Credentials are read from ETORO_API_KEY / ETORO_USER_KEY (or a .env file).
"""

import asyncio
import argparse
import json
import signal
import sys
from typing import List, Optional

from .exchange.etoro_gateway import EToroGateway, GatewayEvent
from .exchange.exceptions import ExchangeError
from .exchange.exchange_config import load_config
from .exchange.models import InstrumentRate, PrivateEvent
from .utils.logger import setup_logger, log_system_event, EventType


class TradingClientApp:
    """Runs one CLI command against a connected gateway."""

    def __init__(self, args: argparse.Namespace):
        """
        Initialize the app.

        Args:
            args: Parsed command-line arguments
        """
        self.args = args
        self.logger = setup_logger(
            log_level=args.log_level,
            log_dir=args.log_dir,
            log_format=args.log_format,
            service_name="etoro-trading"
        )
        self.config = load_config(dotenv=True, mode=args.mode)
        self.gateway: Optional[EToroGateway] = None
        self._stop = asyncio.Event()

    async def start(self) -> int:
        """Connect, run the command and shut down. Returns the exit code."""
        log_system_event(
            self.logger,
            EventType.STARTUP,
            "eToro client starting",
            command=self.args.command,
            mode=self.config.mode.value
        )

        self.gateway = EToroGateway(self.config)
        self.gateway.on(GatewayEvent.ERROR, self._on_error)

        try:
            await self.gateway.connect()

            if self.args.command == "stream":
                return await self._stream(self.args.instrument_ids)
            return await self._wait_order(self.args.order_id, self.args.timeout)

        except ExchangeError as e:
            self.logger.error("critical_error", error=str(e), error_type=type(e).__name__)
            print(f"error: {e}", file=sys.stderr)
            return 1
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Gracefully disconnect."""
        if self.gateway is None:
            return

        gateway, self.gateway = self.gateway, None
        log_system_event(self.logger, EventType.SHUTDOWN, "eToro client shutting down")
        await gateway.disconnect()
        self.logger.info("Shutdown complete")

    def handle_signal(self, signum, frame):
        """Handle shutdown signals (Ctrl+C)."""
        self.logger.warning("shutdown_signal_received", signal=signum)
        self._stop.set()

    async def _stream(self, instrument_ids: List[int]) -> int:
        self.gateway.on(GatewayEvent.PRICE, self._print_rate)
        self.gateway.stream_prices(instrument_ids, snapshot=True)

        await self._stop.wait()
        return 0

    async def _wait_order(self, order_id: int, timeout: float) -> int:
        waiter = asyncio.ensure_future(self.gateway.wait_for_order(order_id, timeout))
        stopper = asyncio.ensure_future(self._stop.wait())

        done, _ = await asyncio.wait({waiter, stopper}, return_when=asyncio.FIRST_COMPLETED)
        stopper.cancel()

        if waiter not in done:
            waiter.cancel()
            await asyncio.gather(waiter, return_exceptions=True)
            return 130

        event: PrivateEvent = waiter.result()
        print(json.dumps({
            "order_id": event.order_id,
            "status": event.status.label if event.status else event.status_id,
            "position_id": event.position_id,
            "instrument_id": event.instrument_id,
        }))
        return 0

    def _print_rate(self, instrument_id: int, rate: InstrumentRate) -> None:
        print(json.dumps({
            "instrument_id": instrument_id,
            "bid": str(rate.bid),
            "ask": str(rate.ask),
            "last": str(rate.last_execution),
            "date": rate.date,
        }), flush=True)

    def _on_error(self, error: BaseException) -> None:
        self.logger.error("gateway_error", error=str(error), error_type=type(error).__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="etoro-trading",
        description="eToro trading client"
    )
    parser.add_argument(
        "--mode",
        choices=["demo", "real"],
        default=None,
        help="Trading account (default: ETORO_MODE or demo)"
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    parser.add_argument(
        "--log-format",
        choices=["json", "console"],
        default="console",
        help="Log output format"
    )
    parser.add_argument(
        "--log-dir",
        default="logs",
        help="Directory for log files"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    stream = commands.add_parser("stream", help="Stream live prices")
    stream.add_argument("instrument_ids", type=int, nargs="+", help="eToro instrument IDs")

    wait_order = commands.add_parser("wait-order", help="Wait for an order to complete")
    wait_order.add_argument("order_id", type=int, help="eToro order ID")
    wait_order.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Seconds to wait (default: 30)"
    )

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        app = TradingClientApp(args)
    except ExchangeError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    # Setup signal handlers for graceful shutdown
    signal.signal(signal.SIGINT, app.handle_signal)
    signal.signal(signal.SIGTERM, app.handle_signal)

    return await app.start()


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
