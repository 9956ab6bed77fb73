"""
Simplified Shutdown Coordination
Simple, clean shutdown coordination for the asyncio bridge process.
"""

import asyncio
import signal
from typing import Any

from exit_codes import BridgeExitCode


class SimpleShutdownCoordinator:
    """Simple shutdown coordinator; only the first request counts"""

    def __init__(self, logger):
        self.logger = logger
        self._shutdown_event = asyncio.Event()
        self._shutdown_reason: str | None = None
        self._shutdown_initiated = False
        self._exit_code = BridgeExitCode.SUCCESS_CLEAN_SHUTDOWN

    def initiate_shutdown(self, reason: str = "manual") -> bool:
        """Initiate shutdown sequence

        Returns:
            True if this call initiated shutdown, False if it was already underway
        """
        if self._shutdown_initiated:
            self.logger.warning(f"Shutdown already initiated, ignoring new request: {reason}")
            return False

        self._shutdown_initiated = True
        self._shutdown_reason = reason
        self.logger.info(f"Shutdown initiated: {reason}")
        self._shutdown_event.set()
        return True

    def is_shutting_down(self) -> bool:
        """Check if shutdown is in progress"""
        return self._shutdown_event.is_set()

    async def wait_for_shutdown(self) -> None:
        """Wait for shutdown to be initiated"""
        await self._shutdown_event.wait()

    def get_shutdown_reason(self) -> str | None:
        """Get the reason for shutdown"""
        return self._shutdown_reason

    def set_exit_code(self, exit_code: int) -> None:
        """Set the exit code for this process"""
        self._exit_code = exit_code

    def get_exit_code(self) -> int:
        """Get the exit code for this process"""
        return self._exit_code


def setup_simple_signal_handlers(
    shutdown_coordinator: SimpleShutdownCoordinator,
    loop: asyncio.AbstractEventLoop | None = None,
) -> None:
    """Set up SIGTERM/SIGINT handlers that initiate shutdown once"""
    loop = loop or asyncio.get_running_loop()

    def signal_handler(signum: int, frame: Any = None) -> None:
        signal_name = signal.Signals(signum).name
        if shutdown_coordinator.is_shutting_down():
            shutdown_coordinator.logger.warning(
                f"Already shutting down, ignoring signal {signum} ({signal_name})"
            )
            return

        shutdown_coordinator.logger.info(f"Received signal {signum} ({signal_name})")
        shutdown_coordinator.set_exit_code(BridgeExitCode.SUCCESS_SIGNAL_SHUTDOWN)
        shutdown_coordinator.initiate_shutdown(f"signal_{signal_name}")

    for signum in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(signum, signal_handler, signum)
        except NotImplementedError:
            # Event loops without add_signal_handler (Windows)
            signal.signal(
                signum,
                lambda received, frame: loop.call_soon_threadsafe(signal_handler, received),
            )

    shutdown_coordinator.logger.info("Signal handlers registered for SIGTERM and SIGINT")
